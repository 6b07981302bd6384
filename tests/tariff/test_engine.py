from datetime import datetime, timedelta, timezone

import pytest

from conftest import FakeStore, make_override, make_region
from delivery.engine.cache import CacheEntry
from delivery.engine.pipeline import FALLBACK_TARIFFS, TariffEngine
from delivery.models import Provenance, Tariff

DAY = 24 * 3600
INC = 5000


@pytest.fixture
def bukhara():
    return make_region("bukhara", base=35000, eta=48)


def build(clock, store=None, carrier=None):
    kwargs = {"store_provider": lambda: store, "clock": clock, "per_kg_increment": INC}
    if carrier is not None:
        kwargs["carrier"] = carrier
    return TariffEngine(**kwargs)


# -------- home city --------
@pytest.mark.parametrize("weight", [0, 0.5, 3.0, 250.0])
def test_home_city_is_free_regardless_of_weight(clock, weight):
    t = build(clock, FakeStore(fail=True)).resolve("bukhara", "Buxoro shahri", weight)
    assert (t.price, t.eta_hours) == (0, 24)
    assert t.provenance == Provenance.FROM_OVERRIDE

def test_home_city_skips_store_and_cache(clock):
    store = FakeStore()
    engine = build(clock, store)
    engine.resolve("bukhara", "Bukhara City", 3.0)
    assert sum(store.calls.values()) == 0
    assert len(engine.cache) == 0


# -------- static fallback --------
def test_store_down_falls_back_with_weight_pricing(clock):
    engine = build(clock, FakeStore(fail=True))
    t = engine.resolve("tashkent_region", "Chirchiq", 2.5)
    base, eta = FALLBACK_TARIFFS["tashkent_region"]
    assert t.provenance == Provenance.FALLBACK_ESTIMATE
    assert t.price == base + 2 * INC
    assert t.eta_hours == eta
    assert t.is_estimate

def test_no_store_configured_falls_back(clock):
    t = build(clock, None).resolve("samarkand", "Urgut tumani", 1.0)
    assert t.provenance == Provenance.FALLBACK_ESTIMATE
    assert t.price == FALLBACK_TARIFFS["samarkand"][0]

def test_unknown_region_uses_default_entry(clock):
    t = build(clock, FakeStore()).resolve("atlantis", "Poseidonia", 1.7)
    base, eta = FALLBACK_TARIFFS["default"]
    assert (t.price, t.eta_hours) == (base + INC, eta)
    assert t.provenance == Provenance.FALLBACK_ESTIMATE

def test_malformed_store_data_is_treated_as_no_data(clock):
    class BrokenStore(FakeStore):
        def get_region(self, region_code):
            raise KeyError("delivery_eta_hours")

    t = build(clock, BrokenStore()).resolve("navoi", "Karmana tumani", 1.0)
    assert t.provenance == Provenance.FALLBACK_ESTIMATE

def test_fallback_is_cached_so_outage_hits_store_once(clock):
    store = FakeStore(fail=True)
    engine = build(clock, store)
    first = engine.resolve("fergana", "Quva tumani", 1.0)
    second = engine.resolve("fergana", "quva tumani", 1.0)
    assert store.calls["get_region"] == 1
    assert second.price == first.price
    assert second.origin == Provenance.FALLBACK_ESTIMATE
    assert Provenance.FROM_CACHE in second.provenance


# -------- settings store --------
def test_region_bypass_wins_over_city_override(clock):
    region = make_region("samarkand", base=60000, eta=48, use_bts_tariff=False)
    store = FakeStore([region], [make_override(region, "Urgut tumani", price=20000)])
    engine = build(clock, store)

    for city in ("Urgut tumani", "Samarqand shahri"):
        engine.cache.clear()
        t = engine.resolve("samarkand", city, 7.5)
        assert t.price == 60000
        assert t.eta_hours == 48
        assert t.provenance == Provenance.FROM_OVERRIDE

def test_region_bypass_free_region(clock):
    region = make_region("navoi", base=40000, use_bts_tariff=False, is_free_delivery=True)
    t = build(clock, FakeStore([region])).resolve("navoi", "Navoiy shahri", 3.0)
    assert t.price == 0

def test_free_city_override(clock, bukhara):
    store = FakeStore([bukhara], [make_override(bukhara, "Kogon shahri", free=True, eta=24)])
    t = build(clock, store).resolve("bukhara", "kogon", 4.0)
    assert (t.price, t.eta_hours) == (0, 24)

def test_city_override_price_is_verbatim(clock, bukhara):
    store = FakeStore([bukhara], [make_override(bukhara, "G'ijduvon tumani", price=30000)])
    t = build(clock, store).resolve("bukhara", "g'ijduvon", 6.0)
    assert t.price == 30000
    assert t.eta_hours == 48
    assert t.provenance == Provenance.FROM_OVERRIDE

def test_city_override_null_price_uses_region_base_with_weight(clock, bukhara):
    store = FakeStore([bukhara], [make_override(bukhara, "Olot tumani", eta=36)])
    t = build(clock, store).resolve("bukhara", "Olot", 2.2)
    assert t.price == 35000 + 2 * INC
    assert t.eta_hours == 36

def test_inactive_override_ignored(clock, bukhara):
    store = FakeStore([bukhara], [make_override(bukhara, "Jondor tumani", price=1000, active=False)])
    t = build(clock, store).resolve("bukhara", "Jondor tumani", 1.0)
    assert t.price == 35000

def test_region_without_override_uses_region_defaults(clock):
    region = make_region("khorezm", base=50000, eta=72)
    t = build(clock, FakeStore([region])).resolve("khorezm", "Xiva shahri", 3.4)
    assert t.price == 50000 + 3 * INC
    assert t.eta_hours == 72
    assert t.provenance == Provenance.FROM_OVERRIDE
    assert not t.is_estimate

def test_region_null_base_price_uses_default_base(clock):
    region = make_region("jizzakh", base=None)
    t = build(clock, FakeStore([region])).resolve("jizzakh", "Zomin tumani", 1.0)
    assert t.price == 35000

def test_free_region(clock):
    region = make_region("syrdarya", is_free_delivery=True, eta=48)
    t = build(clock, FakeStore([region])).resolve("syrdarya", "Guliston shahri", 9.0)
    assert (t.price, t.eta_hours) == (0, 48)

def test_missing_region_record_falls_through(clock):
    store = FakeStore([make_region("navoi")])
    t = build(clock, store).resolve("andijan", "Asaka tumani", 1.0)
    assert t.provenance == Provenance.FALLBACK_ESTIMATE
    assert t.price == FALLBACK_TARIFFS["andijan"][0]

def test_fresh_written_back_carrier_price_is_used(clock):
    updated = datetime.fromtimestamp(clock() - 3600, tz=timezone.utc)
    region = make_region("namangan", base=35000, bts_tariff_cached=42000, bts_cache_updated_at=updated)
    t = build(clock, FakeStore([region])).resolve("namangan", "Chust tumani", 2.0)
    assert t.price == 42000 + INC
    assert t.provenance == Provenance.FROM_OVERRIDE | Provenance.FROM_LIVE_CARRIER

def test_stale_written_back_carrier_price_is_ignored(clock):
    updated = datetime.fromtimestamp(clock(), tz=timezone.utc) - timedelta(hours=25)
    region = make_region("namangan", base=35000, bts_tariff_cached=42000, bts_cache_updated_at=updated)
    t = build(clock, FakeStore([region])).resolve("namangan", "Chust tumani", 1.0)
    assert t.price == 35000
    assert t.provenance == Provenance.FROM_OVERRIDE


# -------- cache --------
def test_second_resolve_does_not_query_store(clock):
    store = FakeStore([make_region("kashkadarya", base=45000)])
    engine = build(clock, store)
    first = engine.resolve("kashkadarya", "Qarshi shahri", 1.5)
    clock.advance(DAY - 60)
    second = engine.resolve("kashkadarya", "Qarshi shahri", 1.5)

    assert store.calls["get_region"] == 1
    assert (second.price, second.eta_hours) == (first.price, first.eta_hours)
    assert second.origin == first.origin == Provenance.FROM_OVERRIDE
    assert second.provenance == Provenance.FROM_OVERRIDE | Provenance.FROM_CACHE

def test_cache_hit_reprices_for_new_weight(clock):
    store = FakeStore([make_region("kashkadarya", base=45000)])
    engine = build(clock, store)
    engine.resolve("kashkadarya", "Qarshi shahri", 1.0)
    t = engine.resolve("kashkadarya", "QARSHI SHAHRI", 3.5)
    assert t.price == 45000 + 3 * INC
    assert t.weight_kg == 3.5
    assert store.calls["get_region"] == 1

def test_cache_hit_keeps_verbatim_price(clock, bukhara):
    store = FakeStore([bukhara], [make_override(bukhara, "Romitan tumani", price=30000)])
    engine = build(clock, store)
    engine.resolve("bukhara", "Romitan tumani", 1.0)
    t = engine.resolve("bukhara", "Romitan tumani", 12.0)
    assert t.price == 30000
    assert Provenance.FROM_CACHE in t.provenance

def test_expired_entry_requeries_store(clock):
    store = FakeStore([make_region("navoi")])
    engine = build(clock, store)
    engine.resolve("navoi", "Nurota tumani", 1.0)
    clock.advance(DAY)
    t = engine.resolve("navoi", "Nurota tumani", 1.0)
    assert store.calls["get_region"] == 2
    assert Provenance.FROM_CACHE not in t.provenance

def test_operator_change_visible_after_ttl(clock):
    region = make_region("navoi", base=40000)
    store = FakeStore([region])
    engine = build(clock, store)
    assert engine.resolve("navoi", "Nurota tumani", 1.0).price == 40000

    store.regions["navoi"] = make_region("navoi", base=30000)
    assert engine.resolve("navoi", "Nurota tumani", 1.0).price == 40000
    clock.advance(DAY)
    assert engine.resolve("navoi", "Nurota tumani", 1.0).price == 30000


# -------- live carrier --------
def test_carrier_result_is_used_and_written_back(clock):
    def carrier(region_code, city_name, weight_kg):
        return Tariff(price=52000, eta_hours=48, provenance=Provenance.NONE, weight_kg=weight_kg,
                      base_price=47000, per_kg_increment=INC)

    store = FakeStore()
    t = build(clock, store, carrier).resolve("surkhandarya", "Termiz shahri", 1.5)
    assert t.price == 52000
    assert t.provenance == Provenance.FROM_LIVE_CARRIER
    assert store.saved == [("surkhandarya", 47000)]

def test_carrier_write_back_failure_keeps_result(clock):
    class ReadOnlyStore(FakeStore):
        def save_carrier_tariff(self, region_code, price):
            raise PermissionError("rls: read only")

    def carrier(region_code, city_name, weight_kg):
        return Tariff(price=61000, eta_hours=72, provenance=Provenance.NONE, weight_kg=weight_kg,
                      base_price=61000)

    t = build(clock, ReadOnlyStore(), carrier).resolve("karakalpakstan", "Nukus shahri", 1.0)
    assert t.price == 61000
    assert t.provenance == Provenance.FROM_LIVE_CARRIER

def test_carrier_error_and_store_error_still_resolve(clock):
    def carrier(region_code, city_name, weight_kg):
        raise TimeoutError("bts api timeout")

    t = build(clock, FakeStore(fail=True), carrier).resolve("khorezm", "Urganch shahri", 5.0)
    base, _ = FALLBACK_TARIFFS["khorezm"]
    assert t.provenance == Provenance.FALLBACK_ESTIMATE
    assert t.price == base + 4 * INC

def test_default_carrier_always_misses(clock):
    t = build(clock, FakeStore()).resolve("andijan", "Asaka tumani", 1.0)
    assert t.provenance == Provenance.FALLBACK_ESTIMATE

def test_carrier_flat_quote_survives_cache(clock):
    def carrier(region_code, city_name, weight_kg):
        return Tariff(price=52000, eta_hours=48, provenance=Provenance.NONE, weight_kg=weight_kg)

    store = FakeStore()
    engine = build(clock, store, carrier)
    first = engine.resolve("surkhandarya", "Termiz shahri", 1.0)
    second = engine.resolve("surkhandarya", "Termiz shahri", 1.0)
    assert first.price == second.price == 52000
    assert second.provenance == Provenance.FROM_LIVE_CARRIER | Provenance.FROM_CACHE
    assert store.saved == [("surkhandarya", 52000)]


# -------- collaborators --------
class GetSetCache:
    """Minimal cache: only get/set, no ttl attribute."""

    def __init__(self):
        self.entries = {}

    def get(self, key):
        return self.entries.get(key)

    def set(self, key, value, timestamp=None):
        self.entries[key] = CacheEntry(value, timestamp)


def test_engine_owns_freshness_window(clock):
    updated = datetime.fromtimestamp(clock() - 3600, tz=timezone.utc)
    region = make_region("namangan", base=35000, bts_tariff_cached=42000, bts_cache_updated_at=updated)
    store = FakeStore([region])
    engine = TariffEngine(store_provider=lambda: store, cache=GetSetCache(), clock=clock,
                          per_kg_increment=INC)
    t = engine.resolve("namangan", "Chust tumani", 2.0)
    assert t.price == 42000 + INC
    assert t.provenance == Provenance.FROM_OVERRIDE | Provenance.FROM_LIVE_CARRIER

def test_engine_ttl_applies_to_written_back_price(clock):
    updated = datetime.fromtimestamp(clock() - 3600, tz=timezone.utc)
    region = make_region("namangan", base=35000, bts_tariff_cached=42000, bts_cache_updated_at=updated)
    store = FakeStore([region])
    engine = TariffEngine(store_provider=lambda: store, clock=clock, per_kg_increment=INC,
                          ttl_seconds=1800)
    t = engine.resolve("namangan", "Chust tumani", 1.0)
    assert t.price == 35000
    assert engine.cache.ttl_seconds == 1800

def test_store_provider_error_degrades_to_fallback(clock):
    def provider():
        raise RuntimeError("bad credentials")

    engine = TariffEngine(store_provider=provider, clock=clock, per_kg_increment=INC)
    t = engine.resolve("jizzakh", "Zomin tumani", 1.0)
    assert t.provenance == Provenance.FALLBACK_ESTIMATE
    assert t.price == FALLBACK_TARIFFS["jizzakh"][0]
