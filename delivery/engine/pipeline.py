from __future__ import annotations
import logging
import time
from dataclasses import dataclass, replace
from datetime import timezone
from typing import Callable, List, Optional, Tuple, Union

from delivery.engine.cache import CacheKey, TariffCache, cache_key
from delivery.models import Provenance, Region, Tariff, Unavailable
from delivery.settings import settings
from delivery.store import SettingsStore, get_store
from delivery.tools.carrier import CarrierFn, fetch_live_tariff
from delivery.tools.geography import is_home_city
from delivery.tools.weight_pricing import price_for

log = logging.getLogger(__name__)

HOME_CITY_ETA_HOURS = 24

# Last-resort table: region code -> (first-kg price, eta hours)
FALLBACK_TARIFFS = {
    "bukhara": (35000, 48),
    "tashkent_city": (45000, 72),
    "tashkent_region": (45000, 72),
    "samarkand": (40000, 48),
    "fergana": (50000, 72),
    "andijan": (50000, 72),
    "namangan": (50000, 72),
    "kashkadarya": (45000, 72),
    "surkhandarya": (55000, 72),
    "navoi": (40000, 72),
    "khorezm": (55000, 72),
    "jizzakh": (40000, 72),
    "syrdarya": (45000, 72),
    "karakalpakstan": (60000, 72),
    "default": (35000, 72),
}

StageResult = Union[Tariff, Unavailable]


@dataclass(frozen=True)
class TariffRequest:
    region_code: str
    city_name: str
    weight_kg: float

    @property
    def key(self) -> CacheKey:
        return cache_key(self.region_code, self.city_name)


class TariffEngine:
    """
    Resolves (region, city, weight) to a Tariff. Sources are tried in order of trust:

        home city -> cache -> settings store -> live carrier -> static fallback

    Each stage returns a Tariff or Unavailable; the first Tariff wins. The fallback
    is pure table lookup + arithmetic, so resolve() always returns a tariff.
    Store/carrier results and fallback estimates are cached; home-city and
    cache hits are not.
    """

    def __init__(
        self,
        store_provider: Callable[[], Optional[SettingsStore]] = get_store,
        cache: Optional[TariffCache] = None,
        carrier: CarrierFn = fetch_live_tariff,
        clock: Callable[[], float] = time.time,
        per_kg_increment: Optional[int] = None,
        ttl_seconds: Optional[float] = None,
    ):
        self._store_provider = store_provider
        self.clock = clock
        # freshness window for cached tariffs and for carrier prices written back to the store
        self.ttl_seconds = settings.tariff_cache_ttl_hours * 3600 if ttl_seconds is None else ttl_seconds
        if cache is None:
            cache = TariffCache(ttl_seconds=self.ttl_seconds, clock=clock)
        self.cache = cache
        self._carrier = carrier
        self.per_kg_increment = settings.per_kg_increment if per_kg_increment is None else per_kg_increment

        # (name, stage, cache the result)
        self._stages: List[Tuple[str, Callable[[TariffRequest], StageResult], bool]] = [
            ("home_city", self.stage_home_city, False),
            ("cache", self.stage_cache, False),
            ("store", self.stage_store, True),
            ("carrier", self.stage_carrier, True),
        ]

    # -------- driver --------
    def resolve(self, region_code: str, city_name: str, weight_kg: float = 1.0) -> Tariff:
        req = TariffRequest(region_code or "", city_name or "", float(weight_kg or 0))

        for name, stage, cacheable in self._stages:
            result = stage(req)
            if isinstance(result, Unavailable):
                log.debug(f"{name}: unavailable ({result.reason}) for {req.key}")
                continue
            if cacheable:
                self.cache.set(req.key, result, self.clock())
            return result

        tariff = self.stage_fallback(req)
        self.cache.set(req.key, tariff, self.clock())
        return tariff

    # -------- pricing helpers --------
    def _flat(self, price: int, eta_hours: int, provenance: Provenance, req: TariffRequest) -> Tariff:
        """Verbatim price, independent of weight."""
        return Tariff(price=int(price), eta_hours=int(eta_hours), provenance=provenance,
                      weight_kg=req.weight_kg, base_price=int(price), per_kg_increment=0)

    def _priced(self, base: int, eta_hours: int, provenance: Provenance, req: TariffRequest) -> Tariff:
        inc = self.per_kg_increment
        return Tariff(price=price_for(req.weight_kg, base, inc), eta_hours=int(eta_hours),
                      provenance=provenance, weight_kg=req.weight_kg,
                      base_price=int(base), per_kg_increment=inc)

    # -------- stages --------
    def stage_home_city(self, req: TariffRequest) -> StageResult:
        if not is_home_city(req.region_code, req.city_name):
            return Unavailable("home_city", "not the home city")
        return self._flat(0, HOME_CITY_ETA_HOURS, Provenance.FROM_OVERRIDE, req)

    def stage_cache(self, req: TariffRequest) -> StageResult:
        entry = self.cache.get(req.key)
        if entry is None:
            return Unavailable("cache", "miss")
        cached = entry.tariff
        # price follows the current weight; eta and origin come from the cached tariff
        return replace(
            cached,
            weight_kg=req.weight_kg,
            price=price_for(req.weight_kg, cached.base_price, cached.per_kg_increment),
            provenance=cached.provenance | Provenance.FROM_CACHE,
        )

    def stage_store(self, req: TariffRequest) -> StageResult:
        try:
            store = self._store_provider()
            if store is None:
                return Unavailable("store", "not configured")
            region = store.get_region(req.region_code)
            if region is None:
                return Unavailable("store", f"no delivery_settings row for {req.region_code!r}")
            return self._from_region(store, region, req)
        except Exception as e:
            log.warning(f"settings store read failed for {req.key}: {e}")
            return Unavailable("store", str(e))

    def _from_region(self, store: SettingsStore, region: Region, req: TariffRequest) -> Tariff:
        prov = Provenance.FROM_OVERRIDE
        eta = region.delivery_eta_hours
        base = region.base_delivery_price
        if base is None:
            base = settings.base_delivery_price

        # operator switched the region off BTS pricing: region price wins over everything
        if not region.use_bts_tariff and region.base_delivery_price is not None:
            price = 0 if region.is_free_delivery else region.base_delivery_price
            return self._flat(price, eta, prov, req)

        override = store.find_city_override(region, req.city_name)
        if override is not None and override.is_active:
            if override.delivery_eta_hours is not None:
                eta = override.delivery_eta_hours
            if override.is_free_delivery:
                return self._flat(0, eta, prov, req)
            if override.delivery_price is not None:
                return self._flat(override.delivery_price, eta, prov, req)
            return self._priced(base, eta, prov, req)

        if region.is_free_delivery:
            return self._flat(0, eta, prov, req)

        carrier_price = self._fresh_carrier_price(region)
        if carrier_price is not None:
            return self._priced(carrier_price, eta, prov | Provenance.FROM_LIVE_CARRIER, req)

        return self._priced(base, eta, prov, req)

    def _fresh_carrier_price(self, region: Region) -> Optional[int]:
        """Carrier price written back onto the region row, if younger than the cache TTL."""
        if region.bts_tariff_cached is None or region.bts_cache_updated_at is None:
            return None
        updated = region.bts_cache_updated_at
        if updated.tzinfo is None:
            updated = updated.replace(tzinfo=timezone.utc)
        if self.clock() - updated.timestamp() >= self.ttl_seconds:
            return None
        return region.bts_tariff_cached

    def stage_carrier(self, req: TariffRequest) -> StageResult:
        try:
            tariff = self._carrier(req.region_code, req.city_name, req.weight_kg)
        except Exception as e:
            log.warning(f"live carrier lookup failed for {req.key}: {e}")
            return Unavailable("carrier", str(e))
        if tariff is None:
            return Unavailable("carrier", "no data")

        tariff = replace(tariff, weight_kg=req.weight_kg,
                         provenance=tariff.provenance | Provenance.FROM_LIVE_CARRIER)
        self._write_back(req.region_code, tariff)
        return tariff

    def _write_back(self, region_code: str, tariff: Tariff):
        price = tariff.base_price if tariff.per_kg_increment else tariff.price
        try:
            store = self._store_provider()
            if store is None:
                return
            store.save_carrier_tariff(region_code, price)
        except Exception as e:
            log.warning(f"could not persist carrier tariff for {region_code!r}: {e}")

    def stage_fallback(self, req: TariffRequest) -> Tariff:
        base, eta = FALLBACK_TARIFFS.get(req.region_code, FALLBACK_TARIFFS["default"])
        return self._priced(base, eta, Provenance.FALLBACK_ESTIMATE, req)
