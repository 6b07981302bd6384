# tests/conftest.py
import os, sys
from collections import Counter
from dotenv import load_dotenv
import pytest

# project root on path
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

# load env once
load_dotenv()

from delivery.models import CityOverride, Region  # noqa: E402


class FakeClock:
    def __init__(self, start: float = 1_750_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class FakeStore:
    """In-memory stand-in for the Supabase settings store, with call counting."""

    def __init__(self, regions=(), overrides=(), fail=False):
        self.regions = {r.code: r for r in regions}
        self.overrides = list(overrides)
        self.fail = fail
        self.calls = Counter()
        self.saved = []

    def _hit(self, name):
        self.calls[name] += 1
        if self.fail:
            raise ConnectionError("settings store unreachable")

    def get_region(self, region_code):
        self._hit("get_region")
        return self.regions.get(region_code)

    def find_city_override(self, region, city_name):
        self._hit("find_city_override")
        for o in self.overrides:
            if o.region_id == region.id and o.is_active and o.matches(city_name):
                return o
        return None

    def list_active_regions(self):
        self._hit("list_active_regions")
        return [r for r in self.regions.values() if r.is_active]

    def save_carrier_tariff(self, region_code, price):
        self._hit("save_carrier_tariff")
        self.saved.append((region_code, price))


def make_region(code, base=35000, eta=72, **kw):
    return Region(
        id=f"id-{code}",
        code=code,
        name_uz=f"{code} uz",
        name_ru=f"{code} ru",
        name_en=f"{code} en",
        base_delivery_price=base,
        delivery_eta_hours=eta,
        **kw,
    )


def make_override(region, city_name, price=None, free=False, eta=None, active=True):
    return CityOverride(
        region_id=region.id,
        city_name=city_name,
        delivery_price=price,
        is_free_delivery=free,
        delivery_eta_hours=eta,
        is_active=active,
    )


@pytest.fixture
def clock():
    return FakeClock()
