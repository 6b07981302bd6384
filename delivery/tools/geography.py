from __future__ import annotations
import logging
import time
from typing import Callable, Dict, List, Optional, Tuple

from delivery.models import District, Region
from delivery.settings import settings
from delivery.store import SettingsStore

log = logging.getLogger(__name__)

# spellings of the seller's home city seen in the district list, override rows and free text
HOME_CITY_NAMES = (
    "buxoro shahri",
    "buxoro shahar",
    "bukhara city",
    "город бухара",
    "buxoro",
)

# Seed rows of delivery_settings, used when the store can't be read.
# (code, uz, ru, en, base price, eta hours)
SEED_REGIONS: List[Tuple[str, str, str, str, int, int]] = [
    ("bukhara", "Buxoro viloyati", "Бухарская область", "Bukhara Region", 35000, 48),
    ("tashkent_region", "Toshkent viloyati", "Ташкентская область", "Tashkent Region", 35000, 72),
    ("tashkent_city", "Toshkent shahri", "Город Ташкент", "Tashkent City", 35000, 72),
    ("samarkand", "Samarqand viloyati", "Самаркандская область", "Samarkand Region", 35000, 72),
    ("fergana", "Farg'ona viloyati", "Ферганская область", "Fergana Region", 35000, 72),
    ("andijan", "Andijon viloyati", "Андижанская область", "Andijan Region", 35000, 72),
    ("namangan", "Namangan viloyati", "Наманганская область", "Namangan Region", 35000, 72),
    ("kashkadarya", "Qashqadaryo viloyati", "Кашкадарьинская область", "Kashkadarya Region", 35000, 72),
    ("surkhandarya", "Surxondaryo viloyati", "Сурхандарьинская область", "Surkhandarya Region", 35000, 72),
    ("navoi", "Navoiy viloyati", "Навоийская область", "Navoi Region", 35000, 72),
    ("khorezm", "Xorazm viloyati", "Хорезмская область", "Khorezm Region", 35000, 72),
    ("jizzakh", "Jizzax viloyati", "Джизакская область", "Jizzakh Region", 35000, 72),
    ("syrdarya", "Sirdaryo viloyati", "Сырдарьинская область", "Syrdarya Region", 35000, 72),
    ("karakalpakstan", "Qoraqalpog'iston Respublikasi", "Республика Каракалпакстан", "Republic of Karakalpakstan", 35000, 72),
]

DISTRICTS: Dict[str, List[District]] = {
    "bukhara": [
        District("Buxoro shahri", "Buxoro shahri (shahar)", is_home_city=True),
        District("Olot tumani"),
        District("Buxoro tumani"),
        District("Vobkent tumani"),
        District("G'ijduvon tumani"),
        District("Jondor tumani"),
        District("Kogon tumani"),
        District("Kogon shahri"),
        District("Qorako'l tumani"),
        District("Qorovulbozor tumani"),
        District("Peshku tumani"),
        District("Romitan tumani"),
        District("Shofirkon tumani"),
    ],
    "tashkent_city": [District(n) for n in (
        "Bektemir tumani", "Chilonzor tumani", "Mirobod tumani", "Mirzo Ulug'bek tumani",
        "Olmazor tumani", "Sergeli tumani", "Shayxontohur tumani", "Uchtepa tumani",
        "Yakkasaroy tumani", "Yashnobod tumani", "Yunusobod tumani", "Yangihayot tumani",
    )],
    "tashkent_region": [District(n) for n in (
        "Nurafshon shahri", "Chirchiq", "Olmaliq", "Angren", "Bekobod", "Ohangaron",
        "Yangiyo'l", "Bo'ka tumani", "Bo'stonliq tumani", "Zangiota tumani",
        "Qibray tumani", "Parkent tumani", "Piskent tumani",
    )],
    "samarkand": [District(n) for n in (
        "Samarqand shahri", "Kattaqo'rg'on shahri", "Urgut tumani", "Pastdarg'om tumani",
        "Payariq tumani", "Ishtixon tumani", "Jomboy tumani", "Bulung'ur tumani",
        "Narpay tumani", "Tayloq tumani",
    )],
    "fergana": [District(n) for n in (
        "Farg'ona shahri", "Qo'qon shahri", "Marg'ilon shahri", "Quvasoy shahri",
        "Rishton tumani", "Oltiariq tumani", "Quva tumani", "Beshariq tumani", "Bag'dod tumani",
    )],
    "andijan": [District(n) for n in (
        "Andijon shahri", "Xonobod shahri", "Asaka tumani", "Shahrixon tumani",
        "Marhamat tumani", "Xo'jaobod tumani", "Baliqchi tumani", "Qo'rg'ontepa tumani",
    )],
    "namangan": [District(n) for n in (
        "Namangan shahri", "Chust tumani", "Pop tumani", "Kosonsoy tumani",
        "Uchqo'rg'on tumani", "To'raqo'rg'on tumani", "Chortoq tumani", "Yangiqo'rg'on tumani",
    )],
    "kashkadarya": [District(n) for n in (
        "Qarshi shahri", "Shahrisabz shahri", "Kitob tumani", "G'uzor tumani",
        "Koson tumani", "Qamashi tumani", "Yakkabog' tumani", "Muborak tumani",
    )],
    "surkhandarya": [District(n) for n in (
        "Termiz shahri", "Denov tumani", "Sherobod tumani", "Sho'rchi tumani",
        "Jarqo'rg'on tumani", "Qumqo'rg'on tumani", "Sariosiyo tumani", "Boysun tumani",
    )],
    "navoi": [District(n) for n in (
        "Navoiy shahri", "Zarafshon shahri", "Karmana tumani", "Qiziltepa tumani",
        "Nurota tumani", "Uchquduq tumani", "Xatirchi tumani", "Navbahor tumani",
    )],
    "khorezm": [District(n) for n in (
        "Urganch shahri", "Xiva shahri", "Xonqa tumani", "Bog'ot tumani",
        "Gurlan tumani", "Shovot tumani", "Hazorasp tumani", "Yangiariq tumani",
    )],
    "jizzakh": [District(n) for n in (
        "Jizzax shahri", "G'allaorol tumani", "Zomin tumani", "Forish tumani",
        "Paxtakor tumani", "Baxmal tumani", "Do'stlik tumani",
    )],
    "syrdarya": [District(n) for n in (
        "Guliston shahri", "Yangiyer shahri", "Shirin shahri", "Sirdaryo tumani",
        "Boyovut tumani", "Sayxunobod tumani", "Mirzaobod tumani",
    )],
    "karakalpakstan": [District(n) for n in (
        "Nukus shahri", "Xo'jayli tumani", "Qo'ng'irot tumani", "To'rtko'l tumani",
        "Beruniy tumani", "Ellikqal'a tumani", "Chimboy tumani", "Mo'ynoq tumani",
    )],
}


def _norm(s: Optional[str]) -> str:
    return (s or "").strip().lower()


def seed_regions() -> List[Region]:
    return [
        Region(code=c, name_uz=uz, name_ru=ru, name_en=en,
               base_delivery_price=price, delivery_eta_hours=eta, sort_order=i)
        for i, (c, uz, ru, en, price, eta) in enumerate(SEED_REGIONS, start=1)
    ]


def is_home_city(region_code: str, city_name: str) -> bool:
    """
    Free-delivery trigger. Must be checked before any paid tariff logic.
    Any region other than the home region -> False.
    """
    if (region_code or "") != settings.home_region:
        return False
    city = _norm(city_name)
    return bool(city) and any(name in city for name in HOME_CITY_NAMES)


def list_districts(region_code: str) -> List[District]:
    districts = DISTRICTS.get(region_code)
    if districts is None:
        log.warning(f"list_districts: unknown region code {region_code!r}")
        return []
    return list(districts)


def find_district(region_code: str, city_name: str) -> Optional[District]:
    """Match free text against the district table (case-insensitive, substring either way)."""
    city = _norm(city_name)
    if not city:
        return None
    for d in DISTRICTS.get(region_code, []):
        name = d.name.lower()
        if city == name:
            return d
    for d in DISTRICTS.get(region_code, []):
        name = d.name.lower()
        if city in name or name in city:
            return d
    return None


class GeographyCatalog:
    """
    Region list from the settings store, memoised for a few minutes so
    repeated checkout renders don't refetch. Districts are static.
    """

    def __init__(
        self,
        store_provider: Callable[[], Optional[SettingsStore]],
        ttl_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._store_provider = store_provider
        self.ttl_seconds = settings.regions_cache_ttl_seconds if ttl_seconds is None else ttl_seconds
        self._clock = clock
        self._regions: Optional[List[Region]] = None
        self._fetched_at = 0.0

    def list_regions(self) -> List[Region]:
        if self._regions is not None and self._clock() - self._fetched_at < self.ttl_seconds:
            return list(self._regions)

        store = self._store_provider()
        if store is None:
            return seed_regions()
        try:
            regions = sorted(store.list_active_regions(), key=lambda r: r.sort_order)
        except Exception as e:
            # not memoised: the next render retries the store
            log.warning(f"list_regions: settings store read failed, serving seed regions: {e}")
            return seed_regions()

        self._regions = regions
        self._fetched_at = self._clock()
        return list(regions)

    list_districts = staticmethod(list_districts)
    find_district = staticmethod(find_district)
    is_home_city = staticmethod(is_home_city)
