from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime
from enum import Flag, auto
from typing import Any, Dict, Optional


class Provenance(Flag):
    """Which pipeline stage(s) produced a tariff."""
    NONE = 0
    FROM_CACHE = auto()
    FROM_OVERRIDE = auto()
    FROM_LIVE_CARRIER = auto()
    FALLBACK_ESTIMATE = auto()

    def names(self) -> list[str]:
        return [p.name.lower() for p in Provenance if p and p in self]


@dataclass(frozen=True)
class Tariff:
    price: int
    eta_hours: int
    provenance: Provenance
    weight_kg: float
    # inputs the price was derived from; increment 0 means the price is weight-independent
    base_price: Optional[int] = None
    per_kg_increment: int = 0

    def __post_init__(self):
        # an unset base means the price was quoted flat
        if self.base_price is None:
            object.__setattr__(self, "base_price", self.price)

    @property
    def origin(self) -> Provenance:
        """Provenance without the cache marker."""
        return self.provenance & ~Provenance.FROM_CACHE

    @property
    def is_free(self) -> bool:
        return self.price == 0

    @property
    def is_estimate(self) -> bool:
        return Provenance.FALLBACK_ESTIMATE in self.provenance


@dataclass(frozen=True)
class Unavailable:
    """A stage had no usable data. Not an error: the pipeline moves on."""
    source: str
    reason: str = ""


def _parse_ts(value: Any) -> Optional[datetime]:
    if not value:
        return None
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


@dataclass(frozen=True)
class Region:
    code: str
    name_uz: str
    name_ru: str
    name_en: str
    base_delivery_price: Optional[int]
    is_free_delivery: bool = False
    delivery_eta_hours: int = 72
    sort_order: int = 0
    id: Optional[str] = None
    is_active: bool = True
    use_bts_tariff: bool = True
    bts_tariff_cached: Optional[int] = None
    bts_cache_updated_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Region":
        """Build from a `delivery_settings` row. Missing required keys raise KeyError."""
        price = row.get("base_delivery_price")
        cached = row.get("bts_tariff_cached")
        return cls(
            id=row.get("id"),
            code=row["region_code"],
            name_uz=row.get("region_name_uz") or row["region_code"],
            name_ru=row.get("region_name_ru") or row["region_code"],
            name_en=row.get("region_name_en") or row["region_code"],
            base_delivery_price=int(price) if price is not None else None,
            is_free_delivery=bool(row.get("is_free_delivery", False)),
            delivery_eta_hours=int(row["delivery_eta_hours"]),
            sort_order=int(row.get("sort_order") or 0),
            is_active=bool(row.get("is_active", True)),
            use_bts_tariff=bool(row.get("use_bts_tariff", True)),
            bts_tariff_cached=int(cached) if cached is not None else None,
            bts_cache_updated_at=_parse_ts(row.get("bts_cache_updated_at")),
        )

    def name(self, locale: str) -> str:
        return {"uz": self.name_uz, "ru": self.name_ru}.get(locale, self.name_en)


@dataclass(frozen=True)
class District:
    name: str
    display_name: str = ""
    is_home_city: bool = False

    def __post_init__(self):
        if not self.display_name:
            object.__setattr__(self, "display_name", self.name)


@dataclass(frozen=True)
class CityOverride:
    city_name: str
    delivery_price: Optional[int] = None
    is_free_delivery: bool = False
    delivery_eta_hours: Optional[int] = None
    is_active: bool = True
    region_id: Optional[str] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "CityOverride":
        price = row.get("delivery_price")
        eta = row.get("delivery_eta_hours")
        return cls(
            region_id=row.get("region_id"),
            city_name=row["city_name"],
            delivery_price=int(price) if price is not None else None,
            is_free_delivery=bool(row.get("is_free_delivery", False)),
            delivery_eta_hours=int(eta) if eta is not None else None,
            is_active=bool(row.get("is_active", True)),
        )

    def matches(self, city_name: str) -> bool:
        """Case-insensitive substring match, same as the store's ILIKE '%city%'."""
        needle = (city_name or "").strip().lower()
        return bool(needle) and needle in self.city_name.lower()
