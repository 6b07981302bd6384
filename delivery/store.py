"""
Settings store: operator-managed delivery settings living in Supabase.

Tables (see scripts/seed_delivery_settings.py):
  delivery_settings        one row per region (base price, ETA, BTS cache columns)
  city_delivery_overrides  optional per-city exceptions, FK region_id -> delivery_settings.id

Reads raise on transport / data errors; callers decide how to degrade.
"""
from __future__ import annotations
import logging
from datetime import datetime, timezone
from typing import List, Optional, Protocol

from supabase import Client, ClientOptions, create_client

from delivery.models import CityOverride, Region
from delivery.settings import settings

log = logging.getLogger(__name__)

REGIONS_TABLE = "delivery_settings"
OVERRIDES_TABLE = "city_delivery_overrides"


class SettingsStore(Protocol):
    def get_region(self, region_code: str) -> Optional[Region]: ...
    def find_city_override(self, region: Region, city_name: str) -> Optional[CityOverride]: ...
    def list_active_regions(self) -> List[Region]: ...
    def save_carrier_tariff(self, region_code: str, price: int) -> None: ...


class SupabaseSettingsStore:
    def __init__(self, client: Client):
        self.client = client

    def get_region(self, region_code: str) -> Optional[Region]:
        res = (
            self.client.table(REGIONS_TABLE)
            .select("*")
            .eq("region_code", region_code)
            .limit(1)
            .execute()
        )
        rows = res.data or []
        return Region.from_row(rows[0]) if rows else None

    def find_city_override(self, region: Region, city_name: str) -> Optional[CityOverride]:
        if not region.id or not (city_name or "").strip():
            return None
        res = (
            self.client.table(OVERRIDES_TABLE)
            .select("*")
            .eq("region_id", region.id)
            .ilike("city_name", f"%{city_name.strip()}%")
            .eq("is_active", True)
            .limit(1)
            .execute()
        )
        rows = res.data or []
        return CityOverride.from_row(rows[0]) if rows else None

    def list_active_regions(self) -> List[Region]:
        res = (
            self.client.table(REGIONS_TABLE)
            .select("*")
            .eq("is_active", True)
            .order("sort_order")
            .execute()
        )
        return [Region.from_row(r) for r in (res.data or [])]

    def save_carrier_tariff(self, region_code: str, price: int) -> None:
        """Write a live carrier price back onto the region row (bts_tariff_cached)."""
        (
            self.client.table(REGIONS_TABLE)
            .update({
                "bts_tariff_cached": int(price),
                "bts_cache_updated_at": datetime.now(timezone.utc).isoformat(),
            })
            .eq("region_code", region_code)
            .execute()
        )


_STORE: Optional[SupabaseSettingsStore] = None


def get_store() -> Optional[SupabaseSettingsStore]:
    """
    Lazily build the Supabase-backed store.
    Return None if credentials are missing or the client can't be created;
    the tariff engine then runs on its fallback table.
    """
    global _STORE
    if _STORE is not None:
        return _STORE

    if not settings.supabase_url or not settings.supabase_key:
        log.warning("SUPABASE_URL / SUPABASE_KEY not set; settings store disabled")
        return None

    try:
        client = create_client(
            settings.supabase_url,
            settings.supabase_key,
            options=ClientOptions(postgrest_client_timeout=settings.store_timeout_seconds),
        )
    except Exception as e:
        log.error(f"Supabase client init failed: {e}")
        return None

    _STORE = SupabaseSettingsStore(client)
    log.info("Supabase settings store initialised")
    return _STORE
