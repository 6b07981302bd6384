"""
Seed pipeline: default region rows -> delivery_settings, home-city override -> city_delivery_overrides.
Existing rows are left untouched (operator edits win).

Run:
    python scripts/seed_delivery_settings.py
"""
import os
import sys
from typing import Dict, List

from dotenv import load_dotenv

# project root on path
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from delivery.store import OVERRIDES_TABLE, REGIONS_TABLE, get_store  # noqa: E402
from delivery.tools.geography import DISTRICTS, SEED_REGIONS  # noqa: E402


def region_rows() -> List[Dict[str, object]]:
    rows = []
    for i, (code, uz, ru, en, price, eta) in enumerate(SEED_REGIONS, start=1):
        rows.append({
            "region_code": code,
            "region_name_uz": uz,
            "region_name_ru": ru,
            "region_name_en": en,
            "base_delivery_price": price,
            "is_free_delivery": False,
            "delivery_eta_hours": eta,
            "is_active": True,
            "use_bts_tariff": True,
            "sort_order": i,
        })
    return rows


def home_city_rows(region_id: str, region_code: str) -> List[Dict[str, object]]:
    """Free 24h delivery for every district flagged as the seller's home city."""
    return [
        {
            "region_id": region_id,
            "city_name": d.name,
            "delivery_price": 0,
            "is_free_delivery": True,
            "delivery_eta_hours": 24,
            "is_active": True,
        }
        for d in DISTRICTS.get(region_code, [])
        if d.is_home_city
    ]


def main():
    load_dotenv()
    store = get_store()
    if store is None:
        print("SUPABASE_URL / SUPABASE_KEY not set, nothing to seed")
        sys.exit(1)
    client = store.client

    # 1) Regions
    rows = region_rows()
    client.table(REGIONS_TABLE).upsert(rows, on_conflict="region_code", ignore_duplicates=True).execute()
    print(f"Seeded {len(rows)} regions into '{REGIONS_TABLE}'")

    # 2) Home-city overrides
    total = 0
    for region in store.list_active_regions():
        overrides = home_city_rows(region.id, region.code)
        if not overrides:
            continue
        client.table(OVERRIDES_TABLE).upsert(
            overrides, on_conflict="region_id,city_name", ignore_duplicates=True
        ).execute()
        total += len(overrides)
    print(f"Seeded {total} city overrides into '{OVERRIDES_TABLE}'")


if __name__ == "__main__":
    main()
