from __future__ import annotations
from typing import Callable, Optional

from delivery.models import Tariff

# (region_code, city_name, weight_kg) -> Tariff | None
CarrierFn = Callable[[str, str, float], Optional[Tariff]]


def fetch_live_tariff(region_code: str, city_name: str, weight_kg: float) -> Optional[Tariff]:
    """
    Live BTS rate lookup. No public rate API is wired up yet, so this always
    misses. A real client must keep the nullable return: None means "no data"
    and the engine falls back to its static table.
    """
    return None
