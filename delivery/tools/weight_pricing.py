# delivery/tools/weight_pricing.py
from __future__ import annotations
import math
from typing import Iterable, Optional, Tuple

from delivery.settings import settings

# Catalog default for products without a recorded weight (products.weight_kg DEFAULT 0.5)
DEFAULT_ITEM_WEIGHT_KG = 0.5

# Base price covers the first kilogram
INCLUDED_KG = 1.0


def price_for(
    weight_kg: float,
    base_price: Optional[int] = None,
    per_kg_increment: Optional[int] = None,
) -> int:
    """
    BTS-style weight ladder:
        price = base + ceil(max(0, weight - 1)) * increment
    e.g. 2.3 kg -> excess ceil(1.3) = 2 -> base + 2 * increment.
    Knows nothing about regions or overrides.
    """
    base = settings.base_delivery_price if base_price is None else base_price
    inc = settings.per_kg_increment if per_kg_increment is None else per_kg_increment

    # round first so 1.1 - 1 (== 0.10000000000000009) doesn't tip 1.0-ish weights over
    excess = round(max(0.0, float(weight_kg or 0) - INCLUDED_KG), 6)
    return int(base + math.ceil(excess) * inc)


def shipment_weight(lines: Iterable[Tuple[Optional[float], int]]) -> float:
    """
    Total weight of cart lines given as (weight_kg, quantity).
    A missing weight counts as DEFAULT_ITEM_WEIGHT_KG.
    """
    total = 0.0
    for weight, qty in lines:
        w = DEFAULT_ITEM_WEIGHT_KG if weight is None else float(weight)
        total += w * max(0, int(qty or 0))
    return round(total, 3)
