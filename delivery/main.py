# delivery/main.py
from typing import Dict, List, Optional
import logging

from fastapi import FastAPI, HTTPException, Query
from pydantic import BaseModel, Field
from dotenv import load_dotenv

from delivery.engine.pipeline import TariffEngine
from delivery.settings import settings
from delivery.store import get_store
from delivery.tools.formatting import DEFAULT_LOCALE, LOCALES, describe, shipping_message
from delivery.tools.geography import GeographyCatalog, is_home_city, list_districts
from delivery.tools.weight_pricing import shipment_weight

load_dotenv()  # loads variables from .env at repo root

log = logging.getLogger("uvicorn")
logging.basicConfig(level=logging.INFO)

# ========= Engine + catalog (process-wide, cache lives on the engine) =========
engine = TariffEngine(store_provider=get_store)
catalog = GeographyCatalog(store_provider=get_store)
log.info(
    f"Tariff engine ready (store={'on' if settings.supabase_url else 'off'}, "
    f"ttl={settings.tariff_cache_ttl_hours}h, home={settings.home_region})"
)

app = FastAPI(title="Delivery Tariff Service", version="0.4")


def _locale(locale: Optional[str]) -> str:
    loc = (locale or settings.default_locale).lower()
    return loc if loc in LOCALES else DEFAULT_LOCALE


# ========= Schemas =========
class CartLine(BaseModel):
    weight_kg: Optional[float] = Field(default=None, ge=0)
    quantity: int = Field(default=1, ge=0)

class TariffQuery(BaseModel):
    region_code: str
    city_name: str = ""
    weight_kg: Optional[float] = Field(default=None, ge=0)
    items: List[CartLine] = []
    locale: Optional[str] = None

class TariffResponse(BaseModel):
    price: int
    eta_hours: int
    weight_kg: float
    is_free: bool
    is_estimate: bool
    provenance: List[str]
    price_text: str
    eta_text: str
    weight_text: str
    shipping_message: str

class RegionOut(BaseModel):
    code: str
    name: str
    base_delivery_price: Optional[int]
    is_free_delivery: bool
    delivery_eta_hours: int

class DistrictOut(BaseModel):
    name: str
    display_name: str
    is_home_city: bool


# ========= Endpoints =========
@app.get("/health")
def health() -> Dict:
    return {
        "status": "ok",
        "store_configured": bool(settings.supabase_url and settings.supabase_key),
        "cached_tariffs": len(engine.cache),
    }


@app.get("/regions", response_model=List[RegionOut])
def regions(locale: Optional[str] = Query(default=None)):
    loc = _locale(locale)
    return [
        RegionOut(
            code=r.code,
            name=r.name(loc),
            base_delivery_price=r.base_delivery_price,
            is_free_delivery=r.is_free_delivery,
            delivery_eta_hours=r.delivery_eta_hours,
        )
        for r in catalog.list_regions()
    ]


@app.get("/regions/{region_code}/districts", response_model=List[DistrictOut])
def districts(region_code: str):
    return [
        DistrictOut(name=d.name, display_name=d.display_name, is_home_city=d.is_home_city)
        for d in list_districts(region_code)
    ]


@app.post("/tariff", response_model=TariffResponse)
def tariff(req: TariffQuery):
    if req.weight_kg is None and not req.items:
        raise HTTPException(status_code=422, detail="weight_kg or items is required")

    weight = req.weight_kg
    if weight is None:
        weight = shipment_weight((i.weight_kg, i.quantity) for i in req.items)

    loc = _locale(req.locale)
    t = engine.resolve(req.region_code, req.city_name, weight)
    return TariffResponse(
        price=t.price,
        eta_hours=t.eta_hours,
        weight_kg=t.weight_kg,
        is_free=t.is_free,
        is_estimate=t.is_estimate,
        provenance=t.provenance.names(),
        shipping_message=shipping_message(is_home_city(req.region_code, req.city_name), loc),
        **describe(t, loc),
    )
