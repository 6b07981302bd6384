"""
Customer-facing strings for a resolved tariff, in uz / ru / en.
One table entry per locale; unknown locales fall back to English.
"""
from __future__ import annotations
from dataclasses import dataclass
from typing import Dict

from delivery.models import Tariff

DEFAULT_LOCALE = "en"


@dataclass(frozen=True)
class LocaleStrings:
    eta_24h: str
    eta_48h: str
    eta_72h: str
    free: str
    price_from: str            # "{price}" placeholder
    estimated: str
    kg: str
    g: str
    decimal_sep: str
    msg_home_city: str
    msg_nationwide: str


LOCALES: Dict[str, LocaleStrings] = {
    "uz": LocaleStrings(
        eta_24h="24 soat ichida",
        eta_48h="48 soat",
        eta_72h="48-72 soat",
        free="Bepul",
        price_from="{price} UZS dan",
        estimated="(taxminiy)",
        kg="kg",
        g="g",
        decimal_sep=",",
        msg_home_city="Yetkazib berish Buxoro shahar bo'ylab bepul",
        msg_nationwide="Yetkazib berish O'zbekiston bo'ylab BTS pochtasi orqali amalga oshiriladi",
    ),
    "ru": LocaleStrings(
        eta_24h="В течение 24 часов",
        eta_48h="48 часов",
        eta_72h="48-72 часа",
        free="Бесплатно",
        price_from="от {price} UZS",
        estimated="(приблизительно)",
        kg="кг",
        g="г",
        decimal_sep=",",
        msg_home_city="Бесплатная доставка по городу Бухара",
        msg_nationwide="Доставка по Узбекистану осуществляется через BTS почту",
    ),
    "en": LocaleStrings(
        eta_24h="Within 24 hours",
        eta_48h="48 hours",
        eta_72h="48-72 hours",
        free="Free",
        price_from="from {price} UZS",
        estimated="(estimated)",
        kg="kg",
        g="g",
        decimal_sep=".",
        msg_home_city="Free delivery within Bukhara city",
        msg_nationwide="Delivery across Uzbekistan is provided via BTS postal service",
    ),
}


def strings_for(locale: str) -> LocaleStrings:
    return LOCALES.get((locale or "").lower(), LOCALES[DEFAULT_LOCALE])


def group_thousands(amount: int) -> str:
    """35000 -> '35 000'"""
    return f"{int(amount):,}".replace(",", " ")


def format_eta(eta_hours: int, locale: str) -> str:
    s = strings_for(locale)
    if eta_hours <= 24:
        return s.eta_24h
    if eta_hours <= 48:
        return s.eta_48h
    return s.eta_72h


def format_price(tariff: Tariff, locale: str) -> str:
    s = strings_for(locale)
    if tariff.is_free:
        return s.free
    text = s.price_from.format(price=group_thousands(tariff.price))
    if tariff.is_estimate:
        text = f"{text} {s.estimated}"
    return text


def format_weight(weight_kg: float, locale: str) -> str:
    s = strings_for(locale)
    w = max(0.0, float(weight_kg or 0))
    if w < 1:
        return f"{round(w * 1000)} {s.g}"
    num = f"{w:.2f}".rstrip("0").rstrip(".")
    return f"{num.replace('.', s.decimal_sep)} {s.kg}"


def shipping_message(home_city: bool, locale: str) -> str:
    s = strings_for(locale)
    return s.msg_home_city if home_city else s.msg_nationwide


def describe(tariff: Tariff, locale: str) -> Dict[str, str]:
    return {
        "price_text": format_price(tariff, locale),
        "eta_text": format_eta(tariff.eta_hours, locale),
        "weight_text": format_weight(tariff.weight_kg, locale),
    }
