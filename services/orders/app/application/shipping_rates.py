"""
Governorate based shipping.

The rate table is injected into the pricing code through the
``ShippingRateTable`` protocol; ``StaticShippingRateTable`` is the built-in
table used in production.
"""
from datetime import date, timedelta
from decimal import Decimal
from typing import Optional, Protocol

from pydantic import BaseModel

from app.core_settings import Settings, get_settings
from .validation import GOVERNORATES

# Friday and Saturday
WEEKEND_DAYS = {4, 5}

ARABIC_MONTHS = (
    "يناير", "فبراير", "مارس", "أبريل", "مايو", "يونيو",
    "يوليو", "أغسطس", "سبتمبر", "أكتوبر", "نوفمبر", "ديسمبر",
)


class ShippingRate(BaseModel):
    governorate: str
    base_rate: Decimal
    free_shipping_threshold: Decimal
    estimated_delivery_days: int


class ShippingRateTable(Protocol):
    def get_rate(self, governorate: str) -> ShippingRate: ...

    def all_rates(self) -> list[ShippingRate]: ...


# governorate -> (base rate, estimated delivery days)
GOVERNORATE_RATES: dict[str, tuple[int, int]] = {
    "Baghdad": (5_000, 2),
    "Basra": (10_000, 4),
    "Nineveh": (8_000, 3),
    "Erbil": (8_000, 3),
    "Sulaymaniyah": (10_000, 4),
    "Dohuk": (10_000, 4),
    "Anbar": (12_000, 5),
    "Diyala": (8_000, 3),
    "Saladin": (8_000, 3),
    "Kirkuk": (8_000, 3),
    "Najaf": (8_000, 3),
    "Karbala": (8_000, 3),
    "Wasit": (10_000, 4),
    "Maysan": (12_000, 5),
    "Dhi Qar": (10_000, 4),
    "Muthanna": (12_000, 5),
    "Qadisiyyah": (10_000, 4),
    "Babil": (8_000, 3),
}


class StaticShippingRateTable:
    def __init__(
        self,
        rates: dict[str, ShippingRate],
        default_base_rate: Decimal,
        default_threshold: Decimal,
        default_delivery_days: int,
    ):
        self.rates = rates
        self.default_base_rate = default_base_rate
        self.default_threshold = default_threshold
        self.default_delivery_days = default_delivery_days

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "StaticShippingRateTable":
        settings = settings or get_settings()
        threshold = Decimal(settings.FREE_SHIPPING_THRESHOLD)
        rates = {
            name: ShippingRate(
                governorate=name,
                base_rate=Decimal(base_rate),
                free_shipping_threshold=threshold,
                estimated_delivery_days=days,
            )
            for name, (base_rate, days) in GOVERNORATE_RATES.items()
        }
        return cls(
            rates,
            default_base_rate=Decimal(settings.DEFAULT_SHIPPING_RATE),
            default_threshold=threshold,
            default_delivery_days=settings.DEFAULT_DELIVERY_DAYS,
        )

    def get_rate(self, governorate: str) -> ShippingRate:
        rate = self.rates.get(governorate)
        if rate is not None:
            return rate
        return ShippingRate(
            governorate=governorate,
            base_rate=self.default_base_rate,
            free_shipping_threshold=self.default_threshold,
            estimated_delivery_days=self.default_delivery_days,
        )

    def all_rates(self) -> list[ShippingRate]:
        return sorted((self.get_rate(g) for g in GOVERNORATES), key=lambda r: r.governorate)


def calculate_shipping_cost(table: ShippingRateTable, governorate: str, subtotal: Decimal) -> Decimal:
    rate = table.get_rate(governorate)
    if subtotal >= rate.free_shipping_threshold:
        return Decimal(0)
    return rate.base_rate


def add_business_days(start: date, business_days: int) -> date:
    result = start
    remaining = business_days
    while remaining > 0:
        result += timedelta(days=1)
        if result.weekday() not in WEEKEND_DAYS:
            remaining -= 1
    return result


def format_delivery_estimate(table: ShippingRateTable, governorate: str, locale: str,
                             today: Optional[date] = None) -> str:
    days = table.get_rate(governorate).estimated_delivery_days
    delivery = add_business_days(today or date.today(), days)
    if locale == "ar":
        return f"{delivery.day} {ARABIC_MONTHS[delivery.month - 1]} {delivery.year}"
    return f"{delivery.strftime('%b')} {delivery.day}, {delivery.year}"
