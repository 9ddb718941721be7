from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class ServiceCatalogEntry:
    service_id: str
    provider_id: str
    title: str
    duration_minutes: int
    price_amount: float
    price_type: str = "fixed"  # "fixed" or "hourly"
    segmented: bool = True  # False: the whole time slot is booked as one unit

    def price_for(self, duration_minutes: int) -> float:
        if self.price_type == "hourly":
            return round(self.price_amount * duration_minutes / 60, 2)
        return self.price_amount
