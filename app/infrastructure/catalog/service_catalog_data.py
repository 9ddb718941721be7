from __future__ import annotations

from app.domain.entities.service_catalog import ServiceCatalogEntry

# Seed catalog used by the dev wiring and local scripts.
SERVICE_CATALOG: dict[str, ServiceCatalogEntry] = {
    "companion_care_hourly": ServiceCatalogEntry(
        service_id="companion_care_hourly",
        provider_id="provider_demo",
        title="Companion Care",
        duration_minutes=60,
        price_amount=28.0,
        price_type="hourly",
    ),
    "personal_care_visit": ServiceCatalogEntry(
        service_id="personal_care_visit",
        provider_id="provider_demo",
        title="Personal Care Visit",
        duration_minutes=90,
        price_amount=55.0,
    ),
    "overnight_respite": ServiceCatalogEntry(
        service_id="overnight_respite",
        provider_id="provider_demo",
        title="Overnight Respite Care",
        duration_minutes=600,
        price_amount=240.0,
        segmented=False,
    ),
}
