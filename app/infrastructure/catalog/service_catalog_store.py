from __future__ import annotations

import threading

from app.application.ports.service_catalog import ServiceCatalogPort
from app.domain.entities.service_catalog import ServiceCatalogEntry
from app.infrastructure.catalog.service_catalog_data import SERVICE_CATALOG


class ServiceCatalogStore(ServiceCatalogPort):
    def __init__(self, catalog: dict[str, ServiceCatalogEntry] | None = None) -> None:
        self._catalog = dict(SERVICE_CATALOG if catalog is None else catalog)
        self._lock = threading.Lock()

    def get_service(self, service_id: str) -> ServiceCatalogEntry | None:
        with self._lock:
            return self._catalog.get(service_id.strip())
