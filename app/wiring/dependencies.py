from functools import lru_cache
import logging
from datetime import timedelta
from pathlib import Path
from zoneinfo import ZoneInfo

from app.core.config import settings
from app.application.ports.availability_store import AvailabilityStorePort
from app.application.ports.booking_repository import BookingRepositoryPort
from app.application.ports.event_publisher import EventPublisherPort
from app.application.ports.payment import PaymentPort
from app.application.ports.service_catalog import ServiceCatalogPort
from app.application.use_cases.availability_management import AvailabilityManagementUseCase
from app.application.use_cases.booking_lifecycle import BookingLifecycle
from app.application.use_cases.booking_service import BookingService
from app.application.use_cases.reconciliation import ReconciliationSweep
from app.application.use_cases.reservation import ReservationCoordinator
from app.infrastructure.catalog.service_catalog_store import ServiceCatalogStore
from app.infrastructure.events.memory_publisher import InMemoryEventPublisher
from app.infrastructure.payment.http_payment_client import HttpPaymentGateway
from app.infrastructure.payment.mock_payment import MockPaymentGateway
from app.infrastructure.store.json_store import JsonAvailabilityStore, JsonBookingRepository
from app.infrastructure.store.memory_store import MemoryAvailabilityStore, MemoryBookingRepository


def get_timezone() -> ZoneInfo:
    return ZoneInfo(settings.BUSINESS_TIMEZONE)


@lru_cache
def get_service_catalog() -> ServiceCatalogPort:
    return ServiceCatalogStore()


@lru_cache
def get_availability_store() -> AvailabilityStorePort:
    if settings.STORE_PROVIDER.lower() == "json":
        return JsonAvailabilityStore(
            catalog=get_service_catalog(),
            timezone=get_timezone(),
            data_dir=str(Path(settings.DATA_DIR) / "slots"),
        )
    return MemoryAvailabilityStore(catalog=get_service_catalog(), timezone=get_timezone())


@lru_cache
def get_booking_repository() -> BookingRepositoryPort:
    if settings.STORE_PROVIDER.lower() == "json":
        return JsonBookingRepository(data_dir=str(Path(settings.DATA_DIR) / "bookings"))
    return MemoryBookingRepository()


@lru_cache
def get_payment_gateway() -> PaymentPort:
    logger = logging.getLogger(__name__)
    if not settings.PAYMENT_API_KEY:
        if settings.ENV.lower() in {"dev", "local", "test"}:
            logger.info("Using MockPaymentGateway (key missing, ENV=%s)", settings.ENV)
            return MockPaymentGateway()
        raise ValueError("PAYMENT_API_KEY is required outside dev.")
    return HttpPaymentGateway()


@lru_cache
def get_event_publisher() -> EventPublisherPort:
    return InMemoryEventPublisher()


@lru_cache
def get_booking_lifecycle() -> BookingLifecycle:
    return BookingLifecycle(
        bookings=get_booking_repository(),
        store=get_availability_store(),
        payments=get_payment_gateway(),
        events=get_event_publisher(),
        confirmation_policy=settings.CONFIRMATION_POLICY,
        enforce_start_time=settings.ENFORCE_START_TIME,
    )


@lru_cache
def get_reservation_coordinator() -> ReservationCoordinator:
    return ReservationCoordinator(
        store=get_availability_store(),
        catalog=get_service_catalog(),
        lifecycle=get_booking_lifecycle(),
        hold_duration=timedelta(seconds=settings.HOLD_DURATION_SECONDS),
    )


@lru_cache
def get_booking_service() -> BookingService:
    return BookingService(
        store=get_availability_store(),
        catalog=get_service_catalog(),
        bookings=get_booking_repository(),
        coordinator=get_reservation_coordinator(),
        lifecycle=get_booking_lifecycle(),
        payments=get_payment_gateway(),
    )


@lru_cache
def get_availability_management() -> AvailabilityManagementUseCase:
    return AvailabilityManagementUseCase(
        store=get_availability_store(),
        catalog=get_service_catalog(),
        timezone=get_timezone(),
    )


@lru_cache
def get_reconciliation_sweep() -> ReconciliationSweep:
    return ReconciliationSweep(
        store=get_availability_store(),
        bookings=get_booking_repository(),
        lifecycle=get_booking_lifecycle(),
        timezone=get_timezone(),
        interval_seconds=settings.SWEEP_INTERVAL_SECONDS,
    )
