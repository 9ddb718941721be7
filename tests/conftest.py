"""
Shared fixtures: an engine wired on a manual clock, so hold expiry and
scheduled start times can be driven from tests.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone

import pytest

from app.application.ports.availability_store import AvailabilityStorePort
from app.application.ports.booking_repository import BookingRepositoryPort
from app.application.use_cases.availability_management import AvailabilityManagementUseCase
from app.application.use_cases.booking_lifecycle import PAYMENT_REQUIRED, BookingLifecycle
from app.application.use_cases.booking_service import BookingService
from app.application.use_cases.reconciliation import ReconciliationSweep
from app.application.use_cases.reservation import ReservationCoordinator
from app.domain.entities.booking import Address, BookingDraft
from app.domain.entities.service_catalog import ServiceCatalogEntry
from app.domain.entities.time_slot import TimeSlot
from app.infrastructure.catalog.service_catalog_store import ServiceCatalogStore
from app.infrastructure.events.memory_publisher import InMemoryEventPublisher
from app.infrastructure.payment.mock_payment import MockPaymentGateway
from app.infrastructure.store.json_store import JsonAvailabilityStore, JsonBookingRepository
from app.infrastructure.store.memory_store import MemoryAvailabilityStore, MemoryBookingRepository

TZ = timezone.utc
START = datetime(2030, 1, 1, 8, 0, tzinfo=TZ)
SLOT_DATE = date(2030, 1, 2)
PROVIDER = "prov_1"
CLIENT = "user_1"
OTHER_CLIENT = "user_2"


class ManualClock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


def make_catalog() -> ServiceCatalogStore:
    return ServiceCatalogStore(
        catalog={
            "companion": ServiceCatalogEntry(
                service_id="companion",
                provider_id=PROVIDER,
                title="Companion Care",
                duration_minutes=60,
                price_amount=30.0,
                price_type="hourly",
            ),
            "visit90": ServiceCatalogEntry(
                service_id="visit90",
                provider_id=PROVIDER,
                title="Personal Care Visit",
                duration_minutes=90,
                price_amount=55.0,
            ),
            "overnight": ServiceCatalogEntry(
                service_id="overnight",
                provider_id=PROVIDER,
                title="Overnight Respite",
                duration_minutes=480,
                price_amount=200.0,
                segmented=False,
            ),
        }
    )


def make_slot(
    slot_id: str = "slot_1",
    service_id: str = "companion",
    day: date = SLOT_DATE,
    start: time = time(9, 0),
    end: time = time(11, 0),
) -> TimeSlot:
    return TimeSlot(
        id=slot_id,
        provider_id=PROVIDER,
        service_id=service_id,
        date=day,
        start_time=start,
        end_time=end,
    )


def make_draft(user_id: str = CLIENT, service_id: str = "companion", duration: int = 60, **address) -> BookingDraft:
    fields = {"street": "12 Elm St", "city": "Springfield", "state": "IL", "zip_code": "62701"}
    fields.update(address)
    return BookingDraft(
        service_id=service_id,
        user_id=user_id,
        duration=duration,
        address=Address(**fields),
        special_instructions="Ring twice",
    )


@dataclass
class Engine:
    clock: ManualClock
    catalog: ServiceCatalogStore
    store: AvailabilityStorePort
    bookings: BookingRepositoryPort
    payments: MockPaymentGateway
    events: InMemoryEventPublisher
    lifecycle: BookingLifecycle
    coordinator: ReservationCoordinator
    service: BookingService
    management: AvailabilityManagementUseCase
    sweep: ReconciliationSweep


def build_engine(
    store: AvailabilityStorePort | None = None,
    bookings: BookingRepositoryPort | None = None,
    clock: ManualClock | None = None,
    catalog: ServiceCatalogStore | None = None,
    confirmation_policy: str = PAYMENT_REQUIRED,
    enforce_start_time: bool = False,
) -> Engine:
    clock = clock or ManualClock(START)
    catalog = catalog or make_catalog()
    store = store or MemoryAvailabilityStore(catalog=catalog, timezone=TZ, clock=clock)
    bookings = bookings or MemoryBookingRepository()
    payments = MockPaymentGateway()
    events = InMemoryEventPublisher()
    lifecycle = BookingLifecycle(
        bookings=bookings,
        store=store,
        payments=payments,
        events=events,
        clock=clock,
        confirmation_policy=confirmation_policy,
        enforce_start_time=enforce_start_time,
    )
    coordinator = ReservationCoordinator(
        store=store,
        catalog=catalog,
        lifecycle=lifecycle,
        hold_duration=timedelta(minutes=5),
        clock=clock,
    )
    service = BookingService(
        store=store,
        catalog=catalog,
        bookings=bookings,
        coordinator=coordinator,
        lifecycle=lifecycle,
        payments=payments,
    )
    management = AvailabilityManagementUseCase(store=store, catalog=catalog, timezone=TZ, clock=clock)
    sweep = ReconciliationSweep(store=store, bookings=bookings, lifecycle=lifecycle, timezone=TZ, clock=clock)
    return Engine(
        clock=clock,
        catalog=catalog,
        store=store,
        bookings=bookings,
        payments=payments,
        events=events,
        lifecycle=lifecycle,
        coordinator=coordinator,
        service=service,
        management=management,
        sweep=sweep,
    )


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock(START)


@pytest.fixture(params=["memory", "json"])
def store(request, clock, tmp_path) -> AvailabilityStorePort:
    catalog = make_catalog()
    if request.param == "json":
        return JsonAvailabilityStore(catalog=catalog, timezone=TZ, data_dir=str(tmp_path / "slots"), clock=clock)
    return MemoryAvailabilityStore(catalog=catalog, timezone=TZ, clock=clock)


@pytest.fixture
def engine() -> Engine:
    engine = build_engine()
    engine.store.add_time_slot(make_slot())
    return engine


@pytest.fixture
def json_engine(tmp_path) -> Engine:
    clock = ManualClock(START)
    catalog = make_catalog()
    engine = build_engine(
        store=JsonAvailabilityStore(catalog=catalog, timezone=TZ, data_dir=str(tmp_path / "slots"), clock=clock),
        bookings=JsonBookingRepository(data_dir=str(tmp_path / "bookings")),
        clock=clock,
        catalog=catalog,
    )
    engine.store.add_time_slot(make_slot())
    return engine
