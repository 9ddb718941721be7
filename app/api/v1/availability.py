from datetime import date, datetime, timedelta

from fastapi import APIRouter, Depends, Query, Response

from app.api.v1.actors import get_actor_id
from app.api.v1.errors import to_http_error
from app.api.v1.schemas import (
    AvailabilityResponseSchema,
    TimeSlotCreateSchema,
    TimeSlotSchema,
    TimeSlotUpdateSchema,
)
from app.application.exceptions import BookingEngineError
from app.application.use_cases.availability_management import (
    AvailabilityManagementUseCase,
    WindowRequest,
)
from app.application.use_cases.booking_service import BookingService
from app.wiring.dependencies import get_availability_management, get_booking_service, get_timezone

router = APIRouter()

DEFAULT_RANGE_DAYS = 14


def _date_range(start_date: date | None, end_date: date | None) -> tuple[date, date]:
    start = start_date or datetime.now(get_timezone()).date()
    return start, end_date or start + timedelta(days=DEFAULT_RANGE_DAYS)


@router.get("/services/{service_id}/availability", response_model=AvailabilityResponseSchema)
def service_availability(
    service_id: str,
    start_date: date | None = Query(None),
    end_date: date | None = Query(None),
    service: BookingService = Depends(get_booking_service),
):
    start, end = _date_range(start_date, end_date)
    try:
        grouped = service.list_availability(service_id, start, end)
    except BookingEngineError as e:
        raise to_http_error(e)
    return AvailabilityResponseSchema.from_grouped(grouped)


@router.get("/providers/{provider_id}/availability", response_model=AvailabilityResponseSchema)
def provider_availability(
    provider_id: str,
    start_date: date | None = Query(None),
    end_date: date | None = Query(None),
    service: BookingService = Depends(get_booking_service),
):
    start, end = _date_range(start_date, end_date)
    try:
        grouped = service.list_provider_availability(provider_id, start, end)
    except BookingEngineError as e:
        raise to_http_error(e)
    return AvailabilityResponseSchema.from_grouped(grouped)


@router.get("/timeslots", response_model=list[TimeSlotSchema])
def list_own_time_slots(
    service_id: str | None = Query(None),
    start_date: date | None = Query(None),
    end_date: date | None = Query(None),
    actor_id: str = Depends(get_actor_id),
    uc: AvailabilityManagementUseCase = Depends(get_availability_management),
):
    slots = uc.list_provider_time_slots(actor_id, service_id, start_date, end_date)
    return [TimeSlotSchema.from_entity(s) for s in slots]


@router.post("/timeslots", response_model=list[TimeSlotSchema], status_code=201)
def create_time_slots(
    req: TimeSlotCreateSchema,
    actor_id: str = Depends(get_actor_id),
    uc: AvailabilityManagementUseCase = Depends(get_availability_management),
):
    try:
        slots = uc.declare_time_slots(
            provider_id=actor_id,
            service_id=req.service_id,
            windows=[WindowRequest(date=w.date, start_time=w.start_time, end_time=w.end_time) for w in req.slots],
        )
    except BookingEngineError as e:
        raise to_http_error(e)
    return [TimeSlotSchema.from_entity(s) for s in slots]


@router.patch("/timeslots/{time_slot_id}", response_model=TimeSlotSchema)
def update_time_slot(
    time_slot_id: str,
    req: TimeSlotUpdateSchema,
    actor_id: str = Depends(get_actor_id),
    uc: AvailabilityManagementUseCase = Depends(get_availability_management),
):
    try:
        slot = uc.update_time_slot(time_slot_id, actor_id, req.start_time, req.end_time)
    except BookingEngineError as e:
        raise to_http_error(e)
    return TimeSlotSchema.from_entity(slot)


@router.delete("/timeslots/{time_slot_id}", status_code=204)
def delete_time_slot(
    time_slot_id: str,
    actor_id: str = Depends(get_actor_id),
    uc: AvailabilityManagementUseCase = Depends(get_availability_management),
) -> Response:
    try:
        uc.remove_time_slot(time_slot_id, actor_id)
    except BookingEngineError as e:
        raise to_http_error(e)
    return Response(status_code=204)
