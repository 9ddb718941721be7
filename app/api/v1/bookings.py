import logging
from datetime import date

from fastapi import APIRouter, Depends, Query

from app.api.v1.actors import get_actor_id
from app.api.v1.errors import to_http_error
from app.api.v1.schemas import (
    BookingPageSchema,
    BookingSchema,
    EligibilitySchema,
    ReserveRequestSchema,
    StatusUpdateSchema,
    TransactionSchema,
)
from app.application.exceptions import BookingEngineError
from app.application.use_cases.booking_service import BookingService
from app.domain.entities.booking import Address, BookingDraft, BookingStatus
from app.domain.entities.segment import SegmentRef
from app.wiring.dependencies import get_booking_service

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/bookings", response_model=BookingSchema, status_code=201)
def reserve_and_book(
    req: ReserveRequestSchema,
    actor_id: str = Depends(get_actor_id),
    service: BookingService = Depends(get_booking_service),
):
    draft = BookingDraft(
        service_id=req.booking.service_id,
        user_id=actor_id,
        duration=req.booking.duration,
        address=Address(**req.booking.address.model_dump()),
        special_instructions=req.booking.special_instructions,
    )
    try:
        booking = service.reserve_and_book(SegmentRef(req.time_slot_id, req.segment_index), draft)
    except BookingEngineError as e:
        logger.info("Reservation rejected", extra={"actor_id": actor_id, "reason": type(e).__name__})
        raise to_http_error(e)
    return BookingSchema.from_entity(booking)


@router.get("/bookings", response_model=BookingPageSchema)
def list_bookings(
    role: str = Query("user", pattern="^(user|provider)$"),
    status: BookingStatus | None = Query(None),
    start_date: date | None = Query(None),
    end_date: date | None = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    actor_id: str = Depends(get_actor_id),
    service: BookingService = Depends(get_booking_service),
):
    result = service.list_bookings(actor_id, role, status, start_date, end_date, page, limit)
    return BookingPageSchema.from_entity(result)


@router.get("/bookings/{booking_id}", response_model=BookingSchema)
def get_booking(
    booking_id: str,
    actor_id: str = Depends(get_actor_id),
    service: BookingService = Depends(get_booking_service),
):
    try:
        booking = service.get_booking(booking_id, actor_id)
    except BookingEngineError as e:
        raise to_http_error(e)
    return BookingSchema.from_entity(booking)


@router.patch("/bookings/{booking_id}/status", response_model=BookingSchema)
def advance_status(
    booking_id: str,
    req: StatusUpdateSchema,
    actor_id: str = Depends(get_actor_id),
    service: BookingService = Depends(get_booking_service),
):
    try:
        if req.status == BookingStatus.cancelled:
            booking = service.cancel(booking_id, actor_id, req.reason)
        else:
            booking = service.advance_status(booking_id, req.status, actor_id)
    except BookingEngineError as e:
        raise to_http_error(e)
    return BookingSchema.from_entity(booking)


@router.delete("/bookings/{booking_id}", response_model=BookingSchema)
def cancel_booking(
    booking_id: str,
    reason: str | None = Query(None, max_length=500),
    actor_id: str = Depends(get_actor_id),
    service: BookingService = Depends(get_booking_service),
):
    try:
        booking = service.cancel(booking_id, actor_id, reason)
    except BookingEngineError as e:
        raise to_http_error(e)
    return BookingSchema.from_entity(booking)


@router.post("/bookings/{booking_id}/payment", response_model=TransactionSchema)
def pay_for_booking(
    booking_id: str,
    actor_id: str = Depends(get_actor_id),
    service: BookingService = Depends(get_booking_service),
):
    try:
        transaction = service.authorize_payment(booking_id, actor_id)
    except BookingEngineError as e:
        raise to_http_error(e)
    return TransactionSchema.from_entity(transaction)


@router.get("/bookings/{booking_id}/eligibility", response_model=EligibilitySchema)
def booking_eligibility(
    booking_id: str,
    actor_id: str = Depends(get_actor_id),
    service: BookingService = Depends(get_booking_service),
):
    try:
        booking = service.get_booking(booking_id, actor_id)
    except BookingEngineError as e:
        raise to_http_error(e)
    return EligibilitySchema(
        booking_id=booking.id,
        status=booking.status,
        chat=service.is_chat_eligible(booking_id),
        review=service.is_review_eligible(booking_id),
    )
