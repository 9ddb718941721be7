from fastapi import HTTPException

from app.application.exceptions import (
    BookingEngineError,
    BookingNotFound,
    HoldExpired,
    IllegalTransition,
    InvalidBookingDraft,
    InvalidWindow,
    PaymentGatewayError,
    PaymentNotCompleted,
    ReservationExpired,
    SegmentUnavailable,
    ServiceNotFound,
    TimeSlotLocked,
    TimeSlotNotFound,
    Unauthorized,
)

_STATUS_CODES: dict[type[BookingEngineError], int] = {
    InvalidWindow: 400,
    InvalidBookingDraft: 400,
    PaymentNotCompleted: 402,
    Unauthorized: 403,
    BookingNotFound: 404,
    TimeSlotNotFound: 404,
    ServiceNotFound: 404,
    SegmentUnavailable: 409,
    IllegalTransition: 409,
    TimeSlotLocked: 409,
    ReservationExpired: 410,
    HoldExpired: 410,
    PaymentGatewayError: 502,
}


def to_http_error(error: BookingEngineError) -> HTTPException:
    status_code = _STATUS_CODES.get(type(error), 400)
    return HTTPException(
        status_code=status_code,
        detail={"error": type(error).__name__, "message": str(error)},
    )
