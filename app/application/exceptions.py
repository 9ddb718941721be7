class BookingEngineError(RuntimeError):
    """Base class for every per-request failure raised by the engine."""
    pass


class InvalidWindow(BookingEngineError):
    """Raised when a time window or service duration cannot yield segments."""
    pass


class InvalidBookingDraft(BookingEngineError):
    """Raised when a booking draft fails validation (address, duration, date)."""
    pass


class SegmentUnavailable(BookingEngineError):
    """Raised when a segment is not free (lost a race or already booked)."""
    pass


class HoldExpired(BookingEngineError):
    """Raised when a hold is committed after it expired or was released."""
    pass


class ReservationExpired(BookingEngineError):
    """Raised when the reservation hold timed out before the booking was committed."""
    pass


class IllegalTransition(BookingEngineError):
    """Raised when a status change is not in the lifecycle transition table."""
    pass


class Unauthorized(BookingEngineError):
    """Raised when the actor may not perform the requested operation."""
    pass


class PaymentNotCompleted(BookingEngineError):
    """Raised when confirmation requires a completed transaction and there is none."""
    pass


class PaymentGatewayError(BookingEngineError):
    """Raised when the payment collaborator fails or times out."""
    pass


class BookingNotFound(BookingEngineError):
    pass


class TimeSlotNotFound(BookingEngineError):
    pass


class ServiceNotFound(BookingEngineError):
    pass


class TimeSlotLocked(BookingEngineError):
    """Raised when a provider edits a time slot that has held or booked segments."""
    pass
