from datetime import date, datetime, time

from pydantic import BaseModel, Field

from app.domain.entities.booking import Booking, BookingPage, BookingStatus
from app.domain.entities.segment import Segment, SegmentState, SlotAvailability
from app.domain.entities.time_slot import TimeSlot
from app.domain.entities.transaction import Transaction, TransactionStatus


class AddressSchema(BaseModel):
    street: str
    city: str
    state: str
    zip_code: str
    country: str = "US"


class BookingDraftSchema(BaseModel):
    service_id: str
    duration: int = Field(gt=0)
    address: AddressSchema
    special_instructions: str | None = Field(default=None, max_length=2000)


class ReserveRequestSchema(BaseModel):
    time_slot_id: str
    segment_index: int = Field(ge=0)
    booking: BookingDraftSchema


class StatusUpdateSchema(BaseModel):
    status: BookingStatus
    reason: str | None = None


class SegmentSchema(BaseModel):
    segment_index: int
    start: datetime
    end: datetime
    state: SegmentState

    @classmethod
    def from_entity(cls, segment: Segment) -> "SegmentSchema":
        return cls(
            segment_index=segment.segment_index,
            start=segment.start,
            end=segment.end,
            state=segment.state,
        )


class TimeSlotSchema(BaseModel):
    id: str
    provider_id: str
    service_id: str
    date: date
    start_time: time
    end_time: time
    is_booked: bool

    @classmethod
    def from_entity(cls, slot: TimeSlot) -> "TimeSlotSchema":
        return cls(
            id=slot.id,
            provider_id=slot.provider_id,
            service_id=slot.service_id,
            date=slot.date,
            start_time=slot.start_time,
            end_time=slot.end_time,
            is_booked=slot.is_booked,
        )


class SlotAvailabilitySchema(BaseModel):
    time_slot: TimeSlotSchema
    segment_minutes: int
    segments: list[SegmentSchema]

    @classmethod
    def from_entity(cls, availability: SlotAvailability) -> "SlotAvailabilitySchema":
        return cls(
            time_slot=TimeSlotSchema.from_entity(availability.time_slot),
            segment_minutes=availability.segment_minutes,
            segments=[SegmentSchema.from_entity(s) for s in availability.segments],
        )


class AvailabilityResponseSchema(BaseModel):
    grouped_slots: dict[str, list[SlotAvailabilitySchema]]

    @classmethod
    def from_grouped(cls, grouped: dict[date, list[SlotAvailability]]) -> "AvailabilityResponseSchema":
        return cls(
            grouped_slots={
                day.isoformat(): [SlotAvailabilitySchema.from_entity(a) for a in slots]
                for day, slots in sorted(grouped.items())
            }
        )


class WindowSchema(BaseModel):
    date: date
    start_time: time
    end_time: time


class TimeSlotCreateSchema(BaseModel):
    service_id: str
    slots: list[WindowSchema] = Field(min_length=1)


class TimeSlotUpdateSchema(BaseModel):
    start_time: time | None = None
    end_time: time | None = None


class BookingSchema(BaseModel):
    id: str
    service_id: str
    provider_id: str
    user_id: str
    date_time: datetime
    duration: int
    address: AddressSchema
    special_instructions: str | None = None
    total_price: float
    status: BookingStatus
    time_slot_id: str
    segment_index: int
    cancellation_reason: str | None = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_entity(cls, booking: Booking) -> "BookingSchema":
        return cls(
            id=booking.id,
            service_id=booking.service_id,
            provider_id=booking.provider_id,
            user_id=booking.user_id,
            date_time=booking.date_time,
            duration=booking.duration,
            address=AddressSchema(
                street=booking.address.street,
                city=booking.address.city,
                state=booking.address.state,
                zip_code=booking.address.zip_code,
                country=booking.address.country,
            ),
            special_instructions=booking.special_instructions,
            total_price=booking.total_price,
            status=booking.status,
            time_slot_id=booking.segment_ref.time_slot_id,
            segment_index=booking.segment_ref.segment_index,
            cancellation_reason=booking.cancellation_reason,
            created_at=booking.created_at,
            updated_at=booking.updated_at,
        )


class BookingPageSchema(BaseModel):
    bookings: list[BookingSchema]
    results: int
    total: int
    page: int
    total_pages: int

    @classmethod
    def from_entity(cls, page: BookingPage) -> "BookingPageSchema":
        return cls(
            bookings=[BookingSchema.from_entity(b) for b in page.bookings],
            results=len(page.bookings),
            total=page.total,
            page=page.page,
            total_pages=page.total_pages,
        )


class TransactionSchema(BaseModel):
    id: str
    booking_id: str
    amount: float
    status: TransactionStatus
    platform_commission: float

    @classmethod
    def from_entity(cls, transaction: Transaction) -> "TransactionSchema":
        return cls(
            id=transaction.id,
            booking_id=transaction.booking_id,
            amount=transaction.amount,
            status=transaction.status,
            platform_commission=transaction.platform_commission,
        )


class EligibilitySchema(BaseModel):
    booking_id: str
    status: BookingStatus
    chat: bool
    review: bool
