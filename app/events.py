from __future__ import annotations

from datetime import date, datetime
from enum import StrEnum
from uuid import UUID

from pydantic import BaseModel


class EventType(StrEnum):
    BOOKING_CREATED = "booking.created"
    BOOKING_APPROVED = "booking.approved"
    BOOKING_CANCELLED = "booking.cancelled"
    PAYMENT_COMPLETED = "payment.completed"


class BookingEvent(BaseModel):
    type: EventType
    booking_id: UUID
    booking_number: str
    customer_id: UUID
    booking_date: date
    summary: str
    occurred_at: datetime


def _hours_label(hours: list[int]) -> str:
    return ", ".join(f"{h:02d}:00" for h in hours)


def booking_event(
    event_type: EventType, booking, hours: list[int], occurred_at: datetime
) -> BookingEvent:
    """Build an event from a Booking row (or response) and its slot hours."""
    summaries = {
        EventType.BOOKING_CREATED: (
            f"New booking request #{booking.booking_number} for "
            f"{booking.booking_date} ({_hours_label(hours)})"
        ),
        EventType.BOOKING_APPROVED: (
            f"Booking #{booking.booking_number} approved for {booking.booking_date}"
        ),
        EventType.BOOKING_CANCELLED: (
            f"Booking #{booking.booking_number} cancelled: {booking.cancelled_reason}"
        ),
        EventType.PAYMENT_COMPLETED: (
            f"Booking #{booking.booking_number} paid in full "
            f"({booking.total_amount})"
        ),
    }
    return BookingEvent(
        type=event_type,
        booking_id=booking.id,
        booking_number=booking.booking_number,
        customer_id=booking.customer_id,
        booking_date=booking.booking_date,
        summary=summaries[event_type],
        occurred_at=occurred_at,
    )
