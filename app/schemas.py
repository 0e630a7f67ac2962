from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from enum import StrEnum
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.models import BookingStatus, PaymentMethod


class SlotStatus(StrEnum):
    AVAILABLE = "available"
    PENDING = "pending"
    BOOKED = "booked"
    PAST = "past"  # layered on top of the cell status, never bookable


class RateSchedule(BaseModel):
    """Immutable snapshot of the hourly rate configuration."""

    day_rate: Decimal = Field(gt=0)
    night_rate: Decimal = Field(gt=0)
    night_start_hour: int = Field(ge=0, le=23)
    night_end_hour: int = Field(ge=0, le=23)
    version: int = 1

    model_config = ConfigDict(frozen=True, from_attributes=True)


class RateScheduleUpdate(BaseModel):
    day_rate: Decimal = Field(gt=0, decimal_places=2)
    night_rate: Decimal = Field(gt=0, decimal_places=2)
    night_start_hour: int = Field(ge=0, le=23)
    night_end_hour: int = Field(ge=0, le=23)


class AvailabilitySlot(BaseModel):
    hour: int
    status: SlotStatus
    cell_status: SlotStatus
    price: Decimal
    is_night_rate: bool


class BookingCreate(BaseModel):
    booking_date: date
    hours: list[int] = Field(min_length=1)
    advance_payment: Decimal = Field(default=Decimal("0"), ge=0, decimal_places=2)
    payment_method: PaymentMethod
    payment_proof_ref: str | None = Field(default=None, max_length=500)
    notes: str | None = Field(default=None, max_length=1000)


class AdminBookingCreate(BookingCreate):
    customer_id: UUID


class BookingReject(BaseModel):
    reason: str = Field(default="rejected", min_length=1, max_length=255)


class PaymentCreate(BaseModel):
    amount: Decimal = Field(decimal_places=2)
    method: PaymentMethod
    proof_ref: str | None = Field(default=None, max_length=500)


class BookingSlotResponse(BaseModel):
    slot_hour: int
    hourly_rate: Decimal
    is_night_rate: bool

    model_config = ConfigDict(from_attributes=True)


class BookingResponse(BaseModel):
    id: UUID
    booking_number: str
    booking_date: date
    customer_id: UUID
    slot_hours: list[int]
    slots: list[BookingSlotResponse]
    total_hours: int
    total_amount: Decimal
    advance_payment: Decimal
    remaining_payment: Decimal
    advance_payment_method: PaymentMethod
    advance_payment_proof: str | None
    customer_notes: str | None
    status: BookingStatus
    pending_expires_at: datetime | None
    cancelled_reason: str | None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class BookingCreated(BaseModel):
    id: UUID
    booking_number: str
    status: BookingStatus
    pending_expires_at: datetime | None


class BookingFilters(BaseModel):
    """Bind to a FastAPI route via Depends(BookingFilters)."""

    status: BookingStatus | None = None
    date_from: date | None = None
    date_to: date | None = None
    remaining_only: bool = False
    booking_number: str | None = None

    # Pagination
    page: int = Field(default=1, ge=1)
    page_size: int = Field(default=20, ge=1, le=100)

    @field_validator("booking_number", mode="after")
    @classmethod
    def strip_booking_number(cls, v: str | None) -> str | None:
        if v is None:
            return None
        return v.strip() or None


class SweepResult(BaseModel):
    released: int
    booking_numbers: list[str]
