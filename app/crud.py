from __future__ import annotations

from datetime import date, datetime
from uuid import UUID

from app.models import Booking, BookingStatus
from app.schemas import BookingFilters, BookingResponse, BookingSlotResponse


def to_response(inst: Booking) -> BookingResponse:
    """Serialise a Booking whose `slots` relation has been fetched."""
    slots = [
        BookingSlotResponse.model_validate(s, from_attributes=True)
        for s in sorted(inst.slots, key=lambda s: s.slot_hour)
    ]
    return BookingResponse(
        id=inst.id,
        booking_number=inst.booking_number,
        booking_date=inst.booking_date,
        customer_id=inst.customer_id,
        slot_hours=[s.slot_hour for s in slots],
        slots=slots,
        total_hours=inst.total_hours,
        total_amount=inst.total_amount,
        advance_payment=inst.advance_payment,
        remaining_payment=inst.remaining_payment,
        advance_payment_method=inst.advance_payment_method,
        advance_payment_proof=inst.advance_payment_proof,
        customer_notes=inst.customer_notes,
        status=inst.status,
        pending_expires_at=inst.pending_expires_at,
        cancelled_reason=inst.cancelled_reason,
        created_at=inst.created_at,
        updated_at=inst.updated_at,
    )


class BookingCRUD:
    async def get_booking(
        self, booking_id: UUID, customer_id: UUID | None = None
    ) -> BookingResponse | None:
        qs = Booking.filter(id=booking_id)
        if customer_id is not None:
            qs = qs.filter(customer_id=customer_id)

        inst = await qs.prefetch_related("slots").first()
        if not inst:
            return None
        return to_response(inst)

    async def list_bookings(
        self,
        filters: BookingFilters,
        customer_id: UUID | None = None,
    ) -> list[BookingResponse]:
        qs = Booking.all()

        if customer_id is not None:
            qs = qs.filter(customer_id=customer_id)
        if filters.status is not None:
            qs = qs.filter(status=filters.status)
        if filters.date_from is not None:
            qs = qs.filter(booking_date__gte=filters.date_from)
        if filters.date_to is not None:
            qs = qs.filter(booking_date__lte=filters.date_to)
        if filters.remaining_only:
            # Bookings the ground staff still have to collect money for
            qs = qs.filter(status=BookingStatus.APPROVED, remaining_payment__gt=0)
        if filters.booking_number is not None:
            qs = qs.filter(booking_number__icontains=filters.booking_number)

        offset = (filters.page - 1) * filters.page_size
        qs = qs.offset(offset).limit(filters.page_size).prefetch_related("slots")

        bookings = await qs
        return [to_response(b) for b in bookings]

    async def next_hold_expiry(self, booking_date: date) -> datetime | None:
        """Earliest moment a pending hold on this date runs out."""
        expiries = (
            await Booking.filter(
                booking_date=booking_date,
                status=BookingStatus.PENDING,
                pending_expires_at__isnull=False,
            )
            .order_by("pending_expires_at")
            .limit(1)
            .values_list("pending_expires_at", flat=True)
        )
        return expiries[0] if expiries else None


booking_crud = BookingCRUD()
