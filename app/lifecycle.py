from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from loguru import logger

from app.clock import Clock, system_clock
from app.crud import to_response
from app.errors import DomainError, ErrorKind, Outcome
from app.events import BookingEvent, EventType, booking_event
from app.ledger import SlotLedger, ledger
from app.models import Booking, BookingStatus, Payment, PaymentKind, PaymentMethod
from app.rates import whole_cents
from app.sweeper import ExpirySweeper, sweeper

# Allowed source states per admin action
_VALID_TRANSITIONS: dict[str, set[BookingStatus]] = {
    "approve": {BookingStatus.PENDING},
    "reject": {BookingStatus.PENDING, BookingStatus.APPROVED},
}


def _invalid_transition(action: str, status: BookingStatus) -> DomainError:
    allowed = sorted(s.value for s in _VALID_TRANSITIONS[action])
    return DomainError(
        ErrorKind.INVALID_TRANSITION,
        f"Cannot {action} a booking that is '{status}'. Allowed from: {allowed}",
    )


class BookingLifecycle:
    """
    Admin and payment driven transitions:

        pending  -> approved   : approve()       cells pending -> booked
        pending  -> completed  : approve()       when the advance covered the total
        pending  -> cancelled  : reject()        cells released
        approved -> cancelled  : reject()        cells released
        approved -> completed  : record_payment() once remaining hits 0

    Cancelled and completed are terminal.
    """

    def __init__(self, ledger: SlotLedger, sweeper: ExpirySweeper, clock: Clock) -> None:
        self.ledger = ledger
        self.sweeper = sweeper
        self.clock = clock

    async def _locked_booking(self, booking_id: UUID) -> Booking | None:
        return (
            await Booking.filter(id=booking_id)
            .select_for_update()
            .prefetch_related("slots")
            .first()
        )

    async def approve(self, booking_id: UUID) -> Outcome | DomainError:
        booking = await Booking.get_or_none(id=booking_id)
        if booking is None:
            return DomainError.not_found()

        events: list[BookingEvent] = []
        async with self.ledger.exclusive(booking.booking_date):
            # An expired hold must not be approvable, even before the sweeper ran
            events += await self.sweeper.release_expired(booking.booking_date)
            booking = await self._locked_booking(booking_id)
            if booking.status not in _VALID_TRANSITIONS["approve"]:
                return _invalid_transition("approve", booking.status).with_events(events)

            now = self.clock.now()
            hours = [s.slot_hour for s in booking.slots]
            booking.status = BookingStatus.APPROVED
            booking.approved_at = now
            booking.pending_expires_at = None
            update_fields = ["status", "approved_at", "pending_expires_at", "updated_at"]
            if booking.remaining_payment == 0:
                # Advance covered the total: nothing left to collect
                booking.status = BookingStatus.COMPLETED
                booking.completed_at = now
                update_fields.append("completed_at")
            await booking.save(update_fields=update_fields)
            await self.ledger.confirm(booking.booking_date, hours, booking.id)

        logger.info("Booking {} approved", booking.booking_number)
        events.append(booking_event(EventType.BOOKING_APPROVED, booking, hours, now))
        if booking.status == BookingStatus.COMPLETED:
            logger.info("Booking {} paid in full at approval", booking.booking_number)
            events.append(booking_event(EventType.PAYMENT_COMPLETED, booking, hours, now))
        return Outcome(booking=to_response(booking), events=events)

    async def reject(
        self, booking_id: UUID, reason: str = "rejected"
    ) -> Outcome | DomainError:
        booking = await Booking.get_or_none(id=booking_id)
        if booking is None:
            return DomainError.not_found()

        async with self.ledger.exclusive(booking.booking_date):
            booking = await self._locked_booking(booking_id)
            if booking.status not in _VALID_TRANSITIONS["reject"]:
                return _invalid_transition("reject", booking.status)

            now = self.clock.now()
            hours = [s.slot_hour for s in booking.slots]
            booking.status = BookingStatus.CANCELLED
            booking.cancelled_reason = reason
            booking.cancelled_at = now
            booking.pending_expires_at = None
            await booking.save(
                update_fields=[
                    "status",
                    "cancelled_reason",
                    "cancelled_at",
                    "pending_expires_at",
                    "updated_at",
                ]
            )
            await self.ledger.release(booking.booking_date, hours, booking_id=booking.id)

        logger.info("Booking {} cancelled: {}", booking.booking_number, reason)
        event = booking_event(EventType.BOOKING_CANCELLED, booking, hours, now)
        return Outcome(booking=to_response(booking), events=[event])

    async def record_payment(
        self,
        booking_id: UUID,
        amount: Decimal,
        method: PaymentMethod,
        proof_ref: str | None = None,
    ) -> Outcome | DomainError:
        booking = await Booking.get_or_none(id=booking_id)
        if booking is None:
            return DomainError.not_found()

        async with self.ledger.exclusive(booking.booking_date):
            booking = await self._locked_booking(booking_id)
            if booking.status != BookingStatus.APPROVED:
                return DomainError(
                    ErrorKind.INVALID_STATE,
                    f"Payments are only accepted for approved bookings, "
                    f"this one is '{booking.status}'",
                )
            if not whole_cents(amount) or not 0 < amount <= booking.remaining_payment:
                return DomainError(
                    ErrorKind.INVALID_AMOUNT,
                    f"Amount must be whole cents, greater than 0 and at most "
                    f"{booking.remaining_payment}",
                )

            now = self.clock.now()
            await Payment.create(
                booking=booking,
                kind=PaymentKind.BALANCE,
                amount=amount,
                method=method,
                proof_ref=proof_ref,
            )
            booking.remaining_payment = booking.remaining_payment - amount
            update_fields = ["remaining_payment", "updated_at"]
            if booking.remaining_payment == 0:
                booking.status = BookingStatus.COMPLETED
                booking.completed_at = now
                update_fields += ["status", "completed_at"]
            await booking.save(update_fields=update_fields)

        events = []
        if booking.status == BookingStatus.COMPLETED:
            logger.info("Booking {} paid in full", booking.booking_number)
            events.append(
                booking_event(
                    EventType.PAYMENT_COMPLETED,
                    booking,
                    [s.slot_hour for s in booking.slots],
                    now,
                )
            )
        else:
            logger.info(
                "Booking {} payment of {} recorded, {} remaining",
                booking.booking_number,
                amount,
                booking.remaining_payment,
            )
        return Outcome(booking=to_response(booking), events=events)


booking_lifecycle = BookingLifecycle(ledger, sweeper, system_clock)
