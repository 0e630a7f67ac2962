from __future__ import annotations

from datetime import date

from loguru import logger

from app.clock import Clock, system_clock
from app.events import BookingEvent, EventType, booking_event
from app.ledger import SlotLedger, ledger
from app.models import Booking, BookingStatus

EXPIRED_REASON = "expired"


class ExpirySweeper:
    """Cancels pending bookings whose hold has run out and frees their slots."""

    def __init__(self, ledger: SlotLedger, clock: Clock) -> None:
        self.ledger = ledger
        self.clock = clock

    async def release_expired(self, slot_date: date) -> list[BookingEvent]:
        """Caller must hold `ledger.exclusive(slot_date)`."""
        now = self.clock.now()
        expired = (
            await Booking.filter(
                booking_date=slot_date,
                status=BookingStatus.PENDING,
                pending_expires_at__lt=now,
            )
            .select_for_update()
            .prefetch_related("slots")
        )

        events = []
        for booking in expired:
            hours = [s.slot_hour for s in booking.slots]
            booking.status = BookingStatus.CANCELLED
            booking.cancelled_reason = EXPIRED_REASON
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
            await self.ledger.release(slot_date, hours, booking_id=booking.id)
            logger.info(
                "Hold expired: booking={} date={} hours={}",
                booking.booking_number,
                slot_date,
                hours,
            )
            events.append(
                booking_event(EventType.BOOKING_CANCELLED, booking, hours, now)
            )
        return events

    async def sweep(self, slot_date: date) -> list[BookingEvent]:
        async with self.ledger.exclusive(slot_date):
            return await self.release_expired(slot_date)

    async def sweep_all(self) -> dict[date, list[BookingEvent]]:
        """Sweep every date that currently has an expired hold."""
        dates = await (
            Booking.filter(
                status=BookingStatus.PENDING,
                pending_expires_at__lt=self.clock.now(),
            )
            .distinct()
            .values_list("booking_date", flat=True)
        )

        swept: dict[date, list[BookingEvent]] = {}
        for slot_date in sorted(set(dates)):
            events = await self.sweep(slot_date)
            if events:
                swept[slot_date] = events
        if swept:
            logger.info(
                "Sweep released {} expired holds across {} dates",
                sum(len(e) for e in swept.values()),
                len(swept),
            )
        return swept


sweeper = ExpirySweeper(ledger, system_clock)
