from __future__ import annotations

from datetime import date, timedelta
from decimal import Decimal
from uuid import UUID, uuid4

from loguru import logger
from tortoise.exceptions import IntegrityError

from app import settings
from app.clock import Clock, system_clock
from app.crud import to_response
from app.errors import DomainError, ErrorKind, Outcome, ReservationContention
from app.events import BookingEvent, EventType, booking_event
from app.ledger import HOURS, SlotLedger, ledger
from app.models import (
    Booking,
    BookingSlot,
    BookingStatus,
    Payment,
    PaymentKind,
    PaymentMethod,
)
from app.rates import RateTable, rate_for, rate_table, whole_cents
from app.schemas import AvailabilitySlot, RateSchedule, SlotStatus
from app.sweeper import ExpirySweeper, sweeper


def _booking_number(slot_date: date, sequence: int) -> str:
    return f"BK-{slot_date:%Y%m%d}-{sequence:03d}"


class ReservationEngine:
    """
    Turns a slot selection into a pending Booking.

    The conflict check and the hold of every requested hour happen in one
    `ledger.exclusive(date)` section: two overlapping requests for the same
    date can never both succeed, and the loser learns exactly which of its
    hours were taken.
    """

    def __init__(
        self,
        ledger: SlotLedger,
        sweeper: ExpirySweeper,
        rates: RateTable,
        clock: Clock,
        hold: timedelta = timedelta(minutes=settings.HOLD_MINUTES),
        max_hours: int = settings.BOOKING_MAX_HOURS,
        attempts: int = settings.RESERVE_ATTEMPTS,
    ) -> None:
        self.ledger = ledger
        self.sweeper = sweeper
        self.rates = rates
        self.clock = clock
        self.hold = hold
        self.max_hours = max_hours
        self.attempts = attempts

    # ------------------------------------------------------------------
    # Availability
    # ------------------------------------------------------------------

    async def cell_snapshot(
        self, slot_date: date
    ) -> tuple[dict[int, SlotStatus], list[BookingEvent]]:
        """
        Ledger status for the date after expired holds were released, plus
        the cancellation events of those holds for the caller to publish.
        """
        async with self.ledger.exclusive(slot_date):
            events = await self.sweeper.release_expired(slot_date)
            cells = await self.ledger.cells(slot_date)
        if events:
            logger.debug("Read-path sweep released {} holds on {}", len(events), slot_date)
        return cells, events

    def price_slots(
        self,
        slot_date: date,
        cells: dict[int, SlotStatus],
        schedule: RateSchedule,
    ) -> list[AvailabilitySlot]:
        slots = []
        for hour in HOURS:
            price, night = rate_for(hour, schedule)
            cell_status = cells[hour]
            status = SlotStatus.PAST if self.clock.is_past(slot_date, hour) else cell_status
            slots.append(
                AvailabilitySlot(
                    hour=hour,
                    status=status,
                    cell_status=cell_status,
                    price=price,
                    is_night_rate=night,
                )
            )
        return slots

    async def availability(
        self, slot_date: date
    ) -> tuple[list[AvailabilitySlot], list[BookingEvent]]:
        cells, events = await self.cell_snapshot(slot_date)
        schedule = await self.rates.current()
        return self.price_slots(slot_date, cells, schedule), events

    # ------------------------------------------------------------------
    # Reserve
    # ------------------------------------------------------------------

    def validate(self, slot_date: date, hours: set[int]) -> DomainError | None:
        if not hours:
            return DomainError.invalid_request("At least one slot must be selected")
        out_of_range = sorted(h for h in hours if h not in HOURS)
        if out_of_range:
            return DomainError.invalid_request(
                f"Hours must be between 0 and 23, got {out_of_range}"
            )
        if len(hours) > self.max_hours:
            return DomainError.invalid_request(
                f"A booking may cover at most {self.max_hours} hours"
            )
        if slot_date < self.clock.today():
            return DomainError.invalid_request("Cannot book a date in the past")
        past = sorted(h for h in hours if self.clock.is_past(slot_date, h))
        if past:
            return DomainError.invalid_request(
                f"Slots already started or passed: {past}"
            )
        return None

    async def reserve(
        self,
        slot_date: date,
        hours: list[int] | set[int],
        customer_id: UUID,
        advance_payment: Decimal,
        payment_method: PaymentMethod,
        payment_proof_ref: str | None = None,
        notes: str | None = None,
    ) -> Outcome | DomainError:
        requested = set(hours)
        error = self.validate(slot_date, requested)
        if error is not None:
            return error

        schedule = await self.rates.current()
        priced = {hour: rate_for(hour, schedule) for hour in sorted(requested)}
        total = sum((price for price, _ in priced.values()), Decimal("0"))
        if not whole_cents(advance_payment) or not 0 <= advance_payment <= total:
            return DomainError(
                ErrorKind.INVALID_AMOUNT,
                f"Advance payment must be whole cents between 0 and the total of {total}",
            )

        for attempt in range(1, self.attempts + 1):
            try:
                return await self._reserve_once(
                    slot_date,
                    requested,
                    customer_id,
                    priced,
                    total,
                    advance_payment,
                    payment_method,
                    payment_proof_ref,
                    notes,
                )
            except IntegrityError:
                # Another writer committed first; the next attempt sees its rows
                logger.warning(
                    "Constraint violation reserving {} {} (attempt {}/{})",
                    slot_date,
                    sorted(requested),
                    attempt,
                    self.attempts,
                )
        raise ReservationContention(
            f"Could not settle reservation for {slot_date} after {self.attempts} attempts"
        )

    async def _reserve_once(
        self,
        slot_date: date,
        hours: set[int],
        customer_id: UUID,
        priced: dict[int, tuple[Decimal, bool]],
        total: Decimal,
        advance_payment: Decimal,
        payment_method: PaymentMethod,
        payment_proof_ref: str | None,
        notes: str | None,
    ) -> Outcome | DomainError:
        booking_id = uuid4()
        async with self.ledger.exclusive(slot_date):
            expired = await self.sweeper.release_expired(slot_date)

            conflicts = await self.ledger.try_reserve(slot_date, hours, booking_id)
            if conflicts:
                logger.info(
                    "Slot conflict on {}: requested={} taken={}",
                    slot_date,
                    sorted(hours),
                    sorted(conflicts),
                )
                return DomainError.slot_conflict(conflicts).with_events(expired)

            now = self.clock.now()
            sequence = await Booking.filter(booking_date=slot_date).count() + 1
            booking = await Booking.create(
                id=booking_id,
                booking_number=_booking_number(slot_date, sequence),
                booking_date=slot_date,
                customer_id=customer_id,
                total_hours=len(hours),
                total_amount=total,
                advance_payment=advance_payment,
                remaining_payment=total - advance_payment,
                advance_payment_method=payment_method,
                advance_payment_proof=payment_proof_ref,
                customer_notes=notes,
                status=BookingStatus.PENDING,
                pending_expires_at=now + self.hold,
                created_at=now,
            )
            await BookingSlot.bulk_create(
                [
                    BookingSlot(
                        booking=booking,
                        slot_hour=hour,
                        hourly_rate=price,
                        is_night_rate=night,
                    )
                    for hour, (price, night) in priced.items()
                ]
            )
            if advance_payment > 0:
                await Payment.create(
                    booking=booking,
                    kind=PaymentKind.ADVANCE,
                    amount=advance_payment,
                    method=payment_method,
                    proof_ref=payment_proof_ref,
                )
            await booking.fetch_related("slots")

        logger.info(
            "Booking {} held {} hours on {} until {}",
            booking.booking_number,
            sorted(hours),
            slot_date,
            booking.pending_expires_at,
        )
        created = booking_event(
            EventType.BOOKING_CREATED, booking, sorted(hours), now
        )
        return Outcome(booking=to_response(booking), events=[*expired, created])


reservation_engine = ReservationEngine(ledger, sweeper, rate_table, system_clock)
