from __future__ import annotations

import asyncio
import weakref
from collections.abc import AsyncIterator, Iterable
from contextlib import asynccontextmanager
from datetime import date
from uuid import UUID

from loguru import logger
from tortoise.transactions import in_transaction

from app.models import CellStatus, SlotCell
from app.schemas import SlotStatus

HOURS = range(24)

_CELL_TO_SLOT = {
    CellStatus.PENDING: SlotStatus.PENDING,
    CellStatus.BOOKED: SlotStatus.BOOKED,
}


class SlotLedger:
    """
    Source of truth for per-(date, hour) cell status.

    Every write happens inside `exclusive(date)`: a per-date asyncio lock
    around a database transaction. The lock serialises writers in this
    process; the (slot_date, slot_hour) unique constraint rejects a
    concurrent writer in another process, whose transaction then rolls back.
    """

    def __init__(self) -> None:
        # A date's lock lives only while some caller holds or awaits it
        self._locks: weakref.WeakValueDictionary[date, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    def _lock_for(self, slot_date: date) -> asyncio.Lock:
        lock = self._locks.get(slot_date)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[slot_date] = lock
        return lock

    @asynccontextmanager
    async def exclusive(self, slot_date: date) -> AsyncIterator[None]:
        lock = self._lock_for(slot_date)
        if lock.locked():
            logger.debug("Waiting for ledger section: date={}", slot_date)
        async with lock:
            async with in_transaction():
                yield

    async def cells(self, slot_date: date) -> dict[int, SlotStatus]:
        """Status of all 24 hours; hours with no row are available."""
        statuses = {hour: SlotStatus.AVAILABLE for hour in HOURS}
        rows = await SlotCell.filter(slot_date=slot_date).only("slot_hour", "status")
        for row in rows:
            statuses[row.slot_hour] = _CELL_TO_SLOT[row.status]
        return statuses

    async def occupied(
        self, slot_date: date, hours: Iterable[int]
    ) -> dict[int, SlotStatus]:
        """Non-available subset of `hours`, row-locked for the caller's transaction."""
        rows = await SlotCell.filter(
            slot_date=slot_date, slot_hour__in=list(hours)
        ).select_for_update()
        return {row.slot_hour: _CELL_TO_SLOT[row.status] for row in rows}

    async def try_reserve(
        self, slot_date: date, hours: set[int], booking_id: UUID
    ) -> set[int]:
        """
        Hold every hour for `booking_id`, or none of them.
        Returns the conflicting hours; an empty set means all were held.
        Call inside `exclusive(slot_date)`.
        """
        taken = await self.occupied(slot_date, hours)
        if taken:
            return set(taken)

        await SlotCell.bulk_create(
            [
                SlotCell(
                    slot_date=slot_date,
                    slot_hour=hour,
                    status=CellStatus.PENDING,
                    booking_id=booking_id,
                )
                for hour in sorted(hours)
            ]
        )
        return set()

    async def release(
        self,
        slot_date: date,
        hours: Iterable[int],
        booking_id: UUID | None = None,
    ) -> int:
        """Return cells to available. Releasing free cells is a no-op."""
        qs = SlotCell.filter(slot_date=slot_date, slot_hour__in=list(hours))
        if booking_id is not None:
            qs = qs.filter(booking_id=booking_id)
        return await qs.delete()

    async def confirm(
        self, slot_date: date, hours: Iterable[int], booking_id: UUID
    ) -> int:
        """Pending -> booked for the cells held by `booking_id`."""
        return await SlotCell.filter(
            slot_date=slot_date,
            slot_hour__in=list(hours),
            booking_id=booking_id,
            status=CellStatus.PENDING,
        ).update(status=CellStatus.BOOKED)


ledger = SlotLedger()
