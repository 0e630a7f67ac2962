from __future__ import annotations

from decimal import Decimal

from loguru import logger
from tortoise.transactions import in_transaction

from app.models import RateSettings
from app.schemas import RateSchedule, RateScheduleUpdate

_SETTINGS_ID = 1

# Smallest unit the money columns store
CENT = Decimal("0.01")

DEFAULT_SCHEDULE = RateSchedule(
    day_rate=Decimal("1500"),
    night_rate=Decimal("2000"),
    night_start_hour=17,
    night_end_hour=6,
)


def is_night(hour: int, schedule: RateSchedule) -> bool:
    start, end = schedule.night_start_hour, schedule.night_end_hour
    if start > end:
        # Window wraps past midnight, e.g. 17:00 -> 06:00
        return hour >= start or hour < end
    return start <= hour < end


def whole_cents(amount: Decimal) -> bool:
    return amount == amount.quantize(CENT)


def rate_for(hour: int, schedule: RateSchedule) -> tuple[Decimal, bool]:
    """Return (price, is_night_rate) for an hour under the given schedule."""
    night = is_night(hour, schedule)
    return (schedule.night_rate if night else schedule.day_rate), night


class RateTable:
    """Reads and updates the admin-editable rate schedule."""

    async def current(self) -> RateSchedule:
        row = await RateSettings.get_or_none(id=_SETTINGS_ID)
        if row is None:
            row, _ = await RateSettings.get_or_create(
                id=_SETTINGS_ID,
                defaults=DEFAULT_SCHEDULE.model_dump(exclude={"version"}),
            )
        return RateSchedule.model_validate(row, from_attributes=True)

    async def update(self, payload: RateScheduleUpdate) -> RateSchedule:
        async with in_transaction():
            await self.current()
            row = await RateSettings.select_for_update().get(id=_SETTINGS_ID)
            row.day_rate = payload.day_rate
            row.night_rate = payload.night_rate
            row.night_start_hour = payload.night_start_hour
            row.night_end_hour = payload.night_end_hour
            row.version += 1
            await row.save()

        schedule = RateSchedule.model_validate(row, from_attributes=True)
        logger.info(
            "Rate schedule v{} saved: day={} night={} night window {}:00-{}:00",
            schedule.version,
            schedule.day_rate,
            schedule.night_rate,
            schedule.night_start_hour,
            schedule.night_end_hour,
        )
        return schedule


rate_table = RateTable()
