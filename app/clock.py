from datetime import UTC, date, datetime
from zoneinfo import ZoneInfo

from app import settings


def to_utc(dt: datetime) -> datetime:
    """Ensure a datetime is UTC-aware, handling both aware and naive inputs."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


class Clock:
    """Time source for expiry and past-slot checks."""

    def __init__(self, tz_name: str = settings.TIMEZONE) -> None:
        self.tz = ZoneInfo(tz_name)

    def now(self) -> datetime:
        return datetime.now(UTC)

    def local_now(self) -> datetime:
        return self.now().astimezone(self.tz)

    def today(self) -> date:
        return self.local_now().date()

    def is_past(self, slot_date: date, hour: int) -> bool:
        """The current hour counts as past: it has already started."""
        local = self.local_now()
        if slot_date < local.date():
            return True
        return slot_date == local.date() and hour <= local.hour


system_clock = Clock()
