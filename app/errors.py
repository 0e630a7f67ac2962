"""
Domain outcomes of the booking core.

Rejections are returned as `DomainError` values, never raised. Only
infrastructure faults travel as exceptions.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import StrEnum

from app.events import BookingEvent
from app.schemas import BookingResponse


class ErrorKind(StrEnum):
    INVALID_REQUEST = "invalid_request"
    SLOT_CONFLICT = "slot_conflict"
    NOT_FOUND = "not_found"
    INVALID_STATE = "invalid_state"
    INVALID_TRANSITION = "invalid_transition"
    INVALID_AMOUNT = "invalid_amount"


@dataclass(frozen=True)
class DomainError:
    kind: ErrorKind
    detail: str
    hours: tuple[int, ...] = ()
    # Expired holds the rejected call already cancelled; still to be published
    events: tuple[BookingEvent, ...] = ()

    @classmethod
    def invalid_request(cls, detail: str) -> DomainError:
        return cls(ErrorKind.INVALID_REQUEST, detail)

    @classmethod
    def slot_conflict(cls, hours: set[int]) -> DomainError:
        taken = tuple(sorted(hours))
        return cls(
            ErrorKind.SLOT_CONFLICT,
            f"Slots no longer available: {', '.join(f'{h:02d}:00' for h in taken)}",
            taken,
        )

    @classmethod
    def not_found(cls) -> DomainError:
        return cls(ErrorKind.NOT_FOUND, "Booking not found")

    def with_events(self, events: list[BookingEvent]) -> DomainError:
        return replace(self, events=tuple(events))


@dataclass
class Outcome:
    """A successful core operation: the booking as it now stands plus the
    events the notifier should deliver."""

    booking: BookingResponse
    events: list[BookingEvent] = field(default_factory=list)


class ReservationContention(Exception):
    """Constraint violations kept recurring; the store is too contended
    to decide. Not a slot conflict."""
