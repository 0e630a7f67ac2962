from dataclasses import dataclass, field
from functools import lru_cache
from urllib.parse import unquote
from uuid import UUID

import httpx
from fastapi import Depends, Header, HTTPException, status
from loguru import logger

from app import settings
from app.events import BookingEvent
from app.lifecycle import BookingLifecycle, booking_lifecycle
from app.rates import RateTable, rate_table
from app.reservations import ReservationEngine, reservation_engine
from app.scopes import BookingScope
from app.sweeper import ExpirySweeper, sweeper


@dataclass
class CurrentUser:
    id: UUID
    username: str
    scopes: list[str] = field(default_factory=list)

    @property
    def can_read_all(self) -> bool:
        return (
            BookingScope.ADMIN in self.scopes
            or BookingScope.ADMIN_READ in self.scopes
        )


def get_current_user(
    x_user_id: str = Header(...),
    x_username: str = Header(...),
    x_user_scopes: str = Header(default=""),
) -> CurrentUser:
    """
    Reads the headers injected by the gateway after forwardAuth validation.
    The JWT has already been verified, we just trust these headers.
    """
    try:
        user_id = UUID(x_user_id)
    except (ValueError, TypeError):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid user identity from gateway",
        ) from None

    scopes = x_user_scopes.split(" ") if x_user_scopes else []

    return CurrentUser(id=user_id, username=unquote(x_username), scopes=scopes)


def require_scopes(*required: str):
    """
    Factory that returns a dependency enforcing one or more scopes.

    Usage:
        @router.get("/protected")
        async def route(user = Depends(require_scopes("bookings:read"))):
            ...
    """

    async def _dep(
        current_user: CurrentUser = Depends(get_current_user),
    ) -> CurrentUser:
        missing = [s for s in required if s not in current_user.scopes]
        if missing:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Missing required scopes: {', '.join(missing)}",
            )
        return current_user

    return _dep


# ---------------------------------------------------------------------------
# Pre-built scope dependencies
# ---------------------------------------------------------------------------

can_write_booking = require_scopes(BookingScope.WRITE)
can_admin_write_booking = require_scopes(BookingScope.ADMIN_WRITE)
can_admin_settings = require_scopes(BookingScope.ADMIN_SETTINGS)


async def can_read_booking(
    current_user: CurrentUser = Depends(get_current_user),
) -> CurrentUser:
    """
    Passes if the user can read their own bookings or read all (admin).
    - bookings:read   → customer sees own bookings
    - admin:bookings* → admin sees all
    """
    if not (BookingScope.READ in current_user.scopes or current_user.can_read_all):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=(
                f"Requires '{BookingScope.READ}' (customers) "
                f"or '{BookingScope.ADMIN_READ}' (admin)."
            ),
        )
    return current_user


# ---------------------------------------------------------------------------
# Core services
# ---------------------------------------------------------------------------


def get_reservation_engine() -> ReservationEngine:
    return reservation_engine


def get_booking_lifecycle() -> BookingLifecycle:
    return booking_lifecycle


def get_rate_table() -> RateTable:
    return rate_table


def get_sweeper() -> ExpirySweeper:
    return sweeper


# ---------------------------------------------------------------------------
# NotificationsClient: thin async wrapper around notifications-ms
# ---------------------------------------------------------------------------


@lru_cache(maxsize=1)
def _get_notifications_http_client() -> httpx.AsyncClient:
    return httpx.AsyncClient(
        base_url=settings.notifications_ms_url,
        timeout=httpx.Timeout(5.0),
        follow_redirects=True,
    )


class NotificationsClient:
    """
    Hands booking events to notifications-ms, which owns delivery
    (email / SMS / in-app). Failures are logged and swallowed, a
    notification outage must not fail a booking.
    """

    @property
    def _client(self) -> httpx.AsyncClient:
        return _get_notifications_http_client()

    async def publish(self, events: list[BookingEvent]) -> bool:
        if not events:
            return True
        try:
            resp = await self._client.post(
                "/notifications/events",
                json=[e.model_dump(mode="json") for e in events],
            )
        except httpx.RequestError:
            logger.warning(
                "notifications-ms unreachable, dropped {} events", len(events)
            )
            return False
        if resp.status_code >= 400:
            logger.warning(
                "notifications-ms returned {}, dropped {} events",
                resp.status_code,
                len(events),
            )
            return False
        return True


_notifications_client = NotificationsClient()


def get_notifications_client() -> NotificationsClient:
    return _notifications_client
