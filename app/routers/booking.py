from datetime import date
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from loguru import logger

from app.cache import (
    get_slots_cache,
    invalidate_slots_cache,
    set_slots_cache,
    slots_ttl,
    slots_version,
)
from app.crud import booking_crud
from app.deps import (
    CurrentUser,
    NotificationsClient,
    can_read_booking,
    can_write_booking,
    get_current_user,
    get_notifications_client,
    get_rate_table,
    get_reservation_engine,
)
from app.errors import DomainError, ErrorKind, Outcome
from app.rates import RateTable
from app.reservations import ReservationEngine
from app.schemas import (
    AvailabilitySlot,
    BookingCreate,
    BookingCreated,
    BookingFilters,
    BookingResponse,
    SlotStatus,
)

router = APIRouter(prefix="/bookings", tags=["bookings"])


# ---------------------------------------------------------------------------
# Domain error to HTTP status
# ---------------------------------------------------------------------------

_STATUS_FOR_KIND = {
    ErrorKind.INVALID_REQUEST: status.HTTP_422_UNPROCESSABLE_CONTENT,
    ErrorKind.INVALID_AMOUNT: status.HTTP_422_UNPROCESSABLE_CONTENT,
    ErrorKind.SLOT_CONFLICT: status.HTTP_409_CONFLICT,
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.INVALID_STATE: status.HTTP_400_BAD_REQUEST,
    ErrorKind.INVALID_TRANSITION: status.HTTP_400_BAD_REQUEST,
}


def raise_for_error(error: DomainError) -> None:
    """Raise the HTTPException matching a domain rejection."""
    if error.kind == ErrorKind.SLOT_CONFLICT:
        # The UI re-offers whatever is still free, so name the lost hours
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={
                "message": f"{error.detail}. Please pick other slots.",
                "hours": list(error.hours),
            },
        )
    raise HTTPException(status_code=_STATUS_FOR_KIND[error.kind], detail=error.detail)


async def settle(
    result: Outcome | DomainError, notifications: NotificationsClient
) -> BookingResponse:
    """Publish the outcome's events and drop the cached ledger for its date."""
    if isinstance(result, DomainError):
        if result.events:
            # The rejected call still cancelled expired holds on the way
            await invalidate_slots_cache(*{e.booking_date for e in result.events})
            await notifications.publish(list(result.events))
        raise_for_error(result)
    dates = {result.booking.booking_date} | {e.booking_date for e in result.events}
    await invalidate_slots_cache(*dates)
    await notifications.publish(result.events)
    return result.booking


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@router.get("/availability", response_model=list[AvailabilitySlot])
async def get_availability(
    booking_date: date = Query(alias="date"),
    _: CurrentUser = Depends(get_current_user),
    engine: ReservationEngine = Depends(get_reservation_engine),
    rates: RateTable = Depends(get_rate_table),
    notifications: NotificationsClient = Depends(get_notifications_client),
) -> list[AvailabilitySlot]:
    """
    Status and price of all 24 hours of a date.
    Any authenticated user can call this; the response contains NO booking identity.
    """
    cells = await get_slots_cache(booking_date)
    if cells is not None:
        logger.debug("Cache hit for slots: date={}", booking_date)
    else:
        logger.debug("Cache miss for slots: date={}", booking_date)
        version = await slots_version(booking_date)
        snapshot, expired = await engine.cell_snapshot(booking_date)
        cells = {hour: s.value for hour, s in snapshot.items()}
        ttl = slots_ttl(
            engine.clock.now(), await booking_crud.next_hold_expiry(booking_date)
        )
        await set_slots_cache(booking_date, cells, ttl, version)
        await notifications.publish(expired)

    schedule = await rates.current()
    return engine.price_slots(
        booking_date,
        {hour: SlotStatus(s) for hour, s in cells.items()},
        schedule,
    )


@router.post("/", response_model=BookingCreated, status_code=status.HTTP_201_CREATED)
async def create_booking(
    payload: BookingCreate,
    current_user: CurrentUser = Depends(can_write_booking),
    engine: ReservationEngine = Depends(get_reservation_engine),
    notifications: NotificationsClient = Depends(get_notifications_client),
) -> BookingCreated:
    result = await engine.reserve(
        payload.booking_date,
        payload.hours,
        customer_id=current_user.id,
        advance_payment=payload.advance_payment,
        payment_method=payload.payment_method,
        payment_proof_ref=payload.payment_proof_ref,
        notes=payload.notes,
    )
    booking = await settle(result, notifications)
    return BookingCreated(
        id=booking.id,
        booking_number=booking.booking_number,
        status=booking.status,
        pending_expires_at=booking.pending_expires_at,
    )


@router.get("/", response_model=list[BookingResponse])
async def list_bookings(
    filters: BookingFilters = Depends(),
    current_user: CurrentUser = Depends(can_read_booking),
) -> list[BookingResponse]:
    if current_user.can_read_all:
        return await booking_crud.list_bookings(filters=filters)
    return await booking_crud.list_bookings(filters=filters, customer_id=current_user.id)


@router.get("/{booking_id}", response_model=BookingResponse)
async def get_booking(
    booking_id: UUID,
    current_user: CurrentUser = Depends(can_read_booking),
) -> BookingResponse:
    if current_user.can_read_all:
        booking = await booking_crud.get_booking(booking_id)
    else:
        booking = await booking_crud.get_booking(booking_id, customer_id=current_user.id)

    if not booking:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Booking not found"
        )
    return booking
