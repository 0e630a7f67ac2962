from uuid import UUID

from fastapi import APIRouter, Depends, status
from loguru import logger

from app.cache import invalidate_slots_cache
from app.deps import (
    CurrentUser,
    NotificationsClient,
    can_admin_settings,
    can_admin_write_booking,
    get_booking_lifecycle,
    get_notifications_client,
    get_rate_table,
    get_reservation_engine,
    get_sweeper,
)
from app.lifecycle import BookingLifecycle
from app.rates import RateTable
from app.reservations import ReservationEngine
from app.routers.booking import settle
from app.schemas import (
    AdminBookingCreate,
    BookingReject,
    BookingResponse,
    PaymentCreate,
    RateSchedule,
    RateScheduleUpdate,
    SweepResult,
)
from app.sweeper import ExpirySweeper

router = APIRouter(prefix="/admin", tags=["admin"])


# ---------------------------------------------------------------------------
# Bookings
# ---------------------------------------------------------------------------


@router.post(
    "/bookings",
    response_model=BookingResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_manual_booking(
    payload: AdminBookingCreate,
    current_user: CurrentUser = Depends(can_admin_write_booking),
    engine: ReservationEngine = Depends(get_reservation_engine),
    notifications: NotificationsClient = Depends(get_notifications_client),
) -> BookingResponse:
    """Reserve on behalf of a walk-in or phone customer."""
    result = await engine.reserve(
        payload.booking_date,
        payload.hours,
        customer_id=payload.customer_id,
        advance_payment=payload.advance_payment,
        payment_method=payload.payment_method,
        payment_proof_ref=payload.payment_proof_ref,
        notes=payload.notes,
    )
    booking = await settle(result, notifications)
    logger.info("Manual booking {} created by {}", booking.booking_number, current_user.username)
    return booking


@router.post("/bookings/{booking_id}/approve", response_model=BookingResponse)
async def approve_booking(
    booking_id: UUID,
    _: CurrentUser = Depends(can_admin_write_booking),
    lifecycle: BookingLifecycle = Depends(get_booking_lifecycle),
    notifications: NotificationsClient = Depends(get_notifications_client),
) -> BookingResponse:
    return await settle(await lifecycle.approve(booking_id), notifications)


@router.post("/bookings/{booking_id}/reject", response_model=BookingResponse)
async def reject_booking(
    booking_id: UUID,
    payload: BookingReject,
    _: CurrentUser = Depends(can_admin_write_booking),
    lifecycle: BookingLifecycle = Depends(get_booking_lifecycle),
    notifications: NotificationsClient = Depends(get_notifications_client),
) -> BookingResponse:
    return await settle(await lifecycle.reject(booking_id, payload.reason), notifications)


@router.post("/bookings/{booking_id}/payments", response_model=BookingResponse)
async def record_payment(
    booking_id: UUID,
    payload: PaymentCreate,
    _: CurrentUser = Depends(can_admin_write_booking),
    lifecycle: BookingLifecycle = Depends(get_booking_lifecycle),
    notifications: NotificationsClient = Depends(get_notifications_client),
) -> BookingResponse:
    result = await lifecycle.record_payment(
        booking_id, payload.amount, payload.method, payload.proof_ref
    )
    return await settle(result, notifications)


@router.post("/sweep", response_model=SweepResult)
async def sweep_expired(
    _: CurrentUser = Depends(can_admin_write_booking),
    sweeper: ExpirySweeper = Depends(get_sweeper),
    notifications: NotificationsClient = Depends(get_notifications_client),
) -> SweepResult:
    swept = await sweeper.sweep_all()
    events = [e for date_events in swept.values() for e in date_events]
    await invalidate_slots_cache(*swept)
    await notifications.publish(events)
    return SweepResult(
        released=len(events), booking_numbers=[e.booking_number for e in events]
    )


# ---------------------------------------------------------------------------
# Rate settings
# ---------------------------------------------------------------------------


@router.get("/settings/rates", response_model=RateSchedule)
async def get_rates(
    _: CurrentUser = Depends(can_admin_settings),
    rates: RateTable = Depends(get_rate_table),
) -> RateSchedule:
    return await rates.current()


@router.put("/settings/rates", response_model=RateSchedule)
async def update_rates(
    payload: RateScheduleUpdate,
    current_user: CurrentUser = Depends(can_admin_settings),
    rates: RateTable = Depends(get_rate_table),
) -> RateSchedule:
    schedule = await rates.update(payload)
    logger.info("Rate schedule v{} set by {}", schedule.version, current_user.username)
    return schedule
