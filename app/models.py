from enum import StrEnum

from tortoise import fields
from tortoise.models import Model


class BookingStatus(StrEnum):
    PENDING = "pending"  # slots held, awaiting admin approval
    APPROVED = "approved"  # admin accepted, slots booked
    COMPLETED = "completed"  # remaining payment settled
    CANCELLED = "cancelled"  # rejected by admin or hold expired


class CellStatus(StrEnum):
    PENDING = "pending"
    BOOKED = "booked"


class PaymentMethod(StrEnum):
    CASH = "cash"
    EASYPAISA = "easypaisa"
    JAZZCASH = "jazzcash"
    BANK_TRANSFER = "bank_transfer"


class PaymentKind(StrEnum):
    ADVANCE = "advance"
    BALANCE = "balance"


class Booking(Model):
    id = fields.UUIDField(primary_key=True)
    booking_number = fields.CharField(max_length=20, unique=True)

    booking_date = fields.DateField(db_index=True)
    customer_id = fields.UUIDField()  # owned by the customers service

    total_hours = fields.IntField()
    total_amount = fields.DecimalField(max_digits=10, decimal_places=2)
    advance_payment = fields.DecimalField(max_digits=10, decimal_places=2)
    remaining_payment = fields.DecimalField(max_digits=10, decimal_places=2)
    advance_payment_method = fields.CharEnumField(PaymentMethod)
    advance_payment_proof = fields.CharField(max_length=500, null=True)  # opaque ref
    customer_notes = fields.TextField(null=True)

    status = fields.CharEnumField(BookingStatus, default=BookingStatus.PENDING)
    pending_expires_at = fields.DatetimeField(null=True)
    cancelled_reason = fields.CharField(max_length=255, null=True)
    cancelled_at = fields.DatetimeField(null=True)
    approved_at = fields.DatetimeField(null=True)
    completed_at = fields.DatetimeField(null=True)

    created_at = fields.DatetimeField(auto_now_add=True)
    updated_at = fields.DatetimeField(auto_now=True)

    slots: fields.ReverseRelation["BookingSlot"]
    payments: fields.ReverseRelation["Payment"]

    class Meta:  # type: ignore
        table = "bookings"
        ordering = ["-created_at"]


class BookingSlot(Model):
    """Per-hour rate snapshot taken when the booking was made."""

    id = fields.IntField(primary_key=True)
    booking: fields.ForeignKeyRelation[Booking] = fields.ForeignKeyField(
        "models.Booking", related_name="slots", on_delete=fields.CASCADE
    )
    slot_hour = fields.IntField()
    hourly_rate = fields.DecimalField(max_digits=8, decimal_places=2)
    is_night_rate = fields.BooleanField(default=False)

    class Meta:  # type: ignore
        table = "booking_slots"
        unique_together = (("booking", "slot_hour"),)
        ordering = ["slot_hour"]


class SlotCell(Model):
    """
    Ledger row for a non-available (date, hour) cell.
    Available cells are not stored, so the unique constraint below is the
    "one active holder per hour" rule.
    """

    id = fields.IntField(primary_key=True)
    slot_date = fields.DateField()
    slot_hour = fields.IntField()
    status = fields.CharEnumField(CellStatus, default=CellStatus.PENDING)
    booking_id = fields.UUIDField()
    updated_at = fields.DatetimeField(auto_now=True)

    class Meta:  # type: ignore
        table = "slot_cells"
        unique_together = (("slot_date", "slot_hour"),)


class Payment(Model):
    id = fields.UUIDField(primary_key=True)
    booking: fields.ForeignKeyRelation[Booking] = fields.ForeignKeyField(
        "models.Booking", related_name="payments", on_delete=fields.CASCADE
    )
    kind = fields.CharEnumField(PaymentKind)
    amount = fields.DecimalField(max_digits=10, decimal_places=2)
    method = fields.CharEnumField(PaymentMethod)
    proof_ref = fields.CharField(max_length=500, null=True)
    created_at = fields.DatetimeField(auto_now_add=True)

    class Meta:  # type: ignore
        table = "payments"
        ordering = ["created_at"]


class RateSettings(Model):
    id = fields.IntField(primary_key=True)
    day_rate = fields.DecimalField(max_digits=8, decimal_places=2)
    night_rate = fields.DecimalField(max_digits=8, decimal_places=2)
    night_start_hour = fields.IntField()
    night_end_hour = fields.IntField()
    version = fields.IntField(default=1)
    updated_at = fields.DatetimeField(auto_now=True)

    class Meta:  # type: ignore
        table = "rate_settings"
