from enum import StrEnum


class BookingScope(StrEnum):
    # Customer scopes
    READ = "bookings:read"  # view own bookings
    WRITE = "bookings:write"  # reserve slots

    # Admin scopes
    ADMIN = "admin:bookings"
    ADMIN_READ = "admin:bookings:read"
    ADMIN_WRITE = "admin:bookings:write"  # approve / reject / record payments
    ADMIN_SETTINGS = "admin:settings"  # edit the rate schedule


BOOKING_SCOPE_DESCRIPTIONS: dict[str, str] = {
    BookingScope.READ: "View your own bookings.",
    BookingScope.WRITE: "Reserve slots on the ground.",
    BookingScope.ADMIN_READ: "Read any booking regardless of customer (admin).",
    BookingScope.ADMIN_WRITE: "Approve, reject and take payments for bookings (admin).",
    BookingScope.ADMIN_SETTINGS: "Change day/night hourly rates (admin).",
}
