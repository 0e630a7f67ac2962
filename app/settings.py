import os

db_url = os.environ.get("DB_URL", "sqlite://:memory:")
notifications_ms_url = os.environ.get("NOTIFICATIONS_MS_URL", "http://localhost:8004")
REDIS_URL = os.environ.get("REDIS_URL", "redis://localhost:6379/0")

# Local wall clock of the ground; decides "today" and the current hour
TIMEZONE = os.environ.get("TIMEZONE", "Asia/Karachi")

HOLD_MINUTES = int(os.environ.get("HOLD_MINUTES", "30"))
SWEEP_INTERVAL_SECONDS = int(os.environ.get("SWEEP_INTERVAL_SECONDS", "120"))
BOOKING_MAX_HOURS = int(os.environ.get("BOOKING_MAX_HOURS", "12"))
RESERVE_ATTEMPTS = int(os.environ.get("RESERVE_ATTEMPTS", "3"))
SLOTS_TTL = int(os.environ.get("SLOTS_TTL", "60"))
