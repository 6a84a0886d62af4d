import os

from dotenv import load_dotenv


load_dotenv()


def _get_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _get_list(value: str | None, default: list[str]) -> list[str]:
    if not value:
        return default
    return [item.strip() for item in value.split(",") if item.strip()]

APP_ENV = os.getenv("APP_ENV", "development")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./clinic.db")
CORS_ALLOW_ORIGINS = _get_list(os.getenv("CORS_ALLOW_ORIGINS"), ["http://localhost:3000"])

# Single timezone per deployment; appointment dates and times are stored as local wall-clock values.
SCHEDULING_TIMEZONE = os.getenv("SCHEDULING_TIMEZONE", "UTC")

# Staff-initiated bookings skip PENDING when enabled.
AUTO_CONFIRM_STAFF_BOOKINGS = _get_bool(os.getenv("AUTO_CONFIRM_STAFF_BOOKINGS"), default=False)

MAX_SLOT_RANGE_DAYS = int(os.getenv("MAX_SLOT_RANGE_DAYS", "31"))
BOOKING_HORIZON_DAYS = int(os.getenv("BOOKING_HORIZON_DAYS", "90"))
MAX_APPOINTMENT_NOTES_LENGTH = 600

JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "change-me")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
JWT_EXPIRES_MINUTES = int(os.getenv("JWT_EXPIRES_MINUTES", "60"))


def validate_runtime_config() -> None:
    if APP_ENV.lower() == "production" and JWT_SECRET_KEY == "change-me":
        raise RuntimeError("JWT_SECRET_KEY must be set in production.")
    if MAX_SLOT_RANGE_DAYS < 1:
        raise RuntimeError("MAX_SLOT_RANGE_DAYS must be at least 1.")
    if BOOKING_HORIZON_DAYS < 1:
        raise RuntimeError("BOOKING_HORIZON_DAYS must be at least 1.")
