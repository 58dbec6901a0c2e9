import os

from dotenv import load_dotenv


load_dotenv()


def _get_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _get_int(value: str | None, default: int) -> int:
    if value is None or not value.strip():
        return default
    return int(value)


APP_ENV = os.getenv("APP_ENV", "development")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./clinic.db")
DB_ECHO = _get_bool(os.getenv("DB_ECHO"), default=False)

CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv("CORS_ORIGINS", "http://localhost:3000").split(",")
    if origin.strip()
]

DEFAULT_CLINIC_TIMEZONE = os.getenv("DEFAULT_CLINIC_TIMEZONE", "America/Chicago")

# Materialization writes slots in chunks; each chunk is retried on its own.
SLOT_INSERT_BATCH_SIZE = _get_int(os.getenv("SLOT_INSERT_BATCH_SIZE"), 500)
SLOT_INSERT_MAX_ATTEMPTS = _get_int(os.getenv("SLOT_INSERT_MAX_ATTEMPTS"), 3)
SLOT_RANGE_MAX_DAYS = _get_int(os.getenv("SLOT_RANGE_MAX_DAYS"), 366)
SLOT_PREVIEW_MAX_DAYS = _get_int(os.getenv("SLOT_PREVIEW_MAX_DAYS"), 31)

MIN_APPOINTMENT_DURATION_MINUTES = _get_int(os.getenv("MIN_APPOINTMENT_DURATION_MINUTES"), 5)
MAX_APPOINTMENT_DURATION_MINUTES = _get_int(os.getenv("MAX_APPOINTMENT_DURATION_MINUTES"), 240)
DEFAULT_APPOINTMENT_DURATION_MINUTES = 15

CONFLICT_LOOKAHEAD_DAYS = _get_int(os.getenv("CONFLICT_LOOKAHEAD_DAYS"), 90)

JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "change-me")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
JWT_EXPIRES_MINUTES = _get_int(os.getenv("JWT_EXPIRES_MINUTES"), 60)


def validate_runtime_config() -> None:
    if APP_ENV.lower() == "production" and JWT_SECRET_KEY == "change-me":
        raise RuntimeError("JWT_SECRET_KEY must be set in production.")
    if SLOT_INSERT_BATCH_SIZE <= 0:
        raise RuntimeError("SLOT_INSERT_BATCH_SIZE must be positive.")
    if SLOT_INSERT_MAX_ATTEMPTS <= 0:
        raise RuntimeError("SLOT_INSERT_MAX_ATTEMPTS must be positive.")
