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
DEBUG = _get_bool(os.getenv("DEBUG"), default=False)
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./medcenter.db")

CORS_ALLOW_ORIGINS = _get_list(os.getenv("CORS_ALLOW_ORIGINS"), ["http://localhost:3000"])

JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "change-me")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
JWT_EXPIRES_MINUTES = int(os.getenv("JWT_EXPIRES_MINUTES", "60"))

MIN_PASSWORD_LENGTH = int(os.getenv("MIN_PASSWORD_LENGTH", "6"))

# Scheduling
SLOT_STEP_MINUTES = int(os.getenv("SLOT_STEP_MINUTES", "30"))
SLOT_CACHE_TTL_SECONDS = int(os.getenv("SLOT_CACHE_TTL_SECONDS", "60"))
SLOT_CACHE_MAX_SIZE = int(os.getenv("SLOT_CACHE_MAX_SIZE", "512"))

# API client
API_BASE_URL = os.getenv("API_BASE_URL", "http://localhost:8000")
API_TIMEOUT_SECONDS = float(os.getenv("API_TIMEOUT_SECONDS", "10"))


def validate_runtime_config() -> None:
    if APP_ENV.lower() == "production" and JWT_SECRET_KEY == "change-me":
        raise RuntimeError("JWT_SECRET_KEY must be set in production.")
    if SLOT_STEP_MINUTES <= 0 or 60 % SLOT_STEP_MINUTES != 0:
        raise RuntimeError("SLOT_STEP_MINUTES must be a positive divisor of 60.")
