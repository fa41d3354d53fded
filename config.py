import os
from typing import Optional, Tuple

from dotenv import load_dotenv

load_dotenv()


DATABASE_ENV_PRIORITY = (
    "INTERNAL_DATABASE_URL",
    "DATABASE_URL",
    "EXTERNAL_DATABASE_URL",
)


def normalize_database_uri(uri: Optional[str]) -> Optional[str]:
    if not uri:
        return uri

    if uri.startswith("postgres://"):
        return "postgresql+psycopg2://" + uri[len("postgres://"):]

    if uri.startswith("postgresql://") and not uri.startswith("postgresql+psycopg2://"):
        return "postgresql+psycopg2://" + uri[len("postgresql://"):]

    return uri


def get_database_uri_from_env(default: Optional[str] = None) -> Tuple[Optional[str], Optional[str]]:
    for key in DATABASE_ENV_PRIORITY:
        value = os.getenv(key)
        if value:
            return normalize_database_uri(value), key

    if default is not None:
        return normalize_database_uri(default), "default"

    return None, None


def _env_float(name: str, default: float) -> float:
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    try:
        return float(raw_value)
    except (TypeError, ValueError):
        return default


def _env_int(name: str, default: int) -> int:
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    try:
        return int(raw_value)
    except (TypeError, ValueError):
        return default


DEFAULT_SQLITE_URI = "sqlite:///fluzio_missions.db"
RESOLVED_DATABASE_URI, RESOLVED_DATABASE_SOURCE = get_database_uri_from_env(DEFAULT_SQLITE_URI)


class Config:
    SECRET_KEY = os.getenv("SECRET_KEY", "dev")
    SQLALCHEMY_DATABASE_URI = RESOLVED_DATABASE_URI or DEFAULT_SQLITE_URI
    SQLALCHEMY_DATABASE_URI_SOURCE = RESOLVED_DATABASE_SOURCE
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    # Stale connections are replaced transparently instead of surfacing as
    # OperationalError in the middle of an approval transaction.
    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
        "pool_recycle": _env_int("SQLALCHEMY_POOL_RECYCLE", 280),
        "pool_size": _env_int("SQLALCHEMY_POOL_SIZE", 5),
        "max_overflow": _env_int("SQLALCHEMY_MAX_OVERFLOW", 5),
    }

    LOG_DIR = os.getenv("LOG_DIR", "logs")
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
    REDIS_URL = os.getenv("REDIS_URL", "")

    # Deadline applied to every store call issued from an HTTP request.
    STORE_TIMEOUT_SECONDS = _env_float("STORE_TIMEOUT_SECONDS", 5.0)
    MISSION_CACHE_TIMEOUT = _env_int("MISSION_CACHE_TIMEOUT", 90)

    PRICING_VALUE_PER_COMPLETION_EUR = _env_float("PRICING_VALUE_PER_COMPLETION_EUR", 7.5)
    PRICING_POINTS_PER_EUR = _env_int("PRICING_POINTS_PER_EUR", 100)
    # Placeholder view model until real impression telemetry exists.
    PRICING_VIEWS_PER_PARTICIPANT = _env_int("PRICING_VIEWS_PER_PARTICIPANT", 3)
    PRICING_DEFAULT_VIEWS = _env_int("PRICING_DEFAULT_VIEWS", 100)
    PRICING_DEFAULT_COMPLETION_MINUTES = _env_float("PRICING_DEFAULT_COMPLETION_MINUTES", 30.0)
    PRICING_RATING_EXCELLENT = _env_float("PRICING_RATING_EXCELLENT", 40.0)
    PRICING_RATING_GOOD = _env_float("PRICING_RATING_GOOD", 25.0)
    PRICING_RATING_FAIR = _env_float("PRICING_RATING_FAIR", 15.0)
    PRICING_MIN_SAMPLE_SIZE = _env_int("PRICING_MIN_SAMPLE_SIZE", 5)
    PRICING_LOW_SAMPLE_CONFIDENCE_CAP = _env_int("PRICING_LOW_SAMPLE_CONFIDENCE_CAP", 65)

    ESTIMATOR_MIN_POINTS = _env_int("ESTIMATOR_MIN_POINTS", 25)
    ESTIMATOR_MAX_POINTS = _env_int("ESTIMATOR_MAX_POINTS", 500)
