import logging
import os

from dotenv import load_dotenv

load_dotenv()  # Load variables from .env file


def get_bool_env(key: str, default: bool = False) -> bool:
    """Parse a boolean environment variable."""
    return os.getenv(key, str(default)).lower() in ("1", "true", "yes")


def get_int_env(key: str, default: int = 0) -> int:
    """Parse an integer environment variable."""
    try:
        return int(os.getenv(key, default))
    except (TypeError, ValueError):
        return default


def get_float_env(key: str, default: float = 0.0) -> float:
    """Parse a float environment variable."""
    try:
        return float(os.getenv(key, default))
    except (TypeError, ValueError):
        return default


# Storage
DB_PATH = os.getenv("EMS_DB_PATH", "ems.db")
NOTIFICATION_LIMIT = get_int_env("EMS_NOTIFICATION_LIMIT", 100)
SEED_DEMO_DATA = get_bool_env("EMS_SEED_DEMO_DATA", True)

# Artificial latency for login/signup/notification submit, in seconds
SIMULATED_DELAY = get_float_env("EMS_SIMULATED_DELAY", 0.0)

# Feedback simulation seed; unset means a fresh random sequence per process
FEEDBACK_SEED = os.getenv("EMS_FEEDBACK_SEED")

# CORS
CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv("EMS_CORS_ORIGINS", "http://localhost:3000").split(",")
    if origin.strip()
]

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()


def setup_logging(level: str = LOG_LEVEL):
    """Configure root logging once for the process."""
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
