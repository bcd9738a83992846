"""
Configuration module for the Garment Synthesis API
Contains logger setup and environment variables
"""

import os
import logging
from dotenv import load_dotenv

# Load environment variables
load_dotenv()


# -------------------------
# Logger Setup
# -------------------------
def setup_logger(
    name: str = __name__, log_file: str | None = "garment_synth.log"
) -> logging.Logger:
    """
    Set up and return a logger with both file and console handlers

    Args:
        name: Logger name (usually __name__)
        log_file: Path to log file, or None to log to the console only

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)
    logger.setLevel(logging.DEBUG)

    # Avoid adding duplicate handlers
    if logger.handlers:
        return logger

    # Create formatter
    formatter = logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    # File handler
    if log_file:
        file_handler = logging.FileHandler(log_file, mode="a")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    # Console handler
    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.INFO)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    return logger


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if not value:
        return default
    return float(value)


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if not value:
        return default
    return int(value)


# Create the main application logger
LOG_FILE = os.getenv("LOG_FILE") or None
logger = setup_logger("garment_synth", LOG_FILE)

# -------------------------
# Environment Variables
# -------------------------
APP_ENV = os.getenv("APP_ENV", "production")
IS_DEVELOPMENT = APP_ENV.lower() == "development"

# providers
FAL_KEY = os.getenv("FAL_KEY") or os.getenv("NANO_BANANA_KEY")
FAL_BASE_URL = os.getenv("FAL_BASE_URL", "https://fal.run/fal-ai")
GEMINI_KEY = os.getenv("GEMINI_KEY")
GEMINI_MODEL = os.getenv("GEMINI_MODEL", "gemini-2.5-flash-image-preview")
SYNTH_PROVIDER = os.getenv("SYNTH_PROVIDER", "fal").lower()

# demo mode
DEMO_MODE = _env_bool("DEMO_MODE")
DEMO_DELAY_SECONDS = _env_float("DEMO_DELAY_SECONDS", 0.0)

# polling
POLL_INTERVAL_SECONDS = _env_float("POLL_INTERVAL_SECONDS", 2.0)
POLL_MAX_ATTEMPTS = _env_int("POLL_MAX_ATTEMPTS", 60)

# batch
BATCH_MAX_IN_FLIGHT = _env_int("BATCH_MAX_IN_FLIGHT", 4)

# rate limiting
RATE_LIMIT_BACKEND = os.getenv("RATE_LIMIT_BACKEND", "memory").lower()
SYNTH_RATE_WINDOW_SECONDS = 60
SYNTH_RATE_MAX_REQUESTS = 10
BATCH_RATE_WINDOW_SECONDS = 5 * 60
BATCH_RATE_MAX_REQUESTS = 3
MAX_IMAGES_PER_BATCH = 50

# supabase
SUPABASE_URL = os.getenv("SUPABASE_URL")
SUPABASE_SERVICE_KEY = os.getenv("SUPABASE_SERVICE_KEY")


# Log configuration status
logger.info("Configuration loaded successfully")
logger.debug(f"APP_ENV: {APP_ENV}")
logger.debug(f"FAL_KEY configured: {bool(FAL_KEY)}")
logger.debug(f"GEMINI_KEY configured: {bool(GEMINI_KEY)}")
logger.debug(f"SYNTH_PROVIDER: {SYNTH_PROVIDER}")
logger.debug(f"DEMO_MODE: {DEMO_MODE}")
logger.debug(f"RATE_LIMIT_BACKEND: {RATE_LIMIT_BACKEND}")
logger.debug(f"SUPABASE_URL configured: {bool(SUPABASE_URL)}")
logger.debug(f"SUPABASE_SERVICE_KEY configured: {bool(SUPABASE_SERVICE_KEY)}")
