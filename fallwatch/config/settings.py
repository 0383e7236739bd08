"""
Configuration management for the fall detection engine.
Loads settings from environment variables with defaults tuned for 30 fps pose streams.
"""

import logging
import os
from pathlib import Path

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

logger = logging.getLogger(__name__)


class Settings:
    """
    Centralized configuration management.
    All settings can be overridden via environment variables.
    """

    def __init__(self):
        # Frame buffer settings (5s @ 30fps)
        self.BUFFER_CAPACITY: int = self._get_int("BUFFER_CAPACITY", 150)  # frames
        self.BUFFER_RETENTION: float = self._get_float("BUFFER_RETENTION", 5.0)  # seconds
        self.BUFFER_TTL: float = self._get_float("BUFFER_TTL", 300.0)  # idle seconds
        self.MIN_HISTORY_FRAMES: int = self._get_int("MIN_HISTORY_FRAMES", 30)

        # Detection thresholds
        self.MIN_CONFIDENCE_SCORE: float = self._get_float("MIN_CONFIDENCE_SCORE", 0.7)
        self.CAMERA_CONFIDENCE_DROP: float = self._get_float(
            "CAMERA_CONFIDENCE_DROP", 0.3
        )
        self.EXERCISE_MIN_REVERSALS: int = self._get_int("EXERCISE_MIN_REVERSALS", 6)

        # Event management
        self.COOLDOWN_PERIOD: float = self._get_float("COOLDOWN_PERIOD", 30.0)  # seconds
        self.STATUS_LOOKBACK_HOURS: float = self._get_float("STATUS_LOOKBACK_HOURS", 24.0)
        self.QUEUE_POLL_INTERVAL: float = self._get_float("QUEUE_POLL_INTERVAL", 0.05)

        # Notification settings
        self.NOTIFY_ENDPOINT: str = os.getenv("NOTIFY_ENDPOINT", "")
        self.API_KEY: str = os.getenv("API_KEY", "")
        self.API_TIMEOUT: int = self._get_int("API_TIMEOUT", 10)  # seconds
        self.API_RETRY_ATTEMPTS: int = self._get_int("API_RETRY_ATTEMPTS", 3)
        self.API_RETRY_DELAYS: tuple[int, ...] = self._parse_delays(
            os.getenv("API_RETRY_DELAYS", "1,2,4")
        )  # exponential backoff

        # Logging
        self.LOG_DIR: Path = Path(os.getenv("LOG_DIR", "./logs"))
        self.LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()

        # Incident data logging
        self.EXP_MODE: bool = os.getenv("EXP_MODE", "false").lower() == "true"
        self.EXP_OUTPUT_DIR: Path = Path(os.getenv("EXP_OUTPUT_DIR", "./incidents"))

        # Validate critical settings
        self._validate()

    def _get_int(self, name: str, default: int) -> int:
        raw = os.getenv(name)
        if raw is None or raw == "":
            return default
        try:
            return int(raw)
        except ValueError:
            logger.warning(f"Invalid {name}: {raw}, using {default}")
            return default

    def _get_float(self, name: str, default: float) -> float:
        raw = os.getenv(name)
        if raw is None or raw == "":
            return default
        try:
            return float(raw)
        except ValueError:
            logger.warning(f"Invalid {name}: {raw}, using {default}")
            return default

    def _parse_delays(self, delays_str: str) -> tuple[int, ...]:
        """
        Parse delay string like '1,2,4' into tuple (1, 2, 4).

        Args:
            delays_str: Comma-separated delays in seconds

        Returns:
            Tuple of delays
        """
        try:
            delays = tuple(int(part) for part in delays_str.split(",") if part.strip())
        except ValueError:
            delays = ()
        if not delays:
            logger.warning(f"Invalid retry delays format: {delays_str}, using default 1,2,4")
            return (1, 2, 4)
        return delays

    def _validate(self):
        """Validate critical configuration settings."""
        # Check notification endpoint
        if not self.NOTIFY_ENDPOINT:
            logger.warning("NOTIFY_ENDPOINT not set - fall alerts will not be delivered")

        # Create directories if they don't exist
        self.LOG_DIR.mkdir(parents=True, exist_ok=True)
        if self.EXP_MODE:
            self.EXP_OUTPUT_DIR.mkdir(parents=True, exist_ok=True)

        # Validate numeric ranges
        if self.BUFFER_CAPACITY <= 0:
            logger.warning(f"Invalid BUFFER_CAPACITY: {self.BUFFER_CAPACITY}, using 150")
            self.BUFFER_CAPACITY = 150

        if self.BUFFER_RETENTION <= 0:
            logger.warning(f"Invalid BUFFER_RETENTION: {self.BUFFER_RETENTION}, using 5")
            self.BUFFER_RETENTION = 5.0

        if self.BUFFER_TTL <= 0:
            logger.warning(f"Invalid BUFFER_TTL: {self.BUFFER_TTL}, using 300")
            self.BUFFER_TTL = 300.0

        if self.MIN_HISTORY_FRAMES > self.BUFFER_CAPACITY:
            logger.warning(
                f"MIN_HISTORY_FRAMES ({self.MIN_HISTORY_FRAMES}) > BUFFER_CAPACITY "
                f"({self.BUFFER_CAPACITY}), setting MIN_HISTORY_FRAMES = BUFFER_CAPACITY"
            )
            self.MIN_HISTORY_FRAMES = self.BUFFER_CAPACITY

        if not 0 < self.MIN_CONFIDENCE_SCORE <= 1:
            logger.warning(
                f"Invalid MIN_CONFIDENCE_SCORE: {self.MIN_CONFIDENCE_SCORE}, using 0.7"
            )
            self.MIN_CONFIDENCE_SCORE = 0.7

        if self.COOLDOWN_PERIOD < 0:
            logger.warning(f"Invalid COOLDOWN_PERIOD: {self.COOLDOWN_PERIOD}, using 30")
            self.COOLDOWN_PERIOD = 30.0

        if self.API_RETRY_ATTEMPTS < 1:
            logger.warning(
                f"Invalid API_RETRY_ATTEMPTS: {self.API_RETRY_ATTEMPTS}, using 3"
            )
            self.API_RETRY_ATTEMPTS = 3

        if self.LOG_LEVEL not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            logger.warning(f"Invalid LOG_LEVEL: {self.LOG_LEVEL}, using INFO")
            self.LOG_LEVEL = "INFO"

        logger.info("Configuration validated successfully")

    def log_config(self):
        """Log current configuration (for debugging)."""
        logger.info("=" * 60)
        logger.info("Fall Detection Engine Configuration")
        logger.info("=" * 60)
        logger.info(
            f"Buffer: {self.BUFFER_CAPACITY} frames, "
            f"{self.BUFFER_RETENTION}s retention, {self.BUFFER_TTL}s idle TTL"
        )
        logger.info(f"Min History Frames: {self.MIN_HISTORY_FRAMES}")
        logger.info(f"Min Confidence Score: {self.MIN_CONFIDENCE_SCORE}")
        logger.info(f"Camera Confidence Drop: {self.CAMERA_CONFIDENCE_DROP}")
        logger.info(f"Exercise Min Reversals: {self.EXERCISE_MIN_REVERSALS}")
        logger.info(f"Cooldown Period: {self.COOLDOWN_PERIOD}s")
        logger.info(f"Status Lookback: {self.STATUS_LOOKBACK_HOURS}h")
        logger.info(f"Notify Endpoint: {self.NOTIFY_ENDPOINT or 'NOT SET'}")
        logger.info(
            f"API Timeout: {self.API_TIMEOUT}s, retries: {self.API_RETRY_ATTEMPTS} "
            f"{self.API_RETRY_DELAYS}"
        )
        logger.info(f"Log Dir: {self.LOG_DIR} ({self.LOG_LEVEL})")
        logger.info(
            f"Incident Logging: {'ON -> ' + str(self.EXP_OUTPUT_DIR) if self.EXP_MODE else 'OFF'}"
        )
        logger.info("=" * 60)


# Singleton instance
_settings_instance = None


def get_settings() -> Settings:
    """
    Get singleton Settings instance.

    Returns:
        Settings instance with current configuration
    """
    global _settings_instance
    if _settings_instance is None:
        _settings_instance = Settings()
    return _settings_instance
