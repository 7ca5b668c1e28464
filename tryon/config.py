"""
Configuration module for the Virtual Try-On API
Contains logger setup and environment-driven settings
"""

import os
import logging
from dataclasses import dataclass
from typing import Mapping, Optional

from dotenv import load_dotenv

# Load environment variables
load_dotenv()


# -------------------------
# Logger Setup
# -------------------------
def setup_logger(name: str = __name__, log_file: Optional[str] = None) -> logging.Logger:
    """
    Set up and return a logger with a console handler and an optional file handler

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


# Create the main application logger
logger = setup_logger("tryon", os.getenv("LOG_FILE"))


# -------------------------
# Settings
# -------------------------
DEFAULT_OPENAI_MODEL = "gpt-image-1"
DEFAULT_GOOGLE_MODEL = "gemini-2.5-flash-image-preview"
DEFAULT_DAILY_LIMIT = 100
RATE_LIMIT_WINDOW_SECONDS = 86400


class ConfigError(Exception):
    """Raised when required configuration is missing or invalid."""


@dataclass(frozen=True)
class ProviderCredentials:
    key: Optional[str]
    model: str


@dataclass(frozen=True)
class Settings:
    provider: str
    openai: ProviderCredentials
    google: ProviderCredentials
    daily_limit: int = DEFAULT_DAILY_LIMIT
    environment: str = "production"
    public_base_url: str = ""

    @property
    def is_development(self) -> bool:
        return self.environment == "development"

    def credentials_for(self, provider: str) -> ProviderCredentials:
        if provider == "OPENAI":
            return self.openai
        if provider == "GOOGLE":
            return self.google
        raise ConfigError(f"No credentials known for provider: {provider}")


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None or value.strip() == "":
        return None
    return value.strip()


def _parse_daily_limit(raw: Optional[str]) -> int:
    if raw is None:
        return DEFAULT_DAILY_LIMIT
    try:
        parsed = int(raw)
    except ValueError as exc:
        raise ConfigError("DAILY_LIMIT must be a positive integer") from exc
    if parsed <= 0:
        raise ConfigError("DAILY_LIMIT must be a positive integer")
    return parsed


def load_settings(env: Optional[Mapping[str, str]] = None) -> Settings:
    """
    Read and validate settings from the environment.

    Only the selected provider's credential is required. Provider names are
    checked against the registry later, when the dispatcher is built.

    Args:
        env: Mapping to read from (defaults to os.environ)

    Returns:
        Validated Settings instance

    Raises:
        ConfigError: If a required variable is missing or malformed
    """
    source = os.environ if env is None else env

    provider = (_clean(source.get("VISION_PROVIDER")) or "").upper()
    if not provider:
        raise ConfigError("VISION_PROVIDER must be set")

    openai = ProviderCredentials(
        key=_clean(source.get("OPENAI_API_KEY")),
        model=_clean(source.get("OPENAI_VISION_MODEL")) or DEFAULT_OPENAI_MODEL,
    )
    google = ProviderCredentials(
        key=_clean(source.get("GOOGLE_GEMINI_API_KEY")),
        model=_clean(source.get("GOOGLE_GEMINI_VISION_MODEL")) or DEFAULT_GOOGLE_MODEL,
    )

    if provider == "OPENAI" and not openai.key:
        raise ConfigError("OPENAI_API_KEY not found")
    if provider == "GOOGLE" and not google.key:
        raise ConfigError("GOOGLE_GEMINI_API_KEY not found")

    environment = (_clean(source.get("APP_ENV")) or "production").lower()
    if environment not in {"development", "production", "test"}:
        raise ConfigError("APP_ENV must be one of: development, production, test")

    settings = Settings(
        provider=provider,
        openai=openai,
        google=google,
        daily_limit=_parse_daily_limit(_clean(source.get("DAILY_LIMIT"))),
        environment=environment,
        public_base_url=_clean(source.get("PUBLIC_BASE_URL")) or "",
    )

    # Log configuration status
    logger.info("Configuration loaded successfully")
    logger.debug(f"VISION_PROVIDER: {settings.provider}")
    logger.debug(f"OPENAI_API_KEY configured: {bool(openai.key)}")
    logger.debug(f"GOOGLE_GEMINI_API_KEY configured: {bool(google.key)}")
    logger.debug(f"DAILY_LIMIT: {settings.daily_limit}")
    logger.debug(f"APP_ENV: {settings.environment}")

    return settings
