"""Environment variable validation and management."""

import logging
import os
from typing import Dict

logger = logging.getLogger(__name__)

_TRUE_VALUES = {"1", "true", "yes", "on", "enabled"}
_FALSE_VALUES = {"0", "false", "no", "off", "disabled"}
_LOG_LEVELS = {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}


class EnvironmentError(Exception):
    """Raised when required environment variables are missing or invalid."""
    pass


def validate_environment() -> None:
    """Validate configuration read by the quiz service.

    Raises EnvironmentError if validation fails.
    """
    defaults = {
        "DB_PATH": os.getenv("DB_PATH") or "quiz.db",
    }

    # Apply defaults before validation so dependent modules see consistent values.
    for var, value in defaults.items():
        if not os.getenv(var):
            os.environ[var] = value
            logger.info("Environment variable %s not set; using default '%s'", var, value)

    optional_vars: Dict[str, str] = {
        "QUIZ_GENERATOR_URL": "Quiz generation backend base URL",
    }

    url = os.getenv("QUIZ_GENERATOR_URL")
    if url and not (url.startswith("http://") or url.startswith("https://")):
        raise EnvironmentError(f"Invalid URL format for QUIZ_GENERATOR_URL: {url}")

    timeout = os.getenv("QUIZ_GENERATOR_TIMEOUT")
    if timeout:
        try:
            if int(timeout) <= 0:
                raise ValueError(timeout)
        except ValueError:
            raise EnvironmentError(f"QUIZ_GENERATOR_TIMEOUT must be a positive integer: {timeout}")

    strict = os.getenv("QUIZ_STRICT_TRANSITIONS")
    if strict and strict.lower() not in _TRUE_VALUES | _FALSE_VALUES:
        raise EnvironmentError(f"QUIZ_STRICT_TRANSITIONS must be a boolean flag: {strict}")

    level = os.getenv("LOG_LEVEL")
    if level and level.upper() not in _LOG_LEVELS:
        raise EnvironmentError(f"Unknown LOG_LEVEL: {level}")

    for var, description in optional_vars.items():
        if not os.getenv(var):
            logger.warning("Optional environment variable not set: %s (%s)", var, description)


def get_env_bool(name: str, default: bool = False) -> bool:
    """Get boolean value from environment variable."""
    value = os.getenv(name)
    if value is None:
        return default
    return value.lower() in _TRUE_VALUES


def get_env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "")
    try:
        return int(raw) if raw else default
    except ValueError:
        logger.warning("Ignoring non-integer value for %s: %r", name, raw)
        return default
