import logging
import os

DEFAULT_MAX_RUNS = 5000
DEFAULT_MAX_WORKFLOWS = 200


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    text = value.strip()
    if not text:
        return default
    try:
        parsed = int(text)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _env_log_level(name: str, default: str = "INFO") -> str:
    value = (os.getenv(name) or "").strip().upper()
    if value and isinstance(logging.getLevelName(value), int):
        return value
    return default


class Config:
    ENV = os.getenv("FLASK_ENV", "production")
    LOG_LEVEL = _env_log_level("LOG_LEVEL")
    JSON_SORT_KEYS = False
    RECONCILIATION_MAX_RUNS = _env_int("RECONCILIATION_MAX_RUNS", DEFAULT_MAX_RUNS)
    RECONCILIATION_MAX_WORKFLOWS = _env_int("RECONCILIATION_MAX_WORKFLOWS", DEFAULT_MAX_WORKFLOWS)
