"""Startup-time helpers for safe config logging."""

from voucherpay.common.config import Settings
from voucherpay.common.logging import logger


SECRET_MARKERS = ("token", "secret", "password", "api_key")


def _safe_value(name: str, value) -> str:
    """Return a printable setting value with redaction for secret-like names."""

    if value in (None, ""):
        return "<unset>"
    if any(marker in name for marker in SECRET_MARKERS):
        return "<redacted>"
    return str(value)


def log_startup_config(settings: Settings, keys: list[str]) -> None:
    """Log selected startup config keys for quick troubleshooting."""

    config = {"service": settings.service_name}
    for key in keys:
        config[key] = _safe_value(key, getattr(settings, key, None))
    logger.info("startup_config=%s", config)
