"""Settings loader for the resume mailer."""

from __future__ import annotations

import configparser
import os
from pathlib import Path
from typing import Any, Dict, Optional

from .dispatcher import DEFAULT_DELAY_MAX_SECONDS, DEFAULT_DELAY_MIN_SECONDS
from .models import DEFAULT_BATCH_SIZE
from .smtp_client import DEFAULT_SMTP_HOST, DEFAULT_SMTP_PORT

DEFAULT_PORT = 5000


def load_settings(config_path: str | os.PathLike | None = None) -> Dict[str, Any]:
    """
    Load configuration from an INI file (default: config.ini) with environment variables as fallbacks.

    Environment variables:
      RMS_CONFIG - Path to config.ini file (default: config.ini)
      RMS_HOST - Server host (default: 0.0.0.0)
      PORT - Server port (default: 5000)
      RMS_CORS_ORIGINS - Comma-separated allowed origins (default: *)
      RMS_UPLOAD_DIR - Directory where attachments are staged (default: uploads)
      RMS_SMTP_HOST - SMTP host (default: smtp.gmail.com)
      RMS_SMTP_PORT - SMTP port (default: 465)
      RMS_SMTP_USE_TLS - Force implicit TLS on/off (default: auto, on for port 465)
      RMS_SMTP_TIMEOUT - SMTP socket timeout in seconds (default: 10)
      RMS_BATCH_SIZE - Default recipients per batch (default: 70)
      RMS_DELAY_MIN - Minimum pause between batches in seconds (default: 180)
      RMS_DELAY_MAX - Maximum pause between batches in seconds (default: 300)
      RMS_LOG_LEVEL - Logging level (default: INFO)
      RMS_LOG_DELIVERY_ACTIVITY - Log every successful delivery (default: False)

    Config file sections/keys:
      [server] host, port, cors_origins
      [storage] upload_dir
      [smtp] host, port, use_tls, timeout
      [delivery] batch_size, delay_min_seconds, delay_max_seconds
      [logging] level, delivery_activity
    """
    config_path = Path(config_path or os.getenv("RMS_CONFIG", "config.ini"))
    parser = configparser.ConfigParser()
    parser.read(config_path)

    def get(section: str, option: str, fallback: str | None = None) -> str | None:
        if parser.has_option(section, option):
            return parser.get(section, option)
        return fallback

    def get_int(section: str, option: str, fallback: str | None = None, default: int | None = None) -> int | None:
        value = get(section, option, fallback)
        if value is None or str(value).strip() == "":
            return default
        return int(value)

    def get_float(section: str, option: str, fallback: str | None = None, default: float | None = None) -> float | None:
        value = get(section, option, fallback)
        if value is None or str(value).strip() == "":
            return default
        return float(value)

    def get_bool(section: str, option: str, fallback: str | None = None, default: bool | None = None) -> bool | None:
        value = get(section, option, fallback)
        if value is None:
            return default
        normalized = str(value).strip().lower()
        if normalized in {"1", "true", "yes", "on"}:
            return True
        if normalized in {"0", "false", "no", "off"}:
            return False
        return default

    settings: Dict[str, Any] = {
        "http_host": get("server", "host", os.getenv("RMS_HOST", "0.0.0.0")),
        "http_port": get_int("server", "port", os.getenv("PORT"), default=DEFAULT_PORT),
        "cors_origins": get("server", "cors_origins", os.getenv("RMS_CORS_ORIGINS", "*")),
        "upload_dir": get("storage", "upload_dir", os.getenv("RMS_UPLOAD_DIR", "uploads")),
        "smtp_host": get("smtp", "host", os.getenv("RMS_SMTP_HOST", DEFAULT_SMTP_HOST)),
        "smtp_port": get_int("smtp", "port", os.getenv("RMS_SMTP_PORT"), default=DEFAULT_SMTP_PORT),
        "smtp_use_tls": get_bool("smtp", "use_tls", os.getenv("RMS_SMTP_USE_TLS"), default=None),
        "smtp_timeout": get_float("smtp", "timeout", os.getenv("RMS_SMTP_TIMEOUT"), default=10.0),
        "default_batch_size": get_int("delivery", "batch_size", os.getenv("RMS_BATCH_SIZE"), default=DEFAULT_BATCH_SIZE),
        "batch_delay_min": get_float(
            "delivery",
            "delay_min_seconds",
            os.getenv("RMS_DELAY_MIN"),
            default=DEFAULT_DELAY_MIN_SECONDS,
        ),
        "batch_delay_max": get_float(
            "delivery",
            "delay_max_seconds",
            os.getenv("RMS_DELAY_MAX"),
            default=DEFAULT_DELAY_MAX_SECONDS,
        ),
        "log_level": (get("logging", "level", os.getenv("RMS_LOG_LEVEL", "INFO")) or "INFO").upper(),
        "log_delivery_activity": get_bool(
            "logging",
            "delivery_activity",
            os.getenv("RMS_LOG_DELIVERY_ACTIVITY"),
            default=False,
        ),
    }

    if settings["default_batch_size"] <= 0:
        raise ValueError("delivery.batch_size must be a positive integer")
    if settings["batch_delay_min"] < 0 or settings["batch_delay_max"] < settings["batch_delay_min"]:
        raise ValueError("delivery delay interval must satisfy 0 <= delay_min_seconds <= delay_max_seconds")

    upload_dir = settings["upload_dir"]
    if isinstance(upload_dir, str):
        settings["upload_dir"] = os.path.expanduser(upload_dir)
    settings["cors_origins"] = parse_origins(settings["cors_origins"])
    return settings


def parse_origins(value: Optional[str]) -> list[str]:
    """Split the comma-separated CORS origins setting."""
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]
