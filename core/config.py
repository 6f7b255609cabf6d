"""
Runtime configuration and logging setup.

Settings are read from environment variables once at startup. Everything has
a default so a bare `serve` works out of the box.
"""

import logging
import os
from enum import Enum
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, model_validator

LOG_FORMAT = "%(asctime)s | %(name)-24s | %(levelname)-5s | %(message)s"
LOG_DATE_FORMAT = "%H:%M:%S"

_TRUE_VALUES = ("true", "1", "yes", "on")


class IPPrivacy(str, Enum):
    """How client IPs are redacted in view statistics."""
    TRUNCATE = "truncate"   # 203.0.113.xxx
    HASH = "hash"           # salted HMAC prefix


def _env(name: str, default: Optional[str] = None) -> Optional[str]:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return value


def _env_flag(name: str, default: bool) -> bool:
    value = _env(name)
    if value is None:
        return default
    return value.strip().lower() in _TRUE_VALUES


class Settings(BaseModel):
    """Tracker settings."""
    data_file: Path = Field(default=Path("tracking-data.json"))
    ip_privacy: IPPrivacy = Field(default=IPPrivacy.TRUNCATE)
    ip_salt: str = Field(default="")
    push_enabled: bool = Field(default=True)
    email_enabled: bool = Field(default=True)
    log_level: str = Field(default="INFO")
    host: str = Field(default="127.0.0.1")
    port: int = Field(default=3000, ge=1, le=65535)

    @model_validator(mode="after")
    def _require_salt_for_hashing(self) -> "Settings":
        if self.ip_privacy == IPPrivacy.HASH and not self.ip_salt:
            raise ValueError("TRACKER_IP_SALT must be set when TRACKER_IP_PRIVACY is \"hash\"")
        return self

    @classmethod
    def from_env(cls) -> "Settings":
        """
        Build settings from TRACKER_* environment variables (plus HOST/PORT).

        Raises:
            pydantic.ValidationError: If a variable holds an invalid value.
        """
        values = {
            "data_file": _env("TRACKER_DATA_FILE"),
            "ip_privacy": _env("TRACKER_IP_PRIVACY"),
            "ip_salt": _env("TRACKER_IP_SALT"),
            "log_level": _env("TRACKER_LOG_LEVEL"),
            "host": _env("HOST"),
            "port": _env("PORT"),
        }
        settings = {k: v for k, v in values.items() if v is not None}
        settings["push_enabled"] = _env_flag("TRACKER_PUSH_ENABLED", True)
        settings["email_enabled"] = _env_flag("TRACKER_EMAIL_ENABLED", True)
        return cls(**settings)


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging for the process."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        datefmt=LOG_DATE_FORMAT,
    )
