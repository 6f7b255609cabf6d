"""
Domain models for the estimate view tracker.

These models describe everything the durable store persists: estimates that
can be tracked, the views recorded against them, the devices and contractor
that receive notifications, and the in-app notification feed.

Design decisions:
- Using Pydantic for validation and serialization
- Persisted keys are snake_case, matching the on-disk JSON document
- Registration payloads are separate request models so invalid input is
  rejected before the store is touched
"""

import re
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


# Storage caps
MAX_VIEWS = 10_000
MAX_NOTIFICATIONS = 100

_EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def _as_utc(cls, value: datetime) -> datetime:
    """Persisted timestamps without an offset are taken to be UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _require_utf8(cls, value):
    """Reject text the JSON document cannot hold (e.g. lone surrogates)."""
    if isinstance(value, str):
        try:
            value.encode("utf-8")
        except UnicodeEncodeError:
            raise ValueError(f"Text is not valid UTF-8: {value!r}")
    return value


class DevicePlatform(str, Enum):
    """Platforms a push device can be registered for."""
    IOS = "ios"
    ANDROID = "android"
    WEB = "web"


# =============================================================================
# Persisted records
# =============================================================================

class Estimate(BaseModel):
    """
    A tracked estimate.

    Created either by explicit registration or implicitly by the first view
    of its tracking id, in which case only tracking_id and created_at are set.
    """
    tracking_id: str = Field(..., description="Opaque tracking identifier")
    title: Optional[str] = Field(default=None)
    customer_name: Optional[str] = Field(default=None)
    customer_email: Optional[str] = Field(default=None)
    total: Optional[float] = Field(default=None, ge=0)
    created_at: datetime = Field(default_factory=utcnow)

    _utc_created_at = field_validator("created_at")(_as_utc)

    @property
    def display_title(self) -> str:
        """Title used in notifications when none was registered."""
        return self.title or f"Estimate {self.tracking_id}"


class View(BaseModel):
    """A single recorded access of a tracking link or pixel. Immutable."""
    id: int = Field(..., ge=1, description="Store-wide sequence id")
    tracking_id: str
    viewed_at: datetime = Field(default_factory=utcnow)
    ip_address: Optional[str] = Field(default=None)
    user_agent: Optional[str] = Field(default=None)
    referer: Optional[str] = Field(default=None)

    _utc_viewed_at = field_validator("viewed_at")(_as_utc)

    model_config = ConfigDict(frozen=True)


class Device(BaseModel):
    """A push-capable device, unique by token."""
    token: str
    platform: DevicePlatform
    bundle_id: Optional[str] = Field(default=None)
    registered_at: datetime = Field(default_factory=utcnow)

    _utc_registered_at = field_validator("registered_at")(_as_utc)

    model_config = ConfigDict(use_enum_values=True)


class Contractor(BaseModel):
    """The single contractor who owns this deployment and receives email."""
    email: str
    name: Optional[str] = Field(default=None)
    company_name: Optional[str] = Field(default=None)
    registered_at: datetime = Field(default_factory=utcnow)

    _utc_registered_at = field_validator("registered_at")(_as_utc)


class Notification(BaseModel):
    """In-app notification created on the first view of an estimate."""
    id: str
    tracking_id: str
    estimate_title: str
    customer_name: Optional[str] = Field(default=None)
    message: str
    viewed_at: datetime
    is_read: bool = Field(default=False)

    _utc_viewed_at = field_validator("viewed_at")(_as_utc)


class StoreState(BaseModel):
    """
    The complete persisted document.

    Five top-level fields: estimates keyed by tracking id, views, devices and
    notifications as ordered lists, and the nullable contractor singleton.
    Views are kept in insertion order; notifications newest-first.
    """
    estimates: dict[str, Estimate] = Field(default_factory=dict)
    views: list[View] = Field(default_factory=list)
    devices: list[Device] = Field(default_factory=list)
    notifications: list[Notification] = Field(default_factory=list)
    contractor: Optional[Contractor] = Field(default=None)


# =============================================================================
# Request metadata and registration payloads
# =============================================================================

class ViewMetadata(BaseModel):
    """Request details captured alongside a view. All fields are optional."""
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    referer: Optional[str] = None

    _utf8 = field_validator("*")(_require_utf8)


class EstimateRegistration(BaseModel):
    """Optional descriptive fields supplied when registering an estimate."""
    title: Optional[str] = Field(default=None, max_length=200)
    customer_name: Optional[str] = Field(default=None, max_length=200)
    customer_email: Optional[str] = Field(default=None)
    total: Optional[float] = Field(default=None, ge=0)

    _utf8 = field_validator("*")(_require_utf8)

    @field_validator("customer_email")
    @classmethod
    def _check_email(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not _EMAIL_PATTERN.match(value):
            raise ValueError(f"Invalid email address: {value!r}")
        return value


class DeviceRegistration(BaseModel):
    """Payload for registering (or re-registering) a push device."""
    token: str = Field(..., min_length=1)
    platform: DevicePlatform = Field(default=DevicePlatform.IOS)
    bundle_id: Optional[str] = Field(default=None)

    _utf8 = field_validator("*")(_require_utf8)


class ContractorRegistration(BaseModel):
    """Payload for registering the contractor. Email is required."""
    email: str
    name: Optional[str] = Field(default=None, max_length=200)
    company_name: Optional[str] = Field(default=None, max_length=200)

    _utf8 = field_validator("*")(_require_utf8)

    @field_validator("email")
    @classmethod
    def _check_email(cls, value: str) -> str:
        value = value.strip()
        if not _EMAIL_PATTERN.match(value):
            raise ValueError(f"Invalid email address: {value!r}")
        return value
