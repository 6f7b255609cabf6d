"""
Core infrastructure for the estimate view tracker.

This package contains everything the pipeline builds on:
- Domain models (Estimate, View, Device, Contractor, Notification)
- Durable JSON-backed data store
- Notifier ports with logging adapters (push, email)
- Notification templates
- Settings and logging setup
"""

from core.models import (
    Estimate,
    View,
    Device,
    Contractor,
    Notification,
    StoreState,
    ViewMetadata,
)
from core.data_store import DataStore
from core.channels import (
    ChannelType,
    NotificationResult,
    LoggingEmailChannel,
    LoggingPushChannel,
)
from core.config import Settings, configure_logging

__all__ = [
    "Estimate",
    "View",
    "Device",
    "Contractor",
    "Notification",
    "StoreState",
    "ViewMetadata",
    "DataStore",
    "ChannelType",
    "NotificationResult",
    "LoggingEmailChannel",
    "LoggingPushChannel",
    "Settings",
    "configure_logging",
]
