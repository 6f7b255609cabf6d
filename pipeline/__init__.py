"""
View-tracking pipeline.

This package implements the path from a recorded view to the notifications
it triggers:
- EventRecorder records views and registrations in the data store
- NotificationDispatcher fans first views out to in-app, push and email
- QueryService serves read-only statistics over the same store
"""

from pipeline.recorder import EventRecorder
from pipeline.dispatcher import DispatchReport, NotificationDispatcher
from pipeline.queries import QueryService, redact_ip

__all__ = [
    "EventRecorder",
    "DispatchReport",
    "NotificationDispatcher",
    "QueryService",
    "redact_ip",
]
