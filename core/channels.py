"""
Notifier ports and logging channel adapters.

The dispatcher talks to external delivery channels only through two small
ports: push (one message per device token) and email (one message to the
contractor). The adapters in this module log what they would send instead of
calling a real provider. In a deployment they would be replaced by
integrations with services like:
- Push: APNs, Firebase Cloud Messaging
- Email: SendGrid, AWS SES, Mailgun

Design decisions:
- All sends are logged for visibility
- Channels track sent messages for test assertions
- A delivery failure is reported as a failed NotificationResult; callers must
  still be prepared for a port to raise
- Channel failures can be simulated (randomly or for specific recipients)
"""

import logging
import random
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional, Protocol

from core.models import utcnow

logger = logging.getLogger("notifications")


class ChannelType(str, Enum):
    """Channels a first view fans out to."""
    IN_APP = "in_app"
    PUSH = "push"
    EMAIL = "email"


@dataclass
class NotificationResult:
    """
    Result of a notification send attempt.

    Captures success/failure and metadata for debugging and testing.
    """
    success: bool
    channel: ChannelType
    recipient: str
    subject: Optional[str]  # Email and push title
    body: str
    timestamp: datetime = field(default_factory=utcnow)
    error: Optional[str] = None

    def __str__(self) -> str:
        status = "✓" if self.success else "✗"
        return f"{status} {self.channel.value.upper()} to {self.recipient}: {self.subject or self.body[:50]}"


class PushNotifier(Protocol):
    """Port for delivering one push message to one device."""

    def send(self, device_token: str, payload: dict[str, Any]) -> NotificationResult:  # pragma: no cover - Protocol
        ...


class EmailNotifier(Protocol):
    """Port for delivering one email."""

    def send(self, to: str, subject: str, body: str) -> NotificationResult:  # pragma: no cover - Protocol
        ...


class _RecordingChannel:
    """Sent-message bookkeeping shared by the logging adapters."""

    def __init__(self, fail_rate: float = 0.0, fail_recipients: Optional[set[str]] = None):
        """
        Args:
            fail_rate: Probability of send failure (0.0 to 1.0), for testing.
            fail_recipients: Recipients whose sends always fail, for testing.
        """
        self.fail_rate = fail_rate
        self.fail_recipients = set(fail_recipients or ())
        self.sent_messages: list[NotificationResult] = []

    def _should_fail(self, recipient: str) -> bool:
        return recipient in self.fail_recipients or random.random() < self.fail_rate

    def get_sent_count(self) -> int:
        """Get the number of messages sent (for testing)."""
        return len(self.sent_messages)

    def get_successful_sends(self) -> list[NotificationResult]:
        """Get all successful sends."""
        return [m for m in self.sent_messages if m.success]

    def clear_history(self):
        """Clear sent message history (useful between tests)."""
        self.sent_messages.clear()

    def find_message_to(self, recipient: str) -> Optional[NotificationResult]:
        """Find a message sent to a specific recipient."""
        for msg in self.sent_messages:
            if msg.recipient == recipient:
                return msg
        return None


class LoggingPushChannel(_RecordingChannel):
    """
    Mock push channel.

    Logs pushes and tracks them for test assertions. Device tokens are
    truncated in log output.
    """

    def send(self, device_token: str, payload: dict[str, Any]) -> NotificationResult:
        """
        Send a push message (mock implementation).

        Args:
            device_token: Target device token
            payload: Push payload with "title" and "body" keys

        Returns:
            NotificationResult indicating success/failure
        """
        title = payload.get("title")
        body = payload.get("body", "")
        short_token = device_token[:8]

        if self._should_fail(device_token):
            result = NotificationResult(
                success=False,
                channel=ChannelType.PUSH,
                recipient=device_token,
                subject=title,
                body=body,
                error="Simulated push delivery failure",
            )
            logger.error(f"[PUSH FAILED] Device: {short_token}... | Error: {result.error}")
        else:
            result = NotificationResult(
                success=True,
                channel=ChannelType.PUSH,
                recipient=device_token,
                subject=title,
                body=body,
            )
            logger.info(f"[PUSH] Device: {short_token}... | {title}: {body}")

        self.sent_messages.append(result)
        return result


class LoggingEmailChannel(_RecordingChannel):
    """
    Mock email channel.

    Logs email sends and tracks them for test assertions.
    """

    def __init__(
        self,
        fail_rate: float = 0.0,
        fail_recipients: Optional[set[str]] = None,
        from_addr: str = "notifications@estimate-tracker.local",
    ):
        super().__init__(fail_rate=fail_rate, fail_recipients=fail_recipients)
        self.from_addr = from_addr

    def send(self, to: str, subject: str, body: str) -> NotificationResult:
        """
        Send an email (mock implementation).

        Args:
            to: Recipient email address
            subject: Email subject line
            body: Email body content

        Returns:
            NotificationResult indicating success/failure
        """
        if self._should_fail(to):
            result = NotificationResult(
                success=False,
                channel=ChannelType.EMAIL,
                recipient=to,
                subject=subject,
                body=body,
                error="Simulated email delivery failure",
            )
            logger.error(f"[EMAIL FAILED] To: {to} | Subject: {subject} | Error: {result.error}")
        else:
            result = NotificationResult(
                success=True,
                channel=ChannelType.EMAIL,
                recipient=to,
                subject=subject,
                body=body,
            )
            logger.info(f"[EMAIL] From: {self.from_addr} | To: {to} | Subject: {subject}")
            logger.debug(f"[EMAIL BODY] {body}")

        self.sent_messages.append(result)
        return result
