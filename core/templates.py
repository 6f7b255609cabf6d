"""
Notification message templates and the view confirmation page.

Templates support variable substitution using Python's string formatting.

Design decisions:
- One template per notification type, with a variant per channel
- Push and in-app text is short; the email body carries the detail
- Context is built from an Estimate so every channel words it the same way
- Anything embedded in HTML is escaped first; tracking ids, titles and
  customer names are all caller-supplied
"""

import html
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from core.channels import ChannelType
from core.models import Contractor, Estimate


class NotificationType(str, Enum):
    """Supported notification types."""
    ESTIMATE_VIEWED = "estimate_viewed"


@dataclass
class NotificationTemplate:
    """
    A notification template with in-app, push and email variants.
    """
    notification_type: NotificationType
    in_app_message: str
    push_title: str
    push_body: str
    email_subject: str
    email_body: str

    def render_in_app(self, **kwargs) -> str:
        """Render the in-app feed message."""
        return self.in_app_message.format(**kwargs)

    def render_push(self, **kwargs) -> tuple[str, str]:
        """
        Render the push template.

        Returns:
            Tuple of (title, body)
        """
        return (
            self.push_title.format(**kwargs),
            self.push_body.format(**kwargs),
        )

    def render_email(self, **kwargs) -> tuple[str, str]:
        """
        Render the email template.

        Returns:
            Tuple of (subject, body)
        """
        return (
            self.email_subject.format(**kwargs),
            self.email_body.format(**kwargs),
        )


# =============================================================================
# Template Definitions
# =============================================================================

TEMPLATES: dict[NotificationType, NotificationTemplate] = {
    NotificationType.ESTIMATE_VIEWED: NotificationTemplate(
        notification_type=NotificationType.ESTIMATE_VIEWED,
        in_app_message="{customer_name} opened {estimate_title}",
        push_title="Estimate Viewed",
        push_body="{customer_name} just opened {estimate_title}",
        email_subject="Your estimate was viewed: {estimate_title}",
        email_body="""Hi {contractor_name},

{customer_name} opened {estimate_title} for the first time.

Reference: {tracking_id}
Viewed at: {viewed_at}

Now is a good time to follow up.
""",
    ),
}


# =============================================================================
# Template Access Functions
# =============================================================================

def get_template(notification_type: NotificationType) -> Optional[NotificationTemplate]:
    """Get a template by notification type."""
    return TEMPLATES.get(notification_type)


def build_context(
    estimate: Estimate,
    viewed_at: datetime,
    contractor: Optional[Contractor] = None,
) -> dict[str, Any]:
    """Template variables for a view of `estimate`."""
    return {
        "tracking_id": estimate.tracking_id,
        "estimate_title": estimate.display_title,
        "customer_name": estimate.customer_name or "Your customer",
        "contractor_name": (contractor.name if contractor and contractor.name else "there"),
        "viewed_at": viewed_at.strftime("%Y-%m-%d %H:%M UTC"),
    }


def render_notification(
    notification_type: NotificationType,
    channel: ChannelType,
    **context
) -> tuple[Optional[str], str]:
    """
    Render a notification for a specific channel.

    Args:
        notification_type: The type of notification
        channel: Channel to render for
        **context: Variables to substitute in the template

    Returns:
        For email: (subject, body)
        For push: (title, body)
        For in-app: (None, message)

    Raises:
        ValueError: If template not found or channel invalid
    """
    template = get_template(notification_type)
    if not template:
        raise ValueError(f"No template found for notification type: {notification_type}")

    if channel == ChannelType.EMAIL:
        return template.render_email(**context)
    elif channel == ChannelType.PUSH:
        return template.render_push(**context)
    elif channel == ChannelType.IN_APP:
        return (None, template.render_in_app(**context))
    else:
        raise ValueError(f"Unknown channel: {channel}")


# =============================================================================
# Pages
# =============================================================================

_VIEW_PAGE = """<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="UTF-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
  <title>Estimate Received</title>
  <style>
    body {{ font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif;
           background: #f4f5fb; display: flex; align-items: center; justify-content: center;
           min-height: 100vh; margin: 0; padding: 20px; }}
    .container {{ background: white; border-radius: 16px; padding: 40px; max-width: 500px;
                 text-align: center; box-shadow: 0 20px 60px rgba(0,0,0,0.15); }}
    .badge {{ display: inline-block; background: #e8f5e9; color: #2e7d32;
             padding: 10px 20px; border-radius: 25px; }}
    .tracking-id {{ margin-top: 20px; font-size: 12px; color: #999; }}
  </style>
</head>
<body>
  <div class="container">
    <h1>Receipt Confirmed!</h1>
    <p>Your contractor has been notified.</p>
    <p>The full estimate has been sent to your email. You can save, print, or review the complete details there.</p>
    <div class="badge">&#10003; View Confirmed</div>
    <div class="tracking-id">Reference: {tracking_id}</div>
  </div>
</body>
</html>
"""


def render_view_page(tracking_id: str) -> str:
    """Confirmation page shown when a customer opens a tracking link."""
    return _VIEW_PAGE.format(tracking_id=html.escape(tracking_id))
