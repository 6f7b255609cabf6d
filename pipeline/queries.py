"""
Read-only projections over the data store.

Every query scans the view list. That is linear in the number of views, which
the store caps at 10,000.
"""

import hashlib
import hmac
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from core.config import IPPrivacy
from core.data_store import DataStore
from core.models import Contractor, Device, Notification, StoreState, View

MAX_STATS_VIEWS = 50
MAX_LISTED_ESTIMATES = 100


class ViewStats(BaseModel):
    """View statistics for one tracking id, with redacted IPs."""
    tracking_id: str = Field(alias="trackingId")
    view_count: int = Field(alias="viewCount")
    last_viewed_at: Optional[datetime] = Field(alias="lastViewedAt")
    views: list[dict[str, Any]]

    model_config = ConfigDict(populate_by_name=True)


class EstimateSummary(BaseModel):
    tracking_id: str
    title: Optional[str] = None
    customer_name: Optional[str] = None
    created_at: datetime
    view_count: int
    last_viewed_at: Optional[datetime] = None


class EstimateListing(BaseModel):
    estimates: list[EstimateSummary]


class NotificationFeed(BaseModel):
    notifications: list[Notification]
    unread_count: int


def redact_ip(ip_address: str, privacy: IPPrivacy = IPPrivacy.TRUNCATE, salt: str = "") -> str:
    """
    Redact a client IP so the raw address is never exposed.

    TRUNCATE keeps the network part (203.0.113.xxx, 2001:db8::xxxx);
    HASH returns a salted HMAC-SHA256 prefix.
    """
    if privacy == IPPrivacy.HASH:
        return hmac.new(salt.encode(), ip_address.encode(), hashlib.sha256).hexdigest()[:16]
    if "." in ip_address:
        return ip_address[:ip_address.rfind(".")] + ".xxx"
    if ":" in ip_address:
        return ip_address[:ip_address.rfind(":")] + ":xxxx"
    return "xxx"


def _newest_first(views: list[View]) -> list[View]:
    return sorted(views, key=lambda v: (v.viewed_at, v.id), reverse=True)


class QueryService:
    """
    Statistics and listings for the API and CLI. Never mutates the store.
    """

    def __init__(
        self,
        data_store: DataStore,
        ip_privacy: IPPrivacy = IPPrivacy.TRUNCATE,
        ip_salt: str = "",
    ):
        self.data_store = data_store
        self.ip_privacy = ip_privacy
        self.ip_salt = ip_salt

    def _redacted_entry(self, view: View) -> dict[str, Any]:
        ip = redact_ip(view.ip_address, self.ip_privacy, self.ip_salt) if view.ip_address else None
        ip_key = "ip_hash" if self.ip_privacy == IPPrivacy.HASH else "ipAddress"
        return {
            "timestamp": view.viewed_at,
            ip_key: ip,
            "userAgent": view.user_agent,
        }

    def get_view_stats(self, tracking_id: str) -> ViewStats:
        """
        View count, latest view and the 50 most recent views of a tracking id.

        Unknown ids yield zero-valued statistics.
        """
        views = _newest_first(self.data_store.get_views(tracking_id))
        return ViewStats(
            tracking_id=tracking_id,
            view_count=len(views),
            last_viewed_at=views[0].viewed_at if views else None,
            views=[self._redacted_entry(v) for v in views[:MAX_STATS_VIEWS]],
        )

    def list_estimates(self) -> EstimateListing:
        """The 100 most recently created estimates with view aggregates."""
        def _summarize(state: StoreState) -> list[EstimateSummary]:
            counts: dict[str, int] = {}
            latest: dict[str, datetime] = {}
            for view in state.views:
                counts[view.tracking_id] = counts.get(view.tracking_id, 0) + 1
                seen = latest.get(view.tracking_id)
                if seen is None or view.viewed_at > seen:
                    latest[view.tracking_id] = view.viewed_at

            return [
                EstimateSummary(
                    tracking_id=estimate.tracking_id,
                    title=estimate.title,
                    customer_name=estimate.customer_name,
                    created_at=estimate.created_at,
                    view_count=counts.get(estimate.tracking_id, 0),
                    last_viewed_at=latest.get(estimate.tracking_id),
                )
                for estimate in state.estimates.values()
            ]

        summaries = self.data_store.read(_summarize)
        summaries.sort(key=lambda s: s.created_at, reverse=True)
        return EstimateListing(estimates=summaries[:MAX_LISTED_ESTIMATES])

    def list_notifications(self) -> NotificationFeed:
        """The in-app feed, newest first, with the unread count."""
        notifications = self.data_store.get_notifications()
        return NotificationFeed(
            notifications=notifications,
            unread_count=sum(1 for n in notifications if not n.is_read),
        )

    def list_devices(self) -> list[Device]:
        return self.data_store.get_devices()

    def get_contractor(self) -> Optional[Contractor]:
        return self.data_store.get_contractor()
