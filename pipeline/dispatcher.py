"""
Notification dispatcher for first views.

When an estimate is opened for the first time the contractor hears about it
through every channel that is available:

1. In-app: always. A Notification is prepended to the store's feed.
2. Push: if a push channel is configured and devices are registered, one
   message per device.
3. Email: if an email channel is configured and a contractor is registered.

Design decisions:
- The three channels run as independent tasks on a thread pool
- Each task runs inside its own failure boundary; an exception becomes a
  failed NotificationResult and is logged, never raised
- A failed push to one device does not stop the push to the next one
- One attempt per channel, no retries
- dispatch() never raises; callers schedule it after responding
- Once the pool is shut down (close()), channel tasks run on the calling thread

The dispatcher does not decide *whether* to notify. Callers only invoke it
when EventRecorder.record_view() reports a first view, so repeat views
never notify again.
"""

import logging
from concurrent.futures import Executor, ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Optional
from uuid import uuid4

from core.channels import ChannelType, EmailNotifier, NotificationResult, PushNotifier
from core.data_store import DataStore
from core.models import MAX_NOTIFICATIONS, Estimate, Notification, StoreState, utcnow
from core.templates import NotificationType, build_context, render_notification

logger = logging.getLogger("dispatcher")

IN_APP_RECIPIENT = "in-app-feed"

# Returns the channel's results, or None when the channel was skipped
ChannelTask = Callable[[Estimate, datetime], Optional[list[NotificationResult]]]


@dataclass
class DispatchReport:
    """Outcome of one dispatch across all channels."""
    tracking_id: str
    results: list[NotificationResult] = field(default_factory=list)
    skipped: list[ChannelType] = field(default_factory=list)

    def results_for(self, channel: ChannelType) -> list[NotificationResult]:
        return [r for r in self.results if r.channel == channel]

    @property
    def failures(self) -> list[NotificationResult]:
        return [r for r in self.results if not r.success]


class NotificationDispatcher:
    """
    Fans a first view out to the in-app feed, push and email.

    Example:
        dispatcher = NotificationDispatcher(
            data_store,
            push_channel=LoggingPushChannel(),
            email_channel=LoggingEmailChannel(),
        )
        report = dispatcher.dispatch("ABC123", data_store.get_estimate("ABC123"))
    """

    def __init__(
        self,
        data_store: DataStore,
        push_channel: Optional[PushNotifier] = None,
        email_channel: Optional[EmailNotifier] = None,
        executor: Optional[Executor] = None,
        clock: Callable = utcnow,
    ):
        """
        Args:
            data_store: Store holding devices, contractor and the feed
            push_channel: Push port, or None if push is not configured
            email_channel: Email port, or None if email is not configured
            executor: Pool the channel tasks run on (defaults to a private
                three-worker pool)
            clock: Returns the current aware datetime
        """
        self.data_store = data_store
        self.push_channel = push_channel
        self.email_channel = email_channel
        self.clock = clock

        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(
            max_workers=3,
            thread_name_prefix="dispatch",
        )

    def close(self) -> None:
        """Shut down the private pool, waiting for running deliveries."""
        if self._owns_executor:
            self._executor.shutdown(wait=True)

    # =========================================================================
    # Dispatch
    # =========================================================================

    def dispatch(self, tracking_id: str, estimate: Optional[Estimate] = None) -> DispatchReport:
        """
        Notify every available channel about the first view of an estimate.

        Args:
            tracking_id: The viewed tracking id
            estimate: The estimate (looked up in the store when omitted)

        Returns:
            DispatchReport with one result per attempted delivery
        """
        if estimate is None:
            estimate = self.data_store.get_estimate(tracking_id) or Estimate(tracking_id=tracking_id)
        viewed_at = self.clock()

        tasks: dict[ChannelType, ChannelTask] = {
            ChannelType.IN_APP: self._deliver_in_app,
            ChannelType.PUSH: self._deliver_push,
            ChannelType.EMAIL: self._deliver_email,
        }
        futures = {}
        outcomes = []
        for channel, task in tasks.items():
            try:
                futures[self._executor.submit(self._isolated, channel, task, estimate, viewed_at)] = channel
            except RuntimeError:
                # Pool already shut down; deliver on the calling thread
                logger.warning(f"Dispatch pool closed, delivering {channel.value} inline for {tracking_id}")
                outcomes.append((channel, self._isolated(channel, task, estimate, viewed_at)))
        outcomes.extend((futures[future], future.result()) for future in as_completed(futures))

        report = DispatchReport(tracking_id=tracking_id)
        for channel, results in outcomes:
            if results is None:
                report.skipped.append(channel)
            else:
                report.results.extend(results)

        logger.info(
            f"Dispatch complete for {tracking_id}: "
            f"{len(report.results) - len(report.failures)} delivered, "
            f"{len(report.failures)} failed, "
            f"skipped={[c.value for c in report.skipped]}"
        )
        return report

    def _isolated(
        self,
        channel: ChannelType,
        task: ChannelTask,
        estimate: Estimate,
        viewed_at: datetime,
    ) -> Optional[list[NotificationResult]]:
        """Run one channel task; any exception becomes a failed result."""
        try:
            return task(estimate, viewed_at)
        except Exception as e:
            logger.exception(f"{channel.value} delivery failed for {estimate.tracking_id}")
            return [NotificationResult(
                success=False,
                channel=channel,
                recipient="",
                subject=None,
                body="",
                error=str(e),
            )]

    # =========================================================================
    # Channels
    # =========================================================================

    def _deliver_in_app(self, estimate: Estimate, viewed_at: datetime) -> list[NotificationResult]:
        """Prepend a Notification to the feed, keeping the newest 100."""
        context = build_context(estimate, viewed_at)
        _, message = render_notification(
            NotificationType.ESTIMATE_VIEWED,
            channel=ChannelType.IN_APP,
            **context,
        )
        notification = Notification(
            id=str(uuid4()),
            tracking_id=estimate.tracking_id,
            estimate_title=estimate.display_title,
            customer_name=estimate.customer_name,
            message=message,
            viewed_at=viewed_at,
        )

        def _prepend(state: StoreState) -> None:
            state.notifications.insert(0, notification)
            del state.notifications[MAX_NOTIFICATIONS:]

        self.data_store.mutate(_prepend)
        logger.info(f"[IN-APP] {message}")
        return [NotificationResult(
            success=True,
            channel=ChannelType.IN_APP,
            recipient=IN_APP_RECIPIENT,
            subject=None,
            body=message,
            timestamp=viewed_at,
        )]

    def _deliver_push(self, estimate: Estimate, viewed_at: datetime) -> Optional[list[NotificationResult]]:
        """Send one push per registered device."""
        if self.push_channel is None:
            logger.debug("Push channel not configured, skipping")
            return None
        devices = self.data_store.get_devices()
        if not devices:
            logger.debug("No devices registered, skipping push")
            return None

        title, body = render_notification(
            NotificationType.ESTIMATE_VIEWED,
            channel=ChannelType.PUSH,
            **build_context(estimate, viewed_at),
        )
        payload = {
            "title": title,
            "body": body,
            "data": {"type": NotificationType.ESTIMATE_VIEWED.value, "tracking_id": estimate.tracking_id},
        }

        results = []
        for device in devices:
            try:
                result = self.push_channel.send(device.token, payload)
            except Exception as e:
                logger.error(f"Push to device {device.token[:8]}... raised: {e}")
                result = NotificationResult(
                    success=False,
                    channel=ChannelType.PUSH,
                    recipient=device.token,
                    subject=title,
                    body=body,
                    error=str(e),
                )
            results.append(result)
        return results

    def _deliver_email(self, estimate: Estimate, viewed_at: datetime) -> Optional[list[NotificationResult]]:
        """Email the registered contractor."""
        if self.email_channel is None:
            logger.debug("Email channel not configured, skipping")
            return None
        contractor = self.data_store.get_contractor()
        if contractor is None or not contractor.email:
            logger.debug("No contractor email registered, skipping email")
            return None

        subject, body = render_notification(
            NotificationType.ESTIMATE_VIEWED,
            channel=ChannelType.EMAIL,
            **build_context(estimate, viewed_at, contractor),
        )
        return [self.email_channel.send(contractor.email, subject, body)]
