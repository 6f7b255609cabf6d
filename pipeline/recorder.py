"""
Event recorder: turns "this tracking id was viewed" into store mutations.

The recorder also owns the registration operations (estimate, device,
contractor) since they are the other writers of the same collections.

Key rule:
- "First view" means no View existed for the tracking id before this call.
  It is computed inside the same mutation that appends the View, so two
  concurrent first views of one id can never both report True.
- Explicit registration does not count as a view; a registered estimate
  still produces a first-view notification the first time it is opened.
"""

import logging
from typing import Callable, Optional

from core.data_store import DataStore
from core.models import (
    MAX_VIEWS,
    Contractor,
    ContractorRegistration,
    Device,
    DeviceRegistration,
    Estimate,
    EstimateRegistration,
    StoreState,
    View,
    ViewMetadata,
    utcnow,
)

logger = logging.getLogger("recorder")


def _check_tracking_id(tracking_id: str) -> None:
    """Tracking ids are opaque, but must be non-empty text the store can persist."""
    if not tracking_id:
        raise ValueError("tracking_id must be a non-empty string")
    try:
        tracking_id.encode("utf-8")
    except UnicodeEncodeError:
        raise ValueError(f"tracking_id is not valid UTF-8: {tracking_id!r}")


class EventRecorder:
    """
    Records views and registrations against a DataStore.

    Example:
        recorder = EventRecorder(data_store)
        if recorder.record_view("ABC123", ViewMetadata(ip_address="203.0.113.7")):
            dispatcher.dispatch("ABC123", data_store.get_estimate("ABC123"))
    """

    def __init__(self, data_store: DataStore, clock: Callable = utcnow):
        """
        Args:
            data_store: Store to record into
            clock: Returns the current aware datetime (injectable for tests)
        """
        self.data_store = data_store
        self.clock = clock

    def record_view(self, tracking_id: str, metadata: Optional[ViewMetadata] = None) -> bool:
        """
        Record one view of a tracking id.

        Creates a stub estimate for unknown ids, appends the view and evicts
        the oldest views beyond the cap.

        Returns:
            True if this is the first view ever recorded for the id.

        Raises:
            ValueError: If tracking_id is empty or not valid UTF-8.
        """
        _check_tracking_id(tracking_id)
        metadata = metadata or ViewMetadata()

        def _record(state: StoreState) -> bool:
            now = self.clock()

            if tracking_id not in state.estimates:
                state.estimates[tracking_id] = Estimate(tracking_id=tracking_id, created_at=now)

            is_first_view = not any(v.tracking_id == tracking_id for v in state.views)

            # Eviction only drops the oldest entries, so the last view
            # always carries the highest id handed out so far.
            next_id = state.views[-1].id + 1 if state.views else 1
            state.views.append(View(
                id=next_id,
                tracking_id=tracking_id,
                viewed_at=now,
                ip_address=metadata.ip_address,
                user_agent=metadata.user_agent,
                referer=metadata.referer,
            ))

            overflow = len(state.views) - MAX_VIEWS
            if overflow > 0:
                del state.views[:overflow]

            return is_first_view

        is_first_view = self.data_store.mutate(_record)
        logger.info(f"Recorded view: tracking_id={tracking_id}, first_view={is_first_view}")
        return is_first_view

    def register_estimate(
        self,
        tracking_id: str,
        registration: Optional[EstimateRegistration] = None,
    ) -> Estimate:
        """
        Register (or re-register) an estimate.

        Descriptive fields are replaced wholesale; an existing estimate keeps
        its original created_at.

        Raises:
            ValueError: If tracking_id is empty or not valid UTF-8.
        """
        _check_tracking_id(tracking_id)
        registration = registration or EstimateRegistration()

        def _register(state: StoreState) -> Estimate:
            existing = state.estimates.get(tracking_id)
            estimate = Estimate(
                tracking_id=tracking_id,
                created_at=existing.created_at if existing else self.clock(),
                **registration.model_dump(),
            )
            state.estimates[tracking_id] = estimate
            return estimate.model_copy()

        estimate = self.data_store.mutate(_register)
        logger.info(f"Registered estimate: tracking_id={tracking_id}")
        return estimate

    def register_device(self, registration: DeviceRegistration) -> Device:
        """Register a push device, replacing any record with the same token."""
        def _register(state: StoreState) -> Device:
            device = Device(
                token=registration.token,
                platform=registration.platform,
                bundle_id=registration.bundle_id,
                registered_at=self.clock(),
            )
            state.devices = [d for d in state.devices if d.token != device.token]
            state.devices.append(device)
            return device.model_copy()

        device = self.data_store.mutate(_register)
        logger.info(f"Registered device: platform={device.platform}, token={device.token[:8]}...")
        return device

    def register_contractor(self, registration: ContractorRegistration) -> Contractor:
        """Register the contractor, overwriting any previous one."""
        def _register(state: StoreState) -> Contractor:
            state.contractor = Contractor(
                email=registration.email,
                name=registration.name,
                company_name=registration.company_name,
                registered_at=self.clock(),
            )
            return state.contractor.model_copy()

        contractor = self.data_store.mutate(_register)
        logger.info(f"Registered contractor: {contractor.email}")
        return contractor
