"""
JSON-backed durable store for the estimate view tracker.

The store is the single owner of every collection the tracker keeps:
estimates, views, devices, notifications and the contractor. All state lives
in memory; a background writer thread persists the whole document to one JSON
file.

Design decisions:
- Every mutation runs under one re-entrant lock, so mutations are linearized
  and readers never see a half-applied change
- A mutation and its flush request are issued inside the same critical section
- One writer thread owns the file. It drains every pending flush request
  before writing, so a burst of mutations becomes a single write of the state
  as it is at write time
- Writes go to a temporary file that is renamed over the target, so a crash
  mid-write leaves the previous document intact
- A missing or corrupt file at startup yields empty state, never a crash
- Flush failures are logged; in-memory state stays authoritative
"""

import logging
import os
import queue
import threading
from pathlib import Path
from typing import Callable, Optional, TypeVar, Union

from pydantic import ValidationError

from core.models import Contractor, Device, Estimate, Notification, StoreState, View

logger = logging.getLogger("data_store")

T = TypeVar("T")

# Writer queue messages
_FLUSH = "flush"
_STOP = "stop"


class DataStore:
    """
    Durable, in-memory store with coalesced background flushes.

    Example usage:
        store = DataStore("tracking-data.json")
        store.load()
        store.start()

        store.mutate(lambda state: state.devices.clear())
        devices = store.get_devices()

        store.close()  # final flush, stops the writer
    """

    def __init__(self, path: Union[str, Path]):
        """
        Initialize the data store.

        Args:
            path: Location of the backing JSON document.
        """
        self.path = Path(path)

        self._lock = threading.RLock()
        self._state = StoreState()

        self._requests: "queue.Queue[str]" = queue.Queue()
        self._writer: Optional[threading.Thread] = None

        # Observability
        self.last_load_error: Optional[str] = None
        self.last_flush_error: Optional[str] = None
        self.flush_count = 0

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def load(self) -> StoreState:
        """
        Load persisted state, replacing whatever is in memory.

        A missing file is a fresh deployment. An unreadable or invalid file is
        logged, recorded on `last_load_error`, and treated as empty state.
        """
        state = StoreState()
        self.last_load_error = None

        if self.path.exists():
            try:
                raw = self.path.read_text(encoding="utf-8")
                state = StoreState.model_validate_json(raw)
                logger.info(
                    f"Loaded {len(state.estimates)} estimates and "
                    f"{len(state.views)} views from {self.path}"
                )
            except (OSError, UnicodeDecodeError, ValidationError) as e:
                self.last_load_error = str(e)
                logger.error(f"Error loading {self.path}, starting with empty state: {e}")
                state = StoreState()

        with self._lock:
            self._state = state
        return state

    def start(self) -> None:
        """Start the background writer thread (idempotent)."""
        if self._writer is not None and self._writer.is_alive():
            return
        self._writer = threading.Thread(
            target=self._run_writer,
            name="data-store-writer",
            daemon=True,
        )
        self._writer.start()
        logger.debug(f"Writer started for {self.path}")

    def close(self) -> None:
        """Write any pending changes and stop the writer thread."""
        if self._writer is None:
            self.wait_for_flush()
            return
        self._requests.put(_STOP)
        self._writer.join()
        self._writer = None
        logger.debug(f"Writer stopped for {self.path}")

    @property
    def is_running(self) -> bool:
        return self._writer is not None and self._writer.is_alive()

    # =========================================================================
    # Mutation and reads
    # =========================================================================

    def mutate(self, fn: Callable[[StoreState], T]) -> T:
        """
        Apply a state transition and schedule a flush.

        The transition runs to completion under the store lock; no other
        mutation or read can interleave with it. Exceptions raised by `fn`
        propagate to the caller and no flush is requested.

        Returns:
            Whatever `fn` returns.
        """
        with self._lock:
            result = fn(self._state)
            self.flush()
        return result

    def read(self, fn: Callable[[StoreState], T]) -> T:
        """Run a read-only function against a consistent view of the state."""
        with self._lock:
            return fn(self._state)

    def snapshot(self) -> StoreState:
        """Deep copy of the entire state."""
        with self._lock:
            return self._state.model_copy(deep=True)

    def flush(self) -> None:
        """
        Request a write of the current state. Never blocks on disk I/O.

        Requests made while a write is in progress are coalesced into one
        follow-up write.
        """
        self._requests.put(_FLUSH)

    def wait_for_flush(self) -> None:
        """
        Block until every flush requested so far has been written.

        Without a running writer the pending requests are processed on the
        calling thread.
        """
        if self.is_running:
            self._requests.join()
        else:
            self._process_requests(block=False)

    # =========================================================================
    # Writer
    # =========================================================================

    def _run_writer(self) -> None:
        while not self._process_requests(block=True):
            pass

    def _process_requests(self, block: bool) -> bool:
        """
        Consume every queued request and write once.

        Returns:
            True if a stop request was consumed.
        """
        try:
            first = self._requests.get(block=block)
        except queue.Empty:
            return False

        handled = [first]
        while True:
            try:
                handled.append(self._requests.get_nowait())
            except queue.Empty:
                break

        try:
            if _FLUSH in handled:
                self._write_snapshot()
        finally:
            for _ in handled:
                self._requests.task_done()

        return _STOP in handled

    def _write_snapshot(self) -> bool:
        """
        Serialize the state under the lock, then write it atomically.

        Any failure is recorded on `last_flush_error` and logged; the writer
        thread keeps running and the next flush is attempted as usual.
        """
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        try:
            with self._lock:
                payload = self._state.model_dump_json(indent=2)
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, "w", encoding="utf-8") as f:
                f.write(payload)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self.path)
        except Exception as e:
            self.last_flush_error = str(e)
            logger.exception(f"Error saving {self.path}: {e}")
            return False

        self.flush_count += 1
        self.last_flush_error = None
        logger.debug(f"Flushed state to {self.path} (flush #{self.flush_count})")
        return True

    # =========================================================================
    # Estimate / View reads
    # =========================================================================

    def get_estimate(self, tracking_id: str) -> Optional[Estimate]:
        """Get an estimate by tracking id."""
        with self._lock:
            estimate = self._state.estimates.get(tracking_id)
            return estimate.model_copy() if estimate else None

    def get_estimates(self) -> list[Estimate]:
        """Get all estimates."""
        with self._lock:
            return [e.model_copy() for e in self._state.estimates.values()]

    def get_views(self, tracking_id: Optional[str] = None) -> list[View]:
        """Get views in insertion order, optionally for one tracking id."""
        with self._lock:
            if tracking_id is None:
                return list(self._state.views)
            return [v for v in self._state.views if v.tracking_id == tracking_id]

    # =========================================================================
    # Device / Contractor reads
    # =========================================================================

    def get_devices(self) -> list[Device]:
        """Get all registered push devices."""
        with self._lock:
            return [d.model_copy() for d in self._state.devices]

    def get_contractor(self) -> Optional[Contractor]:
        """Get the registered contractor, if any."""
        with self._lock:
            contractor = self._state.contractor
            return contractor.model_copy() if contractor else None

    # =========================================================================
    # Notification operations
    # =========================================================================

    def get_notifications(self) -> list[Notification]:
        """Get the notification feed, newest first."""
        with self._lock:
            return [n.model_copy() for n in self._state.notifications]

    def mark_notification_read(self, notification_id: str) -> Notification:
        """
        Mark one notification as read.

        Raises:
            KeyError: If no notification has this id.
        """
        def _mark(state: StoreState) -> Notification:
            for notification in state.notifications:
                if notification.id == notification_id:
                    notification.is_read = True
                    return notification.model_copy()
            raise KeyError(notification_id)

        return self.mutate(_mark)

    def mark_all_notifications_read(self) -> int:
        """Mark every notification as read. Returns how many changed."""
        def _mark_all(state: StoreState) -> int:
            changed = 0
            for notification in state.notifications:
                if not notification.is_read:
                    notification.is_read = True
                    changed += 1
            return changed

        return self.mutate(_mark_all)
