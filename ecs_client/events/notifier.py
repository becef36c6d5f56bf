"""Per-client delivery of resolve outcomes to a single observer."""

import threading
from collections.abc import Callable
from typing import Any

import structlog

from ecs_client.constants import COMPONENT_EVENTS
from ecs_client.models import EventRecord, EventType


logger = structlog.get_logger()

EventCallback = Callable[[Any, EventType, str | None], None]


class EventNotifier:
    """Delivers event records to one observer, one at a time.

    Deliveries are serialized with a re-entrant lock so an observer may
    call back into its client from the same thread. Once ``close`` has
    returned no further record reaches the observer; ``close`` waits for
    a delivery already in progress on another thread.
    """

    def __init__(
        self,
        owner: Any,
        observer: EventCallback | None = None,
    ) -> None:
        """Initialize the notifier.

        Args:
            owner: Value passed as the first observer argument.
            observer: Optional callable receiving (owner, event_type, message).
        """
        self._owner = owner
        self._observer = observer
        self._lock = threading.RLock()
        self._closed = False
        self._delivered = 0
        self._log = logger.bind(component=COMPONENT_EVENTS)

    @property
    def closed(self) -> bool:
        """Whether the notifier has been closed."""
        return self._closed

    @property
    def delivered(self) -> int:
        """Number of records handed to the observer."""
        return self._delivered

    def deliver(self, record: EventRecord) -> bool:
        """Hand a record to the observer.

        Args:
            record: Outcome to deliver.

        Returns:
            False if the notifier is closed, True otherwise. Observer
            failures are logged and still count as accepted.
        """
        with self._lock:
            if self._closed:
                self._log.debug("event_dropped_closed", event_type=record.event_type.name)
                return False

            if self._observer is None:
                return True

            self._delivered += 1
            try:
                self._observer(self._owner, record.event_type, record.message)
            except Exception as e:  # noqa: BLE001
                self._log.warning(
                    "event_callback_failed",
                    event_type=record.event_type.name,
                    error=str(e),
                    error_type=type(e).__name__,
                )
            return True

    def close(self) -> None:
        """Stop delivery, waiting for an in-flight callback to finish."""
        with self._lock:
            self._closed = True
