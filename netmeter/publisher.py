"""Single-writer publication of metrics snapshots."""

import logging
from datetime import datetime
from threading import RLock
from typing import Any, Callable, Optional

from netmeter.models import PublishedMetrics

logger = logging.getLogger(__name__)

Subscriber = Callable[[PublishedMetrics], None]


class MetricsPublisher:
    """Holds the current snapshot and fans new ones out to subscribers.

    Snapshots are immutable; each publish replaces the whole object and
    bumps its version, so readers never see a half-applied update.
    """

    def __init__(self, initial: Optional[PublishedMetrics] = None):
        self._snapshot = initial or PublishedMetrics()
        self._subscribers: list[Subscriber] = []
        self._lock = RLock()

    @property
    def snapshot(self) -> PublishedMetrics:
        return self._snapshot

    def publish(self, **changes: Any) -> PublishedMetrics:
        """Apply changes to a copy of the current snapshot and publish it."""
        with self._lock:
            snapshot = self._snapshot.model_copy(update={
                **changes,
                'version': self._snapshot.version + 1,
                'updated_at': datetime.now(),
            })
            self._snapshot = snapshot
            subscribers = list(self._subscribers)

            for callback in subscribers:
                try:
                    callback(snapshot)
                except Exception as e:
                    logger.error(f"Metrics subscriber error: {e}")

        return snapshot

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register a callback; returns a function that unsubscribes it."""
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe
