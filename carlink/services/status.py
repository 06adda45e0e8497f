from __future__ import annotations

import dataclasses
import logging
import threading
from typing import Callable

from carlink.state import StatusSnapshot

Subscriber = Callable[[StatusSnapshot], None]


class StatusPublisher:
    """
    Holds the current StatusSnapshot and broadcasts every change.

    - Subscribers are called synchronously, in subscription order, on the
      thread that published (the caller or the I/O worker).
    - A new subscriber immediately receives the current snapshot.
    - A subscriber that raises is logged and skipped; the others still run.
    """

    def __init__(self, initial: StatusSnapshot | None = None) -> None:
        self._snapshot = initial or StatusSnapshot()
        self._subscribers: list[Subscriber] = []
        self._lock = threading.RLock()

    @property
    def snapshot(self) -> StatusSnapshot:
        return self._snapshot

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register callback and replay the current snapshot. Returns an unsubscribe function."""
        with self._lock:
            self._subscribers.append(callback)
            current = self._snapshot
        self._notify(callback, current)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    def publish(self, **changes) -> StatusSnapshot:
        """Replace fields of the snapshot and notify subscribers."""
        with self._lock:
            self._snapshot = dataclasses.replace(self._snapshot, **changes)
            snapshot = self._snapshot
            subscribers = list(self._subscribers)
            # Deliver under the lock so observers see snapshots in publish order
            for callback in subscribers:
                self._notify(callback, snapshot)
        return snapshot

    @staticmethod
    def _notify(callback: Subscriber, snapshot: StatusSnapshot) -> None:
        try:
            callback(snapshot)
        except Exception as e:
            logging.error("Status subscriber %r failed: %s", callback, e)
