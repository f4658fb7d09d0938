# SPDX-License-Identifier: Apache-2.0

"""
Local snapshot store and change notification.

The LocalStore owns the canonical in-memory snapshot for the active
session. Every read and every broadcast hands out an independent deep
copy, so subscribers and in-flight reconciliations never observe later
mutations.
"""

import logging
from contextlib import contextmanager
from typing import Callable, Iterator, List, Optional

from models.entities import Snapshot
from .snapshot_cache import SnapshotCache

logger = logging.getLogger(__name__)

Subscriber = Callable[[Snapshot], None]


class ChangeNotifier:
    """Synchronous publish/subscribe of snapshot changes."""

    def __init__(self):
        self._subscribers: List[List[Subscriber]] = []

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """
        Register a callback for every accepted write.

        Returns:
            Function that deregisters the callback; extra calls are no-ops
        """
        # A per-registration cell, so the same callable can register twice
        entry = [callback]
        self._subscribers.append(entry)

        def unsubscribe() -> None:
            if entry in self._subscribers:
                self._subscribers.remove(entry)

        return unsubscribe

    def notify(self, snapshot: Snapshot) -> None:
        """Deliver a copy of snapshot to every subscriber, in registration order."""
        for entry in list(self._subscribers):
            callback = entry[0]
            try:
                callback(snapshot.clone())
            except Exception as e:
                logger.error(
                    "Snapshot subscriber failed",
                    extra={
                        "extra_fields": {
                            "subscriber": getattr(callback, "__qualname__", repr(callback)),
                            "error": str(e),
                            "error_type": type(e).__name__
                        }
                    },
                    exc_info=True
                )

    def __len__(self) -> int:
        return len(self._subscribers)


class LocalStore:
    """In-memory snapshot of families, members, visits and deliveries."""

    def __init__(
        self,
        notifier: Optional[ChangeNotifier] = None,
        sync_trigger: Optional[Subscriber] = None,
        cache: Optional[SnapshotCache] = None
    ):
        self.notifier = notifier or ChangeNotifier()
        self._sync_trigger = sync_trigger
        self._cache = cache
        self._suppress_depth = 0
        self._fully_loaded = False

        cached = cache.load() if cache else None
        self._snapshot = cached or Snapshot()

    @property
    def fully_loaded(self) -> bool:
        """Whether the snapshot was seeded from a successful remote fetch."""
        return self._fully_loaded

    @property
    def sync_suppressed(self) -> bool:
        return self._suppress_depth > 0

    def set_sync_trigger(self, sync_trigger: Optional[Subscriber]) -> None:
        self._sync_trigger = sync_trigger

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        return self.notifier.subscribe(callback)

    def read(self) -> Snapshot:
        """Return an independent copy of the current snapshot."""
        return self._snapshot.clone()

    def write(self, snapshot: Snapshot) -> None:
        """
        Replace the snapshot wholesale.

        Subscribers are notified before this returns, then the sync
        trigger runs unless suppressed.
        """
        self._snapshot = snapshot.clone()

        if self._cache:
            try:
                self._cache.save(self._snapshot)
            except OSError as e:
                logger.error(
                    "Failed to persist snapshot cache",
                    extra={"extra_fields": {"path": str(self._cache.path), "error": str(e)}},
                    exc_info=True
                )

        self.notifier.notify(self._snapshot)

        if self._sync_trigger and not self.sync_suppressed:
            self._sync_trigger(self._snapshot.clone())

    @contextmanager
    def suppress_sync(self) -> Iterator[None]:
        """Suppress the sync trigger for writes inside the block. Reentrant."""
        self._suppress_depth += 1
        try:
            yield
        finally:
            self._suppress_depth -= 1

    def load(self, snapshot: Snapshot, from_remote: bool = True) -> None:
        """Replace the snapshot with data that already matches the remote store."""
        with self.suppress_sync():
            self.write(snapshot)
        self._fully_loaded = from_remote

        logger.debug(
            "Snapshot loaded",
            extra={"extra_fields": {"from_remote": from_remote, "families": len(snapshot.families)}}
        )

    def clear(self) -> None:
        """Reset to the empty snapshot without syncing (sign-out teardown)."""
        with self.suppress_sync():
            self.write(Snapshot())
        self._fully_loaded = False
