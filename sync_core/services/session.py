# SPDX-License-Identifier: Apache-2.0

"""
Sync session: wires the local store, scheduler and reconciliation engine
for one signed-in owner, and handles sign-in, sign-out and shutdown.
"""

import logging
from collections import deque
from typing import Any, Callable, Deque, Dict, Optional

from opentelemetry import trace

from models.entities import Snapshot, UserProfile
from models.results import SyncReport
from .local_store import ChangeNotifier, LocalStore
from .reconciliation import ReconciliationEngine, SyncConfig
from .remote_store import RemoteStore, create_remote_store, fetch_snapshot
from .scheduler import SyncScheduler
from .snapshot_cache import SnapshotCache, create_snapshot_cache

tracer = trace.get_tracer(__name__)
logger = logging.getLogger(__name__)

REPORT_HISTORY = 50


class SyncSession:
    """
    Explicit owner of all per-session sync state.

    Collaborators:
        - The authentication layer calls set_owner()/sign_in() and sign_out()
        - The UI calls read(), write(), subscribe()
    """

    def __init__(
        self,
        remote_store: Optional[RemoteStore] = None,
        config: Optional[SyncConfig] = None,
        cache: Optional[SnapshotCache] = None,
        engine: Optional[ReconciliationEngine] = None
    ):
        self.config = config or SyncConfig()
        self.remote_store = remote_store
        self.engine = engine
        if self.engine is None and remote_store is not None:
            self.engine = ReconciliationEngine(remote_store, self.config)

        self.notifier = ChangeNotifier()
        self.store = LocalStore(self.notifier, cache=cache)
        self.scheduler = SyncScheduler(
            self._dispatch,
            debounce_seconds=self.config.debounce_seconds,
            can_dispatch=self.can_sync,
            on_cycle_complete=self._record_report
        )
        self.store.set_sync_trigger(self._schedule)

        self.owner_id: Optional[str] = None
        self.profile = UserProfile()
        self.last_report: Optional[SyncReport] = None
        self.reports: Deque[SyncReport] = deque(maxlen=REPORT_HISTORY)

    @classmethod
    def from_env(cls) -> "SyncSession":
        """Build a session from SUPABASE_*, SYNC_* and SSVP_CACHE_PATH settings."""
        return cls(
            remote_store=create_remote_store(),
            config=SyncConfig.from_env(),
            cache=create_snapshot_cache()
        )

    @property
    def is_remote_configured(self) -> bool:
        return self.remote_store is not None and self.engine is not None

    def can_sync(self) -> bool:
        """Preconditions for dispatching a reconciliation."""
        if not self.is_remote_configured:
            logger.debug("Remote store not configured, keeping data locally")
            return False
        if not self.owner_id:
            logger.warning("No owner identity set, keeping data locally. Sign in again to sync.")
            return False
        return True

    # UI surface

    def read(self) -> Snapshot:
        return self.store.read()

    def write(self, snapshot: Snapshot) -> None:
        self.store.write(snapshot)

    def apply(self, operation: Callable[..., Snapshot], *args: Any) -> Snapshot:
        """Apply a domain record operation to the current snapshot and write it."""
        snapshot = operation(self.store.read(), *args)
        self.store.write(snapshot)
        return snapshot

    def subscribe(self, callback: Callable[[Snapshot], None]) -> Callable[[], None]:
        return self.store.subscribe(callback)

    # Authentication surface

    def set_owner(
        self,
        owner_id: Optional[str],
        metadata: Optional[Dict[str, Any]] = None,
        access_token: Optional[str] = None
    ) -> None:
        """
        Set the current owner identity (sign-in or token refresh).

        Switching to a different owner drops the previous owner's pending
        sync work and local data first, so nothing written for one owner
        is ever reconciled under another.
        """
        owner_id = owner_id or None
        if self.owner_id is not None and owner_id != self.owner_id:
            logger.info(
                "Owner changed, discarding previous session data",
                extra={"extra_fields": {"previous_owner_id": self.owner_id, "owner_id": owner_id}}
            )
            self._teardown()

        self.owner_id = owner_id
        if metadata is not None:
            self.profile = UserProfile.from_metadata(metadata)

        set_token = getattr(self.remote_store, "set_access_token", None)
        if set_token is not None and access_token is not None:
            set_token(access_token)

        logger.info("Owner identity updated", extra={"extra_fields": {"owner_id": self.owner_id}})

    async def sign_in(
        self,
        owner_id: str,
        metadata: Optional[Dict[str, Any]] = None,
        access_token: Optional[str] = None
    ) -> Snapshot:
        """Set the owner and load their data from the remote store."""
        self.set_owner(owner_id, metadata, access_token)
        return await self.load_for_owner()

    async def load_for_owner(self) -> Snapshot:
        """
        Replace the local snapshot with the owner's remote data.

        Falls back to the local snapshot when the remote store is not
        configured or cannot be read.
        """
        if not self.is_remote_configured or not self.owner_id:
            return self.store.read()

        with tracer.start_as_current_span("session.load_for_owner"):
            remote = await fetch_snapshot(self.remote_store, self.owner_id)

        if remote is None:
            return self.store.read()

        self.store.load(remote)
        return remote.clone()

    async def sign_out(self) -> None:
        """Drop pending sync work and the session's data."""
        self._teardown()
        self.owner_id = None
        set_token = getattr(self.remote_store, "set_access_token", None)
        if set_token is not None:
            set_token(None)
        logger.info("Signed out, local snapshot cleared")

    def _teardown(self) -> None:
        self.scheduler.cancel()
        self.store.clear()
        self.profile = UserProfile()
        self.last_report = None
        self.reports.clear()

    async def flush(self) -> None:
        """Wait until every pending write has been reconciled."""
        await self.scheduler.flush()

    async def close(self) -> None:
        """Finish pending sync work and release the remote connection."""
        await self.scheduler.flush()
        if self.remote_store is not None:
            await self.remote_store.close()

    # Scheduler hooks

    def _schedule(self, snapshot: Snapshot) -> None:
        self.scheduler.schedule(snapshot, self.owner_id)

    async def _dispatch(self, snapshot: Snapshot, owner_id: Optional[str]) -> Optional[SyncReport]:
        if not owner_id or self.engine is None:
            return None
        if owner_id != self.owner_id:
            logger.info(
                "Snapshot belongs to a previous owner, skipping sync",
                extra={"extra_fields": {"snapshot_owner_id": owner_id, "owner_id": self.owner_id}}
            )
            return None
        return await self.engine.reconcile(snapshot, owner_id, allow_full_clear=self.store.fully_loaded)

    def _record_report(self, report: Optional[SyncReport]) -> None:
        if report is None or report.owner_id != self.owner_id:
            return
        self.last_report = report
        self.reports.append(report)
