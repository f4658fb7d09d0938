# SPDX-License-Identifier: Apache-2.0

"""
Debounced, serialized dispatch of snapshots to the reconciliation engine.

A burst of writes is coalesced into one dispatch after a quiet period.
While a dispatch is in flight, newer snapshots wait in a single slot
(latest wins) and are dispatched as soon as the current run finishes.
At most one dispatch runs at a time.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional, Tuple

from opentelemetry import trace

from models.entities import Snapshot
from models.enums import SchedulerState

tracer = trace.get_tracer(__name__)
logger = logging.getLogger(__name__)

DEFAULT_DEBOUNCE_SECONDS = 0.7

# A snapshot together with the owner it was written for
Work = Tuple[Snapshot, Optional[str]]


class SyncScheduler:
    """
    Idle -> Debouncing -> Dispatching -> Idle state machine.

    The pending snapshot (debounce slot), the queued snapshot (in-flight
    slot) and the timer handle are only touched from the event loop
    thread, so no lock is needed. Each slot keeps the owner the snapshot
    was written for, and dispatch receives that owner.
    """

    def __init__(
        self,
        dispatch: Callable[[Snapshot, Optional[str]], Awaitable[Any]],
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
        can_dispatch: Optional[Callable[[], bool]] = None,
        on_cycle_complete: Optional[Callable[[Any], None]] = None
    ):
        """
        Initialize the scheduler.

        Args:
            dispatch: Coroutine function reconciling one snapshot for an owner
            debounce_seconds: Quiet period before dispatching
            can_dispatch: Precondition checked on schedule and before dispatch
            on_cycle_complete: Called with each dispatch result
        """
        self._dispatch = dispatch
        self.debounce_seconds = debounce_seconds
        self._can_dispatch = can_dispatch or (lambda: True)
        self.on_cycle_complete = on_cycle_complete

        self._timer: Optional[asyncio.TimerHandle] = None
        self._pending: Optional[Work] = None
        self._queued: Optional[Work] = None
        self._worker: Optional[asyncio.Task] = None
        self.cycles = 0

    @property
    def state(self) -> SchedulerState:
        if self._worker is not None:
            return SchedulerState.DISPATCHING
        if self._timer is not None:
            return SchedulerState.DEBOUNCING
        return SchedulerState.IDLE

    def schedule(self, snapshot: Snapshot, owner_id: Optional[str] = None) -> None:
        """Accept a new snapshot from a local write made for owner_id."""
        if not self._can_dispatch():
            return

        if self._worker is not None:
            # In flight: only the newest snapshot matters
            self._queued = (snapshot, owner_id)
            logger.debug("Sync in flight, snapshot queued")
            return

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("No running event loop, write kept locally without sync")
            return

        self._pending = (snapshot, owner_id)
        if self._timer is not None:
            self._timer.cancel()
        self._timer = loop.call_later(self.debounce_seconds, self._on_quiet_period)

    def _on_quiet_period(self) -> None:
        work, self._pending, self._timer = self._pending, None, None
        if work is None:
            return
        if not self._can_dispatch():
            logger.info("Sync preconditions no longer met, dropping pending snapshot")
            return
        self._worker = asyncio.get_running_loop().create_task(self._drain(work))

    async def _drain(self, work: Work) -> None:
        """Dispatch work, then any snapshot queued meanwhile, one at a time."""
        current: Optional[Work] = work
        try:
            while current is not None:
                await self._run_cycle(*current)
                current, self._queued = self._queued, None
                if current is not None and not self._can_dispatch():
                    logger.info("Sync preconditions no longer met, dropping queued snapshot")
                    current = None
        finally:
            self._worker = None
            self._queued = None

    async def _run_cycle(self, snapshot: Snapshot, owner_id: Optional[str]) -> None:
        self.cycles += 1
        with tracer.start_as_current_span("sync.cycle") as span:
            span.set_attribute("sync.cycle", self.cycles)
            logger.info("Starting sync cycle", extra={"extra_fields": {"cycle": self.cycles, "owner_id": owner_id}})
            try:
                result = await self._dispatch(snapshot, owner_id)
            except Exception as e:
                span.record_exception(e)
                logger.error(
                    "Sync cycle failed",
                    extra={"extra_fields": {"cycle": self.cycles, "error": str(e)}},
                    exc_info=True
                )
                return

        if self.on_cycle_complete is None:
            return
        try:
            self.on_cycle_complete(result)
        except Exception as e:
            logger.error(
                "Sync cycle observer failed",
                extra={"extra_fields": {"cycle": self.cycles, "error": str(e)}},
                exc_info=True
            )

    async def flush(self) -> None:
        """Dispatch any pending snapshot now and wait until the scheduler is idle."""
        if self._timer is not None:
            self._timer.cancel()
            self._on_quiet_period()

        while self._worker is not None:
            await asyncio.shield(self._worker)

    def cancel(self) -> None:
        """Drop the pending and queued snapshots; an in-flight run completes on its own."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self._pending = None
        self._queued = None

    async def close(self) -> None:
        """Cancel pending work and stop any in-flight run."""
        self.cancel()
        worker = self._worker
        if worker is not None:
            worker.cancel()
            try:
                await worker
            except asyncio.CancelledError:
                pass
