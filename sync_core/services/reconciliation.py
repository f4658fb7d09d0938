# SPDX-License-Identifier: Apache-2.0

"""
Reconciliation engine: makes the remote tables match a local snapshot.

Tables are processed strictly in foreign-key order (families, members,
visits, deliveries). For each table the current rows are upserted in
sequential batches, then rows that exist remotely but not locally are
deleted. Every remote request is raced against a timeout sized to its
batch and retried under a RetryPolicy. A table that exhausts its retries
is recorded as failed and the run moves on to the next table.
"""

import asyncio
import functools
import logging
import os
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Awaitable, Callable, Optional, Sequence

from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode

from domain.payloads import batch_timeout, build_upsert_rows, partition, stale_ids
from domain.records import find_orphans
from models.base import RecordBase
from models.entities import Snapshot
from models.enums import TABLE_ORDER, ErrorKind, SyncTable, TableStatus
from models.results import SyncReport, TableResult
from utils.errors import ConfigurationException, RemoteTimeoutError, classify_error
from utils.retry import RetryPolicy
from .remote_store import RemoteStore

tracer = trace.get_tracer(__name__)
logger = logging.getLogger(__name__)


@dataclass
class SyncConfig:
    """Sync timing, batching and retry settings."""
    debounce_seconds: float = 0.7
    batch_size: int = 20
    base_timeout: float = 10.0
    timeout_per_ten: float = 2.0
    max_timeout: float = 30.0
    max_attempts: int = 3
    backoff_base: float = 1.0
    backoff_max: float = 5.0
    validation_retry_delay: float = 0.5

    def __post_init__(self):
        if self.batch_size <= 0:
            raise ConfigurationException(f"Batch size must be positive, got {self.batch_size}")
        if self.max_attempts < 1:
            raise ConfigurationException(f"At least one attempt is required, got {self.max_attempts}")
        if self.base_timeout <= 0 or self.max_timeout < self.base_timeout:
            raise ConfigurationException(
                f"Invalid timeouts: base {self.base_timeout}s, max {self.max_timeout}s"
            )

    @classmethod
    def from_env(cls) -> "SyncConfig":
        return cls(
            debounce_seconds=int(os.getenv('SYNC_DEBOUNCE_MS', '700')) / 1000,
            batch_size=int(os.getenv('SYNC_BATCH_SIZE', '20')),
            base_timeout=float(os.getenv('SYNC_BASE_TIMEOUT', '10')),
            timeout_per_ten=float(os.getenv('SYNC_TIMEOUT_PER_10', '2')),
            max_timeout=float(os.getenv('SYNC_MAX_TIMEOUT', '30')),
            max_attempts=int(os.getenv('SYNC_MAX_ATTEMPTS', '3')),
            backoff_base=float(os.getenv('SYNC_BACKOFF_BASE', '1.0')),
            backoff_max=float(os.getenv('SYNC_BACKOFF_MAX', '5.0')),
            validation_retry_delay=float(os.getenv('SYNC_VALIDATION_RETRY_DELAY', '0.5'))
        )

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_attempts=self.max_attempts,
            backoff_base=self.backoff_base,
            backoff_max=self.backoff_max,
            validation_retry_delay=self.validation_retry_delay
        )

    def timeout_for(self, record_count: int) -> float:
        return batch_timeout(record_count, self.base_timeout, self.timeout_per_ten, self.max_timeout)


class ReconciliationEngine:
    """Table-by-table upsert and delete against the remote store."""

    def __init__(
        self,
        store: RemoteStore,
        config: Optional[SyncConfig] = None,
        retry_policy: Optional[RetryPolicy] = None
    ):
        self.store = store
        self.config = config or SyncConfig()
        self.retry_policy = retry_policy or self.config.retry_policy()

    async def reconcile(self, snapshot: Snapshot, owner_id: str, allow_full_clear: bool = True) -> SyncReport:
        """
        Reconcile every table with the snapshot. Never raises for remote failures.

        Args:
            snapshot: Local snapshot to mirror remotely
            owner_id: Owner identity the rows belong to
            allow_full_clear: Whether an empty local collection may delete
                every remote row of that table

        Returns:
            SyncReport with the per-table outcome
        """
        report = SyncReport(owner_id=owner_id)

        with tracer.start_as_current_span("sync.reconcile") as span:
            span.set_attributes({
                "sync.owner_id": owner_id,
                "sync.allow_full_clear": allow_full_clear
            })

            orphans = find_orphans(snapshot)
            if orphans:
                logger.warning(
                    "Snapshot has records referencing missing families",
                    extra={"extra_fields": {"orphans": orphans[:20], "count": len(orphans)}}
                )

            for table in TABLE_ORDER:
                result = await self._sync_table(table, snapshot.records(table), owner_id, allow_full_clear)
                report.tables.append(result)

            report.finished_at = datetime.utcnow()

            if report.failed_tables:
                span.set_status(Status(StatusCode.ERROR, "failed tables: " + ",".join(report.failed_tables)))
                logger.error(
                    "Sync finished with failed tables",
                    extra={"extra_fields": report.to_dict()}
                )
            else:
                logger.info("Sync finished", extra={"extra_fields": report.to_dict()})

        return report

    async def _sync_table(
        self,
        table: SyncTable,
        records: Sequence[RecordBase],
        owner_id: str,
        allow_full_clear: bool
    ) -> TableResult:
        result = TableResult(table=table.value)

        with tracer.start_as_current_span("sync.table") as span:
            span.set_attributes({"sync.table": table.value, "sync.records": len(records)})

            try:
                if records:
                    result.upserted = await self._upsert(table, records, owner_id)
                result.deleted = await self._delete_stale(table, records, owner_id, allow_full_clear)
                result.cleared = not records and allow_full_clear

            except Exception as e:
                kind = classify_error(e)
                result.error = str(e)
                span.record_exception(e)

                if kind == ErrorKind.MISSING_TABLE:
                    result.status = TableStatus.SKIPPED
                    logger.warning(
                        f"Table {table.value} not found, skipping. Provision the remote schema.",
                        extra={"extra_fields": {"table": table.value, "error": str(e)}}
                    )
                else:
                    result.status = TableStatus.FAILED
                    span.set_status(Status(StatusCode.ERROR, str(e)))
                    logger.error(
                        f"Failed to sync {table.value}",
                        extra={
                            "extra_fields": {
                                "table": table.value,
                                "error_kind": kind.value,
                                "error": str(e),
                                "details": getattr(e, "details", None),
                                "hint": getattr(e, "hint", None)
                            }
                        }
                    )

        return result

    async def _upsert(self, table: SyncTable, records: Sequence[RecordBase], owner_id: str) -> int:
        rows = build_upsert_rows(records, owner_id)
        batches = partition(rows, self.config.batch_size)

        for number, batch in enumerate(batches, start=1):
            timeout = self.config.timeout_for(len(batch))
            await self._call(
                f"Upsert {table.value} batch {number}/{len(batches)}",
                timeout,
                self.store.upsert, table.value, batch
            )

        logger.info(
            f"{table.value} upserted",
            extra={"extra_fields": {"table": table.value, "records": len(rows), "batches": len(batches)}}
        )
        return len(rows)

    async def _delete_stale(
        self,
        table: SyncTable,
        records: Sequence[RecordBase],
        owner_id: str,
        allow_full_clear: bool
    ) -> int:
        if not records:
            if not allow_full_clear:
                logger.warning(
                    f"Local {table.value} is empty but the snapshot is not confirmed loaded, skipping remote clear",
                    extra={"extra_fields": {"table": table.value}}
                )
                return 0

            await self._call(
                f"Clear {table.value}",
                self.config.base_timeout,
                self.store.delete, table.value, owner_id, None
            )
            logger.info(f"{table.value} cleared", extra={"extra_fields": {"table": table.value}})
            return 0

        remote_ids = await self._call(
            f"Select {table.value} ids",
            self.config.base_timeout,
            self.store.select_ids, table.value, owner_id
        )
        doomed = stale_ids(remote_ids, records)

        for number, batch in enumerate(partition(doomed, self.config.batch_size), start=1):
            await self._call(
                f"Delete {table.value} batch {number}",
                self.config.timeout_for(len(batch)),
                self.store.delete, table.value, owner_id, batch
            )

        if doomed:
            logger.info(
                f"{table.value} stale rows deleted",
                extra={"extra_fields": {"table": table.value, "deleted": len(doomed)}}
            )
        return len(doomed)

    async def _call(self, description: str, timeout: float, func: Callable[..., Awaitable[Any]], *args) -> Any:
        """Run one remote request under the timeout and retry policy."""
        attempt = functools.partial(self._with_timeout, timeout, func, *args)
        return await self.retry_policy.run(attempt, description=description)

    @staticmethod
    async def _with_timeout(timeout: float, func: Callable[..., Awaitable[Any]], *args) -> Any:
        try:
            return await asyncio.wait_for(func(*args), timeout)
        except asyncio.TimeoutError:
            raise RemoteTimeoutError(f"{getattr(func, '__name__', 'request')} timed out after {timeout}s", timeout=timeout)
