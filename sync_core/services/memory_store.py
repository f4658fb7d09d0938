# SPDX-License-Identifier: Apache-2.0

"""
In-memory remote store for local development and tests.

This module provides an owner-partitioned table store that behaves like
the Supabase tables: upserts merge on id, child rows must reference an
existing family of the same owner, family deletes cascade, and unknown
columns or missing tables fail with the same error codes PostgREST uses.
"""

import asyncio
import copy
import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from opentelemetry import trace

from models.enums import SyncTable
from utils.errors import RemoteStoreError
from .remote_store import RemoteStore
from .schema import known_columns

tracer = trace.get_tracer(__name__)
logger = logging.getLogger(__name__)

CHILD_TABLES = (SyncTable.MEMBERS.value, SyncTable.VISITS.value, SyncTable.DELIVERIES.value)


class InMemoryRemoteStore(RemoteStore):
    """
    Remote store kept in process memory.

    Provides failure injection (fail) and per-operation delays (set_delay)
    so retry, timeout and ordering behaviour can be exercised without a
    network.
    """

    def __init__(self, tables: Optional[Iterable[str]] = None, latency: float = 0.0):
        """
        Initialize the in-memory store.

        Args:
            tables: Provisioned tables (defaults to all four)
            latency: Delay applied to every request, in seconds
        """
        provisioned = tables if tables is not None else [t.value for t in SyncTable]
        self._tables: Dict[str, Dict[str, Dict[str, Any]]] = {t: {} for t in provisioned}
        self._failures: Dict[Tuple[str, str], List[BaseException]] = {}
        self._delays: Dict[Tuple[str, str], float] = {}
        self.latency = latency
        self.calls: List[Tuple[str, str, Any]] = []

        logger.info(f"In-memory remote store initialized with tables: {sorted(self._tables)}")

    # Test controls

    def fail(self, operation: str, table: str, error: BaseException, times: int = 1) -> None:
        """Make the next `times` calls of operation on table raise error."""
        self._failures.setdefault((operation, table), []).extend([error] * times)

    def set_delay(self, operation: str, table: str, seconds: float) -> None:
        self._delays[(operation, table)] = seconds

    def calls_for(self, operation: str, table: Optional[str] = None) -> List[Tuple[str, str, Any]]:
        return [c for c in self.calls if c[0] == operation and (table is None or c[1] == table)]

    def rows(self, table: str, owner_id: str) -> List[Dict[str, Any]]:
        """Rows of a table owned by owner_id, without going through the call log."""
        return [
            copy.deepcopy(row) for row in self._tables.get(table, {}).values()
            if row.get("user_id") == owner_id
        ]

    def ids(self, table: str, owner_id: str) -> List[str]:
        return sorted(row["id"] for row in self.rows(table, owner_id))

    # RemoteStore

    async def _begin(self, operation: str, table: str, payload: Any = None) -> Dict[str, Dict[str, Any]]:
        self.calls.append((operation, table, copy.deepcopy(payload)))

        delay = self._delays.get((operation, table), self.latency)
        if delay:
            await asyncio.sleep(delay)

        pending = self._failures.get((operation, table))
        if pending:
            raise pending.pop(0)

        if table not in self._tables:
            raise RemoteStoreError(
                f'relation "public.{table}" does not exist',
                code="42P01",
                status=404
            )
        return self._tables[table]

    async def select_rows(self, table: str, owner_id: str) -> List[Dict[str, Any]]:
        with tracer.start_as_current_span("memory_store.select") as span:
            span.set_attribute("db.sql.table", table)
            rows = await self._begin("select", table, {"owner_id": owner_id})
            return [
                copy.deepcopy(row) for row in rows.values()
                if row.get("user_id") == owner_id
            ]

    async def upsert(self, table: str, rows: Sequence[Dict[str, Any]]) -> None:
        with tracer.start_as_current_span("memory_store.upsert") as span:
            span.set_attributes({"db.sql.table": table, "db.rows": len(rows)})
            stored = await self._begin("upsert", table, list(rows))

            # Validate the whole batch before applying, like a single statement
            for row in rows:
                self._validate_row(table, stored, row)

            now = datetime.utcnow().isoformat()
            for row in rows:
                existing = stored.get(row["id"])
                if existing is None:
                    stored[row["id"]] = {**copy.deepcopy(row), "created_at": now, "updated_at": now}
                else:
                    existing.update(copy.deepcopy(row))
                    existing["updated_at"] = now

    def _validate_row(self, table: str, stored: Dict[str, Dict[str, Any]], row: Dict[str, Any]) -> None:
        columns = set(known_columns(table))
        for column in row:
            if column not in columns:
                raise RemoteStoreError(
                    f"Could not find the '{column}' column of '{table}' in the schema cache",
                    code="PGRST204",
                    status=400
                )

        if not row.get("id") or not row.get("user_id"):
            raise RemoteStoreError(
                f'null value in column "{"id" if not row.get("id") else "user_id"}" violates not-null constraint',
                code="23502",
                status=400
            )

        existing = stored.get(row["id"])
        if existing is not None and existing.get("user_id") != row["user_id"]:
            raise RemoteStoreError(
                f'new row violates row-level security policy for table "{table}"',
                code="42501",
                status=403
            )

        if table in CHILD_TABLES:
            family = self._tables.get(SyncTable.FAMILIES.value, {}).get(row.get("familyId"))
            if family is None or family.get("user_id") != row["user_id"]:
                raise RemoteStoreError(
                    f'insert or update on table "{table}" violates foreign key constraint "{table}_familyId_fkey"',
                    code="23503",
                    status=409,
                    details=f'Key ("familyId")=({row.get("familyId")}) is not present in table "families".'
                )

    async def delete(self, table: str, owner_id: str, ids: Optional[Sequence[str]] = None) -> None:
        with tracer.start_as_current_span("memory_store.delete") as span:
            span.set_attribute("db.sql.table", table)
            stored = await self._begin(
                "delete", table, {"owner_id": owner_id, "ids": list(ids) if ids is not None else None}
            )

            wanted = set(ids) if ids is not None else None
            doomed = [
                row_id for row_id, row in stored.items()
                if row.get("user_id") == owner_id and (wanted is None or row_id in wanted)
            ]
            for row_id in doomed:
                del stored[row_id]

            if table == SyncTable.FAMILIES.value and doomed:
                self._cascade(set(doomed))

    def _cascade(self, family_ids: set) -> None:
        for child in CHILD_TABLES:
            rows = self._tables.get(child)
            if not rows:
                continue
            for row_id in [rid for rid, row in rows.items() if row.get("familyId") in family_ids]:
                del rows[row_id]
