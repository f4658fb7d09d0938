# SPDX-License-Identifier: Apache-2.0

"""
Payload preparation for remote reconciliation.

Pure functions that turn local records into remote rows (and back),
split rows into batches and size request timeouts.
"""

import math
from typing import Any, Dict, Iterable, List, Sequence, TypeVar

from models.base import METADATA_FIELDS, RecordBase
from models.entities import RECORD_TYPES, Snapshot
from models.enums import SyncTable

T = TypeVar("T")

# Never pruned from a payload, even when blank
IDENTIFIER_FIELDS = ("id", "user_id", "familyId")


def strip_metadata(row: Dict[str, Any]) -> Dict[str, Any]:
    """Remove server-managed columns from a row."""
    return {key: value for key, value in row.items() if key not in METADATA_FIELDS}


def is_blank(value: Any) -> bool:
    """Check if a value should be treated as unset by the remote store."""
    if value is None:
        return True
    return isinstance(value, str) and value.strip() == ""


def build_upsert_row(record: RecordBase, owner_id: str) -> Dict[str, Any]:
    """
    Build the remote row for one record.

    Metadata is stripped, the owner attached, and unset values dropped so
    optional columns keep their remote defaults.
    """
    row = strip_metadata(record.to_row())
    row["user_id"] = owner_id

    return {
        key: value
        for key, value in row.items()
        if key in IDENTIFIER_FIELDS or not is_blank(value)
    }


def build_upsert_rows(records: Iterable[RecordBase], owner_id: str) -> List[Dict[str, Any]]:
    return [build_upsert_row(record, owner_id) for record in records]


def partition(items: Sequence[T], batch_size: int) -> List[List[T]]:
    """Split items into consecutive batches of at most batch_size."""
    if batch_size <= 0:
        raise ValueError("batch_size must be positive")
    if len(items) <= batch_size:
        return [list(items)] if items else []
    return [list(items[i:i + batch_size]) for i in range(0, len(items), batch_size)]


def batch_timeout(record_count: int, base: float, per_ten: float, maximum: float) -> float:
    """Timeout for one batch request: base plus an increment per 10 records, capped."""
    increments = math.ceil(record_count / 10) if record_count > 0 else 0
    return min(base + increments * per_ten, maximum)


def stale_ids(remote_ids: Iterable[str], records: Iterable[RecordBase]) -> List[str]:
    """Identifiers present remotely but absent from the local collection."""
    local_ids = {record.id for record in records}
    return sorted({rid for rid in remote_ids if rid and rid not in local_ids})


def records_from_rows(table: SyncTable, rows: Iterable[Dict[str, Any]]) -> List[RecordBase]:
    """Normalize remote rows into local records."""
    record_type = RECORD_TYPES[SyncTable(table)]
    return [record_type.model_validate(strip_metadata(row)) for row in rows]


def snapshot_from_rows(rows_by_table: Dict[str, List[Dict[str, Any]]]) -> Snapshot:
    """Build a snapshot from rows fetched for every table."""
    return Snapshot(**{
        table.value: records_from_rows(table, rows_by_table.get(table.value) or [])
        for table in SyncTable
    })
