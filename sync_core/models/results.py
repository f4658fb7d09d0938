# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Result containers for reconciliation runs.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from .enums import TableStatus


@dataclass
class TableResult:
    """Outcome of reconciling a single remote table."""
    table: str
    status: TableStatus = TableStatus.SYNCED
    upserted: int = 0
    deleted: int = 0
    cleared: bool = False
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "table": self.table,
            "status": self.status.value,
            "upserted": self.upserted,
            "deleted": self.deleted,
            "cleared": self.cleared,
            "error": self.error
        }


@dataclass
class SyncReport:
    """Outcome of one reconciliation run for one owner."""
    owner_id: str
    tables: List[TableResult] = field(default_factory=list)
    started_at: datetime = field(default_factory=datetime.utcnow)
    finished_at: Optional[datetime] = None

    @property
    def failed_tables(self) -> List[str]:
        return [t.table for t in self.tables if t.status == TableStatus.FAILED]

    @property
    def skipped_tables(self) -> List[str]:
        return [t.table for t in self.tables if t.status == TableStatus.SKIPPED]

    @property
    def success(self) -> bool:
        return not self.failed_tables

    @property
    def duration_ms(self) -> Optional[float]:
        if self.finished_at is None:
            return None
        return round((self.finished_at - self.started_at).total_seconds() * 1000, 2)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "owner_id": self.owner_id,
            "success": self.success,
            "failed_tables": self.failed_tables,
            "skipped_tables": self.skipped_tables,
            "tables": [t.to_dict() for t in self.tables],
            "started_at": self.started_at.isoformat() + "Z",
            "finished_at": self.finished_at.isoformat() + "Z" if self.finished_at else None,
            "duration_ms": self.duration_ms
        }
