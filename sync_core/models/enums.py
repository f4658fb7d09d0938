# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Enumeration types for the SSVP case-management sync core.
"""

from enum import Enum


class FamilyStatus(str, Enum):
    """Assisted family registration status."""
    ACTIVE = "Ativo"
    INACTIVE = "Inativo"
    PENDING = "Pendente"


class DeliveryStatus(str, Enum):
    """Outcome of an aid delivery."""
    DELIVERED = "Entregue"
    NOT_DELIVERED = "Não Entregue"


class CollectedBy(str, Enum):
    """Who collected a delivered aid item."""
    SELF = "Próprio"
    OTHER = "Outros"


class SyncTable(str, Enum):
    """Remote tables, declared in foreign-key dependency order."""
    FAMILIES = "families"
    MEMBERS = "members"
    VISITS = "visits"
    DELIVERIES = "deliveries"


# Parents before children: members, visits and deliveries reference families.
TABLE_ORDER = (
    SyncTable.FAMILIES,
    SyncTable.MEMBERS,
    SyncTable.VISITS,
    SyncTable.DELIVERIES,
)


class ErrorKind(str, Enum):
    """Classification of remote store failures."""
    MISSING_TABLE = "missing_table"
    VALIDATION = "validation"
    TIMEOUT = "timeout"
    OTHER = "other"


class TableStatus(str, Enum):
    """Outcome of reconciling one table."""
    SYNCED = "synced"
    SKIPPED = "skipped"
    FAILED = "failed"


class SchedulerState(str, Enum):
    """Sync scheduler lifecycle states."""
    IDLE = "idle"
    DEBOUNCING = "debouncing"
    DISPATCHING = "dispatching"
