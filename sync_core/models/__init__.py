# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Models package - Pydantic records and enumerations for the sync core.
"""

# Base models
from .base import RecordBase, METADATA_FIELDS, generate_id

# Enumerations
from .enums import (
    FamilyStatus,
    DeliveryStatus,
    CollectedBy,
    SyncTable,
    TABLE_ORDER,
    ErrorKind,
    TableStatus,
    SchedulerState
)

# Core entities
from .entities import (
    Family,
    Member,
    Visit,
    Delivery,
    Record,
    RECORD_TYPES,
    Snapshot,
    UserProfile
)

# Sync results
from .results import TableResult, SyncReport

__all__ = [
    # Base models
    "RecordBase",
    "METADATA_FIELDS",
    "generate_id",

    # Enumerations
    "FamilyStatus",
    "DeliveryStatus",
    "CollectedBy",
    "SyncTable",
    "TABLE_ORDER",
    "ErrorKind",
    "TableStatus",
    "SchedulerState",

    # Core entities
    "Family",
    "Member",
    "Visit",
    "Delivery",
    "Record",
    "RECORD_TYPES",
    "Snapshot",
    "UserProfile",

    # Sync results
    "TableResult",
    "SyncReport"
]
