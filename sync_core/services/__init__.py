# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Services package - local state, scheduling and remote store integration.
"""

from .remote_store import (
    RemoteStore,
    RemoteStoreConfig,
    PostgrestRemoteStore,
    create_remote_store,
    fetch_snapshot
)
from .memory_store import InMemoryRemoteStore
from .local_store import ChangeNotifier, LocalStore
from .snapshot_cache import SnapshotCache, create_snapshot_cache
from .scheduler import SyncScheduler
from .reconciliation import ReconciliationEngine, SyncConfig
from .session import SyncSession
from .schema import render_schema_sql

__all__ = [
    "RemoteStore",
    "RemoteStoreConfig",
    "PostgrestRemoteStore",
    "create_remote_store",
    "fetch_snapshot",
    "InMemoryRemoteStore",
    "ChangeNotifier",
    "LocalStore",
    "SnapshotCache",
    "create_snapshot_cache",
    "SyncScheduler",
    "ReconciliationEngine",
    "SyncConfig",
    "SyncSession",
    "render_schema_sql"
]
