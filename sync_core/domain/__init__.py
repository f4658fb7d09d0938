# SPDX-License-Identifier: Apache-2.0

"""
Domain package - pure functions for record operations and remote payloads.
"""

from .records import (
    add_family,
    update_family,
    delete_family,
    save_household,
    household_member_id,
    add_member,
    update_member,
    delete_member,
    add_visit,
    update_visit,
    delete_visit,
    add_delivery,
    undo_delivery,
    find_orphans
)
from .payloads import (
    build_upsert_row,
    build_upsert_rows,
    partition,
    batch_timeout,
    stale_ids,
    snapshot_from_rows
)

__all__ = [
    "add_family",
    "update_family",
    "delete_family",
    "save_household",
    "household_member_id",
    "add_member",
    "update_member",
    "delete_member",
    "add_visit",
    "update_visit",
    "delete_visit",
    "add_delivery",
    "undo_delivery",
    "find_orphans",
    "build_upsert_row",
    "build_upsert_rows",
    "partition",
    "batch_timeout",
    "stale_ids",
    "snapshot_from_rows"
]
