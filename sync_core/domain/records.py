# SPDX-License-Identifier: Apache-2.0

"""
Record domain logic for the case-management collections.

This module contains pure functions that apply add, update and delete
operations to a snapshot. Each function returns a new snapshot and never
mutates its input; callers hand the result to LocalStore.write().
"""

from typing import List, Sequence, Tuple

from models.entities import Delivery, Family, Member, Snapshot, Visit
from models.enums import SyncTable
from utils.errors import DuplicateRecordException, RecordNotFoundException


def _append(snapshot: Snapshot, table: SyncTable, record) -> Snapshot:
    result = snapshot.clone()
    collection = result.records(table)
    if any(existing.id == record.id for existing in collection):
        raise DuplicateRecordException(f"{table.value} record {record.id} already exists")
    collection.append(record.model_copy(deep=True))
    return result


def _replace(snapshot: Snapshot, table: SyncTable, record) -> Snapshot:
    result = snapshot.clone()
    collection = result.records(table)
    for index, existing in enumerate(collection):
        if existing.id == record.id:
            collection[index] = record.model_copy(deep=True)
            return result
    raise RecordNotFoundException(f"{table.value} record {record.id} not found")


def _remove(snapshot: Snapshot, table: SyncTable, record_id: str) -> Snapshot:
    result = snapshot.clone()
    collection = result.records(table)
    remaining = [record for record in collection if record.id != record_id]
    if len(remaining) == len(collection):
        raise RecordNotFoundException(f"{table.value} record {record_id} not found")
    setattr(result, table.value, remaining)
    return result


# Families

def add_family(snapshot: Snapshot, family: Family) -> Snapshot:
    return _append(snapshot, SyncTable.FAMILIES, family)


def update_family(snapshot: Snapshot, family: Family) -> Snapshot:
    """Replace a family record in full."""
    return _replace(snapshot, SyncTable.FAMILIES, family)


def delete_family(snapshot: Snapshot, family_id: str) -> Snapshot:
    """
    Delete a family and every member, visit and delivery referencing it.

    Args:
        snapshot: Current snapshot
        family_id: Identifier of the family to remove

    Returns:
        New snapshot without the family or its dependents
    """
    result = _remove(snapshot, SyncTable.FAMILIES, family_id)
    result.members = [m for m in result.members if m.family_id != family_id]
    result.visits = [v for v in result.visits if v.family_id != family_id]
    result.deliveries = [d for d in result.deliveries if d.family_id != family_id]
    return result


def household_member_id(family_id: str, position: int) -> str:
    """Identifier for the n-th household member entered on the family form."""
    if position == 0:
        return f"{family_id}_head"
    return f"{family_id}_m_{position}"


def save_household(snapshot: Snapshot, family: Family, members: Sequence[Member]) -> Snapshot:
    """
    Save a family together with its full list of household members.

    The family is inserted or replaced, and the members referencing it are
    replaced by the given list.
    """
    for member in members:
        if member.family_id != family.id:
            raise ValueError(f"Member {member.id} does not belong to family {family.id}")

    result = snapshot.clone()
    for index, existing in enumerate(result.families):
        if existing.id == family.id:
            result.families[index] = family.model_copy(deep=True)
            break
    else:
        result.families.append(family.model_copy(deep=True))

    result.members = [m for m in result.members if m.family_id != family.id]
    result.members.extend(member.model_copy(deep=True) for member in members)
    return result


# Members

def add_member(snapshot: Snapshot, member: Member) -> Snapshot:
    return _append(snapshot, SyncTable.MEMBERS, member)


def update_member(snapshot: Snapshot, member: Member) -> Snapshot:
    return _replace(snapshot, SyncTable.MEMBERS, member)


def delete_member(snapshot: Snapshot, member_id: str) -> Snapshot:
    return _remove(snapshot, SyncTable.MEMBERS, member_id)


# Visits

def add_visit(snapshot: Snapshot, visit: Visit) -> Snapshot:
    return _append(snapshot, SyncTable.VISITS, visit)


def update_visit(snapshot: Snapshot, visit: Visit) -> Snapshot:
    return _replace(snapshot, SyncTable.VISITS, visit)


def delete_visit(snapshot: Snapshot, visit_id: str) -> Snapshot:
    return _remove(snapshot, SyncTable.VISITS, visit_id)


# Deliveries

def add_delivery(snapshot: Snapshot, delivery: Delivery) -> Snapshot:
    return _append(snapshot, SyncTable.DELIVERIES, delivery)


def undo_delivery(snapshot: Snapshot, family_id: str, date: str) -> Snapshot:
    """Remove the deliveries recorded for a family on a given date."""
    result = snapshot.clone()
    result.deliveries = [
        d for d in result.deliveries
        if not (d.family_id == family_id and d.data == date)
    ]
    return result


def find_orphans(snapshot: Snapshot) -> List[Tuple[str, str]]:
    """
    List child records whose family is not in the snapshot.

    The remote foreign key rejects these rows, so they are worth logging
    before a reconciliation run.

    Returns:
        (table, record id) pairs
    """
    family_ids = {family.id for family in snapshot.families}
    orphans = []
    for table in (SyncTable.MEMBERS, SyncTable.VISITS, SyncTable.DELIVERIES):
        for record in snapshot.records(table):
            if record.family_id not in family_ids:
                orphans.append((table.value, record.id))
    return orphans
