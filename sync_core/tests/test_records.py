# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Unit tests for record domain operations.
"""

import pytest

from domain.records import (
    add_delivery, add_family, add_member, add_visit, delete_family, delete_member,
    delete_visit, find_orphans, household_member_id, save_household, undo_delivery,
    update_family, update_member, update_visit
)
from models.entities import Delivery, Family, Member, Snapshot, Visit
from utils.errors import DuplicateRecordException, RecordNotFoundException


class TestFamilyOperations:
    """Test family add, update and cascade delete."""

    def test_add_family_returns_new_snapshot(self, sample_snapshot):
        result = add_family(sample_snapshot, Family(id="fam-2", nome_assistido="José"))

        assert [f.id for f in result.families] == ["fam-1", "fam-2"]
        assert len(sample_snapshot.families) == 1

    def test_add_duplicate_family(self, sample_snapshot, sample_family):
        with pytest.raises(DuplicateRecordException):
            add_family(sample_snapshot, sample_family)

    def test_update_family(self, sample_snapshot, sample_family):
        changed = sample_family.model_copy(update={"bairro": "Vila Nova"})

        result = update_family(sample_snapshot, changed)

        assert result.families[0].bairro == "Vila Nova"
        assert sample_snapshot.families[0].bairro == "Centro"

    def test_update_missing_family(self, sample_snapshot):
        with pytest.raises(RecordNotFoundException):
            update_family(sample_snapshot, Family(id="missing"))

    def test_delete_family_cascades(self, sample_snapshot):
        other = Family(id="fam-2")
        snapshot = add_family(sample_snapshot, other)
        snapshot = add_visit(snapshot, Visit(id="visit-2", family_id="fam-2"))

        result = delete_family(snapshot, "fam-1")

        assert [f.id for f in result.families] == ["fam-2"]
        assert result.members == []
        assert [v.id for v in result.visits] == ["visit-2"]
        assert result.deliveries == []

    def test_delete_missing_family(self):
        with pytest.raises(RecordNotFoundException):
            delete_family(Snapshot(), "missing")


class TestHousehold:
    """Test saving a family with its household form members."""

    def test_household_member_ids(self):
        assert household_member_id("fam-1", 0) == "fam-1_head"
        assert household_member_id("fam-1", 2) == "fam-1_m_2"

    def test_save_new_household(self):
        family = Family(id="fam-9", nome_assistido="Rita")
        members = [
            Member(id=household_member_id("fam-9", 0), family_id="fam-9", nome="Rita"),
            Member(id=household_member_id("fam-9", 1), family_id="fam-9", nome="Lucas")
        ]

        result = save_household(Snapshot(), family, members)

        assert [f.id for f in result.families] == ["fam-9"]
        assert [m.id for m in result.members] == ["fam-9_head", "fam-9_m_1"]

    def test_save_household_replaces_members(self, sample_snapshot, sample_family):
        other_member = Member(id="fam-2_head", family_id="fam-2")
        snapshot = sample_snapshot.clone()
        snapshot.members.append(other_member)

        result = save_household(
            snapshot,
            sample_family,
            [Member(id="fam-1_head", family_id="fam-1", nome="Maria")]
        )

        assert len(result.families) == 1
        assert sorted(m.id for m in result.members) == ["fam-1_head", "fam-2_head"]

    def test_save_household_rejects_foreign_member(self, sample_family):
        with pytest.raises(ValueError):
            save_household(Snapshot(), sample_family, [Member(id="x", family_id="fam-2")])


class TestChildOperations:
    """Test member, visit and delivery operations."""

    def test_member_lifecycle(self, sample_snapshot):
        snapshot = add_member(sample_snapshot, Member(id="fam-1_m_2", family_id="fam-1", nome="Bia"))
        snapshot = update_member(snapshot, Member(id="fam-1_m_2", family_id="fam-1", nome="Beatriz"))

        assert snapshot.members[-1].nome == "Beatriz"

        snapshot = delete_member(snapshot, "fam-1_m_2")
        assert [m.id for m in snapshot.members] == ["fam-1_head", "fam-1_m_1"]

    def test_visit_lifecycle(self, sample_snapshot):
        visit = Visit(id="visit-2", family_id="fam-1", vicentinos=["Ana"])
        snapshot = add_visit(sample_snapshot, visit)
        snapshot = update_visit(snapshot, visit.model_copy(update={"vicentinos": ["Ana", "Rui"]}))

        assert snapshot.visits[-1].vicentinos == ["Ana", "Rui"]

        snapshot = delete_visit(snapshot, "visit-1")
        assert [v.id for v in snapshot.visits] == ["visit-2"]

    def test_stored_record_is_a_copy(self):
        visit = Visit(id="visit-1", family_id="fam-1", vicentinos=["Ana"])

        snapshot = add_visit(Snapshot(), visit)
        visit.vicentinos.append("Rui")

        assert snapshot.visits[0].vicentinos == ["Ana"]

    def test_undo_delivery_by_family_and_date(self, sample_snapshot):
        snapshot = add_delivery(
            sample_snapshot,
            Delivery(id="delivery-2", family_id="fam-1", data="2024-04-15")
        )

        result = undo_delivery(snapshot, "fam-1", "2024-03-15")

        assert [d.id for d in result.deliveries] == ["delivery-2"]
        assert len(snapshot.deliveries) == 2

    def test_undo_delivery_without_match(self, sample_snapshot):
        result = undo_delivery(sample_snapshot, "fam-1", "1999-01-01")

        assert result == sample_snapshot


class TestFindOrphans:

    def test_no_orphans(self, sample_snapshot):
        assert find_orphans(sample_snapshot) == []

    def test_orphans_listed_per_table(self, sample_snapshot):
        snapshot = sample_snapshot.clone()
        snapshot.families = []

        orphans = find_orphans(snapshot)

        assert ("members", "fam-1_head") in orphans
        assert ("visits", "visit-1") in orphans
        assert ("deliveries", "delivery-1") in orphans
        assert len(orphans) == 4
