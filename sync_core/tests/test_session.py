# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
End-to-end tests for a sync session: local writes, debounced sync,
sign-in loading and sign-out teardown.
"""

import asyncio
import pytest
from unittest.mock import AsyncMock

from domain.records import add_visit, delete_family, save_household
from models.entities import Family, Member, Snapshot, Visit
from models.results import SyncReport
from services.memory_store import InMemoryRemoteStore
from services.session import REPORT_HISTORY, SyncSession
from services.snapshot_cache import SnapshotCache
from utils.errors import RemoteStoreError


class TestSyncSession:
    """Test the session wiring between the local store and the remote store."""

    def setup_method(self):
        self.remote = InMemoryRemoteStore()

    def session(self, fast_config, **kwargs):
        return SyncSession(remote_store=self.remote, config=fast_config, **kwargs)

    @pytest.mark.asyncio
    async def test_burst_of_writes_syncs_once_with_latest(self, fast_config, sample_snapshot, owner_id):
        session = self.session(fast_config)
        await session.sign_in(owner_id)

        first = sample_snapshot.clone()
        first.visits = [Visit(id="visit-a", family_id="fam-1", vicentinos=["Ana"])]
        second = sample_snapshot.clone()
        second.visits = [
            Visit(id="visit-b", family_id="fam-1", vicentinos=["Pedro"]),
            Visit(id="visit-c", family_id="fam-1")
        ]

        session.write(first)
        await asyncio.sleep(0.01)
        session.write(second)
        await asyncio.sleep(fast_config.debounce_seconds * 4)
        await session.flush()

        assert len(session.reports) == 1
        assert session.last_report.success
        assert self.remote.ids("visits", owner_id) == ["visit-b", "visit-c"]
        assert session.scheduler.cycles == 1

        upserted = [table for op, table, _ in self.remote.calls if op == "upsert"]
        assert upserted.index("families") < upserted.index("members")

    @pytest.mark.asyncio
    async def test_no_sync_without_owner(self, fast_config, sample_snapshot):
        session = self.session(fast_config)

        session.write(sample_snapshot)
        await asyncio.sleep(fast_config.debounce_seconds * 3)

        assert session.read() == sample_snapshot
        assert self.remote.calls == []
        assert len(session.reports) == 0

    @pytest.mark.asyncio
    async def test_no_sync_without_remote(self, fast_config, sample_snapshot, owner_id):
        session = SyncSession(config=fast_config)
        await session.sign_in(owner_id)

        session.write(sample_snapshot)
        await session.flush()

        assert not session.is_remote_configured
        assert not session.can_sync()
        assert session.read() == sample_snapshot

    @pytest.mark.asyncio
    async def test_sign_in_loads_remote_data_without_syncing(self, fast_config, owner_id):
        await self.remote.upsert("families", [{"id": "fam-1", "user_id": owner_id, "nomeAssistido": "Maria"}])
        await self.remote.upsert("members", [{"id": "fam-1_head", "user_id": owner_id, "familyId": "fam-1"}])
        upserts_before = len(self.remote.calls_for("upsert"))
        session = self.session(fast_config)
        seen = []
        session.subscribe(seen.append)

        snapshot = await session.sign_in(owner_id, metadata={"full_name": "Ana Souza"}, access_token="jwt")
        await asyncio.sleep(fast_config.debounce_seconds * 3)

        assert snapshot.families[0].nome_assistido == "Maria"
        assert session.read() == snapshot
        assert len(seen) == 1
        assert session.store.fully_loaded
        assert session.profile.initials == "AS"
        assert len(self.remote.calls_for("upsert")) == upserts_before
        assert len(session.reports) == 0

    @pytest.mark.asyncio
    async def test_sign_in_keeps_local_data_when_fetch_fails(self, fast_config, sample_snapshot, owner_id):
        session = self.session(fast_config)
        session.write(sample_snapshot)
        self.remote.fail("select", "visits", RemoteStoreError("bad gateway", status=502))

        snapshot = await session.sign_in(owner_id)

        assert snapshot == sample_snapshot
        assert not session.store.fully_loaded

    @pytest.mark.asyncio
    async def test_empty_collection_not_cleared_before_load(self, fast_config, sample_snapshot, owner_id):
        await self.remote.upsert("families", [{"id": "fam-1", "user_id": owner_id}])
        await self.remote.upsert("deliveries", [{"id": "old", "user_id": owner_id, "familyId": "fam-1"}])
        self.remote.fail("select", "families", RemoteStoreError("bad gateway", status=502))
        session = self.session(fast_config)
        await session.sign_in(owner_id)

        snapshot = sample_snapshot.clone()
        snapshot.deliveries = []
        session.write(snapshot)
        await session.flush()

        assert session.last_report.success
        assert self.remote.ids("deliveries", owner_id) == ["old"]

    @pytest.mark.asyncio
    async def test_apply_domain_operation(self, fast_config, owner_id):
        session = self.session(fast_config)
        await session.sign_in(owner_id)

        family = Family(id="fam-7", nome_assistido="Rita")
        session.apply(save_household, family, [Member(id="fam-7_head", family_id="fam-7")])
        session.apply(add_visit, Visit(id="visit-7", family_id="fam-7"))
        await session.flush()

        assert self.remote.ids("members", owner_id) == ["fam-7_head"]
        assert self.remote.ids("visits", owner_id) == ["visit-7"]

        session.apply(delete_family, "fam-7")
        await session.flush()

        for table in ("families", "members", "visits", "deliveries"):
            assert self.remote.ids(table, owner_id) == []

    @pytest.mark.asyncio
    async def test_sign_out_cancels_pending_sync(self, fast_config, sample_snapshot, owner_id):
        session = self.session(fast_config)
        await session.sign_in(owner_id)

        session.write(sample_snapshot)
        await session.sign_out()
        await asyncio.sleep(fast_config.debounce_seconds * 3)

        assert self.remote.calls_for("upsert") == []
        assert session.read().is_empty()
        assert session.owner_id is None
        assert session.profile.name == "Vicentino"

    @pytest.mark.asyncio
    async def test_sign_out_does_not_clear_remote(self, fast_config, sample_snapshot, owner_id):
        session = self.session(fast_config)
        await session.sign_in(owner_id)
        session.write(sample_snapshot)
        await session.flush()

        await session.sign_out()
        await asyncio.sleep(fast_config.debounce_seconds * 3)

        assert self.remote.ids("families", owner_id) == ["fam-1"]

    @pytest.mark.asyncio
    async def test_owner_change_discards_previous_owner_writes(self, fast_config, owner_id, other_owner_id):
        await self.remote.upsert("families", [{"id": "fb", "user_id": other_owner_id}])
        await self.remote.upsert("deliveries", [{"id": "db", "user_id": other_owner_id, "familyId": "fb"}])
        session = self.session(fast_config)
        await session.sign_in(owner_id)

        session.write(Snapshot(families=[Family(id="fa")]))
        session.set_owner(other_owner_id)
        await session.flush()
        await asyncio.sleep(fast_config.debounce_seconds * 3)

        assert self.remote.ids("families", other_owner_id) == ["fb"]
        assert self.remote.ids("deliveries", other_owner_id) == ["db"]
        assert self.remote.ids("families", owner_id) == []
        assert session.read().is_empty()
        assert not session.store.fully_loaded

    @pytest.mark.asyncio
    async def test_owner_change_drops_snapshot_queued_during_sync(self, fast_config, sample_snapshot,
                                                                  owner_id, other_owner_id):
        await self.remote.upsert("families", [{"id": "fb", "user_id": other_owner_id}])
        self.remote.set_delay("upsert", "families", 0.1)
        session = self.session(fast_config)
        await session.sign_in(owner_id)

        session.write(sample_snapshot)
        await asyncio.sleep(fast_config.debounce_seconds + 0.03)
        later = sample_snapshot.clone()
        later.visits.append(Visit(id="visit-2", family_id="fam-1"))
        session.write(later)
        session.set_owner(other_owner_id)
        await session.flush()

        assert self.remote.ids("visits", owner_id) == ["visit-1"]
        assert self.remote.ids("families", other_owner_id) == ["fb"]
        assert len(session.reports) == 0

    @pytest.mark.asyncio
    async def test_snapshot_for_previous_owner_not_dispatched(self, fast_config, sample_snapshot,
                                                            owner_id, other_owner_id):
        session = self.session(fast_config)
        await session.sign_in(owner_id)
        session.set_owner(other_owner_id)

        assert await session._dispatch(sample_snapshot, owner_id) is None
        assert self.remote.calls_for("upsert") == []

    @pytest.mark.asyncio
    async def test_token_refresh_keeps_data_and_pending_sync(self, fast_config, sample_snapshot, owner_id):
        session = self.session(fast_config)
        await session.sign_in(owner_id, metadata={"full_name": "Ana Souza"}, access_token="jwt")

        session.write(sample_snapshot)
        session.set_owner(owner_id, access_token="refreshed")
        await session.flush()

        assert session.read() == sample_snapshot
        assert session.store.fully_loaded
        assert session.profile.initials == "AS"
        assert self.remote.ids("families", owner_id) == ["fam-1"]

    @pytest.mark.asyncio
    async def test_report_history_is_bounded(self, fast_config, owner_id):
        session = self.session(fast_config)
        await session.sign_in(owner_id)

        for _ in range(REPORT_HISTORY + 10):
            session._record_report(SyncReport(owner_id=owner_id))

        assert len(session.reports) == REPORT_HISTORY
        assert session.last_report is session.reports[-1]

        await session.sign_out()

        assert len(session.reports) == 0
        assert session.last_report is None

    @pytest.mark.asyncio
    async def test_writes_during_sync_are_reconciled_after(self, fast_config, sample_snapshot, owner_id):
        self.remote.set_delay("upsert", "families", 0.1)
        session = self.session(fast_config)
        await session.sign_in(owner_id)

        session.write(sample_snapshot)
        await asyncio.sleep(fast_config.debounce_seconds + 0.03)
        later = sample_snapshot.clone()
        later.visits.append(Visit(id="visit-2", family_id="fam-1"))
        session.write(later)
        await session.flush()

        assert len(session.reports) == 2
        assert self.remote.ids("visits", owner_id) == ["visit-1", "visit-2"]

    @pytest.mark.asyncio
    async def test_close_flushes_and_closes_remote(self, fast_config, sample_snapshot, owner_id):
        self.remote.close = AsyncMock()
        session = self.session(fast_config)
        await session.sign_in(owner_id)
        session.write(sample_snapshot)

        await session.close()

        assert self.remote.ids("families", owner_id) == ["fam-1"]
        self.remote.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_local_cache_survives_restart(self, fast_config, sample_snapshot, tmp_path):
        cache_path = tmp_path / "snapshot.json"
        session = SyncSession(config=fast_config, cache=SnapshotCache(cache_path))
        session.write(sample_snapshot)

        restarted = SyncSession(config=fast_config, cache=SnapshotCache(cache_path))

        assert restarted.read() == sample_snapshot

    def test_from_env_without_supabase(self, monkeypatch, tmp_path):
        monkeypatch.delenv("SUPABASE_URL", raising=False)
        monkeypatch.delenv("SUPABASE_ANON_KEY", raising=False)
        monkeypatch.setenv("SSVP_CACHE_PATH", str(tmp_path / "cache.json"))
        monkeypatch.setenv("SYNC_DEBOUNCE_MS", "100")

        session = SyncSession.from_env()

        assert not session.is_remote_configured
        assert session.config.debounce_seconds == 0.1
        assert session.scheduler.debounce_seconds == 0.1
