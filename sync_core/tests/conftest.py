# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Pytest configuration and fixtures.
"""

import os
import pytest
from unittest.mock import AsyncMock

from models.entities import Delivery, Family, Member, Snapshot, Visit
from services.memory_store import InMemoryRemoteStore
from services.reconciliation import ReconciliationEngine, SyncConfig
from utils.retry import RetryPolicy

# Set test environment
os.environ['ENVIRONMENT'] = 'test'
os.environ.pop('SUPABASE_URL', None)
os.environ.pop('SUPABASE_ANON_KEY', None)

OWNER_ID = "0f8fad5b-d9cb-469f-a165-70867728950e"
OTHER_OWNER_ID = "7c9e6679-7425-40de-944b-e07fc1f90ae7"


@pytest.fixture
def owner_id():
    """Signed-in owner identity."""
    return OWNER_ID


@pytest.fixture
def other_owner_id():
    return OTHER_OWNER_ID


@pytest.fixture
def fast_config():
    """Sync settings scaled down so timers and timeouts settle quickly."""
    return SyncConfig(
        debounce_seconds=0.05,
        batch_size=20,
        base_timeout=1.0,
        timeout_per_ten=0.1,
        max_timeout=2.0,
        max_attempts=3,
        backoff_base=0.001,
        backoff_max=0.005,
        validation_retry_delay=0.001
    )


@pytest.fixture
def no_sleep_policy():
    """Retry policy that records backoff delays instead of sleeping."""
    return RetryPolicy(sleep=AsyncMock())


@pytest.fixture
def memory_store():
    return InMemoryRemoteStore()


@pytest.fixture
def engine(memory_store, fast_config):
    return ReconciliationEngine(memory_store, fast_config)


@pytest.fixture
def sample_family():
    return Family(
        id="fam-1",
        ficha="001",
        data_cadastro="2024-03-02",
        nome_assistido="Maria das Dores",
        endereco="Rua das Flores, 12",
        bairro="Centro",
        telefone="(11) 98888-7777",
        whatsapp=True,
        moradores_count=3,
        renda="R$ 800,00"
    )


@pytest.fixture
def sample_snapshot(sample_family):
    """One family with two members, a visit and a delivery."""
    return Snapshot(
        families=[sample_family],
        members=[
            Member(id="fam-1_head", family_id="fam-1", nome="Maria das Dores", parentesco="Responsável"),
            Member(id="fam-1_m_1", family_id="fam-1", nome="João", parentesco="Filho", idade=9)
        ],
        visits=[
            Visit(
                id="visit-1",
                family_id="fam-1",
                data="2024-03-10",
                vicentinos=["Ana", "Pedro"],
                relato="Família precisa de cesta básica",
                necessidades_identificadas=["alimentação"]
            )
        ],
        deliveries=[
            Delivery(
                id="delivery-1",
                family_id="fam-1",
                data="2024-03-15",
                tipo="Cesta Básica",
                responsavel="Ana",
                status="Entregue",
                retirado_por="Próprio"
            )
        ]
    )


@pytest.fixture
def make_deliveries():
    """Factory building count deliveries for one family."""
    def build(count: int, family_id: str = "fam-1"):
        return [
            Delivery(id=f"delivery-{i:03d}", family_id=family_id, data="2024-04-01", tipo="Cesta Básica")
            for i in range(count)
        ]
    return build
