"""Pytest configuration and fixtures."""

import itertools
import os
from datetime import UTC, datetime

import pytest

# Set test environment variables before importing settings
os.environ.setdefault("STORE_API_URL", "http://localhost:8000")
os.environ.setdefault("STORE_API_TOKEN", "service-token")
os.environ.setdefault("INTERNAL_TOKEN", "internal-secret")
os.environ.setdefault("STREAM_ITEM_DELAY", "0")
os.environ.setdefault("STREAM_BATCH_DELAY", "0")

from commission_sync.config import get_settings  # noqa: E402
from commission_sync.store import InMemoryStore  # noqa: E402

NOW = datetime(2026, 3, 15, 12, 0, tzinfo=UTC)

ADMIN = {"id": "U1", "email": "admin@example.com", "role": "admin", "full_name": "Admin"}
SECOND_ADMIN = {"id": "U3", "email": "gestor@example.com", "role": "admin", "full_name": "Gestor"}
SELLER = {"id": "U2", "email": "vendas@example.com", "role": "user", "full_name": "Vendas"}

TOKENS = {"admin-token": ADMIN, "user-token": SELLER}


@pytest.fixture
def now():
    """Frozen run time (current month is 2026-03)."""
    return NOW


@pytest.fixture
def clock():
    return lambda: NOW


@pytest.fixture
def settings():
    """Settings with pacing disabled and no default recipient."""
    get_settings.cache_clear()
    return get_settings().model_copy(
        update={
            "sync_batch_size": 50,
            "stream_item_delay": 0.0,
            "stream_batch_delay": 0.0,
            "notification_default_recipient": None,
        }
    )


@pytest.fixture
def make_order():
    """Factory for paid, fully settled, never-synced order records."""
    counter = itertools.count(1)

    def _make(**overrides):
        number = next(counter)
        record = {
            "id": f"P{number}",
            "numero_pedido": f"{1000 + number}",
            "status": "pago",
            "total_pago": 1000,
            "saldo_restante": 0,
            "porcentagem_comissao": 5,
            "data_pagamento": "2026-02-10",
            "updated_at": "2026-02-10T10:00:00+00:00",
            "representante_codigo": "R1",
            "representante_nome": "Ana Souza",
            "cliente_nome": "Mercado Sol",
        }
        record.update(overrides)
        return record

    return _make


@pytest.fixture
def make_entry():
    """Factory for open commission entry records."""
    counter = itertools.count(1)

    def _make(**overrides):
        number = next(counter)
        record = {
            "id": f"E{number}",
            "pedido_id": f"X{number}",
            "status": "aberto",
            "valor_base": 100,
            "percentual": 5,
            "valor_comissao": 5,
            "data_competencia": "2026-01-01",
            "mes_competencia": "2026-01",
            "representante_codigo": "R1",
            "representante_nome": "Ana Souza",
            "observacao": "",
            "movimentacoes": [],
        }
        record.update(overrides)
        return record

    return _make


@pytest.fixture
def representatives():
    return [
        {"id": "rep-1", "codigo": "R1", "nome": "Ana Souza"},
        {"id": "rep-2", "codigo": "R2", "nome": "Bruno Lima"},
        {"id": "rep-3", "codigo": "R3", "nome": "Carla Dias", "bloqueado": True},
    ]


@pytest.fixture
def build_store(representatives):
    """Factory for an in-memory store seeded with users and representatives."""

    def _build(**entities):
        seed = {
            "User": [ADMIN, SECOND_ADMIN, SELLER],
            "Representante": representatives,
        }
        seed.update(entities)
        return InMemoryStore(seed, tokens=TOKENS)

    return _build


@pytest.fixture
def store(build_store, make_order):
    """A store holding a single eligible order ``P1``."""
    return build_store(Pedido=[make_order()])
