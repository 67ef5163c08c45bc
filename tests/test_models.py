"""Tests for record types and value helpers."""

from datetime import UTC, datetime
from decimal import Decimal

import pytest

from commission_sync.models import (
    CommissionEntry,
    EntryStatus,
    Order,
    SettlementSnapshot,
    SyncJob,
    User,
    parse_decimal,
    parse_timestamp,
)


class TestParseDecimal:
    """Tests for loose numeric parsing."""

    @pytest.mark.parametrize(
        "value,expected",
        [(10, Decimal("10")), ("12.50", Decimal("12.50")), (" 3 ", Decimal("3")), (0, Decimal("0"))],
    )
    def test_parses_numbers(self, value, expected):
        """Test numeric inputs."""
        assert parse_decimal(value) == expected

    @pytest.mark.parametrize("value", [None, "", "abc", "NaN", "Infinity", True])
    def test_unusable_values_fall_back(self, value):
        """Test that unusable input yields the default."""
        assert parse_decimal(value, Decimal("5")) == Decimal("5")


class TestParseTimestamp:
    """Tests for timestamp parsing."""

    def test_zulu_suffix(self):
        """Test a trailing Z."""
        assert parse_timestamp("2026-03-01T10:00:00Z") == datetime(2026, 3, 1, 10, tzinfo=UTC)

    def test_naive_is_utc(self):
        """Test that naive values are taken as UTC."""
        assert parse_timestamp("2026-03-01T10:00:00").tzinfo == UTC

    def test_date_only(self):
        """Test a bare date."""
        assert parse_timestamp("2026-03-01") == datetime(2026, 3, 1, tzinfo=UTC)

    def test_garbage_is_none(self):
        """Test malformed input."""
        assert parse_timestamp("ontem") is None
        assert parse_timestamp(None) is None


class TestRecords:
    """Tests for record conversions."""

    def test_order_defaults(self):
        """Test documented defaults for a sparse order."""
        order = Order.from_record({"id": "P1", "status": "pago"})

        assert order.total_pago == Decimal("0")
        assert order.saldo_restante == Decimal("0")
        assert order.porcentagem_comissao is None
        assert order.is_paid
        assert not order.is_commission_eligible(Decimal("0.01"))

    def test_entry_defaults(self):
        """Test that a sparse entry is open with the default percentage."""
        entry = CommissionEntry.from_record({"id": "E1", "pedido_id": "P1"})

        assert entry.status == EntryStatus.OPEN
        assert entry.percentual == Decimal("5")
        assert entry.movimentacoes == []

    def test_entry_round_trip_excludes_id(self):
        """Test that to_record is a create payload."""
        entry = CommissionEntry.from_record(
            {"id": "E1", "pedido_id": "P1", "valor_base": "10.005", "status": "fechado"}
        )

        record = entry.to_record()

        assert "id" not in record
        assert record["valor_base"] == 10.01
        assert record["status"] == "fechado"

    def test_snapshot_unknown_status_is_not_editable(self):
        """Test that unknown statuses are kept but never scrubbed."""
        snapshot = SettlementSnapshot.from_record({"id": "F1", "status": "pago"})

        assert snapshot.status == "pago"
        assert not snapshot.is_editable

    def test_snapshot_without_orders(self):
        """Test line removal and total recomputation."""
        snapshot = SettlementSnapshot.from_record(
            {
                "id": "F1",
                "status": "rascunho",
                "pedidos_detalhes": [
                    {"pedido_id": "A", "valor_pedido": 1000, "valor_comissao": "50.10"},
                    {"pedido_id": "B", "valor_pedido": 2000, "valor_comissao": "100.20"},
                ],
                "vales_adiantamentos": 20,
                "outros_descontos": "0.20",
            }
        )

        patch = snapshot.without_orders({"A"})

        assert patch == {
            "pedidos_detalhes": [{"pedido_id": "B", "valor_pedido": 2000, "valor_comissao": "100.20"}],
            "total_vendas": 2000.0,
            "total_comissoes_bruto": 100.2,
            "valor_liquido": 80.0,
        }

    def test_sync_job_to_dict(self):
        """Test job serialization."""
        job = SyncJob.from_record({"id": "J1", "status": "concluido", "progresso": 100})

        assert job.is_terminal
        assert job.to_dict()["status"] == "concluido"

    def test_user_role(self):
        """Test admin detection."""
        assert User.from_record({"id": "U1", "email": "a@x", "role": "admin"}).is_admin
        assert not User.from_record({"id": "U2", "email": "b@x"}).is_admin
