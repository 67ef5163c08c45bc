"""Tests for single-order commission generation."""

import pytest

from commission_sync.errors import ConflictError, NotFoundError, ValidationError
from commission_sync.sync.orders import generate_commission_for_order


class TestGenerateCommission:
    """Tests for generate_commission_for_order."""

    @pytest.mark.asyncio
    async def test_creates_entry(self, store, settings, clock):
        """Test creation for an eligible order."""
        result = await generate_commission_for_order(store, "P1", settings=settings, clock=clock)

        assert result["status"] == "created"
        assert result["comissao"]["valor_comissao"] == 50.0
        assert result["message"] == "Comissão gerada para o mês 2026-02"
        assert (await store.get("Pedido", "P1"))["comissao_entry_id"] == result["comissao"]["id"]

    @pytest.mark.asyncio
    async def test_second_call_updates(self, store, settings, clock):
        """Test that a repeated call updates the same entry."""
        await generate_commission_for_order(store, "P1", settings=settings, clock=clock)
        result = await generate_commission_for_order(store, "P1", settings=settings, clock=clock)

        assert result["status"] == "updated"
        assert len(store.records("CommissionEntry")) == 1

    @pytest.mark.asyncio
    async def test_rolled_message_names_original_month(
        self, build_store, make_order, make_entry, settings, clock
    ):
        """Test the message when the payment month is closed."""
        store = build_store(
            Pedido=[make_order(data_pagamento="2026-01-31T23:00:00Z")],
            CommissionEntry=[make_entry(status="fechado")],
        )

        result = await generate_commission_for_order(store, "P1", settings=settings, clock=clock)

        assert result["message"] == "Comissão gerada para o mês 2026-03 (original 2026-01 estava fechado)"
        assert result["comissao"]["observacao"].startswith("Gerado automaticamente")

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "overrides,status",
        [
            ({"status": "aberto"}, "skipped"),
            ({"saldo_restante": 10}, "skipped_partial"),
            ({"total_pago": 0}, "skipped_zero"),
        ],
    )
    async def test_not_yet_eligible(self, build_store, make_order, settings, clock, overrides, status):
        """Test the skipped statuses."""
        store = build_store(Pedido=[make_order(**overrides)])

        result = await generate_commission_for_order(store, "P1", settings=settings, clock=clock)

        assert result["status"] == status
        assert store.records("CommissionEntry") == []

    @pytest.mark.asyncio
    async def test_closed_entry_is_conflict(self, build_store, make_order, make_entry, settings, clock):
        """Test that a closed entry is never touched."""
        store = build_store(
            Pedido=[make_order()],
            CommissionEntry=[make_entry(pedido_id="P1", status="fechado")],
        )

        with pytest.raises(ConflictError):
            await generate_commission_for_order(store, "P1", settings=settings, clock=clock)

    @pytest.mark.asyncio
    async def test_missing_inputs(self, store, settings, clock):
        """Test 400 and 404 conditions."""
        with pytest.raises(ValidationError):
            await generate_commission_for_order(store, None, settings=settings, clock=clock)
        with pytest.raises(NotFoundError):
            await generate_commission_for_order(store, "P404", settings=settings, clock=clock)
