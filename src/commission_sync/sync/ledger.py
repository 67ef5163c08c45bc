"""Manual ledger maintenance: recalculation, month close and competency moves.

Every operation here refuses to touch a closed entry.
"""

import asyncio
from dataclasses import dataclass
from typing import Any

import structlog

from commission_sync.errors import ConflictError, NotFoundError, ValidationError
from commission_sync.models import (
    CommissionEntry,
    Entity,
    EntryStatus,
    Movement,
    compute_commission,
    money_to_wire,
    parse_decimal,
    timestamp_to_wire,
)
from commission_sync.store import LedgerStore
from commission_sync.sync.competency import first_day, last_day, next_month, validate_month
from commission_sync.sync.jobs import Clock, utc_now

logger = structlog.get_logger(__name__)

POSTPONE_REASON = "Postergado manualmente"
ADVANCE_REASON = "Antecipado manualmente"
DEFAULT_USER = "admin"


@dataclass
class MonthCloseResult:
    mes: str
    total: int
    data_fechamento: str

    def to_dict(self) -> dict[str, Any]:
        return {"mes": self.mes, "total": self.total, "data_fechamento": self.data_fechamento}


class LedgerMaintenance:
    """Admin operations over existing commission entries."""

    def __init__(self, store: LedgerStore, clock: Clock = utc_now):
        self._store = store
        self._clock = clock

    async def _open_entry(self, entry_id: str | None, action: str) -> CommissionEntry:
        if not entry_id:
            raise ValidationError("entry_id é obrigatório")
        record = await self._store.get(Entity.COMMISSION_ENTRY, entry_id)
        if record is None:
            raise NotFoundError("CommissionEntry não encontrada")
        entry = CommissionEntry.from_record(record)
        if entry.is_closed:
            raise ConflictError(f"Não é possível {action} uma comissão já fechada")
        return entry

    async def recalculate_entry(
        self,
        entry_id: str | None,
        valor_base: Any = None,
        percentual: Any = None,
    ) -> dict[str, Any]:
        """Recompute an entry's commission; omitted values are inherited from it."""
        entry = await self._open_entry(entry_id, "alterar")

        base = entry.valor_base if valor_base is None else parse_decimal(valor_base)
        percent = entry.percentual if percentual is None else parse_decimal(percentual)
        if base is None or percent is None:
            raise ValidationError("valor_base e percentual devem ser números válidos")

        value = compute_commission(base, percent)
        recalculo = {
            "valor_base": money_to_wire(base),
            "percentual": float(percent),
            "valor_comissao": money_to_wire(value),
        }
        record = await self._store.update(Entity.COMMISSION_ENTRY, entry.id, recalculo)
        logger.info("entry_recalculated", entry_id=entry.id, **recalculo)
        return {"ok": True, "entry": record, "recalculo": recalculo}

    async def close_month(self, mes: str) -> MonthCloseResult:
        """Close every open entry of ``mes``, sharing one closing timestamp."""
        validate_month(mes)
        records = await self._store.filter(
            Entity.COMMISSION_ENTRY,
            {"mes_competencia": mes, "status": EntryStatus.OPEN.value},
        )
        if not records:
            raise ValidationError("Nenhuma comissão aberta para fechar")

        closed_at = timestamp_to_wire(self._clock())
        await asyncio.gather(
            *(
                self._store.update(
                    Entity.COMMISSION_ENTRY,
                    record["id"],
                    {"status": EntryStatus.CLOSED.value, "data_fechamento": closed_at},
                )
                for record in records
            )
        )
        logger.info("month_closed", mes=mes, total=len(records))
        return MonthCloseResult(mes=mes, total=len(records), data_fechamento=closed_at)

    async def postpone_entry(self, entry_id: str | None, usuario: str = DEFAULT_USER) -> dict[str, Any]:
        """Push an open entry to the month after its current competency."""
        entry = await self._open_entry(entry_id, "postergar")
        if not entry.mes_competencia:
            raise ValidationError("Comissão sem mês de competência")
        target = next_month(entry.mes_competencia)
        return await self._move(entry, target, first_day(target), usuario, POSTPONE_REASON)

    async def advance_entries(
        self,
        entry_ids: list[str],
        target_month: str,
        usuario: str = DEFAULT_USER,
    ) -> list[dict[str, Any]]:
        """Bring open entries into ``target_month``, dated its last day."""
        validate_month(target_month)
        if not entry_ids:
            raise ValidationError("Nenhuma comissão selecionada")
        entries = [await self._open_entry(entry_id, "antecipar") for entry_id in entry_ids]
        competency_date = last_day(target_month)
        return list(
            await asyncio.gather(
                *(
                    self._move(entry, target_month, competency_date, usuario, ADVANCE_REASON)
                    for entry in entries
                )
            )
        )

    async def _move(
        self,
        entry: CommissionEntry,
        target_month: str,
        competency_date: str,
        usuario: str,
        motivo: str,
    ) -> dict[str, Any]:
        movement = Movement(
            data=timestamp_to_wire(self._clock()),
            mes_origem=entry.mes_competencia or "",
            mes_destino=target_month,
            usuario=usuario,
            motivo=motivo,
        )
        record = await self._store.update(
            Entity.COMMISSION_ENTRY,
            entry.id,
            {
                "data_competencia": competency_date,
                "mes_competencia": target_month,
                "movimentacoes": [m.to_record() for m in [*entry.movimentacoes, movement]],
            },
        )
        logger.info(
            "entry_moved",
            entry_id=entry.id,
            origin=movement.mes_origem,
            destination=target_month,
            motivo=motivo,
        )
        return record
