"""Progress event definitions for the interactive reconciliation stream.

Consumers drive their UI state machine off ``fase``; its four literal values
and the integer 0-100 ``progresso`` are the wire contract.
"""

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any

from commission_sync.sync.batch import SyncCounters


class ProgressPhase(str, Enum):
    """Phases of an interactive reconciliation run."""

    STARTING = "iniciando"
    PROCESSING = "processando"
    DONE = "concluido"
    ERROR = "erro"

    @property
    def is_terminal(self) -> bool:
        return self in (ProgressPhase.DONE, ProgressPhase.ERROR)


@dataclass
class ProgressEvent:
    """One event on the progress stream."""

    fase: ProgressPhase
    progresso: int
    mensagem: str
    total: int | None = None
    processados: int | None = None
    criados: int | None = None
    atualizados: int | None = None
    ignorados: int | None = None
    erros: int | None = None
    lote: int | None = None

    def __post_init__(self) -> None:
        self.progresso = max(0, min(100, int(self.progresso)))

    def to_dict(self) -> dict[str, Any]:
        """Serialize for JSON transmission, omitting unset counters."""
        data: dict[str, Any] = {
            "fase": self.fase.value,
            "progresso": self.progresso,
            "mensagem": self.mensagem,
        }
        for key in ("total", "processados", "criados", "atualizados", "ignorados", "erros", "lote"):
            value = getattr(self, key)
            if value is not None:
                data[key] = value
        return data

    def to_sse(self) -> str:
        """Encode as one server-sent-events message."""
        return f"data: {json.dumps(self.to_dict(), ensure_ascii=False)}\n\n"


def _counts(counters: SyncCounters) -> dict[str, int]:
    return {
        "total": counters.total,
        "processados": counters.processados,
        "criados": counters.criados,
        "atualizados": counters.atualizados,
        "ignorados": counters.ignorados,
        "erros": counters.erros,
    }


# Factory functions for creating events


def starting(mensagem: str = "Carregando pedidos e comissões...") -> ProgressEvent:
    """Create the first event, sent before any work begins."""
    return ProgressEvent(fase=ProgressPhase.STARTING, progresso=0, mensagem=mensagem)


def candidates_found(total: int, scanned: int) -> ProgressEvent:
    """Create the event announcing the delta size."""
    return ProgressEvent(
        fase=ProgressPhase.STARTING,
        progresso=5,
        total=total,
        processados=0,
        mensagem=f"{total} pedidos para sincronizar (de {scanned} pagos).",
    )


def batch_processed(counters: SyncCounters, batch_number: int, batch_count: int) -> ProgressEvent:
    """Create a per-batch progress event; progress spans 5-99 while running."""
    share = counters.processados / counters.total if counters.total else 1
    return ProgressEvent(
        fase=ProgressPhase.PROCESSING,
        progresso=min(99, 5 + int(share * 94)),
        lote=batch_number,
        mensagem=(
            f"Lote {batch_number} de {batch_count}: "
            f"{counters.processados} de {counters.total} pedidos processados."
        ),
        **_counts(counters),
    )


def finished(counters: SyncCounters) -> ProgressEvent:
    """Create the terminal success event."""
    if counters.total == 0:
        mensagem = "Nada a sincronizar."
    else:
        mensagem = (
            f"Sincronização concluída: {counters.criados} criadas, "
            f"{counters.atualizados} atualizadas, {counters.ignorados} ignoradas, "
            f"{counters.erros} erros."
        )
    return ProgressEvent(fase=ProgressPhase.DONE, progresso=100, mensagem=mensagem, **_counts(counters))


def failed(message: str, counters: SyncCounters | None = None, progresso: int = 0) -> ProgressEvent:
    """Create the terminal failure event."""
    extra = _counts(counters) if counters is not None else {}
    return ProgressEvent(
        fase=ProgressPhase.ERROR,
        progresso=progresso,
        mensagem=message or "Falha desconhecida na sincronização.",
        **extra,
    )
