"""Typed records for the commission ledger and its collaborators.

Store records are plain JSON dictionaries with many optional keys. The
dataclasses below give them explicit fields with documented defaults so the
engine never probes for presence ad hoc. Money is carried as ``Decimal`` and
written back to the store as plain numbers.
"""

from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from enum import Enum
from typing import Any

CENTS = Decimal("0.01")
ZERO = Decimal("0")
DEFAULT_PERCENT = Decimal("5")

PAID_STATUS = "pago"
SYNC_JOB_TYPE = "sincronizar_comissoes"
SYSTEM_USER = "sistema"


class Entity:
    """Entity (collection) names in the ledger store."""

    ORDER = "Pedido"
    COMMISSION_ENTRY = "CommissionEntry"
    SYNC_JOB = "SyncJob"
    NOTIFICATION = "Notificacao"
    REPRESENTATIVE = "Representante"
    CUSTOMER = "Cliente"
    SETTLEMENT = "FechamentoComissao"
    USER = "User"


class EntryStatus(str, Enum):
    """Lifecycle of a commission entry."""

    OPEN = "aberto"
    CLOSED = "fechado"


class JobStatus(str, Enum):
    """Lifecycle of a reconciliation job."""

    QUEUED = "pendente"
    PROCESSING = "processando"
    CONCLUDED = "concluido"
    ERROR = "erro"


class SnapshotStatus(str, Enum):
    """Lifecycle of a settlement snapshot."""

    DRAFT = "rascunho"
    OPEN = "aberto"
    FINALIZED = "finalizado"


class Priority(str, Enum):
    """Notification priority."""

    LOW = "baixa"
    MEDIUM = "media"
    HIGH = "alta"


# =============================================================================
# VALUE HELPERS
# =============================================================================


def parse_decimal(value: Any, default: Decimal | None = None) -> Decimal | None:
    """Parse a loosely typed numeric value, returning ``default`` when unusable."""
    if value is None or isinstance(value, bool):
        return default
    if isinstance(value, Decimal):
        return value if value.is_finite() else default
    text = str(value).strip()
    if not text:
        return default
    try:
        result = Decimal(text)
    except InvalidOperation:
        return default
    return result if result.is_finite() else default


def round_money(value: Decimal) -> Decimal:
    """Round to cents, halves away from zero."""
    return value.quantize(CENTS, rounding=ROUND_HALF_UP)


def compute_commission(base: Decimal, percent: Decimal) -> Decimal:
    """Commission value for a base amount and a percentage."""
    return round_money(base * percent / Decimal(100))


def money_to_wire(value: Decimal) -> float:
    """Convert a money value to the number written to the store."""
    return float(round_money(value))


def parse_timestamp(value: Any) -> datetime | None:
    """Parse an ISO date or timestamp; naive values are taken as UTC.

    Returns None for empty or malformed input.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    else:
        try:
            parsed = datetime.fromisoformat(str(value).strip().replace("Z", "+00:00"))
        except ValueError:
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def timestamp_to_wire(value: datetime) -> str:
    return value.astimezone(UTC).isoformat()


def _text(value: Any) -> str | None:
    if value is None or value == "":
        return None
    return str(value)


# =============================================================================
# RECORDS
# =============================================================================


@dataclass
class Order:
    """A sales order (Pedido), owned by the order system.

    Defaults: ``saldo_restante`` and ``total_pago`` are 0 when absent or
    unparseable; ``porcentagem_comissao`` is None when absent (the reconciler
    then applies the default percentage).
    """

    id: str
    status: str = ""
    numero_pedido: str | None = None
    saldo_restante: Decimal = ZERO
    total_pago: Decimal = ZERO
    porcentagem_comissao: Decimal | None = None
    data_pagamento: str | None = None
    updated_at: datetime | None = None
    comissao_last_sync: datetime | None = None
    comissao_entry_id: str | None = None
    comissao_fechamento_id: str | None = None
    comissao_paga: bool = False
    comissao_mes_ano_pago: str | None = None
    representante_codigo: str | None = None
    representante_nome: str | None = None
    cliente_nome: str | None = None

    @property
    def is_paid(self) -> bool:
        return self.status == PAID_STATUS

    def is_settled(self, tolerance: Decimal) -> bool:
        """Whether the remaining balance is within ``tolerance``."""
        return self.saldo_restante <= tolerance

    def is_commission_eligible(self, tolerance: Decimal) -> bool:
        """Paid, fully settled and with money actually received."""
        return self.is_paid and self.is_settled(tolerance) and self.total_pago > ZERO

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "Order":
        return cls(
            id=str(record["id"]),
            status=str(record.get("status") or ""),
            numero_pedido=_text(record.get("numero_pedido")),
            saldo_restante=parse_decimal(record.get("saldo_restante"), ZERO),
            total_pago=parse_decimal(record.get("total_pago"), ZERO),
            porcentagem_comissao=parse_decimal(record.get("porcentagem_comissao")),
            data_pagamento=_text(record.get("data_pagamento")),
            # Some stores expose the edit timestamp as ``updated_date``
            updated_at=parse_timestamp(record.get("updated_at") or record.get("updated_date")),
            comissao_last_sync=parse_timestamp(record.get("comissao_last_sync")),
            comissao_entry_id=_text(record.get("comissao_entry_id")),
            comissao_fechamento_id=_text(record.get("comissao_fechamento_id")),
            comissao_paga=bool(record.get("comissao_paga")),
            comissao_mes_ano_pago=_text(record.get("comissao_mes_ano_pago")),
            representante_codigo=_text(record.get("representante_codigo")),
            representante_nome=_text(record.get("representante_nome")),
            cliente_nome=_text(record.get("cliente_nome")),
        )


@dataclass
class Movement:
    """One competency move recorded on an entry."""

    data: str
    mes_origem: str
    mes_destino: str
    usuario: str
    motivo: str

    def to_record(self) -> dict[str, Any]:
        return {
            "data": self.data,
            "mes_origem": self.mes_origem,
            "mes_destino": self.mes_destino,
            "usuario": self.usuario,
            "motivo": self.motivo,
        }

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "Movement":
        return cls(
            data=str(record.get("data") or ""),
            mes_origem=str(record.get("mes_origem") or ""),
            mes_destino=str(record.get("mes_destino") or ""),
            usuario=str(record.get("usuario") or ""),
            motivo=str(record.get("motivo") or ""),
        )


@dataclass
class CommissionEntry:
    """One ledger row tying an order to its representative's commission."""

    id: str
    pedido_id: str
    status: EntryStatus = EntryStatus.OPEN
    valor_base: Decimal = ZERO
    percentual: Decimal = DEFAULT_PERCENT
    valor_comissao: Decimal = ZERO
    data_competencia: str | None = None
    mes_competencia: str | None = None
    observacao: str = ""
    movimentacoes: list[Movement] = field(default_factory=list)
    pedido_numero: str | None = None
    representante_id: str | None = None
    representante_codigo: str | None = None
    representante_nome: str | None = None
    cliente_nome: str | None = None
    data_pagamento_real: str | None = None
    data_fechamento: str | None = None
    fechamento_id: str | None = None

    @property
    def is_closed(self) -> bool:
        return self.status == EntryStatus.CLOSED

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "CommissionEntry":
        try:
            status = EntryStatus(record.get("status") or EntryStatus.OPEN.value)
        except ValueError:
            status = EntryStatus.OPEN
        return cls(
            id=str(record["id"]),
            pedido_id=str(record.get("pedido_id") or ""),
            status=status,
            valor_base=parse_decimal(record.get("valor_base"), ZERO),
            percentual=parse_decimal(record.get("percentual"), DEFAULT_PERCENT),
            valor_comissao=parse_decimal(record.get("valor_comissao"), ZERO),
            data_competencia=_text(record.get("data_competencia")),
            mes_competencia=_text(record.get("mes_competencia")),
            observacao=str(record.get("observacao") or ""),
            movimentacoes=[
                Movement.from_record(m) for m in record.get("movimentacoes") or []
            ],
            pedido_numero=_text(record.get("pedido_numero")),
            representante_id=_text(record.get("representante_id")),
            representante_codigo=_text(record.get("representante_codigo")),
            representante_nome=_text(record.get("representante_nome")),
            cliente_nome=_text(record.get("cliente_nome")),
            data_pagamento_real=_text(record.get("data_pagamento_real")),
            data_fechamento=_text(record.get("data_fechamento")),
            fechamento_id=_text(record.get("fechamento_id")),
        )

    def to_record(self) -> dict[str, Any]:
        return {
            "pedido_id": self.pedido_id,
            "pedido_numero": self.pedido_numero,
            "representante_id": self.representante_id,
            "representante_codigo": self.representante_codigo,
            "representante_nome": self.representante_nome,
            "cliente_nome": self.cliente_nome,
            "valor_base": money_to_wire(self.valor_base),
            "percentual": float(self.percentual),
            "valor_comissao": money_to_wire(self.valor_comissao),
            "data_pagamento_real": self.data_pagamento_real,
            "data_competencia": self.data_competencia,
            "mes_competencia": self.mes_competencia,
            "status": self.status.value,
            "observacao": self.observacao,
            "movimentacoes": [m.to_record() for m in self.movimentacoes],
        }


@dataclass
class SettlementLine:
    """Cached per-order figures inside a settlement snapshot."""

    pedido_id: str
    valor_pedido: Decimal
    valor_comissao: Decimal
    raw: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "SettlementLine":
        return cls(
            pedido_id=str(record.get("pedido_id") or ""),
            valor_pedido=parse_decimal(record.get("valor_pedido"), ZERO),
            valor_comissao=parse_decimal(record.get("valor_comissao"), ZERO),
            raw=dict(record),
        )


@dataclass
class SettlementSnapshot:
    """A point-in-time payout envelope (Fechamento) for one representative."""

    id: str
    status: SnapshotStatus | str
    representante_codigo: str | None = None
    mes_ano: str | None = None
    pedidos_detalhes: list[SettlementLine] = field(default_factory=list)
    total_vendas: Decimal = ZERO
    total_comissoes_bruto: Decimal = ZERO
    vales_adiantamentos: Decimal = ZERO
    outros_descontos: Decimal = ZERO
    valor_liquido: Decimal = ZERO

    @property
    def is_editable(self) -> bool:
        """Draft and open snapshots are caches that must track reassignments."""
        return self.status in (SnapshotStatus.DRAFT, SnapshotStatus.OPEN)

    def references_any(self, order_ids: set[str]) -> bool:
        return any(line.pedido_id in order_ids for line in self.pedidos_detalhes)

    def without_orders(self, order_ids: set[str]) -> dict[str, Any]:
        """Build the patch that drops ``order_ids`` and recomputes the totals.

        Deductions are kept as they are and subtracted from the new gross total.
        """
        remaining = [line for line in self.pedidos_detalhes if line.pedido_id not in order_ids]
        total_vendas = sum((line.valor_pedido for line in remaining), ZERO)
        bruto = sum((line.valor_comissao for line in remaining), ZERO)
        liquido = bruto - self.vales_adiantamentos - self.outros_descontos
        return {
            "pedidos_detalhes": [line.raw for line in remaining],
            "total_vendas": money_to_wire(total_vendas),
            "total_comissoes_bruto": money_to_wire(bruto),
            "valor_liquido": money_to_wire(liquido),
        }

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "SettlementSnapshot":
        raw_status = record.get("status") or ""
        try:
            status: SnapshotStatus | str = SnapshotStatus(raw_status)
        except ValueError:
            status = str(raw_status)
        return cls(
            id=str(record["id"]),
            status=status,
            representante_codigo=_text(record.get("representante_codigo")),
            mes_ano=_text(record.get("mes_ano")),
            pedidos_detalhes=[
                SettlementLine.from_record(line) for line in record.get("pedidos_detalhes") or []
            ],
            total_vendas=parse_decimal(record.get("total_vendas"), ZERO),
            total_comissoes_bruto=parse_decimal(record.get("total_comissoes_bruto"), ZERO),
            vales_adiantamentos=parse_decimal(record.get("vales_adiantamentos"), ZERO),
            outros_descontos=parse_decimal(record.get("outros_descontos"), ZERO),
            valor_liquido=parse_decimal(record.get("valor_liquido"), ZERO),
        )


@dataclass
class SyncJob:
    """Persisted state of one fire-and-forget reconciliation run."""

    id: str
    status: JobStatus = JobStatus.QUEUED
    tipo: str = SYNC_JOB_TYPE
    solicitado_por: str | None = None
    iniciado_em: str | None = None
    concluido_em: str | None = None
    resultado: dict[str, Any] = field(default_factory=dict)
    erro_mensagem: str | None = None
    progresso: int = 0

    @property
    def is_terminal(self) -> bool:
        return self.status in (JobStatus.CONCLUDED, JobStatus.ERROR)

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "SyncJob":
        try:
            status = JobStatus(record.get("status") or JobStatus.QUEUED.value)
        except ValueError:
            status = JobStatus.QUEUED
        return cls(
            id=str(record["id"]),
            status=status,
            tipo=str(record.get("tipo") or SYNC_JOB_TYPE),
            solicitado_por=_text(record.get("solicitado_por")),
            iniciado_em=_text(record.get("iniciado_em")),
            concluido_em=_text(record.get("concluido_em")),
            resultado=dict(record.get("resultado") or {}),
            erro_mensagem=_text(record.get("erro_mensagem")),
            progresso=int(record.get("progresso") or 0),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "status": self.status.value,
            "tipo": self.tipo,
            "solicitado_por": self.solicitado_por,
            "iniciado_em": self.iniciado_em,
            "concluido_em": self.concluido_em,
            "resultado": self.resultado,
            "erro_mensagem": self.erro_mensagem,
            "progresso": self.progresso,
        }


@dataclass
class Representative:
    id: str
    codigo: str
    nome: str = ""
    bloqueado: bool = False

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "Representative":
        return cls(
            id=str(record.get("id") or record.get("codigo") or ""),
            codigo=str(record.get("codigo") or ""),
            nome=str(record.get("nome") or ""),
            bloqueado=bool(record.get("bloqueado")),
        )


@dataclass
class Customer:
    id: str
    nome: str = ""
    representante_codigo: str | None = None
    representante_nome: str | None = None

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "Customer":
        return cls(
            id=str(record["id"]),
            nome=str(record.get("nome") or ""),
            representante_codigo=_text(record.get("representante_codigo")),
            representante_nome=_text(record.get("representante_nome")),
        )


@dataclass
class User:
    """The authenticated caller."""

    id: str
    email: str
    role: str = "user"
    full_name: str = ""

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "User":
        return cls(
            id=str(record.get("id") or ""),
            email=str(record.get("email") or ""),
            role=str(record.get("role") or "user"),
            full_name=str(record.get("full_name") or ""),
        )
