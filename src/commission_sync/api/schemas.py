"""Request bodies for the commission routes.

Fields are optional at the schema level so missing values reach the handlers
and are answered with the engine's own 400 messages.
"""

from typing import Any

from pydantic import BaseModel, Field


class WorkerRequest(BaseModel):
    job_id: str | None = None


class GenerateRequest(BaseModel):
    pedido_id: str | None = None


class AdjustRequest(BaseModel):
    action: str | None = None
    entry_id: str | None = None
    pedido_id: str | None = None
    valor_base: Any = None
    percentual: Any = None
    novo_representante_codigo: str | int | None = None
    mover_todos: bool = False
    entry_ids: list[str] = Field(default_factory=list)
    mes_destino: str | None = None
