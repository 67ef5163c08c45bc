"""In-app notifications written to the store's ``Notificacao`` collection."""

import asyncio
from typing import Any

import structlog

from commission_sync.models import Entity, Priority, User
from commission_sync.store import LedgerStore

logger = structlog.get_logger(__name__)

SYNC_NOTIFICATION_TYPE = "sincronizacao_comissoes"
COMMISSIONS_LINK = "/Comissoes"


class Notifier:
    """Creates notification records for one recipient or for every admin."""

    def __init__(self, store: LedgerStore):
        self._store = store

    @staticmethod
    def _payload(
        recipient: str,
        tipo: str,
        titulo: str,
        mensagem: str,
        prioridade: Priority,
        role: str = "admin",
        link: str | None = None,
        entidade_referencia: str | None = None,
        entidade_id: str | None = None,
    ) -> dict[str, Any]:
        return {
            "tipo": tipo,
            "titulo": titulo,
            "mensagem": mensagem,
            "destinatario_email": recipient,
            "destinatario_role": role,
            "entidade_referencia": entidade_referencia,
            "entidade_id": entidade_id,
            "link": link,
            "prioridade": prioridade.value,
            "lida": False,
        }

    async def notify(
        self,
        recipient: str,
        tipo: str,
        titulo: str,
        mensagem: str,
        prioridade: Priority = Priority.MEDIUM,
        **extra: Any,
    ) -> dict[str, Any]:
        """Create one notification for ``recipient``."""
        record = await self._store.create(
            Entity.NOTIFICATION,
            self._payload(recipient, tipo, titulo, mensagem, prioridade, **extra),
        )
        logger.info("notification_created", recipient=recipient, tipo=tipo, prioridade=prioridade.value)
        return record

    async def notify_admins(
        self,
        tipo: str,
        titulo: str,
        mensagem: str,
        prioridade: Priority = Priority.MEDIUM,
        **extra: Any,
    ) -> int:
        """Create one notification per admin user; returns how many were written."""
        users = [User.from_record(r) for r in await self._store.list(Entity.USER)]
        admins = [u for u in users if u.is_admin and u.email]
        await asyncio.gather(
            *(
                self._store.create(
                    Entity.NOTIFICATION,
                    self._payload(u.email, tipo, titulo, mensagem, prioridade, role=u.role, **extra),
                )
                for u in admins
            )
        )
        logger.info("admin_notifications_created", count=len(admins), tipo=tipo)
        return len(admins)

    async def send(
        self,
        recipient: str | None,
        tipo: str,
        titulo: str,
        mensagem: str,
        prioridade: Priority = Priority.MEDIUM,
        **extra: Any,
    ) -> None:
        """Notify ``recipient`` when known, every admin otherwise."""
        if recipient:
            await self.notify(recipient, tipo, titulo, mensagem, prioridade, **extra)
        else:
            await self.notify_admins(tipo, titulo, mensagem, prioridade, **extra)
