"""Request dependencies: store access and caller authentication."""

import secrets

import structlog
from fastapi import Depends, Header, Request

from commission_sync.config import Settings
from commission_sync.errors import AuthenticationError, PermissionDeniedError
from commission_sync.models import User
from commission_sync.store import LedgerStore
from commission_sync.sync.jobs import Clock

logger = structlog.get_logger(__name__)


def get_store(request: Request) -> LedgerStore:
    return request.app.state.store


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_clock(request: Request) -> Clock:
    return request.app.state.clock


def _bearer_token(authorization: str | None) -> str | None:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


async def get_current_user(
    authorization: str | None = Header(default=None),
    store: LedgerStore = Depends(get_store),
) -> User:
    """Resolve the caller behind ``Authorization: Bearer <token>``."""
    token = _bearer_token(authorization)
    if token is None:
        raise AuthenticationError("Não autorizado")
    record = await store.authenticate(token)
    if record is None:
        raise AuthenticationError("Não autorizado")
    return User.from_record(record)


async def require_admin(user: User = Depends(get_current_user)) -> User:
    if not user.is_admin:
        logger.warning("admin_access_denied", email=user.email)
        raise PermissionDeniedError("Acesso restrito a administradores")
    return user


async def require_worker_caller(
    authorization: str | None = Header(default=None),
    x_internal_token: str | None = Header(default=None),
    store: LedgerStore = Depends(get_store),
    settings: Settings = Depends(get_app_settings),
) -> str | None:
    """Admit the trusted internal caller or an admin.

    Returns the admin's email, or None for the internal caller.
    """
    expected = settings.internal_token
    if x_internal_token and expected is not None:
        if secrets.compare_digest(x_internal_token, expected.get_secret_value()):
            return None
        raise AuthenticationError("Token interno inválido")

    user = await require_admin(await get_current_user(authorization, store))
    return user.email
