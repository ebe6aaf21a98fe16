"""Caller identification and admin API key authentication.

Two FastAPI dependencies live here:

* :func:`require_admin_api_key` validates the ``X-Admin-API-Key`` header
  against the configured ``ADMIN_API_KEY`` for machine callers such as
  the SLA sweep cron.  Uses constant-time comparison.
* :func:`get_actor` resolves the ``X-User-Id`` header through the user
  directory into an :class:`~src.models.user.Actor`.  Session handling
  is done upstream; this service trusts the header it is given.
"""

from __future__ import annotations

import hmac
from collections.abc import Awaitable, Callable

import structlog
from fastapi import Depends, HTTPException, Request, Security
from fastapi.security import APIKeyHeader

from config.settings import settings
from src.models.enums import UserRole
from src.models.user import Actor

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

_api_key_header = APIKeyHeader(name="X-Admin-API-Key", auto_error=False)
_user_id_header = APIKeyHeader(name="X-User-Id", auto_error=False)


def _client_ip(request: Request) -> str:
    return request.client.host if request.client else "unknown"


async def require_admin_api_key(
    request: Request,
    api_key: str | None = Security(_api_key_header),
) -> str:
    """FastAPI dependency that enforces admin API key authentication.

    Returns the validated key on success; raises 401/403 on failure.

    Usage::

        @router.post("/sla/check", dependencies=[Depends(require_admin_api_key)])
        async def trigger_sla_check(...): ...
    """
    configured_key = settings.admin_api_key

    if not configured_key:
        # In development without a configured key, log a warning but allow access
        if not settings.is_production:
            logger.warning(
                "auth.admin_key_not_configured",
                note="Admin API key not set; allowing request in development mode",
            )
            return ""
        logger.error("auth.admin_key_not_configured_production")
        raise HTTPException(
            status_code=503,
            detail="Admin authentication is not configured.",
        )

    if not api_key:
        logger.warning("auth.missing_api_key", path=request.url.path, client_ip=_client_ip(request))
        raise HTTPException(
            status_code=401,
            detail="Missing X-Admin-API-Key header.",
            headers={"WWW-Authenticate": "ApiKey"},
        )

    if not hmac.compare_digest(api_key.encode(), configured_key.encode()):
        logger.warning("auth.invalid_api_key", path=request.url.path, client_ip=_client_ip(request))
        raise HTTPException(
            status_code=403,
            detail="Invalid API key.",
        )

    return api_key


async def get_actor(
    request: Request,
    user_id: str | None = Security(_user_id_header),
) -> Actor:
    """Resolve the calling user from the ``X-User-Id`` header.

    Raises 401 when the header is missing or names no known user, and
    403 when the user has been deactivated.
    """
    if not user_id:
        raise HTTPException(
            status_code=401,
            detail="Missing X-User-Id header.",
            headers={"WWW-Authenticate": "UserId"},
        )

    directory = request.app.state.directory
    user = await directory.find_by_id(user_id)
    if user is None:
        logger.warning("auth.unknown_user", path=request.url.path, user_id=user_id)
        raise HTTPException(status_code=401, detail="Unknown user.")
    if not user.is_active:
        logger.warning("auth.inactive_user", path=request.url.path, user_id=user_id)
        raise HTTPException(status_code=403, detail="User account is deactivated.")

    structlog.contextvars.bind_contextvars(actor_id=user.user_id, actor_role=str(user.role))
    return Actor.from_user(user)


def require_roles(*roles: UserRole) -> Callable[..., Awaitable[Actor]]:
    """Build a dependency that admits only callers holding one of *roles*.

    Usage::

        @router.get("/stats/dashboard")
        async def dashboard(actor: Actor = Depends(require_roles(UserRole.ADMIN, UserRole.OFFICER))): ...
    """
    allowed = frozenset(roles)

    async def _dependency(actor: Actor = Depends(get_actor)) -> Actor:
        if actor.role not in allowed:
            raise HTTPException(status_code=403, detail="Insufficient role for this operation.")
        return actor

    return _dependency
