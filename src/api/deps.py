"""FastAPI dependencies — bearer token to Actor, Actor to database scope.

Tokens are HS256 JWTs signed with ``JWT_SECRET`` (issued elsewhere). The
claims consumed here are ``sub`` (user id), ``tenant`` (absent for platform
actors), ``scope`` and ``role``. Anything else in the token is ignored.
"""
# ruff: noqa: B008  — Depends() in function defaults is standard FastAPI

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Any

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from src.config import settings
from src.db.tenancy import PlatformScope, TenantScope, platform_scope, tenant_scope
from src.errors import PolicyDenied, TenantIsolationError
from src.models.enums import ActorScope, UserRole
from src.security.policy import Actor

bearer_scheme = HTTPBearer(auto_error=False)


def decode_actor(token: str) -> Actor:
    """Verify a bearer token and build the Actor. Raises jwt.InvalidTokenError."""
    if not settings.security.jwt_secret:
        msg = "JWT secret not configured"
        raise jwt.InvalidTokenError(msg)

    claims: dict[str, Any] = jwt.decode(
        token,
        settings.security.jwt_secret,
        algorithms=[settings.security.jwt_algorithm],
        options={"require": ["sub", "scope", "role", "exp"]},
    )
    try:
        scope = ActorScope(claims["scope"])
        role = UserRole(claims["role"])
    except ValueError:
        msg = "Unknown scope or role"
        raise jwt.InvalidTokenError(msg) from None

    tenant_id = claims.get("tenant")
    if scope in (ActorScope.TENANT, ActorScope.MEMBER) and not tenant_id:
        msg = "Tenant claim required"
        raise jwt.InvalidTokenError(msg)

    return Actor(
        tenant_id=str(tenant_id) if tenant_id else None,
        user_id=str(claims["sub"]),
        scope=scope,
        role=role,
    )


async def get_actor(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> Actor:
    """FastAPI dependency — authenticated actor, or 401."""
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    try:
        return decode_actor(credentials.credentials)
    except jwt.InvalidTokenError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token",
            headers={"WWW-Authenticate": "Bearer"},
        ) from None


async def get_tenant_scope(actor: Actor = Depends(get_actor)) -> AsyncIterator[TenantScope]:
    """One tenant transaction per request, bound to the actor's tenant."""
    if not actor.tenant_id:
        msg = "Tenant-scoped route requires a tenant actor"
        raise TenantIsolationError(msg)
    async with tenant_scope(actor.tenant_id) as scope:
        yield scope


async def get_platform_scope(actor: Actor = Depends(get_actor)) -> AsyncIterator[PlatformScope]:
    """One platform transaction per request. Platform actors only."""
    if not actor.is_platform:
        msg = "Platform scope requires a platform administrator"
        raise PolicyDenied(msg)
    async with platform_scope() as scope:
        yield scope
