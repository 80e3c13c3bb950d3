"""Request dependencies: identity extraction and permission guards.

Guards are callable classes in the same shape as the route declarations use
them::

    @router.get("/roles", dependencies=[Depends(RequirePermission("roles.read"))])

Each guard verifies the token first, then asks the authorization engine. Any
denial is logged with the caller, path and method before it propagates to the
exception handlers, which decide how much of it the client sees.
"""

import logging
from typing import List, Optional

from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from tukin.core.exceptions import (
    AuthenticationRequired,
    AuthorizationDenied,
    AuthorizationUnavailable,
    ConfigurationError,
)
from tukin.core.security import Identity, TokenService, extract_token
from tukin.services.authorization import AuthorizationEngine
from tukin.services.invalidation import PermissionInvalidator

logger = logging.getLogger("tukin.rbac")

# JWT bearer scheme
security_scheme = HTTPBearer(auto_error=False)


def get_token_service(request: Request) -> TokenService:
    """Token service built at startup; missing secrets make every auth route fail."""
    tokens = getattr(request.app.state, "tokens", None)
    if tokens is None:
        error = getattr(request.app.state, "token_error", None)
        raise ConfigurationError(error.message if error else "Token service is not configured")
    return tokens


def get_engine(request: Request) -> AuthorizationEngine:
    return request.app.state.authorization


def get_invalidator(request: Request) -> PermissionInvalidator:
    return request.app.state.invalidator


def _log_denial(request: Request, identity: Optional[Identity], error: Exception) -> None:
    user_id = identity.user_id if identity else None
    if isinstance(error, AuthorizationDenied):
        logger.warning(
            "Access denied user=%s %s %s missing=%s",
            user_id, request.method, request.url.path, error.missing,
        )
    elif isinstance(error, AuthorizationUnavailable):
        logger.error(
            "Access denied (authorization unavailable) user=%s %s %s",
            user_id, request.method, request.url.path,
        )
    else:
        logger.warning(
            "Authentication failed user=%s %s %s: %s",
            user_id, request.method, request.url.path, getattr(error, "message", error),
        )


async def get_identity(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security_scheme),
) -> Identity:
    """Verify the caller's access token and return its identity claim."""
    tokens = get_token_service(request)
    token = extract_token(request, credentials)
    try:
        if token is None:
            raise AuthenticationRequired("No authentication token provided")
        identity = tokens.verify_access_token(token)
    except AuthenticationRequired as e:
        _log_denial(request, None, e)
        raise
    request.state.identity = identity
    return identity


class _Guard:
    """Base for permission guards; subclasses implement ``check``."""

    async def check(self, engine: AuthorizationEngine, identity: Identity) -> None:
        raise NotImplementedError

    async def __call__(
        self,
        request: Request,
        identity: Identity = Depends(get_identity),
    ) -> Identity:
        engine = get_engine(request)
        try:
            await self.check(engine, identity)
        except (AuthenticationRequired, AuthorizationDenied, AuthorizationUnavailable) as e:
            _log_denial(request, identity, e)
            raise
        return identity


class RequirePermission(_Guard):
    """Dependency that requires a single fine-grained permission."""

    def __init__(self, permission: str):
        self.permission = permission

    async def check(self, engine, identity):
        await engine.require_permission(identity, self.permission)


class RequireAnyPermission(_Guard):
    """Dependency that requires at least one of several permissions."""

    def __init__(self, permissions: List[str]):
        self.permissions = list(permissions)

    async def check(self, engine, identity):
        await engine.require_any_permission(identity, self.permissions)


class RequireAllPermissions(_Guard):
    """Dependency that requires every listed permission."""

    def __init__(self, permissions: List[str]):
        self.permissions = list(permissions)

    async def check(self, engine, identity):
        await engine.require_all_permissions(identity, self.permissions)


class RequireRoleLevel(_Guard):
    """Legacy dependency comparing the raw role code (1 = Administrator)."""

    def __init__(self, role_level: int):
        self.role_level = role_level

    async def check(self, engine, identity):
        await engine.require_role_level(identity, self.role_level)


class IsRole(_Guard):
    """Deprecated digit-based guard, kept for routes declared as ``IsRole("3")``."""

    def __init__(self, category):
        self.category = category

    async def check(self, engine, identity):
        await engine.is_role(identity, self.category)


# Convenience guard
require_administrator = RequireRoleLevel(1)
