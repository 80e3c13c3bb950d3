"""Authorization engine, the single allow/deny decision point.

Every check resolves the caller's derived permission list through the
permission cache and, on a miss, the user store, role resolver and codec.
Failures fail closed: store errors and timeouts become
``AuthorizationUnavailable`` and are never cached.
"""

import asyncio
import logging
from typing import Iterable, List, Optional

from tukin.core.exceptions import (
    AuthenticationRequired,
    AuthorizationDenied,
    AuthorizationUnavailable,
    RoleStoreUnavailable,
)
from tukin.core.security import Identity
from tukin.services import permission_codec
from tukin.services.permission_cache import PermissionCache
from tukin.services.role_resolver import RoleName, RoleResolver, resolve_role_name
from tukin.services.stores import UserRecord, UserStore

logger = logging.getLogger("tukin.rbac")


class AuthorizationEngine:
    """Decides whether a verified identity may perform an operation."""

    def __init__(
        self,
        user_store: UserStore,
        role_resolver: RoleResolver,
        cache: PermissionCache,
        timeout_seconds: Optional[float] = 5.0,
    ):
        self.user_store = user_store
        self.role_resolver = role_resolver
        self.cache = cache
        self.timeout_seconds = timeout_seconds

    async def _bounded(self, awaitable, identity: Identity, what: str):
        """Await a store round-trip, converting failures to AuthorizationUnavailable."""
        try:
            return await asyncio.wait_for(awaitable, timeout=self.timeout_seconds)
        except AuthenticationRequired:
            raise
        except asyncio.TimeoutError as e:
            logger.error(
                "Authorization unavailable: %s timed out after %ss (user=%s)",
                what, self.timeout_seconds, identity.user_id,
            )
            raise AuthorizationUnavailable() from e
        except RoleStoreUnavailable as e:
            logger.error(
                "Authorization unavailable: %s failed (user=%s): %s",
                what, identity.user_id, e.message,
            )
            raise AuthorizationUnavailable() from e
        except Exception as e:
            logger.exception(
                "Authorization unavailable: unexpected error during %s (user=%s)",
                what, identity.user_id,
            )
            raise AuthorizationUnavailable() from e

    async def _load_user(self, identity: Identity) -> UserRecord:
        user = await self.user_store.get(identity.user_id)
        if user is None:
            raise AuthenticationRequired("User not found")
        if not user.is_active:
            raise AuthenticationRequired("Account is deactivated")
        return user

    async def _resolve_permissions(self, identity: Identity) -> List[str]:
        user = await self._load_user(identity)

        role_name = resolve_role_name(user.role)
        if role_name == RoleName.UNRECOGNIZED:
            logger.warning("Unrecognized role code %r for user %s", user.role, user.id)
            return []

        role = await self.role_resolver.fetch_role(role_name)
        if role is None:
            logger.warning("Role %s not found for user %s", role_name.value, user.id)
            return []

        return permission_codec.expand(permission_codec.decode(role.permission))

    async def get_permissions(self, identity: Identity) -> List[str]:
        """Derived permissions for ``identity``, served from cache when fresh."""
        cached = self.cache.get(identity.user_id)
        if cached is not None:
            return cached

        generation = self.cache.generation(identity.user_id)
        permissions = await self._bounded(
            self._resolve_permissions(identity), identity, "permission resolution"
        )
        self.cache.put(identity.user_id, permissions, generation)
        return permissions

    async def require_permission(self, identity: Identity, permission: str) -> Identity:
        """Allow only if ``permission`` is granted.

        Raises:
            AuthorizationDenied: carrying the missing permission.
            AuthorizationUnavailable: if permissions could not be resolved.
        """
        permissions = await self.get_permissions(identity)
        if permission not in permissions:
            raise AuthorizationDenied(
                f"Access denied: {permission} permission required",
                missing=[permission],
            )
        return identity

    async def require_any_permission(self, identity: Identity, permissions: Iterable[str]) -> Identity:
        """Allow if at least one of ``permissions`` is granted; an empty list denies."""
        required = list(permissions)
        granted = await self.get_permissions(identity)
        if not any(permission in granted for permission in required):
            raise AuthorizationDenied(
                f"Access denied: one of [{', '.join(required)}] permissions required",
                missing=required,
            )
        return identity

    async def require_all_permissions(self, identity: Identity, permissions: Iterable[str]) -> Identity:
        """Allow only if every permission is granted; the denial lists just the missing ones."""
        required = list(permissions)
        granted = await self.get_permissions(identity)
        missing = [permission for permission in required if permission not in granted]
        if missing:
            raise AuthorizationDenied(
                f"Access denied: missing permissions [{', '.join(missing)}]",
                missing=missing,
            )
        return identity

    async def require_role_level(self, identity: Identity, role_level: int) -> Identity:
        """Legacy coarse check on the raw role code (1 = Administrator is highest).

        Allows recognized roles whose code is at or above ``role_level`` in
        privilege. Not for new sensitive routes; use permission checks.
        """
        user = await self._bounded(self._load_user(identity), identity, "user lookup")
        if resolve_role_name(user.role) == RoleName.UNRECOGNIZED or user.role > role_level:
            raise AuthorizationDenied(
                f"Access denied: role level {role_level} required",
                missing=[f"role_level:{role_level}"],
            )
        return identity

    async def is_role(self, identity: Identity, category) -> Identity:
        """Deprecated digit-based check (``is_role("3")``).

        Goes through the same decode+expand path as ``require_all_permissions``
        so both forms always agree: a category is held only when every
        permission it expands to is granted.
        """
        wanted = permission_codec.category_from(category)
        if not wanted:
            raise AuthorizationDenied(
                f"Access denied: unknown permission category {category!r}",
                missing=[f"category:{category}"],
            )
        return await self.require_all_permissions(identity, permission_codec.expand(wanted))
