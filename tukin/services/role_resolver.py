"""Role resolver: integer role code -> role name -> role record."""

import enum
import logging
from typing import Optional

from tukin.core.exceptions import RoleStoreUnavailable
from tukin.services.stores import RoleRecord, RoleStore

logger = logging.getLogger("tukin.rbac")


class RoleName(str, enum.Enum):
    """Roles a user's integer ``role`` column can point at."""
    ADMINISTRATOR = "Administrator"
    MANAGER = "Manager"
    USER = "User"
    UNRECOGNIZED = "unknown"


ROLE_LEVELS = {
    1: RoleName.ADMINISTRATOR,
    2: RoleName.MANAGER,
    3: RoleName.USER,
}


def resolve_role_name(role_int) -> RoleName:
    """Map a stored role code to its name; anything unknown is UNRECOGNIZED."""
    if isinstance(role_int, bool) or not isinstance(role_int, int):
        return RoleName.UNRECOGNIZED
    return ROLE_LEVELS.get(role_int, RoleName.UNRECOGNIZED)


def role_level(role_name) -> Optional[int]:
    """Reverse lookup: the integer code users hold for a role name."""
    for level, name in ROLE_LEVELS.items():
        if name.value == role_name or name == role_name:
            return level
    return None


class RoleResolver:
    """Fetches the role record for a user's role code."""

    def __init__(self, role_store: RoleStore):
        self.role_store = role_store

    async def fetch_role(self, role_name: RoleName) -> Optional[RoleRecord]:
        """Return the single role matching ``role_name``, or None.

        Zero or several matches both resolve to None: several rows sharing a
        name is an integrity problem and must not grant an arbitrary pick.

        Raises:
            RoleStoreUnavailable: If the role store cannot be queried.
        """
        if role_name == RoleName.UNRECOGNIZED:
            return None

        try:
            matches = await self.role_store.find_by_name(role_name.value)
        except RoleStoreUnavailable:
            raise
        except Exception as e:
            raise RoleStoreUnavailable(f"Role lookup failed for {role_name.value}: {e}") from e

        if len(matches) > 1:
            logger.error(
                "Role integrity problem: %d roles named %r, treating as absent",
                len(matches), role_name.value,
            )
            return None
        return matches[0] if matches else None

    async def resolve(self, role_int) -> Optional[RoleRecord]:
        """Shortcut for ``fetch_role(resolve_role_name(role_int))``."""
        return await self.fetch_role(resolve_role_name(role_int))
