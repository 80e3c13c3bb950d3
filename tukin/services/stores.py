"""Read-only role/user stores consumed by the authorization core.

The core only needs two lookups: roles by name and users by id. Both are
async so the engine can bound them with a timeout; the SQLAlchemy adapters
run the blocking session work in the threadpool.
"""

from dataclasses import dataclass
from typing import Callable, List, Optional, Protocol

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from tukin.core.exceptions import RoleStoreUnavailable
from tukin.models.role import Role
from tukin.models.user import User


@dataclass(frozen=True)
class RoleRecord:
    id: str
    role_name: str
    role_id: int
    permission: str
    description: Optional[str] = None


@dataclass(frozen=True)
class UserRecord:
    id: str
    email: str
    role: Optional[int]
    is_active: bool = True


class RoleStore(Protocol):
    async def find_by_name(self, role_name: str) -> List[RoleRecord]:
        ...


class UserStore(Protocol):
    async def get(self, user_id: str) -> Optional[UserRecord]:
        ...


class SqlRoleStore:
    """Role lookups backed by the ``roles`` table."""

    def __init__(self, session_factory: Callable[[], Session]):
        self._session_factory = session_factory

    async def find_by_name(self, role_name: str) -> List[RoleRecord]:
        return await run_in_threadpool(self._find_by_name, role_name)

    def _find_by_name(self, role_name: str) -> List[RoleRecord]:
        try:
            with self._session_factory() as db:
                rows = db.query(Role).filter(Role.role_name == role_name).all()
                return [
                    RoleRecord(
                        id=row.id,
                        role_name=row.role_name,
                        role_id=row.role_id,
                        permission=row.permission or "",
                        description=row.description,
                    )
                    for row in rows
                ]
        except SQLAlchemyError as e:
            raise RoleStoreUnavailable(f"Role store query failed: {e}") from e


class SqlUserStore:
    """User lookups backed by the ``users`` table."""

    def __init__(self, session_factory: Callable[[], Session]):
        self._session_factory = session_factory

    async def get(self, user_id: str) -> Optional[UserRecord]:
        return await run_in_threadpool(self._get, user_id)

    def _get(self, user_id: str) -> Optional[UserRecord]:
        try:
            with self._session_factory() as db:
                user = db.query(User).filter(User.id == user_id).first()
                if user is None:
                    return None
                return UserRecord(
                    id=user.id,
                    email=user.email,
                    role=user.role,
                    is_active=bool(user.is_active),
                )
        except SQLAlchemyError as e:
            raise RoleStoreUnavailable(f"User store query failed: {e}") from e
