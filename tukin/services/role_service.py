"""Role service — role CRUD, permission matrix edits, role assignment.

Every mutation here changes what some users are allowed to do, so each one
ends by invalidating the permission cache for the affected users (or all of
them when the affected set cannot be computed cheaply).
"""

import logging
from typing import Dict, Any, Iterable, List, Optional, Set

from sqlalchemy.orm import Session

from tukin.models.role import Role
from tukin.models.user import User
from tukin.core.exceptions import (
    ResourceConflictError,
    ResourceNotFoundError,
    ValidationError,
)
from tukin.services import permission_codec
from tukin.services.invalidation import PermissionInvalidator
from tukin.services.role_resolver import resolve_role_name, role_level

logger = logging.getLogger("tukin.rbac")


def _holder_codes(role: Role) -> Set[int]:
    """Role codes held by users of ``role``.

    Permissions are resolved through the fixed code-to-name table, so only the
    code mapped to the role's name counts. A custom role outside the table has
    no holders whatever its ``role_id``.
    """
    level = role_level(role.role_name)
    return set() if level is None else {level}


def _holders(db: Session, role: Role) -> List[User]:
    codes = _holder_codes(role)
    if not codes:
        return []
    return db.query(User).filter(User.role.in_(codes)).all()


def _canonical(categories: Optional[Iterable] = None, encoded: Optional[str] = None) -> str:
    """Canonical permission string from category digits or an untrusted encoding."""
    if encoded is not None:
        return permission_codec.validate_encoding(encoded)
    values = list(categories or [])
    unknown = [v for v in values if not permission_codec.category_from(v)]
    if unknown:
        raise ValidationError(f"Unknown permission categories: {unknown}")
    return permission_codec.encode(values)


class RoleService:
    """Manages roles and their permission encodings."""

    @staticmethod
    def get_role(db: Session, role_id: str) -> Role:
        role = db.query(Role).filter(Role.id == role_id).first()
        if not role:
            raise ResourceNotFoundError(f"Role {role_id} not found")
        return role

    @staticmethod
    def list_roles(db: Session) -> List[Dict[str, Any]]:
        """All roles, newest first, with their holder counts."""
        roles = db.query(Role).order_by(Role.created_at.desc()).all()
        return [
            {"role": role, "user_count": len(_holders(db, role))}
            for role in roles
        ]

    @staticmethod
    async def _invalidate_holders(db: Session, invalidator: PermissionInvalidator, role: Role) -> None:
        for user in _holders(db, role):
            await invalidator.invalidate(user.id)

    @staticmethod
    async def create_role(
        db: Session,
        invalidator: PermissionInvalidator,
        role_name: str,
        role_id: int,
        categories: Optional[Iterable] = None,
        description: Optional[str] = None,
    ) -> Role:
        """Create a role; users whose code maps to it may gain permissions."""
        if db.query(Role).filter(Role.role_name == role_name).first():
            raise ResourceConflictError(f"Role '{role_name}' already exists")

        role = Role(
            role_name=role_name,
            role_id=role_id,
            permission=_canonical(categories),
            description=description,
        )
        db.add(role)
        db.commit()
        db.refresh(role)

        await RoleService._invalidate_holders(db, invalidator, role)
        logger.info("Role created: %s (%s) permissions=%r", role.role_name, role.id, role.permission)
        return role

    @staticmethod
    async def update_role(
        db: Session,
        invalidator: PermissionInvalidator,
        role_id: str,
        role_name: Optional[str] = None,
        numeric_id: Optional[int] = None,
        description: Optional[str] = None,
        categories: Optional[Iterable] = None,
    ) -> Role:
        """Update role fields. Renames and code changes clear the whole cache."""
        role = RoleService.get_role(db, role_id)
        schema_changed = False

        if role_name and role_name != role.role_name:
            clash = db.query(Role).filter(Role.role_name == role_name, Role.id != role.id).first()
            if clash:
                raise ResourceConflictError(f"Role '{role_name}' already exists")
            role.role_name = role_name
            schema_changed = True
        if numeric_id is not None and numeric_id != role.role_id:
            role.role_id = numeric_id
            schema_changed = True
        if description is not None:
            role.description = description
        if categories is not None:
            role.permission = _canonical(categories)

        db.commit()
        db.refresh(role)

        if schema_changed:
            await invalidator.invalidate_all()
        else:
            await RoleService._invalidate_holders(db, invalidator, role)
        return role

    @staticmethod
    async def set_permissions(
        db: Session,
        invalidator: PermissionInvalidator,
        role_id: str,
        categories: Optional[Iterable] = None,
        encoded: Optional[str] = None,
    ) -> Dict[str, str]:
        """Replace a role's permission string, recomputed from the full set.

        ``encoded`` is untrusted input and must decode to known categories only.
        """
        role = RoleService.get_role(db, role_id)
        old_permission = role.permission
        role.permission = _canonical(categories, encoded)
        db.commit()

        await RoleService._invalidate_holders(db, invalidator, role)
        logger.info(
            "Permission matrix updated: role=%s old=%r new=%r",
            role.role_name, old_permission, role.permission,
        )
        return {"old": old_permission, "new": role.permission}

    @staticmethod
    async def delete_role(db: Session, invalidator: PermissionInvalidator, role_id: str) -> None:
        """Delete a role nobody holds."""
        role = RoleService.get_role(db, role_id)
        holders = _holders(db, role)
        if holders:
            raise ResourceConflictError(
                f"Role '{role.role_name}' is still assigned to {len(holders)} user(s)"
            )
        db.delete(role)
        db.commit()
        await invalidator.invalidate_all()

    @staticmethod
    async def assign_role(
        db: Session,
        invalidator: PermissionInvalidator,
        user_id: str,
        role_id: str,
    ) -> Dict[str, Any]:
        """Point a user's role code at ``role``.

        Only roles reachable through the fixed code table can be assigned;
        anything else would leave the user with a code that resolves to no role.
        """
        user = db.query(User).filter(User.id == user_id).first()
        if not user:
            raise ResourceNotFoundError(f"User {user_id} not found")
        role = RoleService.get_role(db, role_id)

        level = role_level(role.role_name)
        if level is None:
            raise ValidationError(f"Role '{role.role_name}' cannot be assigned to users")

        old_role = resolve_role_name(user.role).value
        user.role = level
        db.commit()

        await invalidator.invalidate(user.id)
        logger.info("User role assigned: user=%s old=%s new=%s", user.email, old_role, role.role_name)
        return {"user": user, "old_role": old_role, "new_role": role.role_name}

    @staticmethod
    def search_users(db: Session, query: str, limit: int = 10) -> List[Dict[str, Any]]:
        """Users whose email matches ``query``, with their current role name."""
        if not query or len(query) < 2:
            return []
        users = db.query(User).filter(User.email.ilike(f"%{query}%")).limit(limit).all()
        return [
            {
                "id": user.id,
                "email": user.email,
                "role": resolve_role_name(user.role).value,
                "is_active": user.is_active,
            }
            for user in users
        ]

    @staticmethod
    def role_stats(db: Session) -> List[Dict[str, Any]]:
        """Role distribution: holders and granted category digits per role."""
        distribution = []
        for role in db.query(Role).order_by(Role.role_id).all():
            granted = permission_codec.decode(role.permission)
            distribution.append({
                "id": role.id,
                "role_id": role.role_id,
                "role_name": role.role_name,
                "user_count": len(_holders(db, role)),
                "categories": [c.digit for c in permission_codec.members(granted)],
            })
        return distribution

    @staticmethod
    async def bulk(
        db: Session,
        invalidator: PermissionInvalidator,
        operation: str,
        role_ids: List[str],
    ) -> str:
        """Run a bulk role operation: ``delete_multiple`` or ``copy_permissions``."""
        if operation == "delete_multiple":
            remaining = db.query(Role).filter(Role.id.notin_(role_ids)).count()
            if remaining == 0:
                raise ValidationError("Cannot delete all roles")
            roles = db.query(Role).filter(Role.id.in_(role_ids)).all()
            referenced = [role.role_name for role in roles if _holders(db, role)]
            if referenced:
                raise ResourceConflictError(f"Roles still assigned to users: {', '.join(referenced)}")
            for role in roles:
                db.delete(role)
            db.commit()
            await invalidator.invalidate_all()
            return f"Deleted {len(roles)} role(s)"

        if operation == "copy_permissions":
            if len(role_ids) < 2:
                raise ValidationError("Need at least 2 roles for copy operation")
            source = RoleService.get_role(db, role_ids[0])
            canonical = permission_codec.encode(permission_codec.decode(source.permission))
            targets = db.query(Role).filter(Role.id.in_(role_ids[1:])).all()
            for role in targets:
                role.permission = canonical
            db.commit()
            await invalidator.invalidate_all()
            return f"Copied permissions to {len(targets)} role(s)"

        raise ValidationError(f"Invalid bulk operation: {operation}")


role_service = RoleService()
