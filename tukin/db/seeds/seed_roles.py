"""Seed default roles into the database."""

from sqlalchemy.orm import Session

from tukin.models.role import Role
from tukin.services import permission_codec
from tukin.services.permission_codec import PermissionCategory


def seed_roles(db: Session) -> None:
    """Insert the three fixed roles if they don't already exist."""
    roles_data = [
        {
            "role_name": "Administrator",
            "role_id": 1,
            "description": "Full access: content, categories, roles and users",
            "permission": permission_codec.encode([
                PermissionCategory.CONTENT, PermissionCategory.TAXONOMY,
                PermissionCategory.ROLES, PermissionCategory.USERS,
            ]),
        },
        {
            "role_name": "Manager",
            "role_id": 2,
            "description": "Manage categories, staff and users",
            "permission": permission_codec.encode([
                PermissionCategory.TAXONOMY, PermissionCategory.USERS,
            ]),
        },
        {
            "role_name": "User",
            "role_id": 3,
            "description": "Manage content only",
            "permission": permission_codec.encode([PermissionCategory.CONTENT]),
        },
    ]

    for role_data in roles_data:
        existing = db.query(Role).filter(Role.role_name == role_data["role_name"]).first()
        if not existing:
            db.add(Role(**role_data))

    db.commit()
    print(f"✅ Seeded {len(roles_data)} roles")
