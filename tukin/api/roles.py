"""Roles API router."""

from typing import List

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from tukin.db.session import get_db
from tukin.schemas.schemas import RoleCreate, RoleUpdate, RoleOut, MessageResponse
from tukin.core.security import Identity
from tukin.services.audit_service import audit_service
from tukin.services.invalidation import PermissionInvalidator
from tukin.services.role_service import role_service
from tukin.api.deps import IsRole, RequirePermission, get_invalidator

router = APIRouter(prefix="/roles", tags=["roles"])


def _role_out(role, user_count=None) -> RoleOut:
    out = RoleOut.model_validate(role)
    out.user_count = user_count
    return out


@router.get("", response_model=List[RoleOut])
async def list_roles(
    db: Session = Depends(get_db),
    identity: Identity = Depends(IsRole("3")),
):
    """List roles with holder counts."""
    return [_role_out(row["role"], row["user_count"]) for row in role_service.list_roles(db)]


@router.post("", response_model=RoleOut, status_code=201)
async def create_role(
    body: RoleCreate,
    request: Request,
    db: Session = Depends(get_db),
    identity: Identity = Depends(RequirePermission("roles.create")),
    invalidator: PermissionInvalidator = Depends(get_invalidator),
):
    """Create a role from category digits."""
    role = await role_service.create_role(
        db, invalidator, body.role_name, body.role_id, body.categories, body.description,
    )
    audit_service.record_request(
        db, request, identity,
        action="role.created",
        resource_type="role",
        resource_id=role.id,
        new_value={"role_name": role.role_name, "permission": role.permission},
    )
    return _role_out(role)


@router.put("/{role_id}", response_model=RoleOut)
async def update_role(
    role_id: str,
    body: RoleUpdate,
    request: Request,
    db: Session = Depends(get_db),
    identity: Identity = Depends(RequirePermission("roles.update")),
    invalidator: PermissionInvalidator = Depends(get_invalidator),
):
    """Update a role's name, code, description or categories."""
    before = role_service.get_role(db, role_id)
    old_value = {"role_name": before.role_name, "role_id": before.role_id, "permission": before.permission}
    role = await role_service.update_role(
        db, invalidator, role_id,
        role_name=body.role_name,
        numeric_id=body.role_id,
        description=body.description,
        categories=body.categories,
    )
    audit_service.record_request(
        db, request, identity,
        action="role.updated",
        resource_type="role",
        resource_id=role.id,
        old_value=old_value,
        new_value={"role_name": role.role_name, "role_id": role.role_id, "permission": role.permission},
    )
    return _role_out(role)


@router.delete("/{role_id}", response_model=MessageResponse)
async def delete_role(
    role_id: str,
    request: Request,
    db: Session = Depends(get_db),
    identity: Identity = Depends(RequirePermission("roles.delete")),
    invalidator: PermissionInvalidator = Depends(get_invalidator),
):
    """Delete a role that no user holds."""
    role = role_service.get_role(db, role_id)
    role_name = role.role_name
    await role_service.delete_role(db, invalidator, role_id)
    audit_service.record_request(
        db, request, identity,
        action="role.deleted",
        resource_type="role",
        resource_id=role_id,
        old_value={"role_name": role_name},
    )
    return MessageResponse(message=f"Role '{role_name}' deleted")
