"""RBAC control API router: permission matrix, assignment, audit trail and cache."""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from tukin.db.session import get_db
from tukin.schemas.schemas import (
    AssignRoleRequest, AuditLogOut, BulkRoleRequest, MessageResponse, PermissionUpdateRequest,
)
from tukin.core.security import Identity
from tukin.services import permission_codec
from tukin.services.audit_service import audit_service
from tukin.services.invalidation import PermissionInvalidator
from tukin.services.role_service import role_service
from tukin.api.deps import (
    RequireAllPermissions,
    RequireAnyPermission,
    RequirePermission,
    get_invalidator,
    require_administrator,
)

router = APIRouter(prefix="/rbac", tags=["rbac"])


@router.get("/permissions")
async def permission_matrix(
    db: Session = Depends(get_db),
    identity: Identity = Depends(RequirePermission("roles.read")),
):
    """Every role against every category, with the permissions each grants."""
    return {
        "categories": permission_codec.describe(permission_codec.EMPTY),
        "roles": [
            {
                "id": row["role"].id,
                "role_name": row["role"].role_name,
                "permission": row["role"].permission,
                "matrix": permission_codec.describe(permission_codec.decode(row["role"].permission)),
            }
            for row in role_service.list_roles(db)
        ],
    }


@router.put("/roles/{role_id}/permissions", response_model=MessageResponse)
async def update_permission_matrix(
    role_id: str,
    body: PermissionUpdateRequest,
    request: Request,
    db: Session = Depends(get_db),
    identity: Identity = Depends(RequirePermission("roles.update")),
    invalidator: PermissionInvalidator = Depends(get_invalidator),
):
    """Replace a role's granted categories."""
    change = await role_service.set_permissions(
        db, invalidator, role_id, categories=body.categories, encoded=body.encoded,
    )
    audit_service.record_request(
        db, request, identity,
        action="role.permissions_updated",
        resource_type="role",
        resource_id=role_id,
        old_value={"permission": change["old"]},
        new_value={"permission": change["new"]},
    )
    return MessageResponse(message="Permission updated successfully")


@router.post("/assign-role", response_model=MessageResponse)
async def assign_role(
    body: AssignRoleRequest,
    request: Request,
    db: Session = Depends(get_db),
    identity: Identity = Depends(RequireAllPermissions(["users.update", "roles.read"])),
    invalidator: PermissionInvalidator = Depends(get_invalidator),
):
    """Assign a role to a user."""
    result = await role_service.assign_role(db, invalidator, body.user_id, body.role_id)
    audit_service.record_request(
        db, request, identity,
        action="role.assigned",
        resource_type="user",
        resource_id=body.user_id,
        old_value={"role": result["old_role"]},
        new_value={"role": result["new_role"]},
    )
    return MessageResponse(
        message=f"Role '{result['new_role']}' assigned to user '{result['user'].email}' successfully"
    )


@router.get("/users/search")
async def search_users(
    query: str = Query(""),
    limit: int = Query(10, ge=1, le=50),
    db: Session = Depends(get_db),
    identity: Identity = Depends(RequirePermission("users.read")),
):
    """Search users by email for role assignment."""
    return {"success": True, "users": role_service.search_users(db, query, limit)}


@router.get("/stats")
async def role_stats(
    db: Session = Depends(get_db),
    identity: Identity = Depends(RequireAnyPermission(["roles.read", "users.read"])),
):
    """Role distribution statistics."""
    return {"success": True, "distribution": role_service.role_stats(db)}


@router.post("/bulk", response_model=MessageResponse)
async def bulk_role_operations(
    body: BulkRoleRequest,
    request: Request,
    db: Session = Depends(get_db),
    identity: Identity = Depends(RequireAllPermissions(["roles.update", "roles.delete"])),
    invalidator: PermissionInvalidator = Depends(get_invalidator),
):
    """Bulk role operations: delete_multiple, copy_permissions."""
    message = await role_service.bulk(db, invalidator, body.operation, body.role_ids)
    audit_service.record_request(
        db, request, identity,
        action=f"role.bulk_{body.operation}",
        resource_type="role",
        new_value={"role_ids": body.role_ids},
    )
    return MessageResponse(message=message)


@router.get("/audit")
async def get_audit_trail(
    action: Optional[str] = Query(None),
    resource_type: Optional[str] = Query(None),
    actor_id: Optional[str] = Query(None),
    resource_id: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=200),
    db: Session = Depends(get_db),
    identity: Identity = Depends(RequirePermission("roles.read")),
):
    """Query the RBAC audit trail."""
    result = audit_service.query_logs(db, actor_id, action, resource_type, resource_id, page, page_size)
    return {
        "logs": [AuditLogOut.model_validate(log) for log in result["logs"]],
        "total": result["total"],
        "page": result["page"],
    }


@router.get("/cache/stats")
async def cache_stats(
    request: Request,
    identity: Identity = Depends(require_administrator),
):
    """Permission cache statistics for this instance."""
    return request.app.state.permission_cache.stats()


@router.post("/cache/clear", response_model=MessageResponse)
async def clear_cache(
    identity: Identity = Depends(require_administrator),
    invalidator: PermissionInvalidator = Depends(get_invalidator),
):
    """Drop every cached permission list (and on peers when broadcasting)."""
    await invalidator.invalidate_all()
    return MessageResponse(message="Permission cache cleared")
