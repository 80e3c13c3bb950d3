"""Audit service — append-only trail of role, permission and session events."""

import json
import logging
from typing import Any, Dict, Optional, Tuple

from fastapi import Request
from sqlalchemy.orm import Session

from tukin.core.security import Identity
from tukin.models.audit_log import AuditLog

logger = logging.getLogger("tukin.audit")


def _changed(old: Any, new: Any) -> Tuple[Any, Any]:
    """Reduce two snapshots to the keys whose value differs."""
    if not isinstance(old, dict) or not isinstance(new, dict):
        return old, new
    keys = [key for key in sorted(set(old) | set(new)) if old.get(key) != new.get(key)]
    return (
        {key: old[key] for key in keys if key in old},
        {key: new[key] for key in keys if key in new},
    )


def _dump(value: Any) -> Optional[str]:
    return json.dumps(value, default=str) if value is not None else None


def _client_ip(request: Request) -> Optional[str]:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None


class AuditService:
    """Writes and queries audit entries. Entries are never updated or deleted."""

    @staticmethod
    def record(
        db: Session,
        actor: Optional[Identity],
        action: str,
        resource_type: str,
        resource_id: Optional[str] = None,
        old_value: Optional[Any] = None,
        new_value: Optional[Any] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> AuditLog:
        """Write one entry and commit it straight away.

        Dict snapshots are trimmed to the fields that changed, so a role update
        that only touched the description does not repeat the permission string.
        """
        old_value, new_value = _changed(old_value, new_value)
        entry = AuditLog(
            actor_id=actor.user_id if actor else None,
            actor_email=actor.email if actor else None,
            action=action,
            resource_type=resource_type,
            resource_id=str(resource_id) if resource_id else None,
            old_value_json=_dump(old_value),
            new_value_json=_dump(new_value),
            ip_address=ip_address,
            user_agent=user_agent,
        )
        db.add(entry)
        db.commit()
        logger.info(
            "%s %s/%s by %s",
            action, resource_type, resource_id or "-", actor.user_id if actor else "anonymous",
        )
        return entry

    @staticmethod
    def record_request(
        db: Session,
        request: Request,
        actor: Optional[Identity],
        action: str,
        resource_type: str,
        resource_id: Optional[str] = None,
        old_value: Optional[Any] = None,
        new_value: Optional[Any] = None,
    ) -> AuditLog:
        """Record an entry for the current request.

        Without an explicit actor, the identity verified for this request is used.
        """
        return AuditService.record(
            db,
            actor or getattr(request.state, "identity", None),
            action,
            resource_type,
            resource_id=resource_id,
            old_value=old_value,
            new_value=new_value,
            ip_address=_client_ip(request),
            user_agent=request.headers.get("user-agent", "")[:500],
        )

    @staticmethod
    def query_logs(
        db: Session,
        actor_id: Optional[str] = None,
        action: Optional[str] = None,
        resource_type: Optional[str] = None,
        resource_id: Optional[str] = None,
        page: int = 1,
        page_size: int = 50,
    ) -> Dict[str, Any]:
        """Newest entries first, filtered and paginated."""
        query = db.query(AuditLog)
        if actor_id:
            query = query.filter(AuditLog.actor_id == actor_id)
        if action:
            query = query.filter(AuditLog.action.ilike(f"%{action}%"))
        if resource_type:
            query = query.filter(AuditLog.resource_type == resource_type)
        if resource_id:
            query = query.filter(AuditLog.resource_id == resource_id)

        total = query.count()
        logs = (
            query.order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
            .all()
        )
        return {"logs": logs, "total": total, "page": page, "page_size": page_size}


audit_service = AuditService()
