"""Import all models so metadata.create_all sees them."""

from tukin.models.role import Role
from tukin.models.user import User
from tukin.models.audit_log import AuditLog

__all__ = ["Role", "User", "AuditLog"]
