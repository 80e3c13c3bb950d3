"""Audit log model."""

from sqlalchemy import Column, DateTime, Index, Integer, String, Text, func
from tukin.db.base import Base


class AuditLog(Base):
    """Who changed which role, permission or assignment, and from what to what.

    Rows are only ever inserted. ``actor_id`` is not a foreign key so entries
    survive the deletion of the acting user.
    """
    __tablename__ = "audit_logs"
    __table_args__ = (
        Index("ix_audit_logs_resource", "resource_type", "resource_id"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    actor_id = Column(String(36), nullable=True, index=True)
    actor_email = Column(String(255), nullable=True)
    action = Column(String(100), nullable=False, index=True)  # role.assigned, user.login, ...
    resource_type = Column(String(50), nullable=False)  # role | user
    resource_id = Column(String(100), nullable=True)
    old_value_json = Column(Text, nullable=True)  # changed fields only
    new_value_json = Column(Text, nullable=True)
    ip_address = Column(String(45), nullable=True)
    user_agent = Column(String(500), nullable=True)
    created_at = Column(DateTime, server_default=func.now(), nullable=False, index=True)
