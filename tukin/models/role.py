"""Role model for RBAC."""

import uuid

from sqlalchemy import Column, Integer, String, Text, DateTime, func
from tukin.db.base import Base


class Role(Base):
    """Named role holding a canonical permission-category string."""
    __tablename__ = "roles"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    role_name = Column(String(50), unique=True, nullable=False, index=True)
    role_id = Column(Integer, nullable=False, index=True)
    permission = Column(String(10), nullable=False, default="")  # e.g. "24"
    description = Column(Text, nullable=True)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now(), nullable=False)
