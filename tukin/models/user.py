"""User model."""

import uuid

from sqlalchemy import Column, Integer, String, Boolean, DateTime, func
from tukin.db.base import Base


class User(Base):
    """Platform user. ``role`` is the fixed 1/2/3 code, not a foreign key."""
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    email = Column(String(255), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=True)
    role = Column(Integer, nullable=False, default=3)
    is_active = Column(Boolean, default=True, nullable=False)
    refresh_token = Column(String(1000), nullable=True)
    reset_token = Column(String(255), nullable=True)
    reset_token_expiry = Column(DateTime, nullable=True)
    must_reset_password = Column(Boolean, default=False, nullable=False)
    last_login_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now(), nullable=False)
