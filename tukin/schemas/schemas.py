"""Pydantic schemas for API request/response serialization."""

from pydantic import BaseModel, Field, model_validator
from typing import Optional, List, Dict, Any
from datetime import datetime


# ---- Common ----
class MessageResponse(BaseModel):
    success: bool = True
    message: str

class ErrorResponse(BaseModel):
    success: bool = False
    message: str
    code: str
    detail: Optional[str] = None
    missing: Optional[List[str]] = None


# ---- Auth ----
class LoginRequest(BaseModel):
    email: str = Field(..., min_length=4)
    password: str = Field(..., min_length=4)

class RegisterRequest(BaseModel):
    email: str = Field(..., min_length=4)
    password: str = Field(..., min_length=6)

class TokenResponse(BaseModel):
    access_token: str
    refresh_token: Optional[str] = None
    token_type: str = "bearer"
    user: Optional[Dict[str, Any]] = None

class RefreshRequest(BaseModel):
    refresh_token: str


# ---- User ----
class MeOut(BaseModel):
    id: str
    email: str
    role: str
    permissions: List[str] = []


# ---- Role ----
class RoleCreate(BaseModel):
    role_name: str = Field(..., min_length=1, max_length=50)
    role_id: int = Field(..., ge=0)
    categories: List[str] = []
    description: Optional[str] = None

class RoleUpdate(BaseModel):
    role_name: Optional[str] = Field(None, min_length=1, max_length=50)
    role_id: Optional[int] = Field(None, ge=0)
    categories: Optional[List[str]] = None
    description: Optional[str] = None

class RoleOut(BaseModel):
    id: str
    role_name: str
    role_id: int
    permission: str
    description: Optional[str] = None
    user_count: Optional[int] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


# ---- RBAC ----
class PermissionUpdateRequest(BaseModel):
    """Either the category digits to grant, or a raw encoded string."""
    categories: Optional[List[str]] = None
    encoded: Optional[str] = None

    @model_validator(mode="after")
    def exactly_one(self):
        if (self.categories is None) == (self.encoded is None):
            raise ValueError("Provide exactly one of 'categories' or 'encoded'")
        return self

class AssignRoleRequest(BaseModel):
    user_id: str
    role_id: str

class BulkRoleRequest(BaseModel):
    operation: str
    role_ids: List[str] = Field(..., min_length=1)


# ---- Audit ----
class AuditLogOut(BaseModel):
    id: int
    actor_id: Optional[str] = None
    actor_email: Optional[str] = None
    action: str
    resource_type: str
    resource_id: Optional[str] = None
    old_value_json: Optional[str] = None
    new_value_json: Optional[str] = None
    ip_address: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True
