"""Auth API router — login, register, refresh, logout, me."""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from tukin.db.session import get_db
from tukin.schemas.schemas import (
    LoginRequest, RegisterRequest, RefreshRequest, TokenResponse, MeOut, MessageResponse,
)
from tukin.core.security import Identity, TokenService
from tukin.services.auth_service import auth_service
from tukin.services.audit_service import audit_service
from tukin.services.authorization import AuthorizationEngine
from tukin.services.invalidation import PermissionInvalidator
from tukin.services.role_resolver import resolve_role_name
from tukin.api.deps import get_engine, get_identity, get_invalidator, get_token_service

router = APIRouter(prefix="/auth", tags=["auth"])


def _set_session_token(request: Request, token) -> None:
    session = request.scope.get("session")
    if session is None:
        return
    if token is None:
        session.pop("token", None)
    else:
        session["token"] = token


@router.post("/login", response_model=TokenResponse)
async def login(
    body: LoginRequest,
    request: Request,
    db: Session = Depends(get_db),
    tokens: TokenService = Depends(get_token_service),
):
    """Authenticate and return JWT tokens."""
    result = auth_service.authenticate(db, tokens, body.email, body.password)
    _set_session_token(request, result["access_token"])
    audit_service.record_request(
        db, request,
        actor=Identity(user_id=result["user"]["id"], email=body.email),
        action="user.login",
        resource_type="user",
        resource_id=result["user"]["id"],
    )
    return result


@router.post("/register", response_model=MeOut, status_code=201)
async def register(
    body: RegisterRequest,
    request: Request,
    db: Session = Depends(get_db),
):
    """Register a new user with the default User role."""
    user = auth_service.create_user(db, body.email, body.password)
    audit_service.record_request(
        db, request,
        actor=Identity(user_id=user.id, email=user.email),
        action="user.registered",
        resource_type="user",
        resource_id=user.id,
    )
    return MeOut(
        id=user.id,
        email=user.email,
        role=resolve_role_name(user.role).value,
    )


@router.post("/refresh", response_model=TokenResponse)
async def refresh(
    body: RefreshRequest,
    request: Request,
    db: Session = Depends(get_db),
    tokens: TokenService = Depends(get_token_service),
):
    """Refresh access token and rotate the refresh token."""
    result = auth_service.refresh_access_token(db, tokens, body.refresh_token)
    _set_session_token(request, result["access_token"])
    return result


@router.post("/logout", response_model=MessageResponse)
async def logout(
    request: Request,
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_identity),
    invalidator: PermissionInvalidator = Depends(get_invalidator),
):
    """Revoke the refresh token and drop cached permissions."""
    auth_service.logout(db, identity.user_id)
    await invalidator.invalidate(identity.user_id)
    _set_session_token(request, None)
    return MessageResponse(message="Logged out successfully")


@router.get("/me", response_model=MeOut)
async def get_me(
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_identity),
    engine: AuthorizationEngine = Depends(get_engine),
):
    """Current user profile with derived permissions."""
    permissions = await engine.get_permissions(identity)
    user = auth_service.get_user(db, identity.user_id)
    return MeOut(
        id=user.id,
        email=user.email,
        role=resolve_role_name(user.role).value,
        permissions=permissions,
    )
