"""Auth service: JWT login, refresh rotation, logout, user lookup."""

import hmac
from datetime import datetime, timezone
from typing import Dict, Any

from sqlalchemy.orm import Session

from tukin.models.user import User
from tukin.core.security import TokenService, hash_password, verify_password
from tukin.core.exceptions import (
    AuthenticationRequired,
    ResourceConflictError,
    ResourceNotFoundError,
)
from tukin.services.role_resolver import resolve_role_name


class AuthService:
    """Handles authentication and user bookkeeping."""

    @staticmethod
    def authenticate(db: Session, tokens: TokenService, email: str, password: str) -> Dict[str, Any]:
        """Authenticate user and return JWT tokens.

        Raises:
            AuthenticationRequired: If credentials are invalid, the account is
                inactive, or a password reset is pending.
        """
        user = db.query(User).filter(User.email == email).first()
        if not user or not verify_password(password, user.password_hash):
            raise AuthenticationRequired("Invalid email or password")

        if not user.is_active:
            raise AuthenticationRequired("Account is deactivated")

        if user.must_reset_password:
            raise AuthenticationRequired("Password reset required")

        access_token = tokens.create_access_token(user.id, user.email)
        refresh_token = tokens.create_refresh_token(user.id, user.email)

        user.refresh_token = refresh_token
        user.last_login_at = datetime.now(timezone.utc)
        db.commit()

        return {
            "access_token": access_token,
            "refresh_token": refresh_token,
            "token_type": "bearer",
            "user": {
                "id": user.id,
                "email": user.email,
                "role": resolve_role_name(user.role).value,
            },
        }

    @staticmethod
    def refresh_access_token(db: Session, tokens: TokenService, refresh_token: str) -> Dict[str, Any]:
        """Issue a new access token and rotate the refresh token.

        The refresh token must verify with the refresh secret and match the
        one stored for the user; a replayed, rotated-out token is rejected.
        """
        identity = tokens.verify_refresh_token(refresh_token)

        user = db.query(User).filter(User.id == identity.user_id).first()
        if not user or not user.is_active:
            raise AuthenticationRequired("User not found or deactivated")

        if not user.refresh_token or not hmac.compare_digest(user.refresh_token, refresh_token):
            raise AuthenticationRequired("Invalid refresh token")

        new_refresh_token = tokens.create_refresh_token(user.id, user.email)
        user.refresh_token = new_refresh_token
        db.commit()

        return {
            "access_token": tokens.create_access_token(user.id, user.email),
            "refresh_token": new_refresh_token,
            "token_type": "bearer",
        }

    @staticmethod
    def logout(db: Session, user_id: str) -> None:
        """Revoke the user's refresh token."""
        db.query(User).filter(User.id == user_id).update({"refresh_token": None})
        db.commit()

    @staticmethod
    def create_user(db: Session, email: str, password: str, role: int = 3) -> User:
        """Create a new user."""
        existing = db.query(User).filter(User.email == email).first()
        if existing:
            raise ResourceConflictError(f"User with email {email} already exists")

        user = User(
            email=email,
            password_hash=hash_password(password),
            role=role,
            is_active=True,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    @staticmethod
    def get_user(db: Session, user_id: str) -> User:
        """Get a user by id."""
        user = db.query(User).filter(User.id == user_id).first()
        if not user:
            raise ResourceNotFoundError(f"User {user_id} not found")
        return user


auth_service = AuthService()
