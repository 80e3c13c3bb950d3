"""JWT identity verification and password hashing helpers.

Access and refresh tokens are signed with different secrets and carry a
``type`` claim; each verifier checks both, so an access token can never pass
as a refresh token or the other way round.
"""

import bcrypt
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Request
from fastapi.security import HTTPAuthorizationCredentials
from jose import ExpiredSignatureError, JWTError, jwt

from tukin.core.config import Settings
from tukin.core.exceptions import AuthenticationRequired, ConfigurationError

ACCESS = "access"
REFRESH = "refresh"


def hash_password(password: str) -> str:
    """Hash a password using bcrypt."""
    pwd_bytes = password.encode("utf-8")
    salt = bcrypt.gensalt()
    hashed = bcrypt.hashpw(pwd_bytes, salt)
    return hashed.decode("utf-8")


def verify_password(plain_password: str, hashed_password: Optional[str]) -> bool:
    """Verify a password against its hash. A missing hash never verifies."""
    if not hashed_password:
        return False
    pwd_bytes = plain_password.encode("utf-8")
    hashed_bytes = hashed_password.encode("utf-8")
    try:
        return bcrypt.checkpw(pwd_bytes, hashed_bytes)
    except ValueError:
        return False


@dataclass(frozen=True)
class Identity:
    """Verified identity claim extracted from a token."""
    user_id: str
    email: str


class TokenService:
    """Issues and verifies access/refresh tokens."""

    def __init__(
        self,
        access_secret: str,
        refresh_secret: str,
        algorithm: str = "HS256",
        access_ttl: timedelta = timedelta(minutes=15),
        refresh_ttl: timedelta = timedelta(days=7),
    ):
        if not access_secret or not refresh_secret:
            raise ConfigurationError("ACCESS_SECRET_KEY and REFRESH_SECRET_KEY must be set")
        if access_secret == refresh_secret:
            raise ConfigurationError("Access and refresh tokens must use different secrets")
        self._secrets = {ACCESS: access_secret, REFRESH: refresh_secret}
        self._ttls = {ACCESS: access_ttl, REFRESH: refresh_ttl}
        self.algorithm = algorithm

    @classmethod
    def from_settings(cls, settings: Settings) -> "TokenService":
        return cls(
            access_secret=settings.ACCESS_SECRET_KEY,
            refresh_secret=settings.REFRESH_SECRET_KEY,
            algorithm=settings.JWT_ALGORITHM,
            access_ttl=timedelta(minutes=settings.ACCESS_TOKEN_EXPIRY_MINUTES),
            refresh_ttl=timedelta(days=settings.REFRESH_TOKEN_EXPIRY_DAYS),
        )

    def _create(self, token_type: str, user_id: str, email: str,
                expires_delta: Optional[timedelta] = None) -> str:
        now = datetime.now(timezone.utc)
        to_encode = {
            "sub": str(user_id),
            "email": email,
            "type": token_type,
            "iat": now,
            "exp": now + (expires_delta if expires_delta is not None else self._ttls[token_type]),
        }
        return jwt.encode(to_encode, self._secrets[token_type], algorithm=self.algorithm)

    def create_access_token(self, user_id: str, email: str,
                            expires_delta: Optional[timedelta] = None) -> str:
        """Create a short-lived access token."""
        return self._create(ACCESS, user_id, email, expires_delta)

    def create_refresh_token(self, user_id: str, email: str,
                             expires_delta: Optional[timedelta] = None) -> str:
        """Create a long-lived refresh token."""
        return self._create(REFRESH, user_id, email, expires_delta)

    def _verify(self, token: str, token_type: str) -> Identity:
        try:
            payload = jwt.decode(token, self._secrets[token_type], algorithms=[self.algorithm])
        except ExpiredSignatureError:
            raise AuthenticationRequired("Token expired")
        except JWTError:
            raise AuthenticationRequired("Invalid authentication token")

        if payload.get("type") != token_type:
            raise AuthenticationRequired("Invalid token type")
        user_id = payload.get("sub")
        if not user_id:
            raise AuthenticationRequired("Invalid token payload")
        return Identity(user_id=str(user_id), email=payload.get("email") or "")

    def verify_access_token(self, token: str) -> Identity:
        """Verify an access token and return the identity it carries."""
        return self._verify(token, ACCESS)

    def verify_refresh_token(self, token: str) -> Identity:
        """Verify a refresh token and return the identity it carries."""
        return self._verify(token, REFRESH)


def extract_token(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = None,
) -> Optional[str]:
    """Pull the bearer token from the session, then the Authorization header.

    The session is only consulted when a session middleware populated it.
    """
    session = request.scope.get("session")
    if session and session.get("token"):
        return session["token"]
    if credentials is not None and credentials.scheme.lower() == "bearer":
        return credentials.credentials
    return None
