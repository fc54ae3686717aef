"""
Bearer token authentication for the FastAPI API.

A single client identity is configured; presenting it to the auth endpoint
yields a short-lived signed token that every other endpoint requires.
"""

import hmac
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
import structlog
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from books_api.config import APIConfig, config

logger = structlog.get_logger(__name__)

# Security scheme; missing credentials are reported by verify_token itself.
security = HTTPBearer(auto_error=False)


class InvalidCredentialsError(Exception):
    """Raised when a client presents an identity that is not configured."""


class InvalidTokenError(Exception):
    """Raised when a token fails signature, expiry or claim checks."""


@dataclass(frozen=True)
class TokenIdentity:
    """Identity embedded in a verified token."""
    subject: str
    expires_at: datetime


class TokenAuthenticator:
    """Issues and verifies signed bearer tokens."""

    def __init__(
        self,
        secret: str,
        client_id: str,
        algorithm: str = "HS256",
        expire_minutes: int = 60,
    ):
        self.secret = secret
        self.client_id = client_id
        self.algorithm = algorithm
        self.expire_minutes = expire_minutes

    @classmethod
    def from_config(cls, settings: APIConfig) -> "TokenAuthenticator":
        return cls(
            secret=settings.jwt_secret,
            client_id=settings.jwt_client_id,
            algorithm=settings.jwt_algorithm,
            expire_minutes=settings.jwt_expire_minutes,
        )

    def issue_token(self, client_id: Optional[str], now: Optional[datetime] = None) -> str:
        """
        Issue a token for the configured client identity.

        Args:
            client_id: Identity presented by the caller
            now: Issue time, defaults to the current UTC time

        Returns:
            Encoded token

        Raises:
            InvalidCredentialsError: If client_id does not match
        """
        if not client_id or not hmac.compare_digest(client_id.encode(), self.client_id.encode()):
            raise InvalidCredentialsError("Invalid credentials")

        now = now or datetime.now(timezone.utc)
        payload = {
            "sub": client_id,
            "iat": now,
            "exp": now + timedelta(minutes=self.expire_minutes),
        }
        return jwt.encode(payload, self.secret, algorithm=self.algorithm)

    def verify_token(self, token: str) -> TokenIdentity:
        """
        Verify a token and return the identity it carries.

        Raises:
            InvalidTokenError: If the token is malformed, tampered with or expired
        """
        try:
            payload = jwt.decode(
                token,
                self.secret,
                algorithms=[self.algorithm],
                options={"require": ["sub", "exp"]},
            )
        except jwt.PyJWTError as e:
            raise InvalidTokenError(str(e)) from e

        return TokenIdentity(
            subject=payload["sub"],
            expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
        )


def get_authenticator() -> TokenAuthenticator:
    """Authenticator built from the global configuration."""
    return TokenAuthenticator.from_config(config)


async def verify_token(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    authenticator: TokenAuthenticator = Depends(get_authenticator),
) -> TokenIdentity:
    """
    Verify the bearer token on a request.

    The identity is attached to ``request.state`` and bound into the log
    context for the rest of the request.

    Raises:
        HTTPException: 401 if no token is presented, 403 if it is invalid
    """
    if credentials is None or not credentials.credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="No token provided",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        identity = authenticator.verify_token(credentials.credentials)
    except InvalidTokenError as e:
        logger.warning("Invalid token presented", reason=str(e), path=request.url.path)
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid token",
        )

    request.state.identity = identity
    structlog.contextvars.bind_contextvars(client_id=identity.subject)
    return identity
