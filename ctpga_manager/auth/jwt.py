"""
JWT token handling for authentication.

This module provides functionality for:
- Creating JWT tokens carrying a ``{"user": {"id", "role"}}`` claim
- Validating JWT tokens
- Refreshing JWT tokens with identical claims and a fresh expiry
"""
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Union

import jwt
from fastapi import Depends
from jwt.exceptions import PyJWTError
from pydantic import BaseModel, ValidationError

from ctpga_manager.config import Settings, get_settings


class Principal(BaseModel):
    """Authenticated identity attached to a request."""
    id: Union[str, int]
    role: str


class TokenResponse(BaseModel):
    """Token response model."""
    token: str


class InvalidTokenError(Exception):
    """Raised when a token has a bad signature, is expired or is malformed."""


class SigningError(Exception):
    """Raised when a token cannot be signed, usually a configuration problem."""


class TokenIssuer:
    """
    Issues and verifies credential tokens.

    The secret, algorithm and lifetime are fixed at construction time so that
    every token handled by one issuer is signed and checked the same way.
    """

    def __init__(self, secret: str, algorithm: str = "HS256", expires_in: int = 3600):
        self.secret = secret
        self.algorithm = algorithm
        self.expires_in = expires_in

    @classmethod
    def from_settings(cls, settings: Settings) -> "TokenIssuer":
        return cls(
            secret=settings.jwt_secret,
            algorithm=settings.jwt_algorithm,
            expires_in=settings.jwt_expire,
        )

    def issue(self, principal: Principal) -> str:
        """
        Create a signed token for a principal.

        Args:
            principal: Identity and role to embed in the token

        Returns:
            Encoded JWT token string

        Raises:
            SigningError: If the token could not be signed
        """
        now = datetime.now(timezone.utc)
        payload: Dict[str, Any] = {
            "user": principal.model_dump(),
            "iat": now,
            "exp": now + timedelta(seconds=self.expires_in),
            # Two tokens issued within the same second must still differ
            "jti": uuid.uuid4().hex,
        }
        try:
            return jwt.encode(payload, self.secret, algorithm=self.algorithm)
        except (PyJWTError, NotImplementedError, TypeError, ValueError) as e:
            raise SigningError(str(e)) from e

    def verify(self, token: Any) -> Principal:
        """
        Verify a token and return the principal it carries.

        Args:
            token: JWT token string

        Returns:
            Principal decoded from the ``user`` claim

        Raises:
            InvalidTokenError: If the signature, expiry or payload is invalid
        """
        if not isinstance(token, str):
            raise InvalidTokenError("Token must be a string")

        try:
            payload = jwt.decode(
                token,
                self.secret,
                algorithms=[self.algorithm],
                options={"require": ["exp"]},
            )
        except PyJWTError as e:
            raise InvalidTokenError(str(e)) from e

        user = payload.get("user")
        if not isinstance(user, dict):
            raise InvalidTokenError("Token has no user claim")
        try:
            return Principal(id=user.get("id"), role=user.get("role"))
        except ValidationError as e:
            raise InvalidTokenError("Token user claim is malformed") from e

    def refresh(self, token: str) -> str:
        """
        Re-sign a still valid token with a fresh expiry.

        Expired tokens are rejected like any other invalid token.
        """
        return self.issue(self.verify(token))


def get_token_issuer(settings: Settings = Depends(get_settings)) -> TokenIssuer:
    """FastAPI dependency building the issuer from the configured settings."""
    return TokenIssuer.from_settings(settings)
