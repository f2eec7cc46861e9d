"""
Bearer token verification.

Tokens are issued by the external login service as HS256 JWTs carrying the
user id in ``userId`` (or the standard ``sub`` claim). This module only
verifies them.
"""

from __future__ import annotations

from dataclasses import dataclass

import jwt

from advisor.config import Settings
from advisor.core import AuthError, ErrorCode


@dataclass(frozen=True)
class TokenClaims:
    """Verified identity extracted from a bearer token."""

    user_id: str


class TokenVerifier:
    """Verify bearer tokens and extract the user id."""

    def __init__(self, secret: str, algorithm: str = "HS256", issuer: str | None = None):
        self.secret = secret
        self.algorithm = algorithm
        self.issuer = issuer or None

    @classmethod
    def from_settings(cls, settings: Settings) -> "TokenVerifier":
        return cls(
            secret=settings.jwt_secret,
            algorithm=settings.jwt_algorithm,
            issuer=settings.jwt_issuer,
        )

    def verify(self, token: str | None) -> TokenClaims:
        """
        Decode and validate ``token``.

        Raises:
            AuthError: If the token is missing, expired, or invalid.
        """
        if not token:
            raise AuthError("Please provide a valid token")
        try:
            payload = jwt.decode(
                token,
                self.secret,
                algorithms=[self.algorithm],
                issuer=self.issuer,
                options={"require": ["exp"]},
            )
        except jwt.ExpiredSignatureError as exc:
            raise AuthError("Token expired", code=ErrorCode.TOKEN_EXPIRED) from exc
        except jwt.PyJWTError as exc:
            raise AuthError("Please provide a valid token") from exc

        user_id = payload.get("userId") or payload.get("sub")
        if not user_id or not isinstance(user_id, str):
            raise AuthError("Please provide a valid token")
        return TokenClaims(user_id=user_id)
