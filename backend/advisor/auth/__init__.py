"""Authentication module: bearer token verification and request context."""

from advisor.auth.context import RequestContext
from advisor.auth.dependencies import RequireAuth, get_token_verifier, require_auth
from advisor.auth.tokens import TokenClaims, TokenVerifier

__all__ = [
    "RequestContext",
    "RequireAuth",
    "TokenClaims",
    "TokenVerifier",
    "get_token_verifier",
    "require_auth",
]
