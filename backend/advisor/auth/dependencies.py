"""
FastAPI dependencies for authentication.

These dependencies are used to protect routes and build the caller's
``RequestContext`` from the bearer token.
"""

from typing import Annotated

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from advisor.auth.context import RequestContext
from advisor.auth.tokens import TokenVerifier
from advisor.config import get_settings
from advisor.core import request_id_ctx

bearer_scheme = HTTPBearer(auto_error=False)


def get_token_verifier(request: Request) -> TokenVerifier:
    """Return the verifier built at startup, creating one lazily if absent."""
    verifier = getattr(request.app.state, "token_verifier", None)
    if verifier is None:
        verifier = TokenVerifier.from_settings(get_settings())
        request.app.state.token_verifier = verifier
    return verifier


async def require_auth(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
    verifier: Annotated[TokenVerifier, Depends(get_token_verifier)],
) -> RequestContext:
    """
    Require a valid bearer token.

    Returns:
        RequestContext for the authenticated user.

    Raises:
        AuthError: If the token is missing or invalid.
    """
    token = credentials.credentials if credentials else None
    claims = verifier.verify(token)
    return RequestContext(user_id=claims.user_id, request_id=request_id_ctx.get())


# Type alias for cleaner dependency injection
RequireAuth = Annotated[RequestContext, Depends(require_auth)]
