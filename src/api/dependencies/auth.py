"""Bearer-token authentication for route handlers."""

from functools import lru_cache
from typing import Annotated

import structlog
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from core.exceptions import AuthenticationError, ErrorCode
from infrastructure.auth.jwt_provider import JWTAuthProvider
from infrastructure.auth.provider import TokenUser

bearer_scheme = HTTPBearer(auto_error=False, description="HS256 JWT; `sub` is the user id")


@lru_cache
def get_auth_provider() -> JWTAuthProvider:
    """Shared auth provider configured from settings."""
    return JWTAuthProvider()


async def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
    auth_provider: Annotated[JWTAuthProvider, Depends(get_auth_provider)],
) -> TokenUser:
    """Resolve the caller from the Authorization header.

    The user id is bound to the logging context for the rest of the request.

    Raises:
        AuthenticationError: header missing, or token invalid/expired
    """
    if credentials is None:
        raise AuthenticationError(
            message="Authorization header required",
            error_code=ErrorCode.UNAUTHORIZED,
        )

    user = await auth_provider.validate_token(credentials.credentials)
    if user is None:
        raise AuthenticationError(
            message="Invalid or expired token",
            error_code=ErrorCode.INVALID_TOKEN,
        )

    structlog.contextvars.bind_contextvars(user_id=str(user.id))
    return user


CurrentUser = Annotated[TokenUser, Depends(get_current_user)]
