"""HS256 JWT authentication provider.

Token payload:
    {
        "sub": "user-uuid",
        "email": "user@example.com",      (optional)
        "name": "Display Name",           (optional)
        "iat": 1234567800,
        "exp": 1234567890
    }
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Optional
from uuid import UUID

import structlog
from jose import JWTError, jwt

from core.config import settings
from infrastructure.auth.provider import TokenUser

logger = structlog.get_logger()


class JWTAuthProvider:
    """Issues and validates shared-secret (HS256) JWTs."""

    def __init__(
        self,
        secret_key: str = settings.jwt_secret_key,
        algorithm: str = settings.jwt_algorithm,
        expire_minutes: int = settings.jwt_expire_minutes,
    ) -> None:
        self._secret_key = secret_key
        self._algorithm = algorithm
        self._expire_minutes = expire_minutes

    async def validate_token(self, token: str) -> Optional[TokenUser]:
        """Decode ``token``; None for a bad signature, expiry, or missing subject."""
        try:
            payload: dict[str, Any] = jwt.decode(
                token,
                self._secret_key,
                algorithms=[self._algorithm],
                options={"verify_aud": False},
            )
        except JWTError as exc:
            logger.debug("token_rejected", reason=str(exc))
            return None

        subject = payload.get("sub")
        if not subject:
            return None
        try:
            user_id = UUID(str(subject))
        except ValueError:
            logger.debug("token_rejected", reason="subject is not a UUID")
            return None

        return TokenUser(
            id=user_id,
            email=payload.get("email"),
            display_name=payload.get("name"),
        )

    def create_token(self, user: TokenUser) -> str:
        """Create a signed token for ``user`` (used by tests and local tooling)."""
        now = datetime.now(timezone.utc)
        payload: dict[str, Any] = {
            "sub": str(user.id),
            "iat": now,
            "exp": now + timedelta(minutes=self._expire_minutes),
        }
        if user.email:
            payload["email"] = user.email
        if user.display_name:
            payload["name"] = user.display_name

        return jwt.encode(payload, self._secret_key, algorithm=self._algorithm)
