"""Authentication provider protocol."""

from dataclasses import dataclass
from typing import Optional, Protocol
from uuid import UUID


@dataclass(frozen=True)
class TokenUser:
    """The caller identified by a bearer token."""

    id: UUID
    email: Optional[str] = None
    display_name: Optional[str] = None


class IAuthProvider(Protocol):
    """Protocol for authentication providers."""

    async def validate_token(self, token: str) -> Optional[TokenUser]:
        """Return the token's user, or None when the token is invalid or expired."""
        ...

    def create_token(self, user: TokenUser) -> str:
        """Issue a token for ``user``."""
        ...
