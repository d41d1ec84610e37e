"""Common Pydantic schemas shared across the API."""

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel


class ErrorResponse(BaseModel):
    """Error envelope rendered by the exception handlers."""

    error_code: str
    message: str
    details: Any | None = None


def to_naive_utc(value: datetime | None) -> datetime | None:
    """Timestamps are stored as naive UTC; convert aware input on the way in."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)
