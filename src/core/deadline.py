"""Deadlines for domain operations."""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from core.exceptions import OperationTimeoutError


@asynccontextmanager
async def deadline(seconds: float | None, operation: str) -> AsyncIterator[None]:
    """Bound the enclosed block to ``seconds``.

    Expiry surfaces as OperationTimeoutError (a TransientError), so callers can
    tell "retry safe" apart from definitive domain errors. ``None`` disables
    the bound.
    """
    try:
        async with asyncio.timeout(seconds):
            yield
    except TimeoutError as exc:
        raise OperationTimeoutError(operation, seconds or 0.0) from exc
