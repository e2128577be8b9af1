"""Deadline helper for network suspension points."""

from __future__ import annotations

import asyncio
from typing import Awaitable, Optional, TypeVar

from safevk.core.errors import TransientError

T = TypeVar("T")


async def with_deadline(awaitable: Awaitable[T], timeout: Optional[float], what: str) -> T:
    """Await ``awaitable``; an overrun is reported as a recoverable ``TransientError``."""

    if timeout is None:
        return await awaitable
    try:
        return await asyncio.wait_for(awaitable, timeout)
    except asyncio.TimeoutError as exc:
        raise TransientError(f"{what} timed out after {timeout:g}s") from exc
