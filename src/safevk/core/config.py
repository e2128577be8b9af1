"""Core configuration dataclasses.

We keep config parsing outside the core, but these dataclasses define the
shape the core expects so adapters and app layers can build safely.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class PollingConfig:
    """Settings for the polling loop and its dispatcher.

    ``request_timeout`` bounds every network suspension point (session
    acquisition, batch fetch, handler API calls) and must exceed the
    long-poll wait. ``None`` disables the deadline.
    """

    request_timeout: Optional[float] = 35.0
    concurrency: int = 1
    retry_on_startup: bool = False
    backoff_base: float = 1.0
    backoff_factor: float = 2.0
    backoff_max: float = 60.0
    max_retries: int = 5
    offset_key: str = "default"

    def __post_init__(self) -> None:
        if self.concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        if self.max_retries < 0:
            raise ValueError("max_retries must not be negative")
