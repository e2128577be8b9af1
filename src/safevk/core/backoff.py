"""Exponential backoff with a retry ceiling."""

from __future__ import annotations

from typing import Optional

from safevk.core.config import PollingConfig


class Backoff:
    """Delay schedule ``base * factor**attempt`` capped at ``max_delay``.

    ``next_delay`` returns None once ``max_retries`` delays were handed out;
    ``reset`` starts over after the loop recovers.
    """

    def __init__(self, base: float, factor: float, max_delay: float, max_retries: int) -> None:
        self._base = base
        self._factor = factor
        self._max_delay = max_delay
        self._max_retries = max_retries
        self._attempts = 0

    @classmethod
    def from_config(cls, config: PollingConfig) -> "Backoff":
        return cls(
            base=config.backoff_base,
            factor=config.backoff_factor,
            max_delay=config.backoff_max,
            max_retries=config.max_retries,
        )

    @property
    def attempts(self) -> int:
        return self._attempts

    def next_delay(self) -> Optional[float]:
        if self._attempts >= self._max_retries:
            return None
        delay = min(self._base * self._factor**self._attempts, self._max_delay)
        self._attempts += 1
        return delay

    def reset(self) -> None:
        self._attempts = 0
