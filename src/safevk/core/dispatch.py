"""Core dispatch pipeline.

This module is backend-agnostic. It resolves an update to a route, lets the
route's service extract and invoke, and confines per-update failures so the
polling loop never sees them.
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Any, Callable, List, Mapping, Optional, Sequence

from safevk.core.errors import DispatchError
from safevk.core.models import Update
from safevk.core.ports import ApiClientPort
from safevk.core.routing import Router
from safevk.core.timeouts import with_deadline

LOGGER = logging.getLogger(__name__)

ErrorHook = Callable[[Update, DispatchError], None]


class DispatchOutcome(Enum):
    HANDLED = "handled"
    IGNORED = "ignored"
    FAILED = "failed"


def log_dispatch_error(update: Update, error: DispatchError) -> None:
    """Default observability hook: log the failure with its traceback."""

    LOGGER.error(
        "Dispatch failed for %r (event %s): %s",
        update.command,
        update.event_id,
        error,
        exc_info=error,
    )


class DeadlineApi:
    """Bounds every outbound call of a wrapped client by ``timeout`` seconds."""

    def __init__(self, api: ApiClientPort, timeout: Optional[float]) -> None:
        self._api = api
        self._timeout = timeout

    async def call(self, method: str, params: Optional[Mapping[str, Any]] = None) -> Mapping[str, Any]:
        return await with_deadline(self._api.call(method, params), self._timeout, method)


class Dispatcher:
    """Routes updates to handlers: resolve, extract, invoke."""

    def __init__(
        self,
        router: Router,
        api: ApiClientPort,
        *,
        concurrency: int = 1,
        on_error: Optional[ErrorHook] = None,
        timeout: Optional[float] = None,
    ) -> None:
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self._router = router
        self._api: ApiClientPort = DeadlineApi(api, timeout) if timeout is not None else api
        self._concurrency = concurrency
        self._on_error = on_error or log_dispatch_error

    async def dispatch(self, update: Update) -> DispatchOutcome:
        """Process one update. Per-update failures are reported, never raised."""

        route = self._router.resolve(update)
        if route is None:
            LOGGER.debug("No route for %r, update ignored", update.command)
            return DispatchOutcome.IGNORED

        try:
            await route.service.call(update, self._api)
        except DispatchError as exc:
            self._report(update, exc)
            return DispatchOutcome.FAILED
        return DispatchOutcome.HANDLED

    async def dispatch_batch(self, updates: Sequence[Update]) -> List[DispatchOutcome]:
        """Dispatch a whole batch; returns once every update has been handled."""

        if self._concurrency == 1 or len(updates) < 2:
            return [await self.dispatch(update) for update in updates]

        semaphore = asyncio.Semaphore(self._concurrency)

        async def _bounded(update: Update) -> DispatchOutcome:
            async with semaphore:
                return await self.dispatch(update)

        return list(await asyncio.gather(*(_bounded(update) for update in updates)))

    def _report(self, update: Update, error: DispatchError) -> None:
        try:
            self._on_error(update, error)
        except Exception:
            LOGGER.exception("Error hook raised while reporting %r", update.command)
