"""Long-poll driver (core domain).

The loop is an explicit state machine:

- UNINITIALIZED: no session yet; acquiring one.
- ACTIVE: fetching batches and dispatching them through the router.
- DEGRADED: backing off after a transient or expiry error, then retrying the
  same session (transient) or acquiring a fresh one (expiry).
- STOPPED: ``stop()`` was observed; the last committed offset is kept.
- FAILED: a ``FatalError`` escaped ``run()``.

The offset only advances after a whole batch has been dispatched, which gives
at-least-once delivery: handlers must tolerate seeing an update twice.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Union

from safevk.core.backoff import Backoff
from safevk.core.config import PollingConfig
from safevk.core.dispatch import Dispatcher, ErrorHook
from safevk.core.errors import ExpiredError, FatalError, TransientError, TransportError
from safevk.core.models import PollingSession, UpdateBatch
from safevk.core.ports import ApiClientPort, BackendPort, OffsetStorePort
from safevk.core.routing import Router, SafeVk
from safevk.core.timeouts import with_deadline

LOGGER = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[Any]]

_STOPPED = object()


class LoopState(Enum):
    UNINITIALIZED = "uninitialized"
    ACTIVE = "active"
    DEGRADED = "degraded"
    STOPPED = "stopped"
    FAILED = "failed"


def as_router(bot: Union[SafeVk, Router]) -> Router:
    """Freeze a builder; routers pass through unchanged."""

    if isinstance(bot, SafeVk):
        return bot.freeze()
    return bot


class PollingLoop:
    """Drives session acquisition, batch fetches and dispatch."""

    def __init__(
        self,
        backend: BackendPort,
        router: Union[SafeVk, Router],
        config: Optional[PollingConfig] = None,
        *,
        api: Optional[ApiClientPort] = None,
        offset_store: Optional[OffsetStorePort] = None,
        on_error: Optional[ErrorHook] = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._backend = backend
        self._config = config or PollingConfig()
        self._dispatcher = Dispatcher(
            as_router(router),
            api if api is not None else backend,  # type: ignore[arg-type]
            concurrency=self._config.concurrency,
            on_error=on_error,
            timeout=self._config.request_timeout,
        )
        self._offset_store = offset_store
        self._sleep = sleep
        self._backoff = Backoff.from_config(self._config)
        self._stop = asyncio.Event()
        self._state = LoopState.UNINITIALIZED
        self.session: Optional[PollingSession] = None

    @property
    def state(self) -> LoopState:
        return self._state

    def stop(self) -> None:
        """Request shutdown; observed before the next fetch or while waiting."""

        self._stop.set()

    async def run(self) -> None:
        """Poll until ``stop()`` is called. Raises ``FatalError`` on unrecoverable failure."""

        try:
            await self._start()
            while self.session is not None and not self._stop.is_set():
                await self._step()
        except FatalError:
            self._state = LoopState.FAILED
            raise
        except Exception as exc:
            self._state = LoopState.FAILED
            raise FatalError(f"polling aborted by unexpected error: {exc!r}") from exc
        self._state = LoopState.STOPPED
        LOGGER.info(
            "Polling stopped at offset %s",
            self.session.offset if self.session is not None else None,
        )

    async def _start(self) -> None:
        try:
            session = await self._acquire()
        except (TransientError, ExpiredError) as exc:
            if not self._config.retry_on_startup:
                raise FatalError(f"cannot acquire a polling session: {exc}") from exc
            session = await self._reacquire(exc)
            if session is None:
                return

        stored = None
        if self._offset_store is not None:
            stored = self._offset_store.get_offset(self._config.offset_key)
        if stored is not None:
            LOGGER.info("Resuming from persisted offset %s", stored)
            session.offset = stored
        self.session = session
        self._backoff.reset()
        self._state = LoopState.ACTIVE

    async def _step(self) -> None:
        assert self.session is not None
        try:
            batch = await self._until_stopped(
                with_deadline(
                    self._backend.get_updates(self.session),
                    self._config.request_timeout,
                    "get_updates",
                )
            )
        except TransientError as exc:
            await self._back_off(exc)
            return
        except ExpiredError as exc:
            fresh = await self._reacquire(exc)
            if fresh is not None:
                self._renew(fresh, exc)
            return

        if batch is _STOPPED:
            return
        assert isinstance(batch, UpdateBatch)
        if batch.updates:
            LOGGER.debug("Dispatching %s updates", len(batch.updates))
            await self._dispatcher.dispatch_batch(batch.updates)
        self._commit(batch.offset)
        self._backoff.reset()
        self._state = LoopState.ACTIVE

    async def _acquire(self) -> PollingSession:
        session = await with_deadline(
            self._backend.get_polling_session(),
            self._config.request_timeout,
            "get_polling_session",
        )
        LOGGER.info("Acquired polling session on %s (offset %s)", session.server, session.offset)
        return session

    async def _reacquire(self, error: TransportError) -> Optional[PollingSession]:
        """Back off and acquire a fresh session; None when stopped meanwhile."""

        while True:
            if not await self._back_off(error):
                return None
            try:
                return await self._acquire()
            except (TransientError, ExpiredError) as exc:
                error = exc

    async def _back_off(self, error: TransportError) -> bool:
        """Sleep for the next backoff delay. Returns False if stopped while waiting."""

        self._state = LoopState.DEGRADED
        delay = self._backoff.next_delay()
        if delay is None:
            raise FatalError(f"giving up after {self._backoff.attempts} retries: {error}") from error
        LOGGER.warning("Polling degraded (%s), retrying in %.1fs", error, delay)
        return await self._until_stopped(self._sleep(delay)) is not _STOPPED

    def _renew(self, fresh: PollingSession, error: ExpiredError) -> None:
        previous = self.session.offset if self.session is not None else fresh.offset
        if error.reset:
            LOGGER.warning("Backend lost history; continuing from offset %s", fresh.offset)
            offset = fresh.offset
        elif error.offset is not None:
            offset = max(previous, error.offset)
        else:
            offset = previous
        self.session = PollingSession(server=fresh.server, key=fresh.key, offset=offset)
        self._backoff.reset()
        self._state = LoopState.ACTIVE

    def _commit(self, offset: int) -> None:
        assert self.session is not None
        current = self.session.offset
        if offset < current:
            LOGGER.warning("Backend reported offset %s behind %s; keeping the current one", offset, current)
            return
        self.session.offset = offset
        if self._offset_store is not None:
            self._offset_store.set_offset(self._config.offset_key, offset)

    async def _until_stopped(self, awaitable: Awaitable[Any]) -> Any:
        """Await ``awaitable`` unless ``stop()`` fires first (then return ``_STOPPED``)."""

        work = asyncio.ensure_future(awaitable)
        stopper = asyncio.ensure_future(self._stop.wait())
        try:
            await asyncio.wait({work, stopper}, return_when=asyncio.FIRST_COMPLETED)
        except BaseException:
            work.cancel()
            stopper.cancel()
            raise
        stopper.cancel()
        if not work.done():
            work.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await work
            return _STOPPED
        return work.result()


async def run_polling(
    backend: BackendPort,
    bot: Union[SafeVk, Router],
    config: Optional[PollingConfig] = None,
    **kwargs: Any,
) -> None:
    """Build a ``PollingLoop`` and run it to completion."""

    await PollingLoop(backend, bot, config, **kwargs).run()
