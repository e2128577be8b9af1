from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Optional

import pytest

from safevk.core.config import PollingConfig
from safevk.core.errors import ExpiredError, FatalError, TransientError
from safevk.core.extract import Ctx
from safevk.core.filters import Filter
from safevk.core.models import PollingSession, UpdateBatch
from safevk.core.polling import LoopState, PollingLoop
from safevk.core.responses import Message
from safevk.core.routing import SafeVk

from fakes import HANG, FakeBackend, MemoryOffsetStore, batch, make_update


def session(key: str = "k1", offset: int = 10) -> PollingSession:
    return PollingSession(server="https://lp.vk.test/wh1", key=key, offset=offset)


class Harness:
    """Runs a PollingLoop over a FakeBackend with a recording sleep."""

    def __init__(
        self,
        sessions: list,
        steps: list,
        config: Optional[PollingConfig] = None,
        offset_store: Optional[MemoryOffsetStore] = None,
        bot: Optional[SafeVk] = None,
    ) -> None:
        self.backend = FakeBackend(sessions, steps)
        self.delays: list[float] = []
        self.handled: list[str] = []
        self.config = config or PollingConfig()
        self.offset_store = offset_store
        self.bot = bot or SafeVk().on("/", Filter.FLEXIBLE, self._handle)
        self.loop: Optional[PollingLoop] = None

    async def _handle(self, ctx: Ctx[Message]) -> None:
        self.handled.append(ctx.text)

    async def _sleep(self, delay: float) -> None:
        self.delays.append(delay)

    def run(self) -> PollingLoop:
        async def _main() -> PollingLoop:
            loop = PollingLoop(
                self.backend,
                self.bot,
                self.config,
                offset_store=self.offset_store,
                sleep=self._sleep,
            )
            self.loop = loop
            self.backend.on_exhausted = loop.stop
            await loop.run()
            return loop

        return asyncio.run(_main())


def test_offset_advances_monotonically_per_batch() -> None:
    store = MemoryOffsetStore()
    harness = Harness(
        [session(offset=10)],
        [batch(12, "/ a"), batch(15), batch(20, "/ b", "/ c")],
        offset_store=store,
    )

    loop = harness.run()

    assert loop.session.offset == 20
    assert harness.backend.fetched_offsets == [10, 12, 15, 20]
    assert store.writes == [12, 15, 20]
    assert harness.handled == ["/ a", "/ b", "/ c"]
    assert loop.state is LoopState.STOPPED


def test_offset_never_moves_backwards() -> None:
    harness = Harness([session(offset=10)], [batch(12), batch(11)])

    loop = harness.run()

    assert loop.session.offset == 12
    assert harness.backend.fetched_offsets == [10, 12, 12]


def test_expired_session_is_reacquired_keeping_offset() -> None:
    harness = Harness(
        [session("k1", 10), session("k2", 999)],
        [batch(11, "/ one"), ExpiredError("key expired"), batch(14, "/ two")],
    )

    loop = harness.run()

    assert harness.backend.session_requests == 2
    assert harness.backend.fetched_keys == ["k1", "k1", "k2", "k2"]
    assert harness.backend.fetched_offsets == [10, 11, 11, 14]
    assert harness.handled == ["/ one", "/ two"]
    assert harness.delays == [1.0]
    assert loop.session.key == "k2"


def test_expired_with_offset_hint_uses_newer_offset() -> None:
    harness = Harness(
        [session("k1", 10), session("k2", 999)],
        [ExpiredError("outdated", offset=30)],
    )

    harness.run()

    assert harness.backend.fetched_offsets == [10, 30]


def test_expired_with_lost_history_adopts_fresh_offset() -> None:
    harness = Harness(
        [session("k1", 10), session("k2", 50)],
        [ExpiredError("lost", reset=True)],
    )

    harness.run()

    assert harness.backend.fetched_offsets == [10, 50]


def test_transient_errors_back_off_exponentially_on_same_session() -> None:
    harness = Harness(
        [session(offset=10)],
        [TransientError("503"), TransientError("503"), batch(11)],
    )

    loop = harness.run()

    assert harness.delays == [1.0, 2.0]
    assert harness.backend.session_requests == 1
    assert loop.session.offset == 11


def test_backoff_resets_after_successful_batch() -> None:
    harness = Harness(
        [session(offset=10)],
        [TransientError("a"), batch(11), TransientError("b"), batch(12)],
    )

    harness.run()

    assert harness.delays == [1.0, 1.0]


def test_retry_ceiling_is_fatal() -> None:
    harness = Harness(
        [session(offset=10)],
        [TransientError("down")] * 3,
        config=PollingConfig(max_retries=2),
    )

    with pytest.raises(FatalError):
        harness.run()

    assert harness.delays == [1.0, 2.0]
    assert harness.loop.state is LoopState.FAILED
    assert harness.loop.session.offset == 10


def test_fatal_backend_error_terminates_loop() -> None:
    harness = Harness([session(offset=10)], [batch(11), FatalError("banned")])

    with pytest.raises(FatalError, match="banned"):
        harness.run()

    assert harness.loop.session.offset == 11
    assert harness.delays == []


def test_bad_credentials_fail_on_first_session_attempt() -> None:
    harness = Harness([FatalError("invalid credentials")], [])

    with pytest.raises(FatalError, match="invalid credentials"):
        harness.run()

    assert harness.backend.session_requests == 1
    assert harness.backend.fetched_offsets == []


def test_startup_transient_failure_is_fatal_without_retry() -> None:
    harness = Harness([TransientError("timeout"), session()], [])

    with pytest.raises(FatalError):
        harness.run()

    assert harness.delays == []


def test_startup_retries_when_configured() -> None:
    harness = Harness(
        [TransientError("timeout"), session(offset=10)],
        [batch(11)],
        config=PollingConfig(retry_on_startup=True),
    )

    loop = harness.run()

    assert harness.delays == [1.0]
    assert loop.session.offset == 11


def test_persisted_offset_overrides_server_offset() -> None:
    store = MemoryOffsetStore({"default": 7})
    harness = Harness([session(offset=100)], [batch(9)], offset_store=store)

    harness.run()

    assert harness.backend.fetched_offsets[0] == 7
    assert store.offsets["default"] == 9


def test_dispatch_failures_do_not_stop_polling() -> None:
    async def broken(ctx: Ctx[Message]) -> None:
        raise RuntimeError("handler bug")

    bot = SafeVk().on("/", Filter.FLEXIBLE, broken)
    harness = Harness([session(offset=10)], [batch(11, "/ x"), batch(12, "/ y")], bot=bot)

    loop = harness.run()

    assert loop.session.offset == 12
    assert loop.state is LoopState.STOPPED


def test_stop_during_dispatch_finishes_batch_then_exits() -> None:
    harness = Harness([session(offset=10)], [batch(11, "/ stop"), batch(12)])

    async def stopping(ctx: Ctx[Message]) -> None:
        harness.loop.stop()

    harness.bot = SafeVk().on("/", Filter.FLEXIBLE, stopping)

    loop = harness.run()

    assert harness.backend.fetched_offsets == [10]
    assert loop.session.offset == 11
    assert loop.state is LoopState.STOPPED


def test_stop_during_backoff_keeps_offset() -> None:
    harness = Harness([session(offset=10)], [TransientError("down")])

    async def blocking_sleep(delay: float) -> None:
        harness.delays.append(delay)
        harness.loop.stop()
        await asyncio.Event().wait()

    harness._sleep = blocking_sleep

    loop = harness.run()

    assert harness.delays == [1.0]
    assert loop.session.offset == 10
    assert loop.state is LoopState.STOPPED


def test_fetch_deadline_counts_as_transient() -> None:
    harness = Harness(
        [session(offset=10)],
        [HANG, batch(11)],
        config=PollingConfig(request_timeout=0.01),
    )

    loop = harness.run()

    assert harness.delays == [1.0]
    assert loop.session.offset == 11


@dataclass(frozen=True)
class Vote:
    choice: int

    def __post_init__(self) -> None:
        if self.choice < 1:
            raise ValueError("choice must be positive")


def test_malformed_payload_does_not_stop_polling() -> None:
    votes: list[int] = []

    async def vote(ctx: Ctx[Vote]) -> None:
        votes.append(ctx.choice)

    bad = UpdateBatch(
        offset=11,
        updates=(make_update("/vote", obj={"choice": -1}), make_update("/vote", obj={"choice": 2})),
    )
    bot = SafeVk().command("/vote", vote)
    harness = Harness([session(offset=10)], [bad, batch(12)], bot=bot)

    loop = harness.run()

    assert votes == [2]
    assert loop.session.offset == 12
    assert loop.state is LoopState.STOPPED


def test_unexpected_backend_error_is_reported_as_fatal() -> None:
    harness = Harness([session(offset=10)], [batch(11), RuntimeError("malformed server url")])

    with pytest.raises(FatalError) as excinfo:
        harness.run()

    assert isinstance(excinfo.value.__cause__, RuntimeError)
    assert harness.loop.state is LoopState.FAILED
    assert harness.loop.session.offset == 11
