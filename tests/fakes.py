from __future__ import annotations

import asyncio
from typing import Any, Callable, Mapping, Optional

from safevk.core.errors import TransportError
from safevk.core.models import PollingSession, Update, UpdateBatch

HANG = "hang"


def make_update(text: str, *, peer_id: int = 2000000001, obj: Optional[dict] = None) -> Update:
    payload = {"type": "message_new", "object": obj if obj is not None else {"text": text}}
    return Update(command=text, payload=payload, peer_id=peer_id, from_id=42)


def batch(offset: int, *texts: str) -> UpdateBatch:
    return UpdateBatch(offset=offset, updates=tuple(make_update(text) for text in texts))


class FakeApi:
    def __init__(self, responses: Optional[dict[str, Mapping[str, Any]]] = None) -> None:
        self.calls: list[tuple[str, dict]] = []
        self._responses = responses or {}

    async def call(self, method: str, params: Optional[Mapping[str, Any]] = None) -> Mapping[str, Any]:
        self.calls.append((method, dict(params or {})))
        return self._responses.get(method, {"response": 1})


class FakeBackend(FakeApi):
    """Scripted backend.

    ``sessions`` and ``steps`` hold values to return or exceptions to raise;
    a ``HANG`` step blocks until cancelled. Once steps run out, ``on_exhausted``
    is called and the fetch blocks.
    """

    def __init__(self, sessions: list, steps: list) -> None:
        super().__init__()
        self._sessions = list(sessions)
        self._steps = list(steps)
        self.on_exhausted: Optional[Callable[[], None]] = None
        self.session_requests = 0
        self.fetched_offsets: list[int] = []
        self.fetched_keys: list[str] = []

    async def get_polling_session(self) -> PollingSession:
        self.session_requests += 1
        item = self._sessions.pop(0)
        if isinstance(item, TransportError):
            raise item
        return PollingSession(server=item.server, key=item.key, offset=item.offset)

    async def get_updates(self, session: PollingSession) -> UpdateBatch:
        self.fetched_offsets.append(session.offset)
        self.fetched_keys.append(session.key)
        if not self._steps:
            if self.on_exhausted is not None:
                self.on_exhausted()
            await asyncio.Event().wait()
        item = self._steps.pop(0)
        if item == HANG:
            await asyncio.sleep(10)
        if isinstance(item, Exception):
            raise item
        return item


class MemoryOffsetStore:
    def __init__(self, initial: Optional[dict[str, int]] = None) -> None:
        self.offsets: dict[str, int] = dict(initial or {})
        self.writes: list[int] = []

    def get_offset(self, key: str) -> Optional[int]:
        return self.offsets.get(key)

    def set_offset(self, key: str, offset: int) -> None:
        self.offsets[key] = offset
        self.writes.append(offset)
