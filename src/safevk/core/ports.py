"""Ports (interfaces) used by the core pipeline.

Ports define the minimal contracts for the messaging backend, the outbound
API client and offset persistence so that the core can be reused with
different transports and storage backends.
"""

from __future__ import annotations

from typing import Any, Mapping, Optional, Protocol

from safevk.core.models import PollingSession, Update, UpdateBatch


class BackendPort(Protocol):
    """Long-poll operations required by the polling loop.

    Implementations raise ``TransientError``, ``ExpiredError`` or ``FatalError``.
    """

    async def get_polling_session(self) -> PollingSession:
        ...

    async def get_updates(self, session: PollingSession) -> UpdateBatch:
        ...


class ApiClientPort(Protocol):
    """Outbound API calls issued from inside handlers."""

    async def call(self, method: str, params: Optional[Mapping[str, Any]] = None) -> Mapping[str, Any]:
        ...


class OffsetStorePort(Protocol):
    """Optional persistence of the last committed offset."""

    def get_offset(self, key: str) -> Optional[int]:
        ...

    def set_offset(self, key: str, offset: int) -> None:
        ...


class Service(Protocol):
    """Uniform dispatch capability every registered handler is adapted to."""

    async def call(self, update: Update, api: ApiClientPort) -> Any:
        ...
