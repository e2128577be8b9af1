"""Core domain models.

These dataclasses are shared across the core and adapters to avoid tight
coupling to any VK-specific wire types.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Tuple


@dataclass(frozen=True)
class Update:
    """One incoming event, consumed once by routing and extraction."""

    command: str
    payload: Mapping[str, Any] = field(default_factory=dict)
    peer_id: Optional[int] = None
    from_id: Optional[int] = None
    event_type: str = "message_new"
    event_id: Optional[str] = None


@dataclass
class PollingSession:
    """Long-poll handle. Owned and mutated only by the polling loop."""

    server: str
    key: str
    offset: int


@dataclass(frozen=True)
class UpdateBatch:
    """Result of one long-poll request."""

    offset: int
    updates: Tuple[Update, ...] = ()
