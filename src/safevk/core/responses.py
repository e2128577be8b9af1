"""Typed shapes for VK payloads.

Each shape exposes ``from_dict``; ``KeyError``/``TypeError``/``ValueError``
raised there are reported by the extractor as ``ExtractionError``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Tuple


def _optional_int(data: Mapping[str, Any], name: str) -> Optional[int]:
    value = data.get(name)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"{name} must be an integer, got {type(value).__name__}")
    return value


@dataclass(frozen=True)
class Message:
    """A ``message_new`` event body.

    VK 5.199 wraps the message as ``{"message": {...}, "client_info": {...}}``;
    a flat message object is accepted as well.
    """

    text: str
    peer_id: Optional[int] = None
    from_id: Optional[int] = None
    id: Optional[int] = None
    conversation_message_id: Optional[int] = None
    date: Optional[int] = None
    payload: Optional[str] = None
    attachments: Tuple[Mapping[str, Any], ...] = ()
    raw: Mapping[str, Any] = field(default_factory=dict, repr=False, compare=False)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Message":
        message = data.get("message", data)
        if not isinstance(message, Mapping):
            raise TypeError("message must be an object")
        text = message["text"]
        if not isinstance(text, str):
            raise TypeError(f"text must be a string, got {type(text).__name__}")
        payload = message.get("payload")
        if payload is not None and not isinstance(payload, str):
            raise TypeError("payload must be a string")
        return cls(
            text=text,
            peer_id=_optional_int(message, "peer_id"),
            from_id=_optional_int(message, "from_id"),
            id=_optional_int(message, "id"),
            conversation_message_id=_optional_int(message, "conversation_message_id"),
            date=_optional_int(message, "date"),
            payload=payload,
            attachments=tuple(message.get("attachments") or ()),
            raw=message,
        )


@dataclass(frozen=True)
class LongPollServer:
    """Response of ``groups.getLongPollServer``."""

    server: str
    key: str
    ts: int

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "LongPollServer":
        server = data["server"]
        key = data["key"]
        if not isinstance(server, str) or not isinstance(key, str):
            raise TypeError("server and key must be strings")
        # ts arrives as a numeric string
        return cls(server=server, key=key, ts=int(data["ts"]))
