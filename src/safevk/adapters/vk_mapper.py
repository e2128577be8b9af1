"""VK-to-core update mapping adapter.

This keeps VK event layout details out of the core pipeline.
"""

from __future__ import annotations

from typing import Any, Mapping, Optional

from safevk.core.models import Update


def _message_from_object(event_object: Any) -> Optional[Mapping[str, Any]]:
    if not isinstance(event_object, Mapping):
        return None
    message = event_object.get("message")
    if isinstance(message, Mapping):
        return message
    # Pre-5.103 events (and some tests) put the message fields directly on object
    if "text" in event_object or "peer_id" in event_object:
        return event_object
    return None


def _optional_int(value: Any) -> Optional[int]:
    if isinstance(value, bool) or not isinstance(value, int):
        return None
    return value


def command_text(raw: Mapping[str, Any]) -> str:
    """Return the text routes are matched against ("" for non-message events)."""

    message = _message_from_object(raw.get("object"))
    if message is None:
        return ""
    text = message.get("text")
    return text if isinstance(text, str) else ""


def build_update(raw: Mapping[str, Any]) -> Update:
    """Build a core Update from one element of a long-poll ``updates`` list."""

    message = _message_from_object(raw.get("object")) or {}
    event_id = raw.get("event_id")
    return Update(
        command=command_text(raw),
        payload=raw,
        peer_id=_optional_int(message.get("peer_id")),
        from_id=_optional_int(message.get("from_id")),
        event_type=str(raw.get("type", "")),
        event_id=str(event_id) if event_id is not None else None,
    )
