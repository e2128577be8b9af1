from __future__ import annotations

from safevk.adapters.vk_mapper import build_update, command_text


def test_build_update_from_wrapped_message() -> None:
    raw = {
        "type": "message_new",
        "event_id": "a1b2c3",
        "group_id": 1,
        "object": {
            "message": {"text": "/start now", "peer_id": 2000000001, "from_id": 42},
            "client_info": {"keyboard": True},
        },
    }

    update = build_update(raw)

    assert update.command == "/start now"
    assert update.peer_id == 2000000001
    assert update.from_id == 42
    assert update.event_type == "message_new"
    assert update.event_id == "a1b2c3"
    assert update.payload is raw


def test_build_update_from_flat_message_object() -> None:
    raw = {"type": "message_new", "object": {"text": "/ping", "peer_id": 7}}

    update = build_update(raw)

    assert update.command == "/ping"
    assert update.peer_id == 7
    assert update.from_id is None
    assert update.event_id is None


def test_non_message_event_has_empty_command() -> None:
    raw = {"type": "group_join", "object": {"user_id": 5, "join_type": "join"}}

    update = build_update(raw)

    assert update.command == ""
    assert update.peer_id is None
    assert update.event_type == "group_join"


def test_malformed_fields_are_dropped() -> None:
    raw = {"type": "message_new", "object": {"message": {"text": 12, "peer_id": "7", "from_id": True}}}

    update = build_update(raw)

    assert update.command == ""
    assert update.peer_id is None
    assert update.from_id is None


def test_command_text_without_object() -> None:
    assert command_text({"type": "message_new"}) == ""
