from __future__ import annotations

import pytest

from safevk.core.filters import Filter, matches


@pytest.mark.parametrize(
    "pattern, command, expected",
    [
        ("/start", "/start", True),
        ("/start", "/Start", False),
        ("/start", "/start ", False),
        ("/start", " /start", False),
        ("", "", True),
        ("/start", "/start now", False),
    ],
)
def test_strict_is_exact_equality(pattern: str, command: str, expected: bool) -> None:
    assert Filter.STRICT.matches(pattern, command) is expected


@pytest.mark.parametrize(
    "pattern, command, expected",
    [
        ("/cmd", "/cmd", True),
        ("/cmd", "/cmd foo", True),
        ("/cmd", "/cmd\tfoo", True),
        ("/cmd", "/cmd\nfoo bar", True),
        ("/cmd", "/cmdx", False),
        ("/c", "/cat", False),
        ("/cmd", "/CMD foo", False),
        ("/cmd", "x /cmd", False),
        ("/cmd", "/cm", False),
    ],
)
def test_flexible_requires_token_boundary(pattern: str, command: str, expected: bool) -> None:
    assert Filter.FLEXIBLE.matches(pattern, command) is expected


def test_functional_form_matches_method() -> None:
    assert matches(Filter.FLEXIBLE, "/help", "/help me")
    assert not matches(Filter.STRICT, "/help", "/help me")
