"""Command matching policies (core domain)."""

from __future__ import annotations

from enum import Enum


class Filter(Enum):
    """How a route pattern is compared with the incoming command text."""

    STRICT = "strict"
    FLEXIBLE = "flexible"

    def matches(self, pattern: str, command: str) -> bool:
        """Return True when ``command`` satisfies ``pattern`` under this policy.

        Matching logic:
        - STRICT: exact, case-sensitive equality.
        - FLEXIBLE: the command starts with the pattern and the pattern ends on
          a token boundary, i.e. end of text or a whitespace character.
          "/cmd" matches "/cmd" and "/cmd foo" but neither "/cmdx" nor "/c"
          matching "/cat".
        """

        if self is Filter.STRICT:
            return command == pattern

        if not command.startswith(pattern):
            return False
        if len(command) == len(pattern):
            return True
        return command[len(pattern)].isspace()


def matches(filter: Filter, pattern: str, command: str) -> bool:
    """Functional form of :meth:`Filter.matches`."""

    return filter.matches(pattern, command)
