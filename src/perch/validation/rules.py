"""Built-in validation rules.

Each rule is a callable with the signature::

    def rule(value: Any) -> Exception | None:
        '''Return the failure, or None if valid.'''

Parameterized rules are factory functions that return a rule::

    def field_max_len(n: int) -> Rule:
        def check(value: Any) -> Exception | None:
            if len(value) > n:
                return RuleError(f"cannot be longer than {n} characters in length")
            return None
        return check

Rules may also be ``async def`` — a uniqueness check against a database
is the usual case. Failures are returned, not raised, so a ``Validator``
can run every rule and report all of them at once.
"""

import re
from collections.abc import Awaitable, Callable
from typing import Any, TypeAlias

from perch.errors import PerchError
from perch.validation.errors import FieldRequired

Rule: TypeAlias = Callable[[Any], Exception | None | Awaitable[Exception | None]]


class RuleError(PerchError):
    """A rule failed; the message is shown to the user as-is."""


class MatchError(RuleError):
    """The value did not match a regular expression."""

    def __init__(self, pattern: re.Pattern[str]) -> None:
        self.pattern = pattern
        super().__init__(f"does not match {pattern.pattern}")


def _as_text(value: Any) -> str:
    if isinstance(value, str):
        return value
    return ""


# ---------------------------------------------------------------------------
# Presence
# ---------------------------------------------------------------------------


def field_required(value: Any) -> Exception | None:
    """Field must be given.

    Only strings are checked; anything else (numbers, booleans, lists)
    is considered present.
    """
    if isinstance(value, str) and not value:
        return FieldRequired()
    return None


# ---------------------------------------------------------------------------
# Format
# ---------------------------------------------------------------------------


def field_matches(pattern: str | re.Pattern[str]) -> Rule:
    """Value must match the given regular expression."""
    compiled = re.compile(pattern)

    def check(value: Any) -> Exception | None:
        if not compiled.search(_as_text(value)):
            return MatchError(compiled)
        return None

    return check


# ---------------------------------------------------------------------------
# Length
# ---------------------------------------------------------------------------


def field_len(lo: int, hi: int) -> Rule:
    """String must be between *lo* and *hi* characters, inclusive."""

    def check(value: Any) -> Exception | None:
        n = len(_as_text(value))
        if n < lo or n > hi:
            return RuleError(f"must be between {lo} and {hi} characters in length")
        return None

    return check


def field_min_len(lo: int) -> Rule:
    """String must be at least *lo* characters."""

    def check(value: Any) -> Exception | None:
        if len(_as_text(value)) < lo:
            return RuleError(f"cannot be shorter than {lo} characters in length")
        return None

    return check


def field_max_len(hi: int) -> Rule:
    """String must be at most *hi* characters."""

    def check(value: Any) -> Exception | None:
        if len(_as_text(value)) > hi:
            return RuleError(f"cannot be longer than {hi} characters in length")
        return None

    return check


# ---------------------------------------------------------------------------
# Comparison
# ---------------------------------------------------------------------------


def field_equals(expected: Any) -> Rule:
    """Value must equal *expected* (password confirmation and the like)."""

    def check(value: Any) -> Exception | None:
        if value != expected:
            return RuleError("does not match")
        return None

    return check
