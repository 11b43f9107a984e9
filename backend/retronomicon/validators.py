"""Slug and version grammar checks.

Both validators are total: any input, including non-strings, lone surrogates
or very long values, yields either the accepted value or a typed rejection
naming the rule that failed. ``parse_slug`` and ``parse_version`` are the
raising variants used by services and request schemas.
"""

from __future__ import annotations

import re
from enum import Enum
from functools import total_ordering
from typing import NewType, Union

from .errors import InvalidSlug, InvalidVersion

MAX_IDENTIFIER_LENGTH = 255

RESERVED_SLUGS = frozenset(
    {
        "new",
        "edit",
        "delete",
        "latest",
        "all",
        "me",
        "owner",
        "update",
        "updates",
        "release",
        "releases",
        "popular",
        "invalid",
    }
)

_SLUG_RE = re.compile(r"[a-z][a-z0-9]*(?:-[a-z0-9]+)*")
_VERSION_RE = re.compile(r"[a-z0-9][a-z0-9]*(?:[.-][a-z0-9]+)*")
_VERSION_SPLIT_RE = re.compile(r"[.-]")

Slug = NewType("Slug", str)


class SlugRule(str, Enum):
    NOT_TEXT = "not_text"
    EMPTY = "empty"
    TOO_LONG = "too_long"
    GRAMMAR = "grammar"
    RESERVED = "reserved"


class VersionRule(str, Enum):
    NOT_TEXT = "not_text"
    EMPTY = "empty"
    TOO_LONG = "too_long"
    GRAMMAR = "grammar"
    RESERVED = "reserved"


@total_ordering
class Version:
    """A validated version string with a numeric-aware ordering.

    Components are split on ``.`` and ``-``. Purely numeric components
    compare as integers and sort before alphanumeric ones; when one version
    is a prefix of another the shorter one sorts first.
    """

    __slots__ = ("value", "_key")

    def __init__(self, value: str) -> None:
        self.value = value
        self._key = tuple(
            (0, int(part), "") if part.isdigit() else (1, 0, part)
            for part in _VERSION_SPLIT_RE.split(value)
        )

    @property
    def sort_key(self) -> tuple:
        return self._key

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        return self.value == other.value

    def __lt__(self, other: "Version") -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        return (self._key, self.value) < (other._key, other.value)

    def __hash__(self) -> int:
        return hash(self.value)

    def __str__(self) -> str:
        return self.value

    def __repr__(self) -> str:
        return f"Version({self.value!r})"


def _basic_rule(value: object, empty_rule: Enum, not_text: Enum, too_long: Enum) -> Enum | None:
    if not isinstance(value, str):
        return not_text
    if value == "":
        return empty_rule
    if len(value) > MAX_IDENTIFIER_LENGTH:
        return too_long
    return None


def validate_slug(value: object) -> Union[Slug, InvalidSlug]:
    """Return ``value`` as a slug, or the rejection describing why it is not one."""

    rule = _basic_rule(value, SlugRule.EMPTY, SlugRule.NOT_TEXT, SlugRule.TOO_LONG)
    if rule is not None:
        return InvalidSlug(rule, value)
    if _SLUG_RE.fullmatch(value) is None:
        return InvalidSlug(SlugRule.GRAMMAR, value)
    if value in RESERVED_SLUGS:
        return InvalidSlug(SlugRule.RESERVED, value)
    return Slug(value)


def validate_version(value: object) -> Union[Version, InvalidVersion]:
    """Return a :class:`Version`, or the rejection describing why ``value`` is not one."""

    rule = _basic_rule(value, VersionRule.EMPTY, VersionRule.NOT_TEXT, VersionRule.TOO_LONG)
    if rule is not None:
        return InvalidVersion(rule, value)
    if value == "latest":
        return InvalidVersion(VersionRule.RESERVED, value)
    if _VERSION_RE.fullmatch(value) is None:
        return InvalidVersion(VersionRule.GRAMMAR, value)
    return Version(value)


def parse_slug(value: object) -> Slug:
    result = validate_slug(value)
    if isinstance(result, InvalidSlug):
        raise result
    return result


def parse_version(value: object) -> Version:
    result = validate_version(value)
    if isinstance(result, InvalidVersion):
        raise result
    return result


def version_key(value: str) -> tuple:
    """Sort key for a stored version string."""

    return Version(value).sort_key
