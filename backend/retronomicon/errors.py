"""Typed failures raised by the catalog and release services."""

# purpose: give callers a closed error taxonomy they can match on by type
# status: active

from __future__ import annotations

from enum import Enum
from typing import Any


class RetronomiconError(Exception):
    """Base class for every domain failure."""

    kind = "error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind, "detail": self.message}


class InvalidSlug(RetronomiconError):
    kind = "invalid_slug"

    def __init__(self, rule: Enum, value: object) -> None:
        super().__init__(f"Invalid slug ({rule.value})")
        self.rule = rule
        self.value = value


class InvalidVersion(RetronomiconError):
    kind = "invalid_version"

    def __init__(self, rule: Enum, value: object) -> None:
        super().__init__(f"Invalid version ({rule.value})")
        self.rule = rule
        self.value = value


class MissingPlatform(RetronomiconError):
    kind = "missing_platform"

    def __init__(self, core: str) -> None:
        super().__init__(f"Releases of core {core} need a platform")
        self.core = core


class Forbidden(RetronomiconError):
    kind = "forbidden"

    def __init__(self, action: Enum | str, reason: str = "Not authorized") -> None:
        super().__init__(reason)
        self.action = action
        self.reason = reason


class NotFound(RetronomiconError):
    kind = "not_found"

    def __init__(self, entity: str, key: object) -> None:
        super().__init__(f"{entity} not found")
        self.entity = entity
        self.key = key


class Conflict(RetronomiconError):
    kind = "conflict"


class DuplicateVersion(Conflict):
    kind = "duplicate_version"

    def __init__(self, target: str, version: str) -> None:
        super().__init__(f"Version {version} already exists for {target}")
        self.target = target
        self.version = version


class DuplicateFilename(Conflict):
    kind = "duplicate_filename"

    def __init__(self, filename: str) -> None:
        super().__init__(f"Filename {filename} already exists for this release")
        self.filename = filename


class ReleaseStateError(Conflict):
    kind = "release_state"


class IngestError(RetronomiconError):
    kind = "ingest_error"

    def __init__(self, reason: str, message: str | None = None) -> None:
        super().__init__(message or reason)
        self.reason = reason


class Unavailable(RetronomiconError):
    kind = "unavailable"
