"""Runtime configuration snapshot for the release service."""

# purpose: read environment configuration once into an immutable snapshot
# status: active

from __future__ import annotations

import os
from dataclasses import dataclass, field
from functools import lru_cache

_DEFAULT_MAX_ARTIFACT_SIZE = 20 * 1024 * 1024


def _split_patterns(raw: str | None) -> tuple[str, ...]:
    if not raw:
        return ()
    return tuple(part.strip() for part in raw.split(",") if part.strip())


@dataclass(frozen=True)
class Settings:
    root_team_slug: str = "root"
    additional_roots: tuple[str, ...] = field(default_factory=tuple)
    max_artifact_size: int = _DEFAULT_MAX_ARTIFACT_SIZE
    artifact_base_url: str | None = None
    secret_key: str = "change-me"
    access_token_expire_minutes: int = 60 * 24


@lru_cache(maxsize=1)
def load_settings() -> Settings:
    """Build the settings snapshot from environment variables."""

    return Settings(
        root_team_slug=os.getenv("ROOT_TEAM_SLUG", "root"),
        additional_roots=_split_patterns(os.getenv("ROOT_TEAM_EMAILS")),
        max_artifact_size=int(os.getenv("ARTIFACT_MAX_SIZE", str(_DEFAULT_MAX_ARTIFACT_SIZE))),
        artifact_base_url=os.getenv("ARTIFACT_BASE_URL") or None,
        secret_key=os.getenv("SECRET_KEY", "change-me"),
        access_token_expire_minutes=int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", str(60 * 24))),
    )
