"""Content-addressed artifact ingestion.

Payload bytes are hashed with SHA-256 and SHA-512, written to the object
store under a key derived from the SHA-256 digest, and recorded as a single
``Artifact`` row per digest pair. Ingesting identical bytes again returns the
existing row. Rows are never committed here: the caller owns the transaction
and must call :meth:`ArtifactStore.discard_written` when it rolls back, so
objects written for rows that never became durable are removed.
"""

from __future__ import annotations

import hashlib
import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from . import models
from .config import Settings
from .errors import IngestError, Unavailable
from .storage import ObjectStore, content_key

logger = logging.getLogger(__name__)

_FILENAME_RE = re.compile(r"[\w()\[\]{}<>\-+=!@#$%^&*~,. ]+")


@dataclass(frozen=True)
class ArtifactUpload:
    filename: str
    data: bytes
    mime_type: str = "application/octet-stream"


@dataclass(frozen=True)
class Digests:
    sha256: str
    sha512: str

    @classmethod
    def of(cls, data: bytes) -> "Digests":
        return cls(hashlib.sha256(data).hexdigest(), hashlib.sha512(data).hexdigest())


def is_filename_conform(filename: str) -> bool:
    """Filenames are limited to word characters and a small punctuation set."""

    return bool(filename) and _FILENAME_RE.fullmatch(filename) is not None and filename not in {".", ".."}


def _insert_ignoring_conflicts(db: Session, values: dict):
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        stmt = postgresql.insert(models.Artifact)
    elif dialect == "sqlite":
        stmt = sqlite.insert(models.Artifact)
    else:
        raise NotImplementedError(f"Unsupported database dialect {dialect}")
    return stmt.values(**values).on_conflict_do_nothing(index_elements=["sha256", "sha512"])


class ArtifactStore:
    """Ingest payloads into the object store and the ``artifacts`` table."""

    def __init__(self, db: Session, objects: ObjectStore, settings: Settings) -> None:
        self.db = db
        self.objects = objects
        self.settings = settings
        self._written: list[str] = []

    def find(self, digests: Digests) -> models.Artifact | None:
        return self.db.execute(
            select(models.Artifact).where(
                models.Artifact.sha256 == digests.sha256,
                models.Artifact.sha512 == digests.sha512,
            )
        ).scalar_one_or_none()

    def check_upload(self, upload: ArtifactUpload) -> None:
        """Reject uploads that can never be ingested, before any side effect."""

        if not is_filename_conform(upload.filename):
            raise IngestError("filename", f"Filename {upload.filename!r} is invalid")
        if len(upload.data) > self.settings.max_artifact_size:
            raise IngestError(
                "too_large",
                f"Artifact {upload.filename} exceeds {self.settings.max_artifact_size} bytes",
            )

    def ingest(self, data: bytes, filename: str, mime_type: str = "application/octet-stream") -> models.Artifact:
        upload = ArtifactUpload(filename=filename, data=data, mime_type=mime_type)
        self.check_upload(upload)
        digests = Digests.of(data)
        try:
            existing = self.find(digests)
            if existing is not None:
                if existing.storage_key and not self.objects.exists(existing.storage_key):
                    # the committed row owns the key, so the rewrite is never compensated
                    logger.warning("Restoring missing object %s for artifact %s", existing.storage_key, existing.id)
                    self.objects.put(existing.storage_key, data, existing.mime_type)
                return existing

            key = content_key(digests.sha256)
            already_stored = self.objects.exists(key)
            url = self.objects.put(key, data, mime_type)
            if not already_stored:
                self._written.append(key)

            result = self.db.execute(
                _insert_ignoring_conflicts(
                    self.db,
                    {
                        "id": uuid4(),
                        "filename": filename,
                        "mime_type": mime_type,
                        "created_at": datetime.now(timezone.utc),
                        "sha256": digests.sha256,
                        "sha512": digests.sha512,
                        "size": len(data),
                        "storage_key": key,
                        "download_url": url,
                    },
                )
            )
            if result.rowcount == 0 and key in self._written:
                # a concurrent ingest owns the row and relies on the object
                self._written.remove(key)
            artifact = self.find(digests)
        except OperationalError as exc:
            raise Unavailable("Database unavailable") from exc
        if artifact is None:
            raise IngestError("storage", "Artifact row vanished after insert")
        if result.rowcount:
            logger.info("Stored artifact %s (%s, %d bytes)", artifact.id, filename, len(data))
        return artifact

    def register_external(
        self,
        filename: str,
        size: int,
        *,
        download_url: str | None = None,
        sha256: str | None = None,
        sha512: str | None = None,
        mime_type: str = "application/octet-stream",
    ) -> models.Artifact:
        """Record an artifact hosted elsewhere, known by URL and/or digests."""

        if not is_filename_conform(filename):
            raise IngestError("filename", f"Filename {filename!r} is invalid")
        if not (sha256 or sha512) and not download_url:
            raise IngestError("missing_source", "An artifact needs a digest or a download URL")
        try:
            if sha256 and sha512:
                return self._register_known_digests(
                    Digests(sha256.lower(), sha512.lower()), filename, size, download_url, mime_type
                )
        except OperationalError as exc:
            raise Unavailable("Database unavailable") from exc
        artifact = models.Artifact(
            filename=filename,
            mime_type=mime_type,
            sha256=sha256.lower() if sha256 else None,
            sha512=sha512.lower() if sha512 else None,
            size=size,
            download_url=download_url,
        )
        self.db.add(artifact)
        self.db.flush()
        return artifact

    def _register_known_digests(
        self, digests: Digests, filename: str, size: int, download_url: str | None, mime_type: str
    ) -> models.Artifact:
        existing = self.find(digests)
        if existing is not None:
            return existing
        self.db.execute(
            _insert_ignoring_conflicts(
                self.db,
                {
                    "id": uuid4(),
                    "filename": filename,
                    "mime_type": mime_type,
                    "created_at": datetime.now(timezone.utc),
                    "sha256": digests.sha256,
                    "sha512": digests.sha512,
                    "size": size,
                    "download_url": download_url,
                },
            )
        )
        artifact = self.find(digests)
        if artifact is None:
            raise IngestError("storage", "Artifact row vanished after insert")
        return artifact

    def discard_written(self) -> None:
        """Delete objects written by this store whose rows were rolled back."""

        while self._written:
            key = self._written.pop()
            logger.warning("Removing orphaned object %s after aborted transaction", key)
            try:
                self.objects.delete(key)
            except (IngestError, Unavailable):
                logger.exception("Could not remove orphaned object %s", key)

    def forget_written(self) -> None:
        """Mark written objects as owned by committed rows."""

        self._written.clear()
