"""Release ledger for core and system releases.

A release is addressed by its target (a core on a platform, or a system) and
its version string. The pair is unique for the lifetime of the database:
yanking withdraws a release from ``latest`` but keeps its version reserved,
so a correction always ships under a new version. Creation, artifact
attachment, edits and yanks each run as one transaction; when a transaction
is abandoned the objects written for it are deleted again.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Iterable, Iterator, Union
from uuid import UUID

from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Query, Session

from . import audit, models
from .artifacts import ArtifactStore, ArtifactUpload
from .errors import DuplicateFilename, DuplicateVersion, MissingPlatform, NotFound, ReleaseStateError, Unavailable
from .rbac import Action, AuthorizationEngine
from .validators import Version, parse_version, version_key

logger = logging.getLogger(__name__)

Release = Union[models.CoreRelease, models.SystemRelease]


@dataclass(frozen=True)
class CoreTarget:
    """Releases of ``core`` built for ``platform`` (any platform when omitted)."""

    core: models.Core
    platform: models.Platform | None = None

    kind = "core"
    model = models.CoreRelease

    @property
    def owner(self) -> models.Core:
        return self.core

    def describe(self) -> str:
        if self.platform is None:
            return f"core {self.core.slug}"
        return f"core {self.core.slug} on {self.platform.slug}"

    def scope(self, query: Query) -> Query:
        query = query.filter(models.CoreRelease.core_id == self.core.id)
        if self.platform is not None:
            query = query.filter(models.CoreRelease.platform_id == self.platform.id)
        return query

    def conflicts(self, query: Query, version: Version) -> Query:
        return self.scope(query).filter(models.CoreRelease.version == version.value)

    def check_publishable(self) -> None:
        if self.platform is None:
            raise MissingPlatform(self.core.slug)

    def build(self, **fields: Any) -> models.CoreRelease:
        return models.CoreRelease(core_id=self.core.id, platform_id=self.platform.id, **fields)


@dataclass(frozen=True)
class SystemTarget:
    """Releases of a system's files (e.g. BIOS images); versions are global."""

    system: models.System

    kind = "system"
    model = models.SystemRelease

    @property
    def owner(self) -> models.System:
        return self.system

    def describe(self) -> str:
        return f"system {self.system.slug}"

    def scope(self, query: Query) -> Query:
        return query.filter(models.SystemRelease.system_id == self.system.id)

    def conflicts(self, query: Query, version: Version) -> Query:
        return query.filter(models.SystemRelease.version == version.value)

    def check_publishable(self) -> None:
        """System releases have no scope beyond the system."""

    def build(self, **fields: Any) -> models.SystemRelease:
        return models.SystemRelease(system_id=self.system.id, **fields)


ReleaseTarget = Union[CoreTarget, SystemTarget]


def target_of(release: Release) -> ReleaseTarget:
    if isinstance(release, models.CoreRelease):
        return CoreTarget(release.core, release.platform)
    return SystemTarget(release.system)


@dataclass
class ReleaseDetails:
    notes: str = ""
    prerelease: bool = False
    date_released: datetime | None = None
    links: dict[str, str] = field(default_factory=dict)
    metadata: dict[str, Any] = field(default_factory=dict)


class ReleaseLedger:
    def __init__(self, db: Session, authz: AuthorizationEngine, artifacts: ArtifactStore) -> None:
        self.db = db
        self.authz = authz
        self.artifacts = artifacts

    @contextmanager
    def _transaction(self) -> Iterator[None]:
        committed = False
        try:
            yield
            self.db.commit()
            committed = True
        except OperationalError as exc:
            raise Unavailable("Database unavailable") from exc
        finally:
            if committed:
                self.artifacts.forget_written()
            else:
                self.db.rollback()
                self.artifacts.discard_written()

    def _query(self, target: ReleaseTarget) -> Query:
        return self.db.query(target.model)

    def _check_uploads(self, uploads: list[ArtifactUpload], taken: set[str]) -> None:
        seen = set(taken)
        for upload in uploads:
            self.artifacts.check_upload(upload)
            if upload.filename in seen:
                raise DuplicateFilename(upload.filename)
            seen.add(upload.filename)

    def _link(self, release: Release, uploads: list[ArtifactUpload]) -> None:
        linked = {artifact.id for artifact in release.artifacts}
        for upload in uploads:
            artifact = self.artifacts.ingest(upload.data, upload.filename, upload.mime_type)
            if artifact.id not in linked:
                release.artifacts.append(artifact)
                linked.add(artifact.id)

    def create_release(
        self,
        principal: models.User | None,
        target: ReleaseTarget,
        version: str,
        details: ReleaseDetails | None = None,
        artifacts: Iterable[ArtifactUpload] = (),
    ) -> Release:
        details = details or ReleaseDetails()
        self.authz.require(principal, Action.CREATE_RELEASE, target.owner)
        target.check_publishable()
        parsed = parse_version(version)
        uploads = list(artifacts)
        self._check_uploads(uploads, set())

        with self._transaction():
            if target.conflicts(self._query(target), parsed).first() is not None:
                logger.warning("Rejected duplicate release %s of %s", parsed, target.describe())
                raise DuplicateVersion(target.describe(), parsed.value)

            now = datetime.now(timezone.utc)
            release = target.build(
                version=parsed.value,
                notes=details.notes or "",
                date_released=details.date_released or now,
                date_uploaded=now,
                prerelease=details.prerelease,
                yanked=False,
                links=dict(details.links),
                meta=dict(details.metadata),
                uploader_id=principal.id,
                owner_team_id=target.owner.owner_team_id,
            )
            self._link(release, uploads)
            self.db.add(release)
            try:
                self.db.flush()
            except IntegrityError as exc:
                raise DuplicateVersion(target.describe(), parsed.value) from exc
            audit.log_action(
                self.db,
                principal.id,
                "release.create",
                release.__tablename__,
                release.id,
                {"version": parsed.value, "artifacts": len(release.artifacts)},
            )
        logger.info("Created release %s of %s with %d artifact(s)", parsed, target.describe(), len(release.artifacts))
        return release

    def attach_artifacts(
        self,
        principal: models.User | None,
        release: Release,
        artifacts: Iterable[ArtifactUpload],
    ) -> Release:
        """Add files to an existing release."""

        self.authz.require(principal, Action.CREATE_RELEASE, release)
        if release.yanked:
            raise ReleaseStateError("Cannot attach artifacts to a yanked release")
        uploads = list(artifacts)
        self._check_uploads(uploads, {artifact.filename for artifact in release.artifacts})
        with self._transaction():
            self._link(release, uploads)
            self.db.flush()
            audit.log_action(
                self.db,
                principal.id,
                "release.attach",
                release.__tablename__,
                release.id,
                {"filenames": [upload.filename for upload in uploads]},
            )
        return release

    def attach_external(
        self,
        principal: models.User | None,
        release: Release,
        *,
        filename: str,
        size: int,
        download_url: str | None = None,
        sha256: str | None = None,
        sha512: str | None = None,
        mime_type: str = "application/octet-stream",
    ) -> models.Artifact:
        """Link an artifact hosted outside the object store to a release."""

        self.authz.require(principal, Action.CREATE_RELEASE, release)
        if release.yanked:
            raise ReleaseStateError("Cannot attach artifacts to a yanked release")
        if filename in {artifact.filename for artifact in release.artifacts}:
            raise DuplicateFilename(filename)
        with self._transaction():
            artifact = self.artifacts.register_external(
                filename,
                size,
                download_url=download_url,
                sha256=sha256,
                sha512=sha512,
                mime_type=mime_type,
            )
            if artifact not in release.artifacts:
                release.artifacts.append(artifact)
            self.db.flush()
            audit.log_action(
                self.db,
                principal.id,
                "release.attach",
                release.__tablename__,
                release.id,
                {"filenames": [filename], "external": True},
            )
        return artifact

    def yank(self, principal: models.User | None, release: Release) -> Release:
        self.authz.require(principal, Action.YANK_RELEASE, release)
        if release.yanked:
            return release
        with self._transaction():
            release.yanked = True
            audit.log_action(self.db, principal.id, "release.yank", release.__tablename__, release.id, {"version": release.version})
        logger.info("Yanked release %s (%s)", release.version, release.id)
        return release

    def update(
        self,
        principal: models.User | None,
        release: Release,
        *,
        notes: str | None = None,
        links: dict[str, str] | None = None,
        metadata: dict[str, Any] | None = None,
        prerelease: bool | None = None,
    ) -> Release:
        """Edit release notes and links, or promote a prerelease."""

        self.authz.require(principal, Action.EDIT_RELEASE, release)
        if release.yanked:
            raise ReleaseStateError("Yanked releases cannot be edited")
        if prerelease and not release.prerelease:
            raise ReleaseStateError("A published release cannot become a prerelease")
        changes: dict[str, Any] = {}
        with self._transaction():
            if notes is not None:
                release.notes = notes
                changes["notes"] = True
            if links is not None:
                release.links = dict(links)
                changes["links"] = True
            if metadata is not None:
                release.meta = dict(metadata)
                changes["metadata"] = True
            if prerelease is False and release.prerelease:
                release.prerelease = False
                changes["prerelease"] = False
            audit.log_action(self.db, principal.id, "release.update", release.__tablename__, release.id, changes)
        return release

    def get(self, target: ReleaseTarget, version: str) -> Release | None:
        """Exact lookup by version; yanked releases are included."""

        try:
            return (
                target.scope(self._query(target))
                .filter(target.model.version == version)
                .order_by(target.model.date_released.desc())
                .first()
            )
        except OperationalError as exc:
            raise Unavailable("Database unavailable") from exc

    def get_by_id(self, target: ReleaseTarget, release_id: UUID) -> Release:
        release = target.scope(self._query(target)).filter(target.model.id == release_id).first()
        if release is None:
            raise NotFound("Release", release_id)
        return release

    def latest(self, target: ReleaseTarget, include_prerelease: bool = False) -> Release | None:
        query = target.scope(self._query(target)).filter(target.model.yanked.is_(False))
        if not include_prerelease:
            query = query.filter(target.model.prerelease.is_(False))
        try:
            candidates = query.all()
        except OperationalError as exc:
            raise Unavailable("Database unavailable") from exc
        if not candidates:
            return None
        return max(candidates, key=lambda release: (version_key(release.version), release.version))

    def list(self, target: ReleaseTarget, page: int = 0, limit: int | None = None) -> list[Release]:
        """Releases of ``target``, newest first."""

        query = target.scope(self._query(target)).order_by(
            target.model.date_released.desc(),
            target.model.date_uploaded.desc(),
        )
        if limit is not None:
            query = query.offset(page * limit).limit(limit)
        try:
            return query.all()
        except OperationalError as exc:
            raise Unavailable("Database unavailable") from exc

    def find_artifact(
        self,
        release: Release,
        *,
        artifact_id: UUID | None = None,
        filename: str | None = None,
    ) -> models.Artifact:
        for artifact in release.artifacts:
            if artifact_id is not None and artifact.id == artifact_id:
                return artifact
            if filename is not None and artifact.filename == filename:
                return artifact
        raise NotFound("Artifact", artifact_id or filename)
