"""Core and system release API routes."""

# purpose: expose the release ledger over HTTP for cores (per platform) and systems
# status: active
# depends_on: backend.retronomicon.releases

from __future__ import annotations

import io
from typing import List, Optional
from urllib.parse import quote
from uuid import UUID

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile, status
from fastapi.responses import RedirectResponse, StreamingResponse
from pydantic import ValidationError
from sqlalchemy.orm import Session

from .. import catalog, models, schemas
from ..artifacts import ArtifactUpload
from ..auth import get_current_user, get_optional_user
from ..config import Settings
from ..database import get_db
from ..dependencies import get_ledger, get_settings
from ..errors import NotFound
from ..releases import CoreTarget, ReleaseDetails, ReleaseLedger, ReleaseTarget, SystemTarget
from ..storage import ObjectStore, get_object_store

router = APIRouter(prefix="/api", tags=["releases"])


def _core_target(db: Session, core_id: str, platform: str | None) -> CoreTarget:
    core = catalog.resolve(db, models.Core, core_id)
    resolved_platform = catalog.resolve(db, models.Platform, platform) if platform else None
    return CoreTarget(core, resolved_platform)


def _system_target(db: Session, system_id: str) -> SystemTarget:
    return SystemTarget(catalog.resolve(db, models.System, system_id))


def _find_release(ledger: ReleaseLedger, target: ReleaseTarget, release_ref: str):
    try:
        release_id = UUID(release_ref)
    except ValueError:
        release = ledger.get(target, release_ref)
        if release is None:
            raise NotFound("Release", release_ref)
        return release
    return ledger.get_by_id(target, release_id)


def _parse_payload(raw: str, schema):
    try:
        return schema.model_validate_json(raw)
    except ValidationError as exc:
        raise HTTPException(status_code=422, detail=exc.errors(include_url=False))


async def _read_uploads(files: List[UploadFile], settings: Settings) -> list[ArtifactUpload]:
    uploads = []
    for upload in files:
        # one byte past the limit is enough to reject oversized files
        data = await upload.read(settings.max_artifact_size + 1)
        uploads.append(
            ArtifactUpload(
                filename=upload.filename or "",
                data=data,
                mime_type=upload.content_type or "application/octet-stream",
            )
        )
    return uploads


def _details(payload: schemas.ReleaseCreate) -> ReleaseDetails:
    return ReleaseDetails(
        notes=payload.notes,
        prerelease=payload.prerelease,
        date_released=payload.date_released,
        links=payload.links,
        metadata=payload.metadata,
    )


def _content_disposition(filename: str) -> str:
    # headers are latin-1; non-ASCII names travel in the RFC 5987 parameter
    fallback = filename.encode("ascii", "replace").decode("ascii").replace('"', "_")
    return f"attachment; filename=\"{fallback}\"; filename*=UTF-8''{quote(filename, safe='')}"


def _download(artifact: models.Artifact, objects: ObjectStore):
    if artifact.storage_key is None:
        if not artifact.download_url:
            raise NotFound("File", artifact.id)
        return RedirectResponse(artifact.download_url)
    try:
        data = objects.get(artifact.storage_key)
    except FileNotFoundError:
        raise NotFound("File", artifact.id)
    return StreamingResponse(
        io.BytesIO(data),
        media_type=artifact.mime_type,
        headers={"Content-Disposition": _content_disposition(artifact.filename)},
    )


# Core releases


@router.get("/cores/{core_id}/releases", response_model=list[schemas.CoreReleaseOut])
async def list_core_releases(
    core_id: str,
    platform: Optional[str] = None,
    page: int = Query(default=0, ge=0),
    limit: int = Query(default=50, ge=1, le=100),
    db: Session = Depends(get_db),
    ledger: ReleaseLedger = Depends(get_ledger),
    user: models.User | None = Depends(get_optional_user),
):
    return ledger.list(_core_target(db, core_id, platform), page=page, limit=limit)


@router.post("/cores/{core_id}/releases", response_model=schemas.CoreReleaseOut, status_code=status.HTTP_201_CREATED)
async def create_core_release(
    core_id: str,
    release: str = Form(...),
    files: List[UploadFile] = File(default=[]),
    db: Session = Depends(get_db),
    ledger: ReleaseLedger = Depends(get_ledger),
    settings: Settings = Depends(get_settings),
    user: models.User = Depends(get_current_user),
):
    payload = _parse_payload(release, schemas.CoreReleaseCreate)
    target = _core_target(db, core_id, payload.platform)
    uploads = await _read_uploads(files, settings)
    return ledger.create_release(user, target, payload.version, _details(payload), uploads)


@router.get("/cores/{core_id}/releases/latest", response_model=schemas.CoreReleaseOut)
async def latest_core_release(
    core_id: str,
    platform: Optional[str] = None,
    prerelease: bool = False,
    db: Session = Depends(get_db),
    ledger: ReleaseLedger = Depends(get_ledger),
    user: models.User | None = Depends(get_optional_user),
):
    release = ledger.latest(_core_target(db, core_id, platform), include_prerelease=prerelease)
    if release is None:
        raise NotFound("Release", "latest")
    return release


@router.get("/cores/{core_id}/releases/{release_ref}", response_model=schemas.CoreReleaseOut)
async def get_core_release(
    core_id: str,
    release_ref: str,
    platform: Optional[str] = None,
    db: Session = Depends(get_db),
    ledger: ReleaseLedger = Depends(get_ledger),
    user: models.User | None = Depends(get_optional_user),
):
    return _find_release(ledger, _core_target(db, core_id, platform), release_ref)


@router.patch("/cores/{core_id}/releases/{release_id}", response_model=schemas.CoreReleaseOut)
async def update_core_release(
    core_id: str,
    release_id: UUID,
    changes: schemas.ReleaseUpdate,
    db: Session = Depends(get_db),
    ledger: ReleaseLedger = Depends(get_ledger),
    user: models.User = Depends(get_current_user),
):
    release = ledger.get_by_id(_core_target(db, core_id, None), release_id)
    return ledger.update(user, release, **changes.model_dump(exclude_unset=True))


@router.post("/cores/{core_id}/releases/{release_id}/yank", response_model=schemas.CoreReleaseOut)
async def yank_core_release(
    core_id: str,
    release_id: UUID,
    db: Session = Depends(get_db),
    ledger: ReleaseLedger = Depends(get_ledger),
    user: models.User = Depends(get_current_user),
):
    release = ledger.get_by_id(_core_target(db, core_id, None), release_id)
    return ledger.yank(user, release)


@router.post("/cores/{core_id}/releases/{release_id}/artifacts", response_model=schemas.CoreReleaseOut)
async def upload_core_artifacts(
    core_id: str,
    release_id: UUID,
    files: List[UploadFile] = File(...),
    db: Session = Depends(get_db),
    ledger: ReleaseLedger = Depends(get_ledger),
    settings: Settings = Depends(get_settings),
    user: models.User = Depends(get_current_user),
):
    release = ledger.get_by_id(_core_target(db, core_id, None), release_id)
    uploads = await _read_uploads(files, settings)
    return ledger.attach_artifacts(user, release, uploads)


@router.post(
    "/cores/{core_id}/releases/{release_id}/artifacts/external",
    response_model=schemas.ArtifactOut,
    status_code=status.HTTP_201_CREATED,
)
async def register_core_external_artifact(
    core_id: str,
    release_id: UUID,
    payload: schemas.ExternalArtifactIn,
    db: Session = Depends(get_db),
    ledger: ReleaseLedger = Depends(get_ledger),
    user: models.User = Depends(get_current_user),
):
    release = ledger.get_by_id(_core_target(db, core_id, None), release_id)
    return ledger.attach_external(user, release, **payload.model_dump())


@router.get("/cores/{core_id}/releases/{release_id}/artifacts", response_model=list[schemas.ArtifactOut])
async def list_core_artifacts(
    core_id: str,
    release_id: UUID,
    db: Session = Depends(get_db),
    ledger: ReleaseLedger = Depends(get_ledger),
    user: models.User | None = Depends(get_optional_user),
):
    return ledger.get_by_id(_core_target(db, core_id, None), release_id).artifacts


@router.get("/cores/{core_id}/releases/{release_id}/artifacts/download/{filename:path}")
async def download_core_artifact_by_name(
    core_id: str,
    release_id: UUID,
    filename: str,
    db: Session = Depends(get_db),
    ledger: ReleaseLedger = Depends(get_ledger),
    objects: ObjectStore = Depends(get_object_store),
    user: models.User | None = Depends(get_optional_user),
):
    release = ledger.get_by_id(_core_target(db, core_id, None), release_id)
    return _download(ledger.find_artifact(release, filename=filename), objects)


@router.get("/cores/{core_id}/releases/{release_id}/artifacts/{artifact_id}/download")
async def download_core_artifact(
    core_id: str,
    release_id: UUID,
    artifact_id: UUID,
    db: Session = Depends(get_db),
    ledger: ReleaseLedger = Depends(get_ledger),
    objects: ObjectStore = Depends(get_object_store),
    user: models.User | None = Depends(get_optional_user),
):
    release = ledger.get_by_id(_core_target(db, core_id, None), release_id)
    return _download(ledger.find_artifact(release, artifact_id=artifact_id), objects)


# System releases


@router.get("/systems/{system_id}/releases", response_model=list[schemas.SystemReleaseOut])
async def list_system_releases(
    system_id: str,
    page: int = Query(default=0, ge=0),
    limit: int = Query(default=50, ge=1, le=100),
    db: Session = Depends(get_db),
    ledger: ReleaseLedger = Depends(get_ledger),
    user: models.User | None = Depends(get_optional_user),
):
    return ledger.list(_system_target(db, system_id), page=page, limit=limit)


@router.post("/systems/{system_id}/releases", response_model=schemas.SystemReleaseOut, status_code=status.HTTP_201_CREATED)
async def create_system_release(
    system_id: str,
    release: str = Form(...),
    files: List[UploadFile] = File(default=[]),
    db: Session = Depends(get_db),
    ledger: ReleaseLedger = Depends(get_ledger),
    settings: Settings = Depends(get_settings),
    user: models.User = Depends(get_current_user),
):
    payload = _parse_payload(release, schemas.ReleaseCreate)
    uploads = await _read_uploads(files, settings)
    return ledger.create_release(user, _system_target(db, system_id), payload.version, _details(payload), uploads)


@router.get("/systems/{system_id}/releases/latest", response_model=schemas.SystemReleaseOut)
async def latest_system_release(
    system_id: str,
    prerelease: bool = False,
    db: Session = Depends(get_db),
    ledger: ReleaseLedger = Depends(get_ledger),
    user: models.User | None = Depends(get_optional_user),
):
    release = ledger.latest(_system_target(db, system_id), include_prerelease=prerelease)
    if release is None:
        raise NotFound("Release", "latest")
    return release


@router.get("/systems/{system_id}/releases/{release_ref}", response_model=schemas.SystemReleaseOut)
async def get_system_release(
    system_id: str,
    release_ref: str,
    db: Session = Depends(get_db),
    ledger: ReleaseLedger = Depends(get_ledger),
    user: models.User | None = Depends(get_optional_user),
):
    return _find_release(ledger, _system_target(db, system_id), release_ref)


@router.patch("/systems/{system_id}/releases/{release_id}", response_model=schemas.SystemReleaseOut)
async def update_system_release(
    system_id: str,
    release_id: UUID,
    changes: schemas.ReleaseUpdate,
    db: Session = Depends(get_db),
    ledger: ReleaseLedger = Depends(get_ledger),
    user: models.User = Depends(get_current_user),
):
    release = ledger.get_by_id(_system_target(db, system_id), release_id)
    return ledger.update(user, release, **changes.model_dump(exclude_unset=True))


@router.post("/systems/{system_id}/releases/{release_id}/yank", response_model=schemas.SystemReleaseOut)
async def yank_system_release(
    system_id: str,
    release_id: UUID,
    db: Session = Depends(get_db),
    ledger: ReleaseLedger = Depends(get_ledger),
    user: models.User = Depends(get_current_user),
):
    release = ledger.get_by_id(_system_target(db, system_id), release_id)
    return ledger.yank(user, release)


@router.post("/systems/{system_id}/releases/{release_id}/artifacts", response_model=schemas.SystemReleaseOut)
async def upload_system_artifacts(
    system_id: str,
    release_id: UUID,
    files: List[UploadFile] = File(...),
    db: Session = Depends(get_db),
    ledger: ReleaseLedger = Depends(get_ledger),
    settings: Settings = Depends(get_settings),
    user: models.User = Depends(get_current_user),
):
    release = ledger.get_by_id(_system_target(db, system_id), release_id)
    uploads = await _read_uploads(files, settings)
    return ledger.attach_artifacts(user, release, uploads)


@router.get("/systems/{system_id}/releases/{release_id}/artifacts/{artifact_id}/download")
async def download_system_artifact(
    system_id: str,
    release_id: UUID,
    artifact_id: UUID,
    db: Session = Depends(get_db),
    ledger: ReleaseLedger = Depends(get_ledger),
    objects: ObjectStore = Depends(get_object_store),
    user: models.User | None = Depends(get_optional_user),
):
    release = ledger.get_by_id(_system_target(db, system_id), release_id)
    return _download(ledger.find_artifact(release, artifact_id=artifact_id), objects)
