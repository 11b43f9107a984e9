"""Command-line access to the release ledger."""

# purpose: let maintainers publish, inspect and yank releases from CI scripts
# status: active
# depends_on: backend.retronomicon.releases, backend.retronomicon.database

from __future__ import annotations

import json
import mimetypes
from pathlib import Path
from typing import List, Optional

import typer
from sqlalchemy.orm import Session

from .. import catalog, models
from ..artifacts import ArtifactStore, ArtifactUpload
from ..auth import create_access_token
from ..config import load_settings
from ..database import SessionLocal
from ..errors import RetronomiconError
from ..rbac import AuthorizationEngine
from ..releases import CoreTarget, ReleaseDetails, ReleaseLedger, ReleaseTarget, SystemTarget
from ..storage import get_object_store

app = typer.Typer(help="Release management commands")


def _ledger(session: Session) -> ReleaseLedger:
    settings = load_settings()
    authz = AuthorizationEngine(session, settings)
    return ReleaseLedger(session, authz, ArtifactStore(session, get_object_store(), settings))


def _principal(session: Session, email: str) -> models.User:
    user = session.query(models.User).filter(models.User.email == email).first()
    if user is None:
        raise typer.BadParameter(f"No user with email {email}")
    return user


def _target(session: Session, core: str | None, system: str | None, platform: str | None) -> ReleaseTarget:
    if bool(core) == bool(system):
        raise typer.BadParameter("Pass exactly one of --core or --system")
    if system:
        return SystemTarget(catalog.resolve(session, models.System, system))
    resolved_platform = catalog.resolve(session, models.Platform, platform) if platform else None
    return CoreTarget(catalog.resolve(session, models.Core, core), resolved_platform)


def _summary(release) -> dict[str, object]:
    return {
        "id": str(release.id),
        "version": release.version,
        "prerelease": release.prerelease,
        "yanked": release.yanked,
        "date_released": release.date_released.isoformat() if release.date_released else None,
        "artifacts": [
            {"filename": artifact.filename, "sha256": artifact.sha256, "size": artifact.size}
            for artifact in release.artifacts
        ],
    }


def _fail(exc: RetronomiconError) -> None:
    typer.echo(json.dumps(exc.to_dict()), err=True)
    raise typer.Exit(code=1)


@app.command("create")
def create_command(
    version: str = typer.Argument(..., help="Version identifier, e.g. 1.2.0"),
    files: List[Path] = typer.Argument(None, help="Artifact files to attach"),
    email: str = typer.Option(..., "--as", help="Email of the publishing user"),
    core: Optional[str] = typer.Option(None, help="Core id or slug"),
    system: Optional[str] = typer.Option(None, help="System id or slug"),
    platform: Optional[str] = typer.Option(None, help="Platform id or slug (core releases)"),
    notes: str = typer.Option("", help="Release notes"),
    prerelease: bool = typer.Option(False, help="Mark as prerelease"),
) -> None:
    """Publish a release with the given files."""

    uploads = []
    for path in files or []:
        mime_type = mimetypes.guess_type(path.name)[0] or "application/octet-stream"
        uploads.append(ArtifactUpload(filename=path.name, data=path.read_bytes(), mime_type=mime_type))
    session = SessionLocal()
    try:
        target = _target(session, core, system, platform)
        if isinstance(target, CoreTarget) and target.platform is None:
            raise typer.BadParameter("--platform is required for core releases")
        release = _ledger(session).create_release(
            _principal(session, email),
            target,
            version,
            ReleaseDetails(notes=notes, prerelease=prerelease),
            uploads,
        )
        typer.echo(json.dumps(_summary(release)))
    except RetronomiconError as exc:
        _fail(exc)
    finally:
        session.close()


@app.command("list")
def list_command(
    core: Optional[str] = typer.Option(None, help="Core id or slug"),
    system: Optional[str] = typer.Option(None, help="System id or slug"),
    platform: Optional[str] = typer.Option(None, help="Platform id or slug"),
    page: int = typer.Option(0, min=0),
    limit: int = typer.Option(50, min=1, max=100),
) -> None:
    session = SessionLocal()
    try:
        target = _target(session, core, system, platform)
        releases = _ledger(session).list(target, page=page, limit=limit)
        typer.echo(json.dumps([_summary(release) for release in releases]))
    except RetronomiconError as exc:
        _fail(exc)
    finally:
        session.close()


@app.command("latest")
def latest_command(
    core: Optional[str] = typer.Option(None, help="Core id or slug"),
    system: Optional[str] = typer.Option(None, help="System id or slug"),
    platform: Optional[str] = typer.Option(None, help="Platform id or slug"),
    prerelease: bool = typer.Option(False, help="Consider prereleases"),
) -> None:
    """Print the highest non-yanked version."""

    session = SessionLocal()
    try:
        target = _target(session, core, system, platform)
        release = _ledger(session).latest(target, include_prerelease=prerelease)
        if release is None:
            typer.echo("No releases", err=True)
            raise typer.Exit(code=1)
        typer.echo(json.dumps(_summary(release)))
    except RetronomiconError as exc:
        _fail(exc)
    finally:
        session.close()


@app.command("yank")
def yank_command(
    version: str = typer.Argument(...),
    email: str = typer.Option(..., "--as", help="Email of the acting user"),
    core: Optional[str] = typer.Option(None, help="Core id or slug"),
    system: Optional[str] = typer.Option(None, help="System id or slug"),
    platform: Optional[str] = typer.Option(None, help="Platform id or slug"),
) -> None:
    session = SessionLocal()
    try:
        ledger = _ledger(session)
        target = _target(session, core, system, platform)
        release = ledger.get(target, version)
        if release is None:
            typer.echo(f"Release {version} not found", err=True)
            raise typer.Exit(code=1)
        ledger.yank(_principal(session, email), release)
        typer.echo(json.dumps(_summary(release)))
    except RetronomiconError as exc:
        _fail(exc)
    finally:
        session.close()


@app.command("token")
def token_command(email: str = typer.Argument(..., help="User email")) -> None:
    """Mint a bearer token for an existing user."""

    session = SessionLocal()
    try:
        user = _principal(session, email)
        typer.echo(create_access_token({"sub": user.email}))
    finally:
        session.close()


if __name__ == "__main__":
    app()
