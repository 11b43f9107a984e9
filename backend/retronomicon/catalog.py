"""Catalog registry: teams, platforms, systems, cores, games and tags."""

# purpose: resolve catalog references and own the thin CRUD around them
# status: active
# depends_on: backend.retronomicon.models, backend.retronomicon.rbac

from __future__ import annotations

import logging
from typing import Any, Type, TypeVar
from uuid import UUID

from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session

from . import audit, models
from .errors import Conflict, Forbidden, NotFound, Unavailable
from .rbac import Action, AuthorizationEngine, Role
from .validators import parse_slug

logger = logging.getLogger(__name__)

T = TypeVar("T")

_ENTITY_NAMES: dict[type, str] = {
    models.Team: "Team",
    models.Platform: "Platform",
    models.System: "System",
    models.Core: "Core",
    models.Tag: "Tag",
    models.Game: "Game",
    models.User: "User",
}

OwnedResource = models.Platform | models.System | models.Core


def _as_uuid(value: str | UUID) -> UUID | None:
    if isinstance(value, UUID):
        return value
    try:
        return UUID(value)
    except (TypeError, ValueError):
        return None


def resolve(db: Session, model: Type[T], id_or_slug: str | UUID) -> T:
    """Fetch a catalog entity by UUID or by slug."""

    identifier = _as_uuid(id_or_slug)
    try:
        if identifier is not None:
            found = db.get(model, identifier)
        elif hasattr(model, "slug"):
            found = db.query(model).filter(model.slug == id_or_slug).first()
        else:
            found = None
    except OperationalError as exc:
        raise Unavailable("Database unavailable") from exc
    if found is None:
        raise NotFound(_ENTITY_NAMES.get(model, model.__name__), id_or_slug)
    return found


def exists(db: Session, model: Type[T], id_or_slug: str | UUID) -> bool:
    try:
        resolve(db, model, id_or_slug)
    except NotFound:
        return False
    return True


def owning_team_of(db: Session, resource: Any) -> models.Team:
    if isinstance(resource, models.Team):
        return resource
    team = db.get(models.Team, resource.owner_team_id)
    if team is None:
        raise NotFound("Team", resource.owner_team_id)
    return team


def _flush_unique(db: Session, what: str) -> None:
    try:
        db.flush()
    except IntegrityError as exc:
        db.rollback()
        raise Conflict(f"{what} already exists") from exc


def create_team(
    db: Session,
    authz: AuthorizationEngine,
    *,
    user: models.User,
    slug: str,
    name: str,
    description: str = "",
    links: dict | None = None,
    metadata: dict | None = None,
) -> models.Team:
    """Create a team; the creator becomes its owner."""

    authz.require(user, Action.CREATE_TEAM)
    team = models.Team(
        slug=parse_slug(slug),
        name=name,
        description=description,
        links=dict(links or {}),
        meta=dict(metadata or {}),
    )
    db.add(team)
    _flush_unique(db, f"Team {slug}")
    db.add(models.TeamMember(team_id=team.id, user_id=user.id, role=Role.OWNER.value))
    db.flush()
    return team


def add_member(
    db: Session,
    authz: AuthorizationEngine,
    *,
    inviter: models.User,
    team: models.Team,
    invitee: models.User,
    role: Role = Role.MEMBER,
) -> models.TeamMember:
    authz.require(inviter, Action.invite(role), team)
    existing = (
        db.query(models.TeamMember)
        .filter(models.TeamMember.team_id == team.id, models.TeamMember.user_id == invitee.id)
        .first()
    )
    if existing:
        raise Conflict("User already member")
    membership = models.TeamMember(
        team_id=team.id, user_id=invitee.id, role=role.value, invite_from=inviter.id
    )
    db.add(membership)
    db.flush()
    return membership


def create_platform(
    db: Session,
    authz: AuthorizationEngine,
    *,
    user: models.User,
    owner_team: models.Team,
    slug: str,
    name: str,
    description: str = "",
    links: dict | None = None,
    metadata: dict | None = None,
) -> models.Platform:
    authz.require(user, Action.UPDATE_CATALOG, owner_team)
    platform = models.Platform(
        slug=parse_slug(slug),
        name=name,
        description=description,
        links=dict(links or {}),
        meta=dict(metadata or {}),
        owner_team_id=owner_team.id,
    )
    db.add(platform)
    _flush_unique(db, f"Platform {slug}")
    return platform


def create_system(
    db: Session,
    authz: AuthorizationEngine,
    *,
    user: models.User,
    owner_team: models.Team,
    slug: str,
    name: str,
    manufacturer: str = "",
    description: str = "",
    links: dict | None = None,
    metadata: dict | None = None,
) -> models.System:
    authz.require(user, Action.UPDATE_CATALOG, owner_team)
    system = models.System(
        slug=parse_slug(slug),
        name=name,
        manufacturer=manufacturer,
        description=description,
        links=dict(links or {}),
        meta=dict(metadata or {}),
        owner_team_id=owner_team.id,
    )
    db.add(system)
    _flush_unique(db, f"System {slug}")
    return system


def create_core(
    db: Session,
    authz: AuthorizationEngine,
    *,
    user: models.User,
    owner_team: models.Team,
    system: models.System,
    slug: str,
    name: str,
    description: str = "",
    links: dict | None = None,
    metadata: dict | None = None,
) -> models.Core:
    authz.require(user, Action.UPDATE_CATALOG, owner_team)
    core = models.Core(
        slug=parse_slug(slug),
        name=name,
        description=description,
        links=dict(links or {}),
        meta=dict(metadata or {}),
        system_id=system.id,
        owner_team_id=owner_team.id,
    )
    db.add(core)
    _flush_unique(db, f"Core {slug}")
    return core


def update_entry(
    db: Session,
    authz: AuthorizationEngine,
    *,
    user: models.User,
    resource: OwnedResource,
    changes: dict[str, Any],
) -> OwnedResource:
    """Apply metadata changes (name, description, links, metadata, slug)."""

    authz.require(user, Action.UPDATE_CATALOG, resource)
    for field, value in changes.items():
        if value is None:
            continue
        if field == "slug":
            value = parse_slug(value)
        if field == "metadata":
            field = "meta"
        if not hasattr(resource, field) or field in {"id", "owner_team_id", "system_id"}:
            raise ValueError(f"Unknown field {field}")
        setattr(resource, field, value)
    _flush_unique(db, f"{type(resource).__name__} {resource.slug}")
    return resource


def transfer_ownership(
    db: Session,
    authz: AuthorizationEngine,
    *,
    user: models.User,
    resource: OwnedResource,
    destination: models.Team,
) -> OwnedResource:
    """Move a platform, system or core to another team.

    Releases keep the owning team recorded when they were created.
    """

    authz.require(user, Action.UPDATE_CATALOG, resource)
    denial = authz.check(user, Action.UPDATE_CATALOG, destination)
    if denial is not None:
        raise Forbidden(Action.UPDATE_CATALOG, "Not enough permission on the destination team")
    source_id = resource.owner_team_id
    resource.owner_team_id = destination.id
    db.flush()
    audit.log_action(
        db,
        user.id,
        "catalog.transfer",
        type(resource).__tablename__,
        resource.id,
        {"from": str(source_id), "to": str(destination.id)},
    )
    logger.info("Transferred %s %s to team %s", type(resource).__name__, resource.slug, destination.slug)
    return resource


def _root_team(authz: AuthorizationEngine) -> models.Team:
    root = authz.root_team()
    if root is None:
        raise NotFound("Team", authz.settings.root_team_slug)
    return root


def create_tag(
    db: Session,
    authz: AuthorizationEngine,
    *,
    user: models.User,
    slug: str,
    description: str | None = None,
    color: int = 0,
) -> models.Tag:
    authz.require(user, Action.UPDATE_CATALOG, _root_team(authz))
    tag = models.Tag(slug=parse_slug(slug), description=description, color=color)
    db.add(tag)
    _flush_unique(db, f"Tag {slug}")
    return tag


def tag_resource(
    db: Session,
    authz: AuthorizationEngine,
    *,
    user: models.User,
    resource: OwnedResource | models.Game,
    tag: models.Tag,
) -> OwnedResource | models.Game:
    if isinstance(resource, models.Game):
        # games have no owning team; the root team curates them
        guarded = _root_team(authz)
    else:
        guarded = resource
    authz.require(user, Action.UPDATE_CATALOG, guarded)
    if tag not in resource.tags:
        resource.tags.append(tag)
        db.flush()
    return resource


def create_game(
    db: Session,
    authz: AuthorizationEngine,
    *,
    user: models.User,
    system: models.System,
    name: str,
    year: int,
    system_unique_id: int,
    description: str = "",
    short_description: str = "",
    publisher: str = "",
    developer: str = "",
    links: dict | None = None,
) -> models.Game:
    """Games are curated by members of the root team."""

    authz.require(user, Action.CREATE_GAME, _root_team(authz))
    game = models.Game(
        name=name,
        year=year,
        system_id=system.id,
        system_unique_id=system_unique_id,
        description=description,
        short_description=short_description,
        publisher=publisher,
        developer=developer,
        links=dict(links or {}),
    )
    db.add(game)
    _flush_unique(db, f"Game {system.slug}#{system_unique_id}")
    return game


def apply_changes(
    db: Session,
    authz: AuthorizationEngine,
    *,
    user: models.User,
    resource: OwnedResource,
    changes: dict[str, Any],
) -> OwnedResource:
    """Field edits plus an optional ``owner_team`` transfer in one call."""

    changes = dict(changes)
    owner_team = changes.pop("owner_team", None)
    if any(value is not None for value in changes.values()):
        update_entry(db, authz, user=user, resource=resource, changes=changes)
    if owner_team is not None:
        destination = resolve(db, models.Team, owner_team)
        if destination.id != resource.owner_team_id:
            transfer_ownership(db, authz, user=user, resource=resource, destination=destination)
    return resource
