from __future__ import annotations

import fnmatch
import logging
from enum import Enum
from typing import Iterable, Union
from uuid import UUID

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from . import models
from .config import Settings
from .errors import Forbidden, Unavailable

# purpose: centralize team-scoped authorization for catalog and release workflows
# status: active

logger = logging.getLogger(__name__)


class Role(str, Enum):
    OWNER = "owner"
    ADMIN = "admin"
    MEMBER = "member"


_ROLE_RANKS: dict[Role, int] = {
    Role.MEMBER: 10,
    Role.ADMIN: 50,
    Role.OWNER: 100,
}


def role_rank(role: Role | None) -> int:
    """Total order over roles, with no role ranking below every role."""

    return 0 if role is None else _ROLE_RANKS[role]


class Action(str, Enum):
    CREATE_TEAM = "create_team"
    UPDATE_TEAM = "update_team"
    DELETE_TEAM = "delete_team"
    INVITE_MEMBER = "invite_member"
    INVITE_ADMIN = "invite_admin"
    INVITE_OWNER = "invite_owner"
    CREATE_RELEASE = "create_release"
    EDIT_RELEASE = "edit_release"
    YANK_RELEASE = "yank_release"
    UPDATE_CATALOG = "update_catalog"
    CREATE_GAME = "create_game"

    @classmethod
    def invite(cls, role: Role) -> "Action":
        return {
            Role.MEMBER: cls.INVITE_MEMBER,
            Role.ADMIN: cls.INVITE_ADMIN,
            Role.OWNER: cls.INVITE_OWNER,
        }[role]


# Minimum role on the owning team; None means any authenticated user.
_REQUIRED_ROLE: dict[Action, Role | None] = {
    Action.CREATE_TEAM: None,
    Action.UPDATE_TEAM: Role.OWNER,
    Action.DELETE_TEAM: Role.OWNER,
    Action.INVITE_MEMBER: Role.ADMIN,
    Action.INVITE_ADMIN: Role.OWNER,
    Action.INVITE_OWNER: Role.OWNER,
    Action.CREATE_RELEASE: Role.MEMBER,
    Action.EDIT_RELEASE: Role.MEMBER,
    Action.YANK_RELEASE: Role.MEMBER,
    Action.UPDATE_CATALOG: Role.ADMIN,
    Action.CREATE_GAME: Role.MEMBER,
}

_INVITE_ACTIONS = {Action.INVITE_MEMBER, Action.INVITE_ADMIN, Action.INVITE_OWNER}

Resource = Union[
    models.Team,
    models.Platform,
    models.System,
    models.Core,
    models.CoreRelease,
    models.SystemRelease,
]


def matches_root_pattern(email: str | None, patterns: Iterable[str]) -> bool:
    """Return True when ``email`` matches any wildcard pattern (``*`` and ``?``)."""

    if not email:
        return False
    candidate = email.strip().lower()
    return any(fnmatch.fnmatchcase(candidate, pattern.strip().lower()) for pattern in patterns)


def owning_team_id(resource: Resource) -> UUID:
    if isinstance(resource, models.Team):
        return resource.id
    return resource.owner_team_id


class AuthorizationEngine:
    """Answer "may this user do that" for team-owned resources.

    Decisions read memberships but never write; a denial is reported as a
    :class:`Forbidden` value by :meth:`check` and only raised by
    :meth:`require`.
    """

    def __init__(self, db: Session, settings: Settings) -> None:
        self.db = db
        self.settings = settings
        self._root_team_id: UUID | None = None

    def root_team(self) -> models.Team | None:
        try:
            return (
                self.db.query(models.Team)
                .filter(models.Team.slug == self.settings.root_team_slug)
                .first()
            )
        except OperationalError as exc:
            raise Unavailable("Database unavailable") from exc

    def is_root_team(self, team: models.Team | UUID) -> bool:
        team_id = team.id if isinstance(team, models.Team) else team
        if self._root_team_id is None:
            root = self.root_team()
            if root is None:
                return False
            self._root_team_id = root.id
        return team_id == self._root_team_id

    def _membership_role(self, user: models.User, team_id: UUID) -> Role | None:
        try:
            membership = (
                self.db.query(models.TeamMember)
                .filter(models.TeamMember.team_id == team_id, models.TeamMember.user_id == user.id)
                .first()
            )
        except OperationalError as exc:
            raise Unavailable("Database unavailable") from exc
        if membership is None:
            return None
        return Role(membership.role)

    def effective_role(self, user: models.User | None, team: models.Team | UUID) -> Role | None:
        if user is None or not user.is_active or user.deleted:
            return None
        team_id = team.id if isinstance(team, models.Team) else team
        if self.is_root_team(team_id) and matches_root_pattern(user.email, self.settings.additional_roots):
            return Role.OWNER
        return self._membership_role(user, team_id)

    def is_root_owner(self, user: models.User | None) -> bool:
        root = self.root_team()
        if root is None:
            return False
        return self.effective_role(user, root) is Role.OWNER

    def check(
        self,
        user: models.User | None,
        action: Action,
        resource: Resource | None = None,
    ) -> Forbidden | None:
        if user is None:
            return Forbidden(action, "Authentication required")
        required = _REQUIRED_ROLE[action]
        if required is None:
            return None
        if self.is_root_owner(user):
            return None
        team_id = owning_team_id(resource)
        role = self.effective_role(user, team_id)
        if role is None:
            return Forbidden(action, "Not a member of the owning team")
        if action in _INVITE_ACTIONS and self.is_root_team(team_id) and role is not Role.OWNER:
            return Forbidden(action, "Only owners may invite to the root team")
        if role_rank(role) < role_rank(required):
            return Forbidden(action, "Not enough permission")
        return None

    def can(self, user: models.User | None, action: Action, resource: Resource | None = None) -> bool:
        return self.check(user, action, resource) is None

    def require(self, user: models.User | None, action: Action, resource: Resource | None = None) -> None:
        denial = self.check(user, action, resource)
        if denial is not None:
            logger.warning(
                "Denied %s on %s for %s: %s",
                action.value,
                type(resource).__name__,
                getattr(user, "email", "anonymous"),
                denial.reason,
            )
            raise denial
