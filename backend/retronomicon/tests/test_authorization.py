import pytest

from retronomicon import models
from retronomicon.config import Settings
from retronomicon.errors import Forbidden
from retronomicon.rbac import Action, AuthorizationEngine, Role, matches_root_pattern, role_rank
from retronomicon.releases import CoreTarget

from .conftest import make_user


def test_role_order_is_explicit():
    assert role_rank(Role.OWNER) > role_rank(Role.ADMIN) > role_rank(Role.MEMBER) > role_rank(None)


def test_member_can_release_but_not_invite_admin(authz, world):
    assert authz.can(world.member, Action.CREATE_RELEASE, world.core)
    assert authz.can(world.member, Action.YANK_RELEASE, world.core)
    assert not authz.can(world.member, Action.INVITE_ADMIN, world.team)
    assert not authz.can(world.member, Action.INVITE_MEMBER, world.team)
    assert not authz.can(world.member, Action.UPDATE_CATALOG, world.core)


def test_admin_can_invite_member_but_not_owner(authz, world):
    assert authz.can(world.admin, Action.INVITE_MEMBER, world.team)
    assert not authz.can(world.admin, Action.INVITE_ADMIN, world.team)
    assert not authz.can(world.admin, Action.INVITE_OWNER, world.team)
    assert authz.can(world.admin, Action.UPDATE_CATALOG, world.core)
    assert not authz.can(world.admin, Action.UPDATE_TEAM, world.team)


def test_owner_table(authz, world):
    for action in Action:
        assert authz.can(world.owner, action, world.team), action


def test_non_member_and_anonymous_are_denied(authz, world):
    denial = authz.check(world.outsider, Action.CREATE_RELEASE, world.core)
    assert isinstance(denial, Forbidden)
    assert denial.action is Action.CREATE_RELEASE
    assert authz.check(None, Action.CREATE_TEAM) is not None
    assert authz.can(world.outsider, Action.CREATE_TEAM)


def test_root_owner_can_do_everything_on_unrelated_team(authz, world):
    # boss has no membership row; the wildcard email pattern makes them a root owner
    assert authz.effective_role(world.boss, world.root) is Role.OWNER
    assert authz.effective_role(world.boss, world.team) is None
    for action in Action:
        assert authz.can(world.boss, action, world.other), action
        assert authz.can(world.boss, action, world.core), action


def test_root_admin_is_not_an_escape_hatch(authz, world):
    assert not authz.is_root_owner(world.root_admin)
    assert not authz.can(world.root_admin, Action.CREATE_RELEASE, world.core)
    # only owners may invite into the root team
    assert not authz.can(world.root_admin, Action.INVITE_MEMBER, world.root)


def test_require_raises_the_denial(authz, world):
    with pytest.raises(Forbidden):
        authz.require(world.outsider, Action.UPDATE_CATALOG, world.core)
    authz.require(world.admin, Action.UPDATE_CATALOG, world.core)


def test_inactive_or_deleted_users_have_no_role(db, authz, world):
    world.member.is_active = False
    db.flush()
    assert authz.effective_role(world.member, world.team) is None
    assert not authz.can(world.member, Action.CREATE_RELEASE, world.core)


def test_release_permissions_follow_the_release_owner(db, authz, ledger, world):
    release = ledger.create_release(world.member, CoreTarget(world.core, world.platform), "1.0.0")
    assert authz.can(world.admin, Action.YANK_RELEASE, release)
    assert not authz.can(world.outsider, Action.YANK_RELEASE, release)


def test_root_patterns_come_from_the_settings_snapshot(db, world):
    engine = AuthorizationEngine(db, Settings(additional_roots=("owner@example.com",)))
    assert engine.is_root_owner(world.owner)
    assert not engine.is_root_owner(world.boss)


def test_custom_root_team_slug(db, world):
    engine = AuthorizationEngine(db, Settings(root_team_slug="mister"))
    assert engine.is_root_owner(world.owner)
    assert engine.can(world.owner, Action.UPDATE_CATALOG, world.other)


def test_missing_root_team_grants_nothing(db):
    user = make_user(db, "boss@staff.retronomicon.test")
    engine = AuthorizationEngine(db, Settings(additional_roots=("*@staff.retronomicon.test",)))
    assert not engine.is_root_owner(user)


@pytest.mark.parametrize(
    "email, patterns, expected",
    [
        ("hansl@retronomicon.land", ["*@retronomicon.land"], True),
        ("Hansl@Retronomicon.LAND", ["*@retronomicon.land"], True),
        ("x@evil.land", ["*@retronomicon.land"], False),
        ("a1@example.com", ["a?@example.com"], True),
        ("a12@example.com", ["a?@example.com"], False),
        ("", ["*"], False),
        (None, ["*"], False),
        ("a@example.com", [], False),
    ],
)
def test_matches_root_pattern(email, patterns, expected):
    assert matches_root_pattern(email, patterns) is expected


def test_team_without_members_denies_everyone(db, authz, world):
    lonely = models.Team(slug="lonely", name="Lonely")
    db.add(lonely)
    db.flush()
    assert not authz.can(world.owner, Action.UPDATE_TEAM, lonely)
