import pytest

from retronomicon import catalog, models
from retronomicon.errors import Conflict, Forbidden, InvalidSlug, NotFound
from retronomicon.rbac import Role

from .conftest import auth_headers, make_user


def test_resolve_by_id_or_slug(db, world):
    assert catalog.resolve(db, models.Core, "nes-core").id == world.core.id
    assert catalog.resolve(db, models.Core, str(world.core.id)).id == world.core.id
    assert catalog.resolve(db, models.Core, world.core.id).id == world.core.id
    with pytest.raises(NotFound) as exc:
        catalog.resolve(db, models.Core, "snes-core")
    assert exc.value.entity == "Core"
    assert catalog.exists(db, models.System, "nes")
    assert not catalog.exists(db, models.System, "snes")


def test_owning_team_of(db, world):
    assert catalog.owning_team_of(db, world.core).id == world.team.id
    assert catalog.owning_team_of(db, world.team).id == world.team.id


def test_create_core_requires_admin_on_owner_team(db, authz, world):
    with pytest.raises(Forbidden):
        catalog.create_core(
            db, authz, user=world.member, owner_team=world.team, system=world.system, slug="nes-alt", name="Alt"
        )
    core = catalog.create_core(
        db, authz, user=world.admin, owner_team=world.team, system=world.system, slug="nes-alt", name="Alt"
    )
    db.commit()
    assert core.owner_team_id == world.team.id


def test_catalog_slugs_are_validated_and_unique(db, authz, world):
    with pytest.raises(InvalidSlug):
        catalog.create_platform(db, authz, user=world.boss, owner_team=world.root, slug="new", name="New")
    with pytest.raises(Conflict):
        catalog.create_platform(db, authz, user=world.boss, owner_team=world.root, slug="de10", name="Again")


def test_transfer_needs_admin_on_both_teams(db, authz, world):
    with pytest.raises(Forbidden):
        catalog.transfer_ownership(db, authz, user=world.admin, resource=world.core, destination=world.other)
    db.add(models.TeamMember(team_id=world.other.id, user_id=world.admin.id, role=Role.ADMIN.value))
    db.flush()
    catalog.transfer_ownership(db, authz, user=world.admin, resource=world.core, destination=world.other)
    db.commit()
    assert world.core.owner_team_id == world.other.id
    assert db.query(models.AuditLog).filter(models.AuditLog.action == "catalog.transfer").count() == 1


def test_tags_and_games_belong_to_the_root_team(db, authz, world):
    with pytest.raises(Forbidden):
        catalog.create_tag(db, authz, user=world.owner, slug="arcade")
    tag = catalog.create_tag(db, authz, user=world.root_admin, slug="arcade", color=0xFF0000)
    catalog.tag_resource(db, authz, user=world.admin, resource=world.core, tag=tag)
    assert world.core.tags == [tag]

    with pytest.raises(Forbidden):
        catalog.create_game(db, authz, user=world.owner, system=world.system, name="Zelda", year=1986, system_unique_id=1)
    game = catalog.create_game(
        db, authz, user=world.root_admin, system=world.system, name="Zelda", year=1986, system_unique_id=1
    )
    catalog.tag_resource(db, authz, user=world.root_admin, resource=game, tag=tag)
    db.commit()
    assert game.tags == [tag]
    with pytest.raises(Conflict):
        catalog.create_game(
            db, authz, user=world.root_admin, system=world.system, name="Zelda II", year=1987, system_unique_id=1
        )


def test_invite_rules(db, authz, world):
    newcomer = make_user(db, "newcomer@example.com")
    with pytest.raises(Forbidden):
        catalog.add_member(db, authz, inviter=world.admin, team=world.team, invitee=newcomer, role=Role.OWNER)
    catalog.add_member(db, authz, inviter=world.admin, team=world.team, invitee=newcomer)
    with pytest.raises(Conflict):
        catalog.add_member(db, authz, inviter=world.owner, team=world.team, invitee=newcomer)
    with pytest.raises(Forbidden):
        catalog.add_member(db, authz, inviter=world.root_admin, team=world.root, invitee=newcomer)


def test_team_routes(client, world, db):
    make_user(db, "friend@example.com")
    db.commit()
    headers = auth_headers(world.outsider)
    resp = client.post("/api/teams/", json={"slug": "pocket-devs", "name": "Pocket devs"}, headers=headers)
    assert resp.status_code == 201, resp.text
    team_id = resp.json()["id"]

    invite = client.post(
        f"/api/teams/{team_id}/members", json={"email": "friend@example.com", "role": "admin"}, headers=headers
    )
    assert invite.status_code == 201
    assert invite.json()["user"]["email"] == "friend@example.com"
    assert invite.json()["role"] == "admin"

    mine = client.get("/api/teams/", headers=headers).json()
    assert {t["slug"] for t in mine} == {"other", "pocket-devs"}

    reserved = client.post("/api/teams/", json={"slug": "me", "name": "Me"}, headers=headers)
    assert reserved.status_code == 400
    assert reserved.json()["kind"] == "invalid_slug"


def test_catalog_routes(client, world):
    admin = auth_headers(world.root_admin)
    resp = client.post(
        "/api/systems/",
        json={"slug": "genesis", "name": "Genesis", "manufacturer": "Sega", "owner_team": "root"},
        headers=admin,
    )
    assert resp.status_code == 201, resp.text
    resp = client.post(
        "/api/cores/",
        json={"slug": "genesis-core", "name": "Genesis core", "system": "genesis", "owner_team": "root"},
        headers=admin,
    )
    assert resp.status_code == 201, resp.text
    assert resp.json()["system"]["slug"] == "genesis"

    denied = client.put("/api/cores/genesis-core", json={"name": "Renamed"}, headers=auth_headers(world.member))
    assert denied.status_code == 403
    renamed = client.put(
        "/api/cores/genesis-core", json={"name": "Renamed", "metadata": {"author": "x"}}, headers=admin
    )
    assert renamed.json()["name"] == "Renamed"
    assert renamed.json()["metadata"] == {"author": "x"}

    listing = client.get("/api/cores/", params={"system": "genesis"}).json()
    assert [c["slug"] for c in listing] == ["genesis-core"]
    assert client.get("/api/platforms/de10").json()["owner_team"]["slug"] == "root"


def test_transfer_route_keeps_release_owner(client, world, db):
    boss = auth_headers(world.boss)
    release = client.post(
        f"/api/cores/{world.core.slug}/releases",
        data={"release": '{"version": "1.0.0", "platform": "de10"}'},
        headers=auth_headers(world.member),
    ).json()
    moved = client.put(f"/api/cores/{world.core.slug}", json={"owner_team": "other"}, headers=boss)
    assert moved.status_code == 200, moved.text
    assert moved.json()["owner_team"]["slug"] == "other"
    fetched = client.get(f"/api/cores/{world.core.slug}/releases/{release['id']}").json()
    assert fetched["owner_team"]["slug"] == "mister"


def test_tag_and_game_routes(client, world):
    admin = auth_headers(world.root_admin)
    tag = client.post("/api/tags/", json={"slug": "homebrew", "color": 255}, headers=admin)
    assert tag.status_code == 201
    tagged = client.post(f"/api/cores/{world.core.slug}/tags", json={"tag": "homebrew"}, headers=auth_headers(world.admin))
    assert [t["slug"] for t in tagged.json()["tags"]] == ["homebrew"]

    game = client.post(
        "/api/games/",
        json={"name": "Metroid", "year": 1986, "system": "nes", "system_unique_id": 7},
        headers=admin,
    )
    assert game.status_code == 201, game.text
    games = client.get("/api/systems/nes/games").json()
    assert [g["name"] for g in games] == ["Metroid"]
