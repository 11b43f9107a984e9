from retronomicon.releases import CoreTarget

from .conftest import auth_headers

WINDOW = {"start": "2000-01-01T00:00:00", "end": "2100-01-01T00:00:00"}


def test_release_actions_are_reported(client, ledger, world):
    release = ledger.create_release(world.member, CoreTarget(world.core, world.platform), "1.0.0")
    ledger.yank(world.member, release)

    resp = client.get("/api/audit/report", params=WINDOW, headers=auth_headers(world.member))
    assert resp.status_code == 200
    counts = {row["action"]: row["count"] for row in resp.json()}
    assert counts == {"release.create": 1, "release.yank": 1}


def test_reports_on_other_users_need_root_owner(client, world):
    params = {**WINDOW, "user_id": str(world.member.id)}
    denied = client.get("/api/audit/report", params=params, headers=auth_headers(world.outsider))
    assert denied.status_code == 403
    allowed = client.get("/api/audit/report", params=params, headers=auth_headers(world.boss))
    assert allowed.status_code == 200
    assert allowed.json() == []
