import hashlib
from datetime import datetime, timedelta, timezone

import pytest

from retronomicon import catalog, models
from retronomicon.artifacts import ArtifactUpload
from retronomicon.errors import (
    DuplicateFilename,
    DuplicateVersion,
    Forbidden,
    IngestError,
    InvalidVersion,
    MissingPlatform,
    NotFound,
    ReleaseStateError,
)
from retronomicon.releases import CoreTarget, ReleaseDetails, SystemTarget, target_of
from retronomicon.storage import content_key


def _core(world):
    return CoreTarget(world.core, world.platform)


def _upload(data, name="core.rbf"):
    return ArtifactUpload(filename=name, data=data)


def test_member_creates_core_release(db, ledger, objects, world):
    payload = b"core bitstream B"
    release = ledger.create_release(world.member, _core(world), "1.0.0", artifacts=[_upload(payload)])

    assert release.version == "1.0.0"
    assert release.prerelease is False
    assert release.yanked is False
    assert release.uploader_id == world.member.id
    assert release.owner_team_id == world.team.id
    assert release.platform_id == world.platform.id
    assert [a.sha256 for a in release.artifacts] == [hashlib.sha256(payload).hexdigest()]
    assert content_key(hashlib.sha256(payload).hexdigest()) in objects.objects
    log = db.query(models.AuditLog).filter(models.AuditLog.action == "release.create").one()
    assert log.target_id == release.id


def test_duplicate_version_is_rejected_before_ingest(db, ledger, objects, world):
    ledger.create_release(world.member, _core(world), "1.0.0", artifacts=[_upload(b"first")])
    puts_before = list(objects.puts)

    with pytest.raises(DuplicateVersion) as exc:
        ledger.create_release(world.member, _core(world), "1.0.0", artifacts=[_upload(b"second")])

    assert exc.value.version == "1.0.0"
    assert objects.puts == puts_before
    assert db.query(models.CoreRelease).count() == 1
    assert db.query(models.Artifact).count() == 1


def test_same_version_on_another_platform_is_allowed(db, ledger, world):
    other_platform = models.Platform(slug="pocket", name="Pocket", owner_team_id=world.root.id)
    db.add(other_platform)
    db.commit()
    ledger.create_release(world.member, _core(world), "1.0.0")
    release = ledger.create_release(world.member, CoreTarget(world.core, other_platform), "1.0.0")
    assert release.platform_id == other_platform.id


def test_system_versions_are_global(db, ledger, world):
    snes = models.System(slug="snes", name="SNES", owner_team_id=world.root.id)
    db.add(snes)
    db.commit()
    ledger.create_release(world.boss, SystemTarget(world.system), "2020.1")
    with pytest.raises(DuplicateVersion):
        ledger.create_release(world.boss, SystemTarget(snes), "2020.1")


def test_non_member_is_forbidden_and_nothing_is_written(db, ledger, objects, world):
    with pytest.raises(Forbidden):
        ledger.create_release(world.outsider, _core(world), "1.0.0", artifacts=[_upload(b"x")])
    with pytest.raises(Forbidden):
        ledger.create_release(None, _core(world), "1.0.0")
    assert db.query(models.CoreRelease).count() == 0
    assert objects.puts == []


def test_invalid_version_is_rejected(db, ledger, world):
    with pytest.raises(InvalidVersion):
        ledger.create_release(world.member, _core(world), "latest")
    with pytest.raises(InvalidVersion):
        ledger.create_release(world.member, _core(world), "1.0.0+meta")
    assert db.query(models.CoreRelease).count() == 0


def test_core_release_needs_a_platform(db, ledger, objects, world):
    with pytest.raises(MissingPlatform) as exc:
        ledger.create_release(world.member, CoreTarget(world.core), "1.0.0", artifacts=[_upload(b"bits")])
    assert exc.value.core == world.core.slug
    assert objects.puts == []
    assert db.query(models.CoreRelease).count() == 0


def test_failed_ingest_rolls_back_and_removes_written_objects(db, ledger, objects, world):
    objects.fail_after = 1
    uploads = [_upload(b"first file", "a.rbf"), _upload(b"second file", "b.rbf")]

    with pytest.raises(IngestError):
        ledger.create_release(world.member, _core(world), "1.0.0", artifacts=uploads)

    first_key = content_key(hashlib.sha256(b"first file").hexdigest())
    assert objects.deletes == [first_key]
    assert objects.objects == {}
    assert db.query(models.CoreRelease).count() == 0
    assert db.query(models.Artifact).count() == 0


def test_compensation_keeps_objects_of_committed_artifacts(db, ledger, objects, world):
    ledger.create_release(world.member, _core(world), "1.0.0", artifacts=[_upload(b"shared", "a.rbf")])
    objects.fail_after = len(objects.puts) + 1
    uploads = [_upload(b"shared", "a.rbf"), _upload(b"new", "b.rbf"), _upload(b"newer", "c.rbf")]

    with pytest.raises(IngestError):
        ledger.create_release(world.member, _core(world), "1.1.0", artifacts=uploads)

    assert content_key(hashlib.sha256(b"shared").hexdigest()) in objects.objects
    assert objects.deletes == [content_key(hashlib.sha256(b"new").hexdigest())]
    assert db.query(models.CoreRelease).count() == 1


def test_oversized_upload_is_rejected_up_front(db, ledger, objects, world, settings):
    too_big = b"x" * (settings.max_artifact_size + 1)
    with pytest.raises(IngestError) as exc:
        ledger.create_release(world.member, _core(world), "1.0.0", artifacts=[_upload(b"ok", "a.bin"), _upload(too_big, "b.bin")])
    assert exc.value.reason == "too_large"
    assert objects.puts == []


def test_duplicate_filenames_in_one_release(ledger, world):
    with pytest.raises(DuplicateFilename):
        ledger.create_release(
            world.member, _core(world), "1.0.0", artifacts=[_upload(b"a", "x.bin"), _upload(b"b", "x.bin")]
        )


def test_identical_bytes_share_one_artifact(db, ledger, world):
    first = ledger.create_release(world.member, _core(world), "1.0.0", artifacts=[_upload(b"same")])
    second = ledger.create_release(world.member, _core(world), "1.0.1", artifacts=[_upload(b"same")])
    assert first.artifacts[0].id == second.artifacts[0].id
    assert db.query(models.Artifact).count() == 1


def test_shared_artifact_object_is_rewritten_when_missing(ledger, objects, world):
    first = ledger.create_release(world.member, _core(world), "1.0.0", artifacts=[_upload(b"bytes")])
    key = first.artifacts[0].storage_key
    objects.objects.pop(key)

    second = ledger.create_release(world.member, _core(world), "1.1.0", artifacts=[_upload(b"bytes")])
    assert second.artifacts[0].id == first.artifacts[0].id
    assert objects.objects[key] == b"bytes"


def test_latest_skips_prereleases_and_yanked(ledger, world):
    target = _core(world)
    ledger.create_release(world.member, target, "1.0.0")
    ledger.create_release(world.member, target, "1.10.0", ReleaseDetails(prerelease=True))
    nine = ledger.create_release(world.member, target, "1.9.0")

    assert ledger.latest(target).version == "1.9.0"
    assert ledger.latest(target, include_prerelease=True).version == "1.10.0"

    ledger.yank(world.member, nine)
    assert ledger.latest(target).version == "1.0.0"


def test_latest_without_releases(ledger, world):
    assert ledger.latest(_core(world)) is None


def test_latest_across_platforms(db, ledger, world):
    pocket = models.Platform(slug="pocket", name="Pocket", owner_team_id=world.root.id)
    db.add(pocket)
    db.commit()
    ledger.create_release(world.member, _core(world), "1.0.0")
    ledger.create_release(world.member, CoreTarget(world.core, pocket), "2.0.0")
    assert ledger.latest(CoreTarget(world.core)).version == "2.0.0"
    assert ledger.latest(_core(world)).version == "1.0.0"


def test_yank_keeps_the_version_reserved(ledger, world):
    target = _core(world)
    release = ledger.create_release(world.member, target, "1.0.0")
    ledger.yank(world.admin, release)
    ledger.yank(world.admin, release)

    with pytest.raises(DuplicateVersion):
        ledger.create_release(world.member, target, "1.0.0")
    found = ledger.get(target, "1.0.0")
    assert found.id == release.id
    assert found.yanked is True


def test_yank_requires_membership(ledger, world):
    release = ledger.create_release(world.member, _core(world), "1.0.0")
    with pytest.raises(Forbidden):
        ledger.yank(world.outsider, release)
    assert release.yanked is False


def test_list_is_newest_first_and_paged(ledger, world):
    target = _core(world)
    base = datetime(2024, 1, 1, tzinfo=timezone.utc)
    for day, version in enumerate(["1.0", "1.1", "1.2"]):
        ledger.create_release(world.member, target, version, ReleaseDetails(date_released=base + timedelta(days=day)))

    assert [r.version for r in ledger.list(target)] == ["1.2", "1.1", "1.0"]
    assert [r.version for r in ledger.list(target, page=1, limit=2)] == ["1.0"]


def test_attach_artifacts(ledger, objects, world):
    release = ledger.create_release(world.member, _core(world), "1.0.0", artifacts=[_upload(b"a", "a.rbf")])
    ledger.attach_artifacts(world.member, release, [_upload(b"b", "b.rbf")])
    assert sorted(a.filename for a in release.artifacts) == ["a.rbf", "b.rbf"]

    with pytest.raises(DuplicateFilename):
        ledger.attach_artifacts(world.member, release, [_upload(b"c", "a.rbf")])
    with pytest.raises(Forbidden):
        ledger.attach_artifacts(world.outsider, release, [_upload(b"d", "d.rbf")])

    ledger.yank(world.member, release)
    with pytest.raises(ReleaseStateError):
        ledger.attach_artifacts(world.member, release, [_upload(b"e", "e.rbf")])


def test_attach_external_artifact(ledger, world):
    release = ledger.create_release(world.member, _core(world), "1.0.0")
    artifact = ledger.attach_external(
        world.member, release, filename="docs.pdf", size=10, download_url="https://example.com/docs.pdf"
    )
    assert release.artifacts == [artifact]


def test_update_release(ledger, world):
    release = ledger.create_release(world.member, _core(world), "1.0.0-rc1", ReleaseDetails(prerelease=True))
    ledger.update(world.member, release, notes="Fixed audio", links={"changelog": "https://example.com"})
    ledger.update(world.member, release, prerelease=False)
    assert release.notes == "Fixed audio"
    assert release.links == {"changelog": "https://example.com"}
    assert release.prerelease is False

    with pytest.raises(ReleaseStateError):
        ledger.update(world.member, release, prerelease=True)
    ledger.yank(world.member, release)
    with pytest.raises(ReleaseStateError):
        ledger.update(world.member, release, notes="too late")


def test_owner_snapshot_survives_transfer(db, ledger, authz, world):
    release = ledger.create_release(world.member, _core(world), "1.0.0")
    catalog.transfer_ownership(db, authz, user=world.boss, resource=world.core, destination=world.other)
    db.commit()

    db.refresh(release)
    assert world.core.owner_team_id == world.other.id
    assert release.owner_team_id == world.team.id
    assert target_of(release).owner.owner_team_id == world.other.id
    # new releases follow the new owner
    later = ledger.create_release(world.outsider, _core(world), "1.1.0")
    assert later.owner_team_id == world.other.id


def test_get_by_id_is_scoped_to_the_target(db, ledger, world):
    release = ledger.create_release(world.member, _core(world), "1.0.0")
    assert ledger.get_by_id(_core(world), release.id).id == release.id
    with pytest.raises(NotFound):
        ledger.get_by_id(SystemTarget(world.system), release.id)


def test_find_artifact(ledger, world):
    release = ledger.create_release(world.member, _core(world), "1.0.0", artifacts=[_upload(b"a", "a.rbf")])
    artifact = release.artifacts[0]
    assert ledger.find_artifact(release, filename="a.rbf").id == artifact.id
    assert ledger.find_artifact(release, artifact_id=artifact.id).id == artifact.id
    with pytest.raises(NotFound):
        ledger.find_artifact(release, filename="missing.rbf")
