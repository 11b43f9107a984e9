import os
os.environ["TESTING"] = "1"
os.environ.setdefault("SECRET_KEY", "test-secret")
os.environ["ROOT_TEAM_EMAILS"] = "*@staff.retronomicon.test"
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

import sys
from pathlib import Path
from types import SimpleNamespace

sys.path.append(str(Path(__file__).resolve().parents[2]))

from retronomicon.main import app
from retronomicon import models
from retronomicon.artifacts import ArtifactStore
from retronomicon.auth import create_access_token
from retronomicon.config import load_settings
from retronomicon.database import Base, get_db
from retronomicon.errors import IngestError
from retronomicon.rbac import AuthorizationEngine
from retronomicon.releases import ReleaseLedger
from retronomicon.storage import get_object_store

SQLALCHEMY_DATABASE_URL = "sqlite:///./test.db"
engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False, "timeout": 30},
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def override_get_db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()

app.dependency_overrides[get_db] = override_get_db


class RecordingObjectStore:
    """In-memory object store that remembers every write and delete."""

    def __init__(self):
        self.objects: dict[str, bytes] = {}
        self.puts: list[str] = []
        self.deletes: list[str] = []
        self.fail_after: int | None = None

    def put(self, key, data, content_type="application/octet-stream"):
        if self.fail_after is not None and len(self.puts) >= self.fail_after:
            raise IngestError("storage", "Object store refused artifact")
        self.puts.append(key)
        self.objects[key] = data
        return self.url_for(key)

    def get(self, key):
        try:
            return self.objects[key]
        except KeyError:
            raise FileNotFoundError(key)

    def delete(self, key):
        self.deletes.append(key)
        self.objects.pop(key, None)

    def exists(self, key):
        return key in self.objects

    def url_for(self, key):
        return f"memory://{key}"


@pytest.fixture(autouse=True)
def reset_db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture
def objects():
    store = RecordingObjectStore()
    app.dependency_overrides[get_object_store] = lambda: store
    yield store
    app.dependency_overrides.pop(get_object_store, None)


@pytest.fixture
def client(objects):
    with TestClient(app) as c:
        yield c


@pytest.fixture
def db():
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def settings():
    return load_settings()


@pytest.fixture
def authz(db, settings):
    return AuthorizationEngine(db, settings)


@pytest.fixture
def artifact_store(db, objects, settings):
    return ArtifactStore(db, objects, settings)


@pytest.fixture
def ledger(db, authz, artifact_store):
    return ReleaseLedger(db, authz, artifact_store)


def make_user(db, email, **fields):
    user = models.User(email=email, username=email.split("@")[0], **fields)
    db.add(user)
    db.flush()
    return user


def make_team(db, slug, **members):
    team = models.Team(slug=slug, name=slug.title())
    db.add(team)
    db.flush()
    for role, users in members.items():
        for user in users:
            db.add(models.TeamMember(team_id=team.id, user_id=user.id, role=role))
    db.flush()
    return team


def auth_headers(user):
    token = create_access_token({"sub": user.email})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def world(db):
    """Root team, one maintainer team with every role, and a small catalog."""

    boss = make_user(db, "boss@staff.retronomicon.test")
    root_admin = make_user(db, "curator@example.com")
    owner = make_user(db, "owner@example.com")
    admin = make_user(db, "admin@example.com")
    member = make_user(db, "member@example.com")
    outsider = make_user(db, "outsider@example.com")

    root = make_team(db, "root", admin=[root_admin])
    team = make_team(db, "mister", owner=[owner], admin=[admin], member=[member])
    other = make_team(db, "other", owner=[outsider])

    platform = models.Platform(slug="de10", name="DE10-Nano", owner_team_id=root.id)
    system = models.System(slug="nes", name="NES", manufacturer="Nintendo", owner_team_id=root.id)
    db.add_all([platform, system])
    db.flush()
    core = models.Core(slug="nes-core", name="NES core", system_id=system.id, owner_team_id=team.id)
    db.add(core)
    db.commit()

    return SimpleNamespace(
        boss=boss,
        root_admin=root_admin,
        owner=owner,
        admin=admin,
        member=member,
        outsider=outsider,
        root=root,
        team=team,
        other=other,
        platform=platform,
        system=system,
        core=core,
    )
