from fastapi import Depends
from sqlalchemy.orm import Session

from .artifacts import ArtifactStore
from .config import Settings, load_settings
from .database import get_db
from .rbac import AuthorizationEngine
from .releases import ReleaseLedger
from .storage import ObjectStore, get_object_store


def get_settings() -> Settings:
    return load_settings()


def get_authz(
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> AuthorizationEngine:
    return AuthorizationEngine(db, settings)


def get_ledger(
    db: Session = Depends(get_db),
    authz: AuthorizationEngine = Depends(get_authz),
    objects: ObjectStore = Depends(get_object_store),
    settings: Settings = Depends(get_settings),
) -> ReleaseLedger:
    return ReleaseLedger(db, authz, ArtifactStore(db, objects, settings))
