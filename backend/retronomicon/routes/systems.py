from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import List

from ..database import get_db
from ..auth import get_current_user, get_optional_user
from ..dependencies import get_authz
from .. import catalog, models, schemas
from ..rbac import AuthorizationEngine

router = APIRouter(prefix="/api/systems", tags=["systems"])


@router.get("/", response_model=List[schemas.SystemOut])
async def list_systems(
    page: int = Query(default=0, ge=0),
    limit: int = Query(default=50, ge=1, le=100),
    db: Session = Depends(get_db),
    user: models.User | None = Depends(get_optional_user),
):
    return (
        db.query(models.System)
        .order_by(models.System.slug)
        .offset(page * limit)
        .limit(limit)
        .all()
    )


@router.post("/", response_model=schemas.SystemOut, status_code=201)
async def create_system(
    payload: schemas.SystemCreate,
    db: Session = Depends(get_db),
    authz: AuthorizationEngine = Depends(get_authz),
    user: models.User = Depends(get_current_user),
):
    system = catalog.create_system(
        db,
        authz,
        user=user,
        owner_team=catalog.resolve(db, models.Team, payload.owner_team),
        slug=payload.slug,
        name=payload.name,
        manufacturer=payload.manufacturer,
        description=payload.description,
        links=payload.links,
        metadata=payload.metadata,
    )
    db.commit()
    db.refresh(system)
    return system


@router.get("/{system_id}", response_model=schemas.SystemOut)
async def get_system(
    system_id: str,
    db: Session = Depends(get_db),
    user: models.User | None = Depends(get_optional_user),
):
    return catalog.resolve(db, models.System, system_id)


@router.put("/{system_id}", response_model=schemas.SystemOut)
async def update_system(
    system_id: str,
    payload: schemas.CatalogUpdate,
    db: Session = Depends(get_db),
    authz: AuthorizationEngine = Depends(get_authz),
    user: models.User = Depends(get_current_user),
):
    system = catalog.resolve(db, models.System, system_id)
    catalog.apply_changes(
        db, authz, user=user, resource=system, changes=payload.model_dump(exclude_unset=True)
    )
    db.commit()
    db.refresh(system)
    return system


@router.post("/{system_id}/tags", response_model=schemas.SystemOut)
async def tag_system(
    system_id: str,
    payload: schemas.TagAttach,
    db: Session = Depends(get_db),
    authz: AuthorizationEngine = Depends(get_authz),
    user: models.User = Depends(get_current_user),
):
    system = catalog.resolve(db, models.System, system_id)
    tag = catalog.resolve(db, models.Tag, payload.tag)
    catalog.tag_resource(db, authz, user=user, resource=system, tag=tag)
    db.commit()
    db.refresh(system)
    return system


@router.get("/{system_id}/games", response_model=List[schemas.GameOut])
async def list_system_games(
    system_id: str,
    page: int = Query(default=0, ge=0),
    limit: int = Query(default=50, ge=1, le=100),
    db: Session = Depends(get_db),
    user: models.User | None = Depends(get_optional_user),
):
    system = catalog.resolve(db, models.System, system_id)
    return (
        db.query(models.Game)
        .filter(models.Game.system_id == system.id)
        .order_by(models.Game.name)
        .offset(page * limit)
        .limit(limit)
        .all()
    )
