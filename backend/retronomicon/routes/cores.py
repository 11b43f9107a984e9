from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import List, Optional

from ..database import get_db
from ..auth import get_current_user, get_optional_user
from ..dependencies import get_authz
from .. import catalog, models, schemas
from ..rbac import AuthorizationEngine

router = APIRouter(prefix="/api/cores", tags=["cores"])


@router.get("/", response_model=List[schemas.CoreOut])
async def list_cores(
    system: Optional[str] = None,
    page: int = Query(default=0, ge=0),
    limit: int = Query(default=50, ge=1, le=100),
    db: Session = Depends(get_db),
    user: models.User | None = Depends(get_optional_user),
):
    query = db.query(models.Core)
    if system:
        query = query.filter(models.Core.system_id == catalog.resolve(db, models.System, system).id)
    return query.order_by(models.Core.slug).offset(page * limit).limit(limit).all()


@router.post("/", response_model=schemas.CoreOut, status_code=201)
async def create_core(
    payload: schemas.CoreCreate,
    db: Session = Depends(get_db),
    authz: AuthorizationEngine = Depends(get_authz),
    user: models.User = Depends(get_current_user),
):
    core = catalog.create_core(
        db,
        authz,
        user=user,
        owner_team=catalog.resolve(db, models.Team, payload.owner_team),
        system=catalog.resolve(db, models.System, payload.system),
        slug=payload.slug,
        name=payload.name,
        description=payload.description,
        links=payload.links,
        metadata=payload.metadata,
    )
    db.commit()
    db.refresh(core)
    return core


@router.get("/{core_id}", response_model=schemas.CoreOut)
async def get_core(
    core_id: str,
    db: Session = Depends(get_db),
    user: models.User | None = Depends(get_optional_user),
):
    return catalog.resolve(db, models.Core, core_id)


@router.put("/{core_id}", response_model=schemas.CoreOut)
async def update_core(
    core_id: str,
    payload: schemas.CatalogUpdate,
    db: Session = Depends(get_db),
    authz: AuthorizationEngine = Depends(get_authz),
    user: models.User = Depends(get_current_user),
):
    core = catalog.resolve(db, models.Core, core_id)
    catalog.apply_changes(
        db, authz, user=user, resource=core, changes=payload.model_dump(exclude_unset=True)
    )
    db.commit()
    db.refresh(core)
    return core


@router.post("/{core_id}/tags", response_model=schemas.CoreOut)
async def tag_core(
    core_id: str,
    payload: schemas.TagAttach,
    db: Session = Depends(get_db),
    authz: AuthorizationEngine = Depends(get_authz),
    user: models.User = Depends(get_current_user),
):
    core = catalog.resolve(db, models.Core, core_id)
    tag = catalog.resolve(db, models.Tag, payload.tag)
    catalog.tag_resource(db, authz, user=user, resource=core, tag=tag)
    db.commit()
    db.refresh(core)
    return core
