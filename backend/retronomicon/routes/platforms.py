from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import List

from ..database import get_db
from ..auth import get_current_user, get_optional_user
from ..dependencies import get_authz
from .. import catalog, models, schemas
from ..rbac import AuthorizationEngine

router = APIRouter(prefix="/api/platforms", tags=["platforms"])


@router.get("/", response_model=List[schemas.PlatformOut])
async def list_platforms(
    page: int = Query(default=0, ge=0),
    limit: int = Query(default=50, ge=1, le=100),
    db: Session = Depends(get_db),
    user: models.User | None = Depends(get_optional_user),
):
    return (
        db.query(models.Platform)
        .order_by(models.Platform.slug)
        .offset(page * limit)
        .limit(limit)
        .all()
    )


@router.post("/", response_model=schemas.PlatformOut, status_code=201)
async def create_platform(
    payload: schemas.CatalogCreate,
    db: Session = Depends(get_db),
    authz: AuthorizationEngine = Depends(get_authz),
    user: models.User = Depends(get_current_user),
):
    platform = catalog.create_platform(
        db,
        authz,
        user=user,
        owner_team=catalog.resolve(db, models.Team, payload.owner_team),
        slug=payload.slug,
        name=payload.name,
        description=payload.description,
        links=payload.links,
        metadata=payload.metadata,
    )
    db.commit()
    db.refresh(platform)
    return platform


@router.get("/{platform_id}", response_model=schemas.PlatformOut)
async def get_platform(
    platform_id: str,
    db: Session = Depends(get_db),
    user: models.User | None = Depends(get_optional_user),
):
    return catalog.resolve(db, models.Platform, platform_id)


@router.put("/{platform_id}", response_model=schemas.PlatformOut)
async def update_platform(
    platform_id: str,
    payload: schemas.CatalogUpdate,
    db: Session = Depends(get_db),
    authz: AuthorizationEngine = Depends(get_authz),
    user: models.User = Depends(get_current_user),
):
    platform = catalog.resolve(db, models.Platform, platform_id)
    catalog.apply_changes(
        db, authz, user=user, resource=platform, changes=payload.model_dump(exclude_unset=True)
    )
    db.commit()
    db.refresh(platform)
    return platform


@router.post("/{platform_id}/tags", response_model=schemas.PlatformOut)
async def tag_platform(
    platform_id: str,
    payload: schemas.TagAttach,
    db: Session = Depends(get_db),
    authz: AuthorizationEngine = Depends(get_authz),
    user: models.User = Depends(get_current_user),
):
    platform = catalog.resolve(db, models.Platform, platform_id)
    tag = catalog.resolve(db, models.Tag, payload.tag)
    catalog.tag_resource(db, authz, user=user, resource=platform, tag=tag)
    db.commit()
    db.refresh(platform)
    return platform
