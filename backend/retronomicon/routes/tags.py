from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import List

from ..database import get_db
from ..auth import get_current_user, get_optional_user
from ..dependencies import get_authz
from .. import catalog, models, schemas
from ..rbac import AuthorizationEngine

router = APIRouter(prefix="/api/tags", tags=["tags"])


@router.get("/", response_model=List[schemas.TagOut])
async def list_tags(
    db: Session = Depends(get_db),
    user: models.User | None = Depends(get_optional_user),
):
    return db.query(models.Tag).order_by(models.Tag.slug).all()


@router.post("/", response_model=schemas.TagOut, status_code=201)
async def create_tag(
    payload: schemas.TagCreate,
    db: Session = Depends(get_db),
    authz: AuthorizationEngine = Depends(get_authz),
    user: models.User = Depends(get_current_user),
):
    tag = catalog.create_tag(
        db, authz, user=user, slug=payload.slug, description=payload.description, color=payload.color
    )
    db.commit()
    db.refresh(tag)
    return tag


@router.get("/{tag_id}", response_model=schemas.TagOut)
async def get_tag(
    tag_id: str,
    db: Session = Depends(get_db),
    user: models.User | None = Depends(get_optional_user),
):
    return catalog.resolve(db, models.Tag, tag_id)
