from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..database import get_db
from ..auth import get_current_user, get_optional_user
from ..dependencies import get_authz
from .. import catalog, models, schemas
from ..rbac import AuthorizationEngine

router = APIRouter(prefix="/api/games", tags=["games"])


@router.post("/", response_model=schemas.GameOut, status_code=201)
async def create_game(
    payload: schemas.GameCreate,
    db: Session = Depends(get_db),
    authz: AuthorizationEngine = Depends(get_authz),
    user: models.User = Depends(get_current_user),
):
    fields = payload.model_dump(exclude={"system"})
    game = catalog.create_game(
        db,
        authz,
        user=user,
        system=catalog.resolve(db, models.System, payload.system),
        **fields,
    )
    db.commit()
    db.refresh(game)
    return game


@router.get("/{game_id}", response_model=schemas.GameOut)
async def get_game(
    game_id: str,
    db: Session = Depends(get_db),
    user: models.User | None = Depends(get_optional_user),
):
    return catalog.resolve(db, models.Game, game_id)


@router.post("/{game_id}/tags", response_model=schemas.GameOut)
async def tag_game(
    game_id: str,
    payload: schemas.TagAttach,
    db: Session = Depends(get_db),
    authz: AuthorizationEngine = Depends(get_authz),
    user: models.User = Depends(get_current_user),
):
    game = catalog.resolve(db, models.Game, game_id)
    tag = catalog.resolve(db, models.Tag, payload.tag)
    catalog.tag_resource(db, authz, user=user, resource=game, tag=tag)
    db.commit()
    db.refresh(game)
    return game
