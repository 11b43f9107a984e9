from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from typing import List

from ..database import get_db
from ..auth import get_current_user
from ..dependencies import get_authz
from .. import catalog, models, schemas
from ..rbac import AuthorizationEngine, Role

router = APIRouter(prefix="/api/teams", tags=["teams"])


@router.post("/", response_model=schemas.TeamOut, status_code=201)
async def create_team(
    team: schemas.TeamCreate,
    db: Session = Depends(get_db),
    authz: AuthorizationEngine = Depends(get_authz),
    user: models.User = Depends(get_current_user),
):
    db_team = catalog.create_team(
        db,
        authz,
        user=user,
        slug=team.slug,
        name=team.name,
        description=team.description,
        links=team.links,
        metadata=team.metadata,
    )
    db.commit()
    db.refresh(db_team)
    return db_team


@router.get("/", response_model=List[schemas.TeamOut])
async def list_teams(
    db: Session = Depends(get_db), user: models.User = Depends(get_current_user)
):
    team_ids = [m.team_id for m in user.teams]
    if not team_ids:
        return []
    return db.query(models.Team).filter(models.Team.id.in_(team_ids)).all()


@router.get("/{team_id}", response_model=schemas.TeamOut)
async def get_team(
    team_id: str,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    return catalog.resolve(db, models.Team, team_id)


@router.get("/{team_id}/members", response_model=List[schemas.TeamMemberOut])
async def list_members(
    team_id: str,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    return catalog.resolve(db, models.Team, team_id).members


@router.post("/{team_id}/members", response_model=schemas.TeamMemberOut, status_code=201)
async def add_member(
    team_id: str,
    member: schemas.TeamMemberAdd,
    db: Session = Depends(get_db),
    authz: AuthorizationEngine = Depends(get_authz),
    user: models.User = Depends(get_current_user),
):
    team = catalog.resolve(db, models.Team, team_id)
    if member.user_id:
        invitee = catalog.resolve(db, models.User, member.user_id)
    elif member.email:
        invitee = db.query(models.User).filter(models.User.email == member.email).first()
        if not invitee:
            raise HTTPException(status_code=404, detail="User not found")
    else:
        raise HTTPException(status_code=400, detail="user_id or email required")
    membership = catalog.add_member(
        db, authz, inviter=user, team=team, invitee=invitee, role=Role(member.role)
    )
    db.commit()
    db.refresh(membership)
    return membership
