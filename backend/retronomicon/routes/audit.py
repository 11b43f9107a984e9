from uuid import UUID
from datetime import datetime
from sqlalchemy.orm import Session
from fastapi import APIRouter, Depends
from ..database import get_db
from ..auth import get_current_user
from ..dependencies import get_authz
from ..errors import Forbidden
from ..rbac import AuthorizationEngine
from .. import models, schemas, audit

router = APIRouter(prefix="/api/audit", tags=["audit"])


@router.get("/report", response_model=list[schemas.AuditReportRow])
async def audit_report(
    start: datetime,
    end: datetime,
    user_id: UUID | None = None,
    db: Session = Depends(get_db),
    authz: AuthorizationEngine = Depends(get_authz),
    current_user: models.User = Depends(get_current_user),
):
    if user_id is None:
        user_id = current_user.id
    # reports across other users are for root owners only
    if user_id != current_user.id and not authz.is_root_owner(current_user):
        raise Forbidden("audit.report", "Only root owners may read other users' activity")
    return audit.generate_report(db, start, end, user_id)
