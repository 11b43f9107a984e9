from fastapi import APIRouter, Depends

from ..auth import get_current_user
from .. import models, schemas

router = APIRouter(prefix="/api/users", tags=["users"])


@router.get("/me", response_model=schemas.UserOut)
async def read_current_user(user: models.User = Depends(get_current_user)):
    return user
