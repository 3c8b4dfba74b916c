# vigora/api/endpoints/users.py
from fastapi import APIRouter, Depends

from vigora.models.users import User
from vigora.schemas.user import UserRead
from vigora.core.deps import get_current_user

router = APIRouter(tags=["users"])

@router.get("/me", response_model=UserRead)
async def users_me(current_user: User = Depends(get_current_user)):
    return UserRead.from_user(current_user)
