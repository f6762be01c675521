# routers/v1/auth.py
from fastapi import APIRouter, Depends

from deps.auth import get_current_user, login_for_access_token
from models import User
from schemas import MeOut, TokenOut

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/token", response_model=TokenOut)
def issue_token(resp=Depends(login_for_access_token)):
    return resp


@router.get("/me", response_model=MeOut)
def me(user: User = Depends(get_current_user)):
    return {
        "id": user.id,
        "username": user.username,
        "is_superuser": user.is_superuser,
        "roles": user.role_codes,
    }
