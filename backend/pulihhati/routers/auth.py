"""Registration, login and the caller's own account."""

from fastapi import APIRouter, Depends, HTTPException
from sqlmodel import Session

from .. import models, services
from ..auth import get_current_user
from ..database import get_session
from ..schemas import LoginIn, ProfileUpdateIn, RegisterIn

router = APIRouter(prefix="/api/auth", tags=["auth"])


@router.post("/register", status_code=201)
def register(payload: RegisterIn, db: Session = Depends(get_session)):
    """Create an account and return a token for it right away."""
    return services.AuthService(db).register(payload.name, payload.email, payload.password)


@router.post("/login")
def login(payload: LoginIn, db: Session = Depends(get_session)):
    result = services.AuthService(db).authenticate(payload.email, payload.password)
    if not result:
        raise HTTPException(status_code=401, detail="Invalid credentials")
    return result


@router.get("/me")
def me(user: models.User = Depends(get_current_user)):
    return services.user_out(user)


@router.put("/profile")
def update_profile(
    payload: ProfileUpdateIn,
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_session),
):
    return services.UserService(db).update_profile(user.id, payload.name, payload.email)
