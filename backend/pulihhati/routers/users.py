"""User administration and profile routes.

`/profile` is declared before `/{user_id}` so it is not captured by the
id route.
"""

from fastapi import APIRouter, Depends
from sqlmodel import Session

from .. import models, services
from ..auth import get_current_user, require_admin
from ..database import get_session
from ..schemas import ProfileUpdateIn

router = APIRouter(prefix="/api/users", tags=["users"])


@router.get("")
def list_users(_admin: models.User = Depends(require_admin), db: Session = Depends(get_session)):
    return services.UserService(db).list_users()


@router.put("/profile")
def update_profile(
    payload: ProfileUpdateIn,
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_session),
):
    """Update the caller's name and/or email; blank fields are ignored."""
    return services.UserService(db).update_profile(user.id, payload.name, payload.email)


@router.get("/{user_id}")
def get_user(user_id: int, _user: models.User = Depends(get_current_user), db: Session = Depends(get_session)):
    return services.UserService(db).get_user(user_id)


@router.put("/{user_id}")
def update_user(
    user_id: int,
    payload: ProfileUpdateIn,
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_session),
):
    return services.UserService(db).update_user(user, user_id, payload.name, payload.email)


@router.delete("/{user_id}")
def delete_user(user_id: int, _admin: models.User = Depends(require_admin), db: Session = Depends(get_session)):
    services.UserService(db).delete_user(user_id)
    return {"message": "User removed"}
