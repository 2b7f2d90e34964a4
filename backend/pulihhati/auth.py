"""Authentication helpers and FastAPI security dependencies.

`get_current_user` validates the bearer token and returns the matching
`User` loaded through the request's own session, so routes can hand the
object straight to services. `require_admin` layers the role check on
top of it.
"""

from fastapi import Depends, HTTPException, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
import jwt
from sqlmodel import Session

from .config import settings
from .database import call_with_retry, get_session
from . import models, repositories

bearer_scheme = HTTPBearer(auto_error=False)


def decode_token(token: str) -> dict:
    """Decode and verify a JWT token.

    Returns the decoded payload on success or raises an HTTPException
    with status 401 on failure.
    """
    try:
        return jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail="Not authorized, token failed")


def get_current_user(
    credentials: HTTPAuthorizationCredentials = Security(bearer_scheme),
    db: Session = Depends(get_session),
) -> models.User:
    """FastAPI dependency that returns the authenticated user.

    Raises HTTPException(401) when the token is missing, invalid, or
    points at a user that no longer exists.
    """
    if credentials is None or not credentials.credentials:
        raise HTTPException(status_code=401, detail="Not authorized, no token")
    payload = decode_token(credentials.credentials)
    user_id = payload.get("id")
    if not isinstance(user_id, int):
        raise HTTPException(status_code=401, detail="Not authorized, token failed")
    user = call_with_retry(db, repositories.UserRepository(db).get, user_id)
    if not user:
        raise HTTPException(status_code=401, detail="Not authorized, user not found")
    return user


def require_admin(user: models.User = Depends(get_current_user)) -> models.User:
    if user.role != "admin":
        raise HTTPException(status_code=403, detail=f"User role {user.role} is not authorized to access this route")
    return user
