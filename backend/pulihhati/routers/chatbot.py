"""Chatbot conversation routes.

The message route is rate limited per client because each call is
forwarded to the external chatbot service.
"""

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlmodel import Session

from .. import models, services
from ..auth import get_current_user
from ..config import settings
from ..database import get_session
from ..schemas import ChatMessageIn
from ..utils.rate_limit import InMemoryRateLimiter

router = APIRouter(prefix="/api/chatbot", tags=["chatbot"])

rate_limiter = InMemoryRateLimiter(window_seconds=60)


def _enforce_rate_limit(request: Request, user: models.User) -> None:
    client = request.client.host if request.client else "unknown"
    key = f"{client}:{user.id}:{request.url.path}"
    allowed, retry_after = rate_limiter.allow(key, settings.CHATBOT_RATE_LIMIT_PER_MIN)
    if not allowed:
        raise HTTPException(
            status_code=429,
            detail=f"rate limit exceeded; retry after {retry_after}s",
            headers={"Retry-After": str(retry_after)},
        )


@router.post("/message")
def send_message(
    payload: ChatMessageIn,
    request: Request,
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_session),
):
    _enforce_rate_limit(request, user)
    return services.ChatService(db).send_message(user, payload.message)


@router.get("/sessions")
def list_sessions(user: models.User = Depends(get_current_user), db: Session = Depends(get_session)):
    return services.ChatService(db).list_sessions(user.id)


@router.get("/sessions/{session_id}")
def get_session_detail(session_id: int, user: models.User = Depends(get_current_user), db: Session = Depends(get_session)):
    return services.ChatService(db).get_session(user.id, session_id)


@router.put("/sessions/{session_id}/close")
def close_session(session_id: int, user: models.User = Depends(get_current_user), db: Session = Depends(get_session)):
    services.ChatService(db).close_session(user.id, session_id)
    return {"message": "Session closed"}
