"""SafeSpace community feed: posts, comments, likes and bookmarks."""

from fastapi import APIRouter, Depends
from sqlmodel import Session

from .. import models, services
from ..auth import get_current_user
from ..database import get_session
from ..schemas import CommentIn, PostIn, PostUpdateIn

router = APIRouter(prefix="/api/safespace", tags=["safespace"])


def _svc(db: Session = Depends(get_session)) -> services.SafeSpaceService:
    return services.SafeSpaceService(db)


@router.get("/posts")
def list_posts(user: models.User = Depends(get_current_user), svc: services.SafeSpaceService = Depends(_svc)):
    return svc.list_posts(user.id)


@router.post("/posts", status_code=201)
def create_post(
    payload: PostIn,
    user: models.User = Depends(get_current_user),
    svc: services.SafeSpaceService = Depends(_svc),
):
    return svc.create_post(user, payload.content, payload.is_anonymous)


@router.get("/posts/{post_id}")
def get_post(post_id: int, user: models.User = Depends(get_current_user), svc: services.SafeSpaceService = Depends(_svc)):
    return svc.get_post(post_id, user.id)


@router.put("/posts/{post_id}")
def update_post(
    post_id: int,
    payload: PostUpdateIn,
    user: models.User = Depends(get_current_user),
    svc: services.SafeSpaceService = Depends(_svc),
):
    return svc.update_post(user, post_id, payload.content)


@router.delete("/posts/{post_id}")
def delete_post(post_id: int, user: models.User = Depends(get_current_user), svc: services.SafeSpaceService = Depends(_svc)):
    svc.delete_post(user, post_id)
    return {"message": "Post removed"}


@router.put("/posts/{post_id}/like")
def toggle_like(post_id: int, user: models.User = Depends(get_current_user), svc: services.SafeSpaceService = Depends(_svc)):
    """Like or unlike; the response is the post's current likes."""
    return svc.toggle_like(user, post_id)


@router.post("/posts/{post_id}/comments", status_code=201)
def add_comment(
    post_id: int,
    payload: CommentIn,
    user: models.User = Depends(get_current_user),
    svc: services.SafeSpaceService = Depends(_svc),
):
    return svc.add_comment(user, post_id, payload.content)


@router.delete("/posts/{post_id}/comments/{comment_id}")
def delete_comment(
    post_id: int,
    comment_id: int,
    user: models.User = Depends(get_current_user),
    svc: services.SafeSpaceService = Depends(_svc),
):
    svc.delete_comment(user, post_id, comment_id)
    return {"message": "Comment removed"}


@router.put("/posts/{post_id}/bookmark")
def toggle_bookmark(post_id: int, user: models.User = Depends(get_current_user), svc: services.SafeSpaceService = Depends(_svc)):
    return svc.toggle_bookmark(user, post_id)


@router.get("/bookmarks")
def list_bookmarks(user: models.User = Depends(get_current_user), svc: services.SafeSpaceService = Depends(_svc)):
    return svc.list_bookmarks(user.id)
