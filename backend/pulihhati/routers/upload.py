"""Avatar upload/removal and the profile statistics card."""

from typing import Optional

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from sqlmodel import Session

from .. import models, services
from ..auth import get_current_user
from ..config import settings
from ..database import get_session
from ..utils.uploads import InvalidUpload, check_content_type, read_limited, sniff_image, validate_filename

router = APIRouter(prefix="/api/upload", tags=["upload"])


@router.post("/avatar")
def upload_avatar(
    avatar: Optional[UploadFile] = File(None),
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_session),
):
    """Validate the `avatar` multipart file and hand it to the image CDN.

    The declared content type and size are checked before the bytes are
    decoded; a payload that is not really an image answers 415.
    """
    if avatar is None:
        raise HTTPException(status_code=400, detail="No file uploaded. Please select an image file.")
    try:
        validate_filename(avatar.filename)
        check_content_type(avatar.content_type)
        payload = read_limited(avatar.file, settings.MAX_AVATAR_BYTES)
        mime = sniff_image(payload)
    except InvalidUpload as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    return services.AvatarService(db).upload(user, payload, avatar.filename, mime)


@router.delete("/avatar")
def delete_avatar(user: models.User = Depends(get_current_user), db: Session = Depends(get_session)):
    return services.AvatarService(db).remove(user)


@router.get("/profile-stats")
def profile_stats(user: models.User = Depends(get_current_user), db: Session = Depends(get_session)):
    return services.UserService(db).profile_stats(user.id)
