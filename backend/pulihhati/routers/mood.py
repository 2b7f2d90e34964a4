"""Mood tracker routes. Responses carry Indonesian user-facing messages."""

from typing import Optional

from fastapi import APIRouter, Depends
from sqlmodel import Session

from .. import models, services
from ..auth import get_current_user
from ..database import get_session
from ..schemas import MoodEntryIn

router = APIRouter(prefix="/api/mood", tags=["mood"])


@router.get("/types")
def mood_types():
    return {"success": True, "data": services.MoodService.mood_types()}


@router.post("/entry")
def save_entry(payload: MoodEntryIn, user: models.User = Depends(get_current_user), db: Session = Depends(get_session)):
    """Save the caller's mood for a day, replacing any earlier entry for it."""
    entry = services.MoodService(db).save_entry(user.id, payload.mood_level, payload.entry_date)
    return {"success": True, "message": "Mood berhasil disimpan", "data": entry}


@router.get("/today")
def today(user: models.User = Depends(get_current_user), db: Session = Depends(get_session)):
    result = services.MoodService(db).today(user.id)
    return {"success": True, **result}


@router.get("/history/week")
def weekly(user: models.User = Depends(get_current_user), db: Session = Depends(get_session)):
    return {"success": True, **services.MoodService(db).weekly(user.id)}


@router.get("/history")
def history(
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_session),
):
    return {"success": True, **services.MoodService(db).history(user.id, start_date, end_date)}


@router.get("/stats")
def stats(
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_session),
):
    return {"success": True, **services.MoodService(db).stats(user.id, start_date, end_date)}


@router.delete("/entry/{entry_id}")
def delete_entry(entry_id: int, user: models.User = Depends(get_current_user), db: Session = Depends(get_session)):
    entry = services.MoodService(db).delete_entry(user.id, entry_id)
    return {"success": True, "message": "Mood entry berhasil dihapus", "data": entry}
