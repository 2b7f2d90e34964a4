"""Pydantic request schemas used by the API.

Schemas keep API input shapes stable and provide validation for route
handlers and tests. Fields whose absence is a domain error (an empty
post, a mood level out of range) are optional here and checked by the
services, which answer 400 rather than 422.
"""

from typing import Optional

from pydantic import BaseModel, EmailStr, Field, field_validator


class RegisterIn(BaseModel):
    """Payload for the registration endpoint."""
    name: str = Field(min_length=1, max_length=100)
    email: EmailStr
    password: str = Field(min_length=6, max_length=128)

    @field_validator("name")
    @classmethod
    def _name_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Name is required")
        return v.strip()


class LoginIn(BaseModel):
    email: EmailStr
    password: str


class ProfileUpdateIn(BaseModel):
    """Partial profile update; blank or missing fields are left unchanged."""
    name: Optional[str] = None
    email: Optional[str] = None


class PostIn(BaseModel):
    content: Optional[str] = None
    is_anonymous: bool = False


class PostUpdateIn(BaseModel):
    content: Optional[str] = None


class CommentIn(BaseModel):
    content: Optional[str] = None


class MoodEntryIn(BaseModel):
    """Mood for a day; `entry_date` defaults to today in WIB."""
    mood_level: Optional[int] = None
    entry_date: Optional[str] = None


class ChatMessageIn(BaseModel):
    message: Optional[str] = None
