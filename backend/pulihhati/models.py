"""SQLModel data models.

This module defines the application's database tables using SQLModel.
Table names follow the production PostgreSQL schema so an existing
database can be used as-is. Foreign keys cascade on delete.
"""

from datetime import date, datetime, timezone
from typing import Optional

from sqlalchemy import UniqueConstraint
from sqlmodel import Field, SQLModel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class User(SQLModel, table=True):
    """A registered user.

    Fields:
    - `email`: unique login name
    - `password_hash`: hashed password string (never store plaintext)
    - `role`: `user` or `admin`
    - `cloudinary_public_id`: CDN id of the current avatar, if uploaded
    """
    __tablename__ = "users"

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(max_length=100)
    email: str = Field(index=True, unique=True, max_length=100)
    password_hash: str
    avatar: Optional[str] = Field(default=None, max_length=255)
    role: str = Field(default="user", max_length=20)
    cloudinary_public_id: Optional[str] = Field(default=None, max_length=255)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class Post(SQLModel, table=True):
    """A SafeSpace post."""
    __tablename__ = "posts"

    id: Optional[int] = Field(default=None, primary_key=True)
    content: str
    author_id: int = Field(foreign_key="users.id", index=True, ondelete="CASCADE")
    is_anonymous: bool = False
    created_at: datetime = Field(default_factory=utcnow, index=True)
    updated_at: datetime = Field(default_factory=utcnow)


class PostComment(SQLModel, table=True):
    __tablename__ = "post_comments"

    id: Optional[int] = Field(default=None, primary_key=True)
    post_id: int = Field(foreign_key="posts.id", index=True, ondelete="CASCADE")
    author_id: int = Field(foreign_key="users.id", index=True, ondelete="CASCADE")
    content: str
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class PostLike(SQLModel, table=True):
    """One like per user per post."""
    __tablename__ = "post_likes"
    __table_args__ = (UniqueConstraint("post_id", "user_id"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    post_id: int = Field(foreign_key="posts.id", index=True, ondelete="CASCADE")
    user_id: int = Field(foreign_key="users.id", ondelete="CASCADE")
    created_at: datetime = Field(default_factory=utcnow)


class Bookmark(SQLModel, table=True):
    """One bookmark per user per post."""
    __tablename__ = "bookmarks"
    __table_args__ = (UniqueConstraint("post_id", "user_id"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    post_id: int = Field(foreign_key="posts.id", ondelete="CASCADE")
    user_id: int = Field(foreign_key="users.id", index=True, ondelete="CASCADE")
    created_at: datetime = Field(default_factory=utcnow)


class Notification(SQLModel, table=True):
    """Something `actor_id` did that `user_id` should hear about."""
    __tablename__ = "notifications"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="users.id", index=True, ondelete="CASCADE")
    actor_id: Optional[int] = Field(default=None, foreign_key="users.id", ondelete="CASCADE")
    type: str = Field(max_length=50)
    message: str
    post_id: Optional[int] = Field(default=None, foreign_key="posts.id", ondelete="CASCADE")
    read: bool = False
    created_at: datetime = Field(default_factory=utcnow, index=True)
    updated_at: datetime = Field(default_factory=utcnow)


class ChatSession(SQLModel, table=True):
    """A conversation with the chatbot; at most one is active per user."""
    __tablename__ = "chat_sessions"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="users.id", index=True, ondelete="CASCADE")
    is_active: bool = True
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class ChatMessage(SQLModel, table=True):
    __tablename__ = "messages"

    id: Optional[int] = Field(default=None, primary_key=True)
    session_id: int = Field(foreign_key="chat_sessions.id", index=True, ondelete="CASCADE")
    content: str
    sender: str = Field(max_length=20)
    created_at: datetime = Field(default_factory=utcnow)


class MoodEntry(SQLModel, table=True):
    """A daily mood record.

    `entry_date` is the calendar day in WIB; the unique constraint keeps
    a single entry per user per day.
    """
    __tablename__ = "mood_entries"
    __table_args__ = (UniqueConstraint("user_id", "entry_date"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="users.id", index=True, ondelete="CASCADE")
    mood_level: int = Field(ge=1, le=5)
    mood_label: str = Field(max_length=50)
    mood_emoji: str = Field(max_length=10)
    entry_date: date = Field(index=True)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
