"""Repository classes encapsulating database operations.

Each repository is small and focused on a single aggregate (users,
posts, comments, likes, bookmarks, notifications, chat, mood).
Repositories add and flush but never commit: services decide the
transaction boundaries with `database.run_in_transaction`.

Rows guarded by a unique constraint (likes, bookmarks, daily mood) are
written with `INSERT ... ON CONFLICT` so concurrent requests cannot trip
the constraint.
"""

from datetime import date
from typing import Dict, List, Optional, Sequence, Tuple

from sqlalchemy import delete, func, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlmodel import Session, select

from . import models

_CONFLICT_INSERTS = {"postgresql": postgresql.insert, "sqlite": sqlite.insert}


def _insert(session: Session, model):
    """Dialect INSERT for `model` supporting ON CONFLICT clauses."""
    dialect = session.get_bind().dialect.name
    if dialect not in _CONFLICT_INSERTS:
        raise RuntimeError(f"unsupported database backend: {dialect}")
    return _CONFLICT_INSERTS[dialect](model.__table__)


class UserRepository:
    """CRUD operations for `User` objects."""
    def __init__(self, session: Session):
        self.session = session

    def add(self, user: models.User) -> models.User:
        """Stage a new or changed user and flush so it has an id."""
        self.session.add(user)
        self.session.flush()
        return user

    def get(self, user_id: int) -> Optional[models.User]:
        """Get a `User` by primary key."""
        return self.session.get(models.User, user_id)

    def get_by_email(self, email: str) -> Optional[models.User]:
        """Return a `User` by email (case-insensitive) or `None`."""
        stmt = select(models.User).where(func.lower(models.User.email) == email.strip().lower())
        return self.session.exec(stmt).first()

    def list_all(self) -> List[models.User]:
        return self.session.exec(select(models.User).order_by(models.User.id)).all()

    def delete(self, user: models.User) -> None:
        self.session.delete(user)
        self.session.flush()


class PostRepository:
    """Queries for SafeSpace posts."""
    def __init__(self, session: Session):
        self.session = session

    def add(self, post: models.Post) -> models.Post:
        self.session.add(post)
        self.session.flush()
        return post

    def get(self, post_id: int) -> Optional[models.Post]:
        return self.session.get(models.Post, post_id)

    def get_with_author(self, post_id: int) -> Optional[Tuple[models.Post, Optional[models.User]]]:
        stmt = (
            select(models.Post, models.User)
            .join(models.User, models.User.id == models.Post.author_id, isouter=True)
            .where(models.Post.id == post_id)
        )
        return self.session.exec(stmt).first()

    def list_recent(self) -> List[Tuple[models.Post, Optional[models.User]]]:
        """All posts with their authors, newest first."""
        stmt = (
            select(models.Post, models.User)
            .join(models.User, models.User.id == models.Post.author_id, isouter=True)
            .order_by(models.Post.created_at.desc(), models.Post.id.desc())
        )
        return self.session.exec(stmt).all()

    def list_bookmarked(self, user_id: int) -> List[Tuple[models.Post, Optional[models.User]]]:
        """Posts bookmarked by `user_id`, most recently bookmarked first."""
        stmt = (
            select(models.Post, models.User)
            .join(models.Bookmark, models.Bookmark.post_id == models.Post.id)
            .join(models.User, models.User.id == models.Post.author_id, isouter=True)
            .where(models.Bookmark.user_id == user_id)
            .order_by(models.Bookmark.created_at.desc(), models.Bookmark.id.desc())
        )
        return self.session.exec(stmt).all()

    def delete_with_children(self, post: models.Post) -> None:
        """Delete a post and every row hanging off it."""
        for child in (models.PostComment, models.PostLike, models.Bookmark, models.Notification):
            self.session.exec(delete(child).where(child.post_id == post.id))
        self.session.delete(post)
        self.session.flush()

    def count_by_author(self, user_id: int) -> int:
        stmt = select(func.count()).select_from(models.Post).where(models.Post.author_id == user_id)
        return self.session.exec(stmt).one()


class CommentRepository:
    def __init__(self, session: Session):
        self.session = session

    def add(self, comment: models.PostComment) -> models.PostComment:
        self.session.add(comment)
        self.session.flush()
        return comment

    def get(self, comment_id: int) -> Optional[models.PostComment]:
        return self.session.get(models.PostComment, comment_id)

    def list_for_posts(self, post_ids: Sequence[int]) -> Dict[int, list]:
        """Map post id -> [(comment, author)], oldest comment first."""
        out: Dict[int, list] = {pid: [] for pid in post_ids}
        if not post_ids:
            return out
        stmt = (
            select(models.PostComment, models.User)
            .join(models.User, models.User.id == models.PostComment.author_id, isouter=True)
            .where(models.PostComment.post_id.in_(post_ids))
            .order_by(models.PostComment.created_at, models.PostComment.id)
        )
        for comment, author in self.session.exec(stmt).all():
            out[comment.post_id].append((comment, author))
        return out

    def delete(self, comment: models.PostComment) -> None:
        self.session.delete(comment)
        self.session.flush()

    def count_by_author(self, user_id: int) -> int:
        stmt = select(func.count()).select_from(models.PostComment).where(models.PostComment.author_id == user_id)
        return self.session.exec(stmt).one()


class LikeRepository:
    def __init__(self, session: Session):
        self.session = session

    def get(self, post_id: int, user_id: int) -> Optional[models.PostLike]:
        stmt = select(models.PostLike).where(
            models.PostLike.post_id == post_id,
            models.PostLike.user_id == user_id,
        )
        return self.session.exec(stmt).first()

    def add_if_absent(self, post_id: int, user_id: int, when) -> bool:
        """Insert the like unless it exists; return True when a row was inserted."""
        stmt = (
            _insert(self.session, models.PostLike)
            .values(post_id=post_id, user_id=user_id, created_at=when)
            .on_conflict_do_nothing(index_elements=["post_id", "user_id"])
        )
        return bool(self.session.exec(stmt).rowcount)

    def remove(self, post_id: int, user_id: int) -> None:
        self.session.exec(delete(models.PostLike).where(
            models.PostLike.post_id == post_id,
            models.PostLike.user_id == user_id,
        ))

    def list_for_posts(self, post_ids: Sequence[int]) -> Dict[int, list]:
        """Map post id -> [(like, user)] in the order the likes were made."""
        out: Dict[int, list] = {pid: [] for pid in post_ids}
        if not post_ids:
            return out
        stmt = (
            select(models.PostLike, models.User)
            .join(models.User, models.User.id == models.PostLike.user_id, isouter=True)
            .where(models.PostLike.post_id.in_(post_ids))
            .order_by(models.PostLike.created_at, models.PostLike.id)
        )
        for like, user in self.session.exec(stmt).all():
            out[like.post_id].append((like, user))
        return out


class BookmarkRepository:
    def __init__(self, session: Session):
        self.session = session

    def get(self, post_id: int, user_id: int) -> Optional[models.Bookmark]:
        stmt = select(models.Bookmark).where(
            models.Bookmark.post_id == post_id,
            models.Bookmark.user_id == user_id,
        )
        return self.session.exec(stmt).first()

    def add_if_absent(self, post_id: int, user_id: int, when) -> bool:
        stmt = (
            _insert(self.session, models.Bookmark)
            .values(post_id=post_id, user_id=user_id, created_at=when)
            .on_conflict_do_nothing(index_elements=["post_id", "user_id"])
        )
        return bool(self.session.exec(stmt).rowcount)

    def remove(self, post_id: int, user_id: int) -> None:
        self.session.exec(delete(models.Bookmark).where(
            models.Bookmark.post_id == post_id,
            models.Bookmark.user_id == user_id,
        ))

    def post_ids_for_user(self, user_id: int) -> List[int]:
        stmt = (
            select(models.Bookmark.post_id)
            .where(models.Bookmark.user_id == user_id)
            .order_by(models.Bookmark.created_at, models.Bookmark.id)
        )
        return list(self.session.exec(stmt).all())

    def count_for_user(self, user_id: int) -> int:
        stmt = select(func.count()).select_from(models.Bookmark).where(models.Bookmark.user_id == user_id)
        return self.session.exec(stmt).one()


class NotificationRepository:
    def __init__(self, session: Session):
        self.session = session

    def add(self, notification: models.Notification) -> models.Notification:
        self.session.add(notification)
        self.session.flush()
        return notification

    def list_for_user(self, user_id: int, limit: int, offset: int) -> list:
        """Return (notification, actor, post) rows, newest first."""
        stmt = (
            select(models.Notification, models.User, models.Post)
            .join(models.User, models.User.id == models.Notification.actor_id, isouter=True)
            .join(models.Post, models.Post.id == models.Notification.post_id, isouter=True)
            .where(models.Notification.user_id == user_id)
            .order_by(models.Notification.created_at.desc(), models.Notification.id.desc())
            .limit(limit)
            .offset(offset)
        )
        return self.session.exec(stmt).all()

    def unread_count(self, user_id: int) -> int:
        stmt = select(func.count()).select_from(models.Notification).where(
            models.Notification.user_id == user_id,
            models.Notification.read == False,  # noqa: E712
        )
        return self.session.exec(stmt).one()

    def get_for_user(self, notification_id: int, user_id: int) -> Optional[models.Notification]:
        stmt = select(models.Notification).where(
            models.Notification.id == notification_id,
            models.Notification.user_id == user_id,
        )
        return self.session.exec(stmt).first()

    def mark_all_read(self, user_id: int, when) -> int:
        """Mark every unread notification of `user_id` as read; return how many changed."""
        stmt = (
            update(models.Notification)
            .where(models.Notification.user_id == user_id, models.Notification.read == False)  # noqa: E712
            .values(read=True, updated_at=when)
        )
        result = self.session.exec(stmt)
        return result.rowcount or 0


class ChatRepository:
    """Chat sessions and their messages."""
    def __init__(self, session: Session):
        self.session = session

    def active_session(self, user_id: int) -> Optional[models.ChatSession]:
        stmt = (
            select(models.ChatSession)
            .where(models.ChatSession.user_id == user_id, models.ChatSession.is_active == True)  # noqa: E712
            .order_by(models.ChatSession.updated_at.desc(), models.ChatSession.id.desc())
        )
        return self.session.exec(stmt).first()

    def deactivate_all(self, user_id: int) -> None:
        stmt = (
            update(models.ChatSession)
            .where(models.ChatSession.user_id == user_id, models.ChatSession.is_active == True)  # noqa: E712
            .values(is_active=False)
        )
        self.session.exec(stmt)

    def add_session(self, chat: models.ChatSession) -> models.ChatSession:
        self.session.add(chat)
        self.session.flush()
        return chat

    def get_session(self, session_id: int, user_id: int) -> Optional[models.ChatSession]:
        stmt = select(models.ChatSession).where(
            models.ChatSession.id == session_id,
            models.ChatSession.user_id == user_id,
        )
        return self.session.exec(stmt).first()

    def list_sessions(self, user_id: int) -> List[Tuple[models.ChatSession, int]]:
        """Sessions of `user_id` with their message counts, latest activity first."""
        stmt = (
            select(models.ChatSession, func.count(models.ChatMessage.id))
            .join(models.ChatMessage, models.ChatMessage.session_id == models.ChatSession.id, isouter=True)
            .where(models.ChatSession.user_id == user_id)
            .group_by(models.ChatSession.id)
            .order_by(models.ChatSession.updated_at.desc(), models.ChatSession.id.desc())
        )
        return self.session.exec(stmt).all()

    def add_message(self, message: models.ChatMessage) -> models.ChatMessage:
        self.session.add(message)
        self.session.flush()
        return message

    def list_messages(self, session_id: int) -> List[models.ChatMessage]:
        stmt = (
            select(models.ChatMessage)
            .where(models.ChatMessage.session_id == session_id)
            .order_by(models.ChatMessage.created_at, models.ChatMessage.id)
        )
        return self.session.exec(stmt).all()


class MoodRepository:
    """Repository for daily mood upserts and range queries."""
    def __init__(self, session: Session):
        self.session = session

    def get_by_date(self, user_id: int, entry_date: date) -> Optional[models.MoodEntry]:
        stmt = select(models.MoodEntry).where(
            models.MoodEntry.user_id == user_id,
            models.MoodEntry.entry_date == entry_date,
        )
        return self.session.exec(stmt).first()

    def upsert(self, user_id: int, entry_date: date, level: int, label: str, emoji: str, when) -> models.MoodEntry:
        """Insert the day's entry or overwrite it, in one statement.

        `created_at` of an existing entry is kept.
        """
        stmt = _insert(self.session, models.MoodEntry).values(
            user_id=user_id, entry_date=entry_date, mood_level=level,
            mood_label=label, mood_emoji=emoji, created_at=when, updated_at=when,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["user_id", "entry_date"],
            set_={
                "mood_level": stmt.excluded.mood_level,
                "mood_label": stmt.excluded.mood_label,
                "mood_emoji": stmt.excluded.mood_emoji,
                "updated_at": stmt.excluded.updated_at,
            },
        )
        self.session.exec(stmt)
        saved = select(models.MoodEntry).where(
            models.MoodEntry.user_id == user_id,
            models.MoodEntry.entry_date == entry_date,
        ).execution_options(populate_existing=True)
        return self.session.exec(saved).one()

    def list_range(self, user_id: int, start: date, end: date) -> List[models.MoodEntry]:
        """Entries with `start <= entry_date <= end`, oldest first."""
        stmt = (
            select(models.MoodEntry)
            .where(
                models.MoodEntry.user_id == user_id,
                models.MoodEntry.entry_date >= start,
                models.MoodEntry.entry_date <= end,
            )
            .order_by(models.MoodEntry.entry_date)
        )
        return self.session.exec(stmt).all()

    def level_counts(self, user_id: int, start: date, end: date) -> list:
        """Return (mood_level, mood_label, count) rows for the range."""
        stmt = (
            select(models.MoodEntry.mood_level, models.MoodEntry.mood_label, func.count())
            .where(
                models.MoodEntry.user_id == user_id,
                models.MoodEntry.entry_date >= start,
                models.MoodEntry.entry_date <= end,
            )
            .group_by(models.MoodEntry.mood_level, models.MoodEntry.mood_label)
            .order_by(models.MoodEntry.mood_level)
        )
        return self.session.exec(stmt).all()

    def get_for_user(self, entry_id: int, user_id: int) -> Optional[models.MoodEntry]:
        stmt = select(models.MoodEntry).where(
            models.MoodEntry.id == entry_id,
            models.MoodEntry.user_id == user_id,
        )
        return self.session.exec(stmt).first()

    def delete(self, entry: models.MoodEntry) -> None:
        self.session.delete(entry)
        self.session.flush()
