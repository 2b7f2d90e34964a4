"""Business logic services used by HTTP routes.

This module holds small service classes that coordinate repositories,
third-party clients and auxiliary logic. Services are intentionally
thin: they validate input, execute domain logic inside a transaction
and return plain dicts ready to be serialised as JSON.

Read-only methods are wrapped with `retry_on_disconnect`. Writes put
their reads and writes in a `_work` function run by
`run_in_transaction`, so a dropped connection repeats only uncommitted
work; anything formatted after the commit is read by a separately
retried call. Calls to external services (chatbot, image CDN) stay
outside both so they are never repeated.
"""

import logging
import time
from datetime import timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import List, Optional

import jwt
from passlib.context import CryptContext
from sqlmodel import Session

from . import models, repositories
from .config import settings
from .database import call_with_retry, retry_on_disconnect, run_in_transaction
from .errors import ConflictError, DomainError, NotFoundError, PermissionDeniedError, ValidationError
from .utils import chatbot_client, image_host
from .utils.wib import format_mood_chart, parse_entry_date, wib_today

logger = logging.getLogger("pulihhati.services")

PWD_CTX = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")

ANONYMOUS = "Anonymous"
ROLE_ADMIN = "admin"

utcnow = models.utcnow


# --- presenters -------------------------------------------------------------

def user_out(user: models.User) -> dict:
    """Public view of a user; never includes the password hash."""
    return {
        "id": user.id,
        "name": user.name,
        "email": user.email,
        "avatar": user.avatar,
        "role": user.role,
        "created_at": user.created_at,
    }


def _author_out(author_id: int, author: Optional[models.User], hidden: bool = False) -> dict:
    if hidden or author is None:
        return {"id": author_id, "name": ANONYMOUS, "avatar": None}
    return {"id": author_id, "name": author.name, "avatar": author.avatar}


def comment_out(comment: models.PostComment, author: Optional[models.User]) -> dict:
    return {
        "id": comment.id,
        "content": comment.content,
        "created_at": comment.created_at,
        "author": _author_out(comment.author_id, author),
    }


def like_out(like: models.PostLike, user: Optional[models.User]) -> dict:
    return {"user": like.user_id, "name": user.name if user else ANONYMOUS}


def post_out(post: models.Post, author, likes: list, comments: list, viewer_id: Optional[int]) -> dict:
    """Format a post for the feed.

    Anonymous posts keep the author id but hide the author's name and
    avatar from everyone except the author.
    """
    hidden = post.is_anonymous and post.author_id != viewer_id
    return {
        "id": post.id,
        "content": post.content,
        "is_anonymous": post.is_anonymous,
        "created_at": post.created_at,
        "updated_at": post.updated_at,
        "author": _author_out(post.author_id, author, hidden),
        "likes": [like_out(like, user) for like, user in likes],
        "comments": [comment_out(c, a) for c, a in comments],
        "likes_count": len(likes),
        "comments_count": len(comments),
    }


def _require_text(value: Optional[str], message: str) -> str:
    if value is None or not value.strip():
        raise ValidationError(message)
    return value.strip()


# --- auth & users -----------------------------------------------------------

class AuthService:
    """Authentication related operations (register + authenticate)."""
    def __init__(self, session: Session):
        self.session = session
        self.user_repo = repositories.UserRepository(session)

    @staticmethod
    def issue_token(user_id: int) -> str:
        """Return a signed JWT carrying the user id."""
        expire = utcnow() + timedelta(hours=settings.JWT_EXPIRE_HOURS)
        payload = {"id": user_id, "exp": int(expire.timestamp())}
        return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)

    def register(self, name: str, email: str, password: str) -> dict:
        """Create a new user with a hashed password and return `{token, user}`.

        Raises `ConflictError` when the email is already registered.
        """
        email = email.strip().lower()
        password_hash = PWD_CTX.hash(password)

        def _work():
            if self.user_repo.get_by_email(email):
                raise ConflictError("User already exists")
            user = self.user_repo.add(models.User(name=name.strip(), email=email, password_hash=password_hash))
            return user_out(user)

        out = run_in_transaction(self.session, _work)
        logger.info("user %s registered", out["id"])
        return {"token": self.issue_token(out["id"]), "user": out}

    @retry_on_disconnect
    def authenticate(self, email: str, password: str) -> Optional[dict]:
        """Verify credentials and return `{token, user}`, or `None` on failure."""
        user = self.user_repo.get_by_email(email)
        if not user or not PWD_CTX.verify(password, user.password_hash):
            return None
        return {"token": self.issue_token(user.id), "user": user_out(user)}


class UserService:
    """Profile management, admin user operations and profile statistics."""
    def __init__(self, session: Session):
        self.session = session
        self.user_repo = repositories.UserRepository(session)

    def _get_or_404(self, user_id: int) -> models.User:
        user = self.user_repo.get(user_id)
        if not user:
            raise NotFoundError("User not found")
        return user

    @retry_on_disconnect
    def list_users(self) -> List[dict]:
        return [user_out(u) for u in self.user_repo.list_all()]

    @retry_on_disconnect
    def get_user(self, user_id: int) -> dict:
        return user_out(self._get_or_404(user_id))

    def _apply_update(self, user: models.User, name: Optional[str], email: Optional[str]) -> bool:
        """Stage name/email changes on `user`; return whether anything changed."""
        changed = False
        if name is not None and name.strip():
            user.name = name.strip()
            changed = True
        if email is not None and email.strip():
            new_email = email.strip().lower()
            if new_email != user.email:
                other = self.user_repo.get_by_email(new_email)
                if other and other.id != user.id:
                    raise ConflictError("Email already in use")
                user.email = new_email
            changed = True
        if changed:
            user.updated_at = utcnow()
            self.user_repo.add(user)
        return changed

    def update_profile(self, user_id: int, name: Optional[str], email: Optional[str]) -> dict:
        """Update the caller's own name/email; blank fields are ignored."""
        def _work():
            user = self._get_or_404(user_id)
            return self._apply_update(user, name, email), user_out(user)

        changed, out = run_in_transaction(self.session, _work)
        if not changed:
            return {"message": "Profile data retrieved successfully", "user": out}
        logger.info("profile updated for user %s", user_id)
        return {"message": "Profile updated successfully", "user": out}

    def update_user(self, actor: models.User, user_id: int, name: Optional[str], email: Optional[str]) -> dict:
        """Update any user; only the user themself or an admin may do it."""
        actor_id, actor_role = actor.id, actor.role

        def _work():
            user = self._get_or_404(user_id)
            if actor_id != user.id and actor_role != ROLE_ADMIN:
                logger.warning("user %s not authorized to update user %s", actor_id, user_id)
                raise PermissionDeniedError("Not authorized")
            self._apply_update(user, name, email)
            return user_out(user)

        return run_in_transaction(self.session, _work)

    def delete_user(self, user_id: int) -> None:
        """Delete a user; their posts, likes, comments and mood entries cascade."""
        def _work():
            self.user_repo.delete(self._get_or_404(user_id))

        run_in_transaction(self.session, _work)
        logger.info("user %s deleted", user_id)

    @retry_on_disconnect
    def profile_stats(self, user_id: int) -> dict:
        user = self._get_or_404(user_id)
        out = user_out(user)
        out["updated_at"] = user.updated_at
        return {
            "user": out,
            "stats": {
                "posts": repositories.PostRepository(self.session).count_by_author(user_id),
                "comments": repositories.CommentRepository(self.session).count_by_author(user_id),
                "bookmarks": repositories.BookmarkRepository(self.session).count_for_user(user_id),
            },
        }


# --- notifications ----------------------------------------------------------

class NotificationService:
    """Read and acknowledge notifications; create them for post activity."""
    def __init__(self, session: Session):
        self.session = session
        self.repo = repositories.NotificationRepository(session)

    def notify(self, user_id: int, actor: models.User, type_: str, message: str,
               post_id: Optional[int] = None) -> Optional[models.Notification]:
        """Stage a notification in the caller's transaction.

        Nothing is created when a user acts on their own content.
        """
        if user_id == actor.id:
            return None
        note = self.repo.add(models.Notification(
            user_id=user_id, actor_id=actor.id, type=type_, message=message, post_id=post_id,
        ))
        logger.info("notification for user %s from actor %s: %s", user_id, actor.id, type_)
        return note

    @retry_on_disconnect
    def list_for_user(self, user_id: int, page: int = 1, limit: int = 20) -> List[dict]:
        page = max(1, page)
        limit = min(max(1, limit), 100)
        rows = self.repo.list_for_user(user_id, limit=limit, offset=(page - 1) * limit)
        out = []
        for note, actor, post in rows:
            out.append({
                "id": note.id,
                "type": note.type,
                "message": note.message,
                "read": note.read,
                "created_at": note.created_at,
                "actor": _author_out(note.actor_id, actor) if note.actor_id else None,
                "post": {"id": post.id, "content": post.content} if post else None,
            })
        return out

    @retry_on_disconnect
    def unread_count(self, user_id: int) -> int:
        return self.repo.unread_count(user_id)

    def mark_read(self, user_id: int, notification_id: int) -> None:
        def _work():
            note = self.repo.get_for_user(notification_id, user_id)
            if not note:
                raise NotFoundError("Notification not found")
            note.read = True
            note.updated_at = utcnow()
            self.repo.add(note)

        run_in_transaction(self.session, _work)

    def mark_all_read(self, user_id: int) -> int:
        updated = run_in_transaction(self.session, self.repo.mark_all_read, user_id, utcnow())
        logger.info("marked %d notifications read for user %s", updated, user_id)
        return updated


# --- safespace --------------------------------------------------------------

class SafeSpaceService:
    """Posts, comments, likes and bookmarks of the SafeSpace feed."""
    def __init__(self, session: Session):
        self.session = session
        self.posts = repositories.PostRepository(session)
        self.comments = repositories.CommentRepository(session)
        self.likes = repositories.LikeRepository(session)
        self.bookmarks = repositories.BookmarkRepository(session)
        self.notifications = NotificationService(session)

    def _get_post_or_404(self, post_id: int) -> models.Post:
        post = self.posts.get(post_id)
        if not post:
            raise NotFoundError("Post not found")
        return post

    def _format(self, rows: list, viewer_id: Optional[int]) -> List[dict]:
        ids = [post.id for post, _ in rows]
        likes = self.likes.list_for_posts(ids)
        comments = self.comments.list_for_posts(ids)
        return [post_out(post, author, likes[post.id], comments[post.id], viewer_id) for post, author in rows]

    def _format_one(self, post_id: int, viewer_id: Optional[int]) -> dict:
        row = self.posts.get_with_author(post_id)
        if not row:
            raise NotFoundError("Post not found")
        return self._format([row], viewer_id)[0]

    @retry_on_disconnect
    def list_posts(self, viewer_id: int) -> List[dict]:
        return self._format(self.posts.list_recent(), viewer_id)

    @retry_on_disconnect
    def get_post(self, post_id: int, viewer_id: int) -> dict:
        return self._format_one(post_id, viewer_id)

    def create_post(self, author: models.User, content: Optional[str], is_anonymous: bool = False) -> dict:
        content = _require_text(content, "Content is required")
        author_id = author.id

        def _work():
            post = self.posts.add(models.Post(content=content, author_id=author_id, is_anonymous=bool(is_anonymous)))
            return post.id

        post_id = run_in_transaction(self.session, _work)
        logger.info("post %s created by user %s", post_id, author_id)
        return self.get_post(post_id, author_id)

    def update_post(self, actor: models.User, post_id: int, content: Optional[str]) -> dict:
        content = _require_text(content, "Content is required")
        actor_id = actor.id

        def _work():
            post = self._get_post_or_404(post_id)
            if post.author_id != actor_id:
                raise PermissionDeniedError("Not authorized to edit this post")
            post.content = content
            post.updated_at = utcnow()
            self.posts.add(post)

        run_in_transaction(self.session, _work)
        logger.info("post %s updated by user %s", post_id, actor_id)
        return self.get_post(post_id, actor_id)

    def delete_post(self, actor: models.User, post_id: int) -> None:
        """Delete a post with its comments, likes, bookmarks and notifications."""
        actor_id, actor_role = actor.id, actor.role

        def _work():
            post = self._get_post_or_404(post_id)
            if post.author_id != actor_id and actor_role != ROLE_ADMIN:
                raise PermissionDeniedError("Not authorized to delete this post")
            self.posts.delete_with_children(post)

        run_in_transaction(self.session, _work)
        logger.info("post %s deleted by user %s", post_id, actor_id)

    def toggle_like(self, actor: models.User, post_id: int) -> List[dict]:
        """Like the post, or unlike it if already liked; return its likes.

        A like racing an identical one is absorbed by the unique
        constraint and only the winner notifies the author.
        """
        actor_id = actor.id

        def _work():
            post = self._get_post_or_404(post_id)
            if self.likes.get(post_id, actor_id):
                self.likes.remove(post_id, actor_id)
                logger.info("user %s unliked post %s", actor_id, post_id)
            elif self.likes.add_if_absent(post_id, actor_id, utcnow()):
                self.notifications.notify(post.author_id, actor, "like", f"{actor.name} liked your post", post_id)
                logger.info("user %s liked post %s", actor_id, post_id)

        run_in_transaction(self.session, _work)
        likes = call_with_retry(self.session, self.likes.list_for_posts, [post_id])
        return [like_out(like, user) for like, user in likes[post_id]]

    def add_comment(self, actor: models.User, post_id: int, content: Optional[str]) -> List[dict]:
        """Add a comment and return it as a one-element list."""
        content = _require_text(content, "Comment content is required")

        def _work():
            post = self._get_post_or_404(post_id)
            comment = self.comments.add(models.PostComment(post_id=post_id, author_id=actor.id, content=content))
            self.notifications.notify(
                post.author_id, actor, "comment", f"{actor.name} commented on your post", post_id,
            )
            return comment_out(comment, actor)

        out = run_in_transaction(self.session, _work)
        logger.info("comment %s added to post %s by user %s", out["id"], post_id, out["author"]["id"])
        return [out]

    def delete_comment(self, actor: models.User, post_id: int, comment_id: int) -> None:
        actor_id, actor_role = actor.id, actor.role

        def _work():
            post = self._get_post_or_404(post_id)
            comment = self.comments.get(comment_id)
            if not comment or comment.post_id != post_id:
                raise NotFoundError("Comment not found")
            if actor_id not in (comment.author_id, post.author_id) and actor_role != ROLE_ADMIN:
                raise PermissionDeniedError("Not authorized to delete this comment")
            self.comments.delete(comment)

        run_in_transaction(self.session, _work)
        logger.info("comment %s deleted by user %s", comment_id, actor_id)

    def toggle_bookmark(self, actor: models.User, post_id: int) -> List[int]:
        """Bookmark or un-bookmark; return ids of all the user's bookmarked posts."""
        actor_id = actor.id

        def _work():
            self._get_post_or_404(post_id)
            if self.bookmarks.get(post_id, actor_id):
                self.bookmarks.remove(post_id, actor_id)
                logger.info("user %s removed bookmark from post %s", actor_id, post_id)
            elif self.bookmarks.add_if_absent(post_id, actor_id, utcnow()):
                logger.info("user %s bookmarked post %s", actor_id, post_id)

        run_in_transaction(self.session, _work)
        return call_with_retry(self.session, self.bookmarks.post_ids_for_user, actor_id)

    @retry_on_disconnect
    def list_bookmarks(self, viewer_id: int) -> List[dict]:
        return self._format(self.posts.list_bookmarked(viewer_id), viewer_id)


# --- mood -------------------------------------------------------------------

MOOD_TYPES = {
    1: {"emoji": "😊", "label": "Sangat Baik", "color": "bg-green-100 text-green-700 border-green-300", "chartColor": "#22C55E"},
    2: {"emoji": "🙂", "label": "Baik", "color": "bg-emerald-100 text-emerald-700 border-emerald-300", "chartColor": "#10B981"},
    3: {"emoji": "😐", "label": "Biasa", "color": "bg-yellow-100 text-yellow-700 border-yellow-300", "chartColor": "#EAB308"},
    4: {"emoji": "😔", "label": "Buruk", "color": "bg-orange-100 text-orange-700 border-orange-300", "chartColor": "#F97316"},
    5: {"emoji": "😢", "label": "Sangat Buruk", "color": "bg-red-100 text-red-700 border-red-300", "chartColor": "#EF4444"},
}

DEFAULT_HISTORY_DAYS = 30

_CENTS = Decimal("0.01")


def round_half_up(value) -> float:
    """Round to two decimals with halves going up, as SQL ROUND does (2.125 -> 2.13)."""
    return float(Decimal(value).quantize(_CENTS, rounding=ROUND_HALF_UP))


def mood_entry_out(entry: models.MoodEntry) -> dict:
    return {
        "id": entry.id,
        "mood_level": entry.mood_level,
        "mood_label": entry.mood_label,
        "mood_emoji": entry.mood_emoji,
        "entry_date": entry.entry_date.isoformat(),
        "created_at": entry.created_at,
        "updated_at": entry.updated_at,
    }


class MoodService:
    """Daily mood journal: upsert, history, weekly chart and statistics."""
    def __init__(self, session: Session):
        self.session = session
        self.repo = repositories.MoodRepository(session)

    @staticmethod
    def mood_types() -> List[dict]:
        return [{"id": level, **info} for level, info in MOOD_TYPES.items()]

    @staticmethod
    def resolve_period(start_date: Optional[str], end_date: Optional[str]):
        """Parse an optional date range; default is the last 30 WIB days."""
        try:
            end = parse_entry_date(end_date) if end_date else wib_today()
            start = parse_entry_date(start_date) if start_date else end - timedelta(days=DEFAULT_HISTORY_DAYS)
        except ValueError as e:
            raise ValidationError(str(e))
        if start > end:
            raise ValidationError("start_date must not be after end_date")
        return start, end

    def save_entry(self, user_id: int, mood_level, entry_date: Optional[str] = None) -> dict:
        """Create or overwrite the user's mood for `entry_date` (default: today in WIB)."""
        if not isinstance(mood_level, int) or isinstance(mood_level, bool) or mood_level not in MOOD_TYPES:
            raise ValidationError("Mood level harus antara 1-5")
        try:
            day = parse_entry_date(entry_date) if entry_date else wib_today()
        except ValueError as e:
            raise ValidationError(str(e))
        info = MOOD_TYPES[mood_level]

        def _work():
            saved = self.repo.upsert(user_id, day, mood_level, info["label"], info["emoji"], utcnow())
            return mood_entry_out(saved)

        out = run_in_transaction(self.session, _work)
        logger.info("mood level %s saved for user %s on %s", mood_level, user_id, day.isoformat())
        return out

    @retry_on_disconnect
    def today(self, user_id: int) -> dict:
        day = wib_today()
        entry = self.repo.get_by_date(user_id, day)
        return {"data": mood_entry_out(entry) if entry else None, "date": day.isoformat()}

    @retry_on_disconnect
    def weekly(self, user_id: int) -> dict:
        """Seven-day chart ending today (WIB) plus the raw entries behind it."""
        today = wib_today()
        entries = self.repo.list_range(user_id, today - timedelta(days=6), today)
        return {
            "data": format_mood_chart(entries, today),
            "raw_entries": [mood_entry_out(e) for e in entries],
        }

    @retry_on_disconnect
    def history(self, user_id: int, start_date: Optional[str], end_date: Optional[str]) -> dict:
        start, end = self.resolve_period(start_date, end_date)
        entries = self.repo.list_range(user_id, start, end)
        return {
            "data": [mood_entry_out(e) for e in entries],
            "period": {"start_date": start.isoformat(), "end_date": end.isoformat()},
        }

    @retry_on_disconnect
    def stats(self, user_id: int, start_date: Optional[str], end_date: Optional[str]) -> dict:
        """Distribution of mood levels and the average level over a period."""
        start, end = self.resolve_period(start_date, end_date)
        rows = self.repo.level_counts(user_id, start, end)
        total = sum(count for _, _, count in rows)
        distribution = [
            {
                "mood_level": level,
                "mood_label": label,
                "count": count,
                "percentage": round_half_up(Decimal(count * 100) / total) if total else 0.0,
            }
            for level, label, count in rows
        ]
        average = round_half_up(Decimal(sum(level * count for level, _, count in rows)) / total) if total else None
        return {
            "data": {
                "distribution": distribution,
                "average": {"average_mood": average, "total_entries": total},
            },
            "period": {"start_date": start.isoformat(), "end_date": end.isoformat()},
        }

    def delete_entry(self, user_id: int, entry_id: int) -> dict:
        def _work():
            entry = self.repo.get_for_user(entry_id, user_id)
            if not entry:
                raise NotFoundError("Mood entry not found")
            out = mood_entry_out(entry)
            self.repo.delete(entry)
            return out

        out = run_in_transaction(self.session, _work)
        logger.info("mood entry %s deleted for user %s", entry_id, user_id)
        return out


# --- chatbot ----------------------------------------------------------------

SENDER_USER = "user"
SENDER_BOT = "bot"


def chat_message_out(message: models.ChatMessage) -> dict:
    return {
        "id": message.id,
        "content": message.content,
        "sender": message.sender,
        "created_at": message.created_at,
    }


class ChatService:
    """Chat sessions persisted locally, replies produced by the chatbot service."""
    def __init__(self, session: Session):
        self.session = session
        self.repo = repositories.ChatRepository(session)

    def _record_work(self, user_id: int, content: str, sender: str, session_id: Optional[int]) -> int:
        if session_id is None:
            chat = self.repo.active_session(user_id)
            if chat is None:
                self.repo.deactivate_all(user_id)
                chat = self.repo.add_session(models.ChatSession(user_id=user_id))
                logger.info("chat session %s opened for user %s", chat.id, user_id)
        else:
            chat = self.repo.get_session(session_id, user_id)
            if chat is None:
                raise NotFoundError("Session not found")
        self.repo.add_message(models.ChatMessage(session_id=chat.id, content=content, sender=sender))
        chat.updated_at = utcnow()
        self.repo.add_session(chat)
        return chat.id

    def _record(self, user_id: int, content: str, sender: str, session_id: Optional[int] = None) -> int:
        """Store one message, opening a session when needed; return the session id."""
        return run_in_transaction(self.session, self._record_work, user_id, content, sender, session_id)

    @retry_on_disconnect
    def _history(self, session_id: int) -> List[dict]:
        return [{"role": m.sender, "content": m.content} for m in self.repo.list_messages(session_id)]

    def send_message(self, user: models.User, message: Optional[str]) -> dict:
        """Store the user's message, ask the chatbot, store and return its reply."""
        text = _require_text(message, "Message is required")
        user_id = user.id
        chat_id = self._record(user_id, text, SENDER_USER)
        history = self._history(chat_id)
        reply = chatbot_client.get_reply(text, history[:-1], chat_id)
        self._record(user_id, reply, SENDER_BOT, session_id=chat_id)
        session = self.get_session(user_id, chat_id)
        return {"sessionId": chat_id, "message": reply, "messages": session["messages"]}

    @retry_on_disconnect
    def list_sessions(self, user_id: int) -> List[dict]:
        return [
            {
                "id": chat.id,
                "is_active": chat.is_active,
                "message_count": int(count or 0),
                "created_at": chat.created_at,
                "updated_at": chat.updated_at,
            }
            for chat, count in self.repo.list_sessions(user_id)
        ]

    @retry_on_disconnect
    def get_session(self, user_id: int, session_id: int) -> dict:
        chat = self.repo.get_session(session_id, user_id)
        if not chat:
            raise NotFoundError("Session not found")
        return {
            "id": chat.id,
            "is_active": chat.is_active,
            "messages": [chat_message_out(m) for m in self.repo.list_messages(chat.id)],
            "created_at": chat.created_at,
            "updated_at": chat.updated_at,
        }

    def close_session(self, user_id: int, session_id: int) -> None:
        def _work():
            chat = self.repo.get_session(session_id, user_id)
            if not chat:
                raise NotFoundError("Session not found")
            chat.is_active = False
            self.repo.add_session(chat)

        run_in_transaction(self.session, _work)


# --- avatar -----------------------------------------------------------------

class AvatarService:
    """Avatar upload/removal on the image CDN, mirrored on the user row."""
    def __init__(self, session: Session):
        self.session = session
        self.user_repo = repositories.UserRepository(session)

    def _store_work(self, user_id: int, avatar: Optional[str], public_id: Optional[str]):
        user = self.user_repo.get(user_id)
        if not user:
            raise NotFoundError("User not found")
        previous = user.cloudinary_public_id
        user.avatar = avatar
        user.cloudinary_public_id = public_id
        user.updated_at = utcnow()
        self.user_repo.add(user)
        return user_out(user), previous

    def _store(self, user_id: int, avatar: Optional[str], public_id: Optional[str]):
        """Save the new avatar fields and return `(user_dict, previous_public_id)`."""
        return run_in_transaction(self.session, self._store_work, user_id, avatar, public_id)

    @staticmethod
    def _discard(public_id: Optional[str]) -> None:
        # The user row is already updated; a stale CDN image is only wasted space.
        if not public_id:
            return
        try:
            image_host.delete_image(public_id)
        except DomainError as exc:
            logger.warning("failed to delete old avatar %s: %s", public_id, exc.message)

    def upload(self, user: models.User, payload: bytes, filename: str, content_type: str) -> dict:
        """Upload a new avatar, point the user at it, then drop the old one."""
        user_id = user.id
        public_id = f"user_{user_id}_{int(time.time() * 1000)}"
        logger.info("uploading avatar for user %s", user_id)
        result = image_host.upload_avatar(payload, filename, content_type, public_id)
        stored_id = result.get("public_id") or f"{image_host.AVATAR_FOLDER}/{public_id}"
        urls = image_host.avatar_urls(stored_id, result.get("secure_url", ""))
        updated, previous = self._store(user_id, urls["medium"], stored_id)
        self._discard(previous)
        logger.info("avatar uploaded for user %s: %s", user_id, stored_id)
        return {
            "message": "Avatar uploaded successfully",
            "user": updated,
            "avatar": urls,
            "upload_info": {
                "public_id": stored_id,
                "secure_url": result.get("secure_url"),
                "width": result.get("width"),
                "height": result.get("height"),
                "format": result.get("format"),
                "bytes": result.get("bytes"),
            },
        }

    def remove(self, user: models.User) -> dict:
        user_id = user.id
        updated, previous = self._store(user_id, None, None)
        self._discard(previous)
        logger.info("avatar removed for user %s", user_id)
        return {"message": "Avatar deleted successfully", "user": updated}
