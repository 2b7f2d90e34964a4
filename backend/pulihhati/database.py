"""Database engine and helpers.

This module configures the single shared SQLModel/SQLAlchemy engine
(and therefore the single connection pool) used by the application.
`DATABASE_URL` selects the backend: a local SQLite file for development
and tests, PostgreSQL in production.

Besides session handling it provides the two pieces of failure handling
the services rely on:

- `transaction()` wraps a unit of work in BEGIN/COMMIT with ROLLBACK on
  any error.
- `run_in_transaction()` and `retry_on_disconnect` retry database work
  when the connection fails. The pool is discarded and recreated between
  attempts and the delay doubles each time.

Only work that has not been committed is ever retried. Writes go through
`run_in_transaction()`, which repeats the uncommitted unit of work; a
connection lost during COMMIT itself is reported as unavailable instead
of retried, since the server may already have applied it. The decorator
is for read-only methods.
"""

import functools
import logging
import time
from contextlib import contextmanager

from sqlalchemy import event, text
from sqlalchemy.exc import DBAPIError, InterfaceError, OperationalError, SQLAlchemyError
from sqlmodel import SQLModel, Session, create_engine

from .config import settings
from .errors import DatabaseUnavailableError

logger = logging.getLogger("pulihhati.db")

# SQLSTATE codes worth retrying: server shutdown/restart, connection
# exceptions and "too many connections".
RETRYABLE_SQLSTATES = frozenset({
    "57P01",  # admin_shutdown
    "57P02",  # crash_shutdown
    "57P03",  # cannot_connect_now
    "08000",  # connection_exception
    "08001",  # sqlclient_unable_to_establish_sqlconnection
    "08003",  # connection_does_not_exist
    "08004",  # sqlserver_rejected_establishment_of_sqlconnection
    "08006",  # connection_failure
    "53300",  # too_many_connections
})

_CONNECTION_HINTS = (
    "could not connect",
    "connection refused",
    "connection reset",
    "server closed the connection",
    "terminating connection",
    "connection timed out",
    "timeout expired",
    "connection is closed",
)

_sleep = time.sleep

_RETRY_SCOPE = "pulihhati.retry_scope"


def _build_engine(url: str):
    kwargs = {"echo": False, "pool_pre_ping": True}
    if url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
    else:
        kwargs["pool_size"] = settings.DB_POOL_SIZE
        kwargs["pool_timeout"] = settings.DB_POOL_TIMEOUT
        if settings.DB_SCHEMA:
            kwargs["connect_args"] = {"options": f'-csearch_path="{settings.DB_SCHEMA}"'}
    eng = create_engine(url, **kwargs)
    if url.startswith("sqlite"):
        @event.listens_for(eng, "connect")
        def _enable_sqlite_foreign_keys(dbapi_connection, _record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()
    return eng


engine = _build_engine(settings.DATABASE_URL)


def create_db_and_tables():
    """Create database tables using SQLModel metadata.

    A failure is logged and swallowed so the API can still start and
    answer health checks while the database is unreachable; requests that
    need the database will surface 503s through `retry_on_disconnect`.
    """
    from . import models  # noqa: F401  register tables on the metadata

    try:
        SQLModel.metadata.create_all(engine)
        logger.info("database schema checked/created")
    except SQLAlchemyError:
        logger.exception("schema bootstrap failed; continuing startup")


def get_session():
    """Yield a database `Session` for FastAPI dependency injection.

    The generator yields a session and ensures it is closed when the
    request scope finishes. Loaded rows stay usable after a commit so
    formatting a response does not trigger unretried refresh queries.
    """
    with Session(engine, expire_on_commit=False) as session:
        yield session


@contextmanager
def transaction(session: Session):
    """Commit the work done inside the block, roll back on any error.

    A retryable connection failure during COMMIT raises
    `DatabaseUnavailableError`, which callers never retry.
    """
    try:
        yield session
    except Exception:
        session.rollback()
        raise
    try:
        session.commit()
    except Exception as exc:
        session.rollback()
        if is_retryable(exc):
            logger.error("connection lost during commit; outcome unknown: %s", exc.orig)
            raise DatabaseUnavailableError("Database temporarily unavailable") from exc
        raise


def reset_pool():
    """Discard every pooled connection; the engine opens fresh ones on demand."""
    engine.dispose()
    logger.warning("database connection pool recreated")


def _sqlstate(exc: DBAPIError):
    orig = getattr(exc, "orig", None)
    return getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)


def is_retryable(exc: BaseException) -> bool:
    """Return True when `exc` signals a lost or refused database connection."""
    if not isinstance(exc, DBAPIError):
        return False
    if exc.connection_invalidated:
        return True
    code = _sqlstate(exc)
    if code:
        return code in RETRYABLE_SQLSTATES
    if isinstance(exc, (OperationalError, InterfaceError)):
        message = str(exc.orig).lower()
        return any(hint in message for hint in _CONNECTION_HINTS)
    return False


def call_with_retry(session: Session, operation, *args, **kwargs):
    """Run `operation(*args, **kwargs)`, retrying on connection failures.

    Up to `DB_MAX_RETRIES` retries are made, sleeping
    `DB_RETRY_BASE_DELAY * 2**attempt` seconds before each one. When the
    retries are exhausted `DatabaseUnavailableError` is raised.

    A call made while another retried call is running on the same session
    runs once; the outermost call owns the retry.
    """
    if session.info.get(_RETRY_SCOPE):
        return operation(*args, **kwargs)
    retries = settings.DB_MAX_RETRIES
    attempt = 0
    session.info[_RETRY_SCOPE] = True
    try:
        while True:
            try:
                return operation(*args, **kwargs)
            except DBAPIError as exc:
                if not is_retryable(exc):
                    raise
                session.rollback()
                if attempt >= retries:
                    logger.error("database unavailable after %d retries: %s", retries, exc.orig)
                    raise DatabaseUnavailableError("Database temporarily unavailable") from exc
                delay = settings.DB_RETRY_BASE_DELAY * (2 ** attempt)
                attempt += 1
                logger.warning(
                    "database connection failed (%s); retry %d/%d in %.2fs",
                    exc.orig, attempt, retries, delay,
                )
                reset_pool()
                _sleep(delay)
    finally:
        session.info.pop(_RETRY_SCOPE, None)


def run_in_transaction(session: Session, work, *args, **kwargs):
    """Run `work(*args, **kwargs)` and commit it, retrying on connection failures.

    `work` does the reads and writes of one unit of work and returns what
    the caller needs afterwards. Each attempt starts from a rolled back
    session, so `work` must create its rows itself rather than reuse
    objects built before the call. Nothing after the commit is retried.
    """
    def attempt():
        with transaction(session):
            return work(*args, **kwargs)
    return call_with_retry(session, attempt)


def retry_on_disconnect(method):
    """Decorate a read-only service method so connection failures are retried.

    The decorated object must expose the `Session` it works with as
    `self.session`. Methods that commit use `run_in_transaction` instead.
    """
    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        return call_with_retry(self.session, method, self, *args, **kwargs)
    return wrapper


def check_health(session: Session) -> dict:
    """Run a trivial query and report database reachability."""
    try:
        session.exec(text("SELECT 1"))
        return {"status": "healthy"}
    except SQLAlchemyError as exc:
        logger.warning("database health check failed: %s", exc)
        return {"status": "unhealthy", "error": str(exc.__class__.__name__)}
