"""FastAPI application entrypoint.

This module builds the PulihHati API: middleware (request ids and
logging, gzip, CORS), exception handlers, the static mount, service
endpoints, and the per-area routers from `pulihhati.routers`.

Run locally with:

    uvicorn pulihhati.main:app --reload --app-dir backend
"""

import json
import logging
import time
import uuid
from datetime import datetime, timezone
from pathlib import Path

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import Response
from fastapi.staticfiles import StaticFiles
from sqlmodel import Session

from . import __version__, errors
from .config import settings
from .database import check_health, create_db_and_tables, get_session
from .routers import ALL_ROUTERS

app = FastAPI(title="PulihHati API", version=__version__)
logger = logging.getLogger("pulihhati.api")
if not logging.getLogger().handlers:
    logging.basicConfig(level=settings.LOG_LEVEL)

_started_at = time.monotonic()

app.add_middleware(GZipMiddleware, minimum_size=1000)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_origin_regex=settings.CORS_ORIGIN_REGEX or None,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "X-Requested-With", "X-Request-ID"],
)

# Public assets served next to the API (favicons, placeholder avatars).
static_dir = Path(__file__).resolve().parent.parent / "public"
if static_dir.exists():
    app.mount("/static", StaticFiles(directory=static_dir), name="static")

errors.register(app)
create_db_and_tables()

for _router in ALL_ROUTERS:
    app.include_router(_router)


def _request_log(request: Request, req_id: str, started: float, status_code=None) -> str:
    record = {
        "request_id": req_id,
        "path": request.url.path,
        "method": request.method,
        "duration_ms": round((time.perf_counter() - started) * 1000.0, 2),
        "client": request.client.host if request.client else "unknown",
    }
    if status_code is not None:
        record["status_code"] = status_code
    return json.dumps(record, ensure_ascii=True)


@app.middleware("http")
async def request_context_middleware(request: Request, call_next):
    req_id = request.headers.get("X-Request-ID", uuid.uuid4().hex)
    request.state.request_id = req_id
    started = time.perf_counter()
    response: Response
    try:
        response = await call_next(request)
    except Exception:
        if request.url.path.startswith("/api"):
            logger.exception("request_failed %s", _request_log(request, req_id, started))
        raise
    response.headers["X-Request-ID"] = req_id
    if request.url.path.startswith("/api"):
        logger.info("request_done %s", _request_log(request, req_id, started, response.status_code))
    return response


def _health(db: Session) -> dict:
    database = check_health(db)
    return {
        "status": "OK" if database["status"] == "healthy" else "DEGRADED",
        "database": database,
        "uptime_seconds": round(time.monotonic() - _started_at, 1),
        "environment": settings.ENV,
        "version": __version__,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@app.get("/health")
def health(db: Session = Depends(get_session)):
    """Liveness/readiness check; reports database reachability."""
    return _health(db)


@app.get("/api/health")
def api_health(db: Session = Depends(get_session)):
    return _health(db)


@app.get("/api")
def api_index():
    """Describe the service and list its endpoint groups."""
    return {
        "message": "PulihHati API",
        "version": __version__,
        "environment": settings.ENV,
        "endpoints": {
            "auth": "/api/auth",
            "users": "/api/users",
            "safespace": "/api/safespace",
            "notifications": "/api/notifications",
            "mood": "/api/mood",
            "upload": "/api/upload",
            "chatbot": "/api/chatbot",
            "health": "/api/health",
        },
    }
