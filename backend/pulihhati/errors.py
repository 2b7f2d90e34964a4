"""Domain exceptions and their HTTP mappings.

Services raise these small exception types instead of `HTTPException`
so they stay usable outside a request (scripts, tests). `register`
installs one handler per type on the FastAPI app.
"""

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .config import settings

logger = logging.getLogger("pulihhati.errors")


class DomainError(Exception):
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(DomainError):
    status_code = 400


class ConflictError(DomainError):
    status_code = 400


class PermissionDeniedError(DomainError):
    status_code = 403


class NotFoundError(DomainError):
    status_code = 404


class UpstreamServiceError(DomainError):
    """A third-party collaborator (chatbot, image CDN) failed."""
    status_code = 502


class ServiceNotConfiguredError(DomainError):
    status_code = 503


class DatabaseUnavailableError(DomainError):
    """Raised once connection retries against the database are exhausted."""
    status_code = 503


def _domain_error_handler(request: Request, exc: DomainError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


def _unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    detail = "Internal server error" if settings.is_production else f"Internal server error: {exc}"
    return JSONResponse(status_code=500, content={"detail": detail})


def register(app: FastAPI) -> None:
    """Install the exception handlers on `app`."""
    app.add_exception_handler(DomainError, _domain_error_handler)
    app.add_exception_handler(Exception, _unhandled_error_handler)
