"""Application package for the PulihHati backend.

This package exposes the service, repository and model modules used by
the FastAPI application. Route modules live in `routers/`; individual
modules contain the concrete implementations and documentation.
"""

__version__ = "1.0.0"
