"""
Shared request dependencies and error mapping for the API routers.

Everything a route needs lives on ``app.state`` (set up in the lifespan):
the store, the source clients, the job registry and the overhead policy.
"""
from __future__ import annotations

from fastapi import Request
from fastapi.responses import JSONResponse

from scripts.lib.errors import (
    ConfigError,
    JobNotFoundError,
    JobStateError,
    MarginDeskError,
    NotFoundError,
    ValidationError,
)


def get_store(request: Request):
    return request.app.state.store


def get_clients(request: Request):
    return request.app.state.clients


def get_jobs(request: Request):
    return request.app.state.jobs


def get_overhead_policy(request: Request):
    return request.app.state.overhead_policy


def get_actor_id(request: Request):
    """Caller identity for audit rows, forwarded by the auth proxy."""
    return request.headers.get("x-actor-id")


def http_status(exc: Exception) -> int:
    if isinstance(exc, (JobNotFoundError, NotFoundError)):
        return 404
    if isinstance(exc, (ValidationError, JobStateError)):
        return 400
    return 500


def error_response(exc: Exception, error: str) -> JSONResponse:
    """``{"error", "details"}`` body with the status mapped from the exception type."""
    status = http_status(exc)
    if status != 500 or isinstance(exc, ConfigError):
        message = exc.message if isinstance(exc, MarginDeskError) else str(exc)
    else:
        message = error
    details = exc.message if isinstance(exc, MarginDeskError) else str(exc)
    return JSONResponse(status_code=status, content={"error": message, "details": details})
