"""
Shared FastAPI dependencies (authentication, service lookup).
"""

from __future__ import annotations

from fastapi import HTTPException, Request, Security, status
from fastapi.security import APIKeyHeader

from ..services import AppServices
from ..settings import settings
from .jobs import JobManager

_api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)


def require_api_key(api_key: str = Security(_api_key_header)) -> str | None:
    """
    Enforce optional API-key authentication.

    If ``VESPASEARCH_API_KEY`` is configured the incoming request must provide
    the matching value in the ``X-API-Key`` header; otherwise the dependency
    is a no-op.
    """
    expected = settings.api_key
    if not expected:
        return None
    if api_key != expected:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid API key.",
        )
    return api_key


def get_services(request: Request) -> AppServices:
    return request.app.state.services


def get_jobs(request: Request) -> JobManager:
    return request.app.state.jobs
