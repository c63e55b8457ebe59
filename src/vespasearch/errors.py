"""
Error taxonomy shared by the ingestion pipeline, the clients and the API.

Every error carries the HTTP status the API layer reports it with, so request
handlers can let them propagate and a single exception handler renders them.
"""

from __future__ import annotations

from typing import Optional


class AppError(Exception):
    """Base class for all errors surfaced by vespasearch."""

    status_code: int = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message


class InvalidRepoUrl(AppError):
    status_code = 400

    def __init__(self, repo_url: str) -> None:
        super().__init__(f"invalid repo url: {repo_url}")
        self.repo_url = repo_url


class RepoNotFound(AppError):
    status_code = 404

    def __init__(self, repo_id: str) -> None:
        super().__init__(f"repo not found: {repo_id}")
        self.repo_id = repo_id


class ConfigError(AppError):
    def __init__(self, detail: str) -> None:
        super().__init__(f"config error: {detail}")


class IngestionError(AppError):
    """Local failure while preparing or walking a checkout (I/O, git)."""


class SerializationError(AppError):
    def __init__(self, detail: str) -> None:
        super().__init__(f"serialization error: {detail}")


class RemoteRejected(AppError):
    """A remote service answered with a non-success status."""

    status_code = 502

    def __init__(self, service: str, status: int, body: str = "") -> None:
        preview = body[:1024]
        super().__init__(f"{service} rejected request (status {status}): {preview}")
        self.service = service
        self.status = status
        self.body = body


class RemoteTransportError(AppError):
    """Connection failures and timeouts talking to a remote service."""

    status_code = 502

    def __init__(self, service: str, detail: str) -> None:
        super().__init__(f"{service} request failed: {detail}")
        self.service = service


class EmbeddingParseError(AppError):
    status_code = 502

    def __init__(self, detail: str) -> None:
        super().__init__(f"unexpected embedding response: {detail}")


class SummarizationError(AppError):
    status_code = 502

    def __init__(self, detail: str, cause: Optional[Exception] = None) -> None:
        super().__init__(f"summarization failed: {detail}")
        self.cause = cause
