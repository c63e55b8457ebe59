"""
Mirroring of ingested repositories into a source-hosting organisation.

The organisation repository is created through the hosting API (an existing
repository is fine), then the local checkout is pushed with ``--mirror``.
"""
from __future__ import annotations

import asyncio
import base64
from pathlib import Path
from typing import Optional

import httpx

from ..errors import ConfigError, IngestionError, RemoteRejected
from ..http import RetryPolicy, Sleeper, bearer_headers, request_with_retry
from ..logger import get_logger
from ..settings import AppSettings, settings
from ..storage.registry import RepoRecord
from . import git

log = get_logger(__name__)


class SourceMirror:
    """Creates ``<org>/<owner>-<name>`` and mirror-pushes the checkout into it."""

    service = "mirror"

    def __init__(
        self,
        org: str,
        token: str,
        host: str = "github.com",
        policy: Optional[RetryPolicy] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        sleep: Sleeper = asyncio.sleep,
    ) -> None:
        self.org = org
        self.token = token
        self.host = host
        self.policy = policy or RetryPolicy.from_settings()
        self._client = http_client or httpx.AsyncClient(timeout=30.0)
        self._sleep = sleep

    @classmethod
    def from_settings(cls, cfg: Optional[AppSettings] = None) -> Optional["SourceMirror"]:
        """Return a mirror when an org is configured, ``None`` otherwise."""
        cfg = cfg or settings
        if not cfg.mirror_enabled:
            return None
        if not cfg.mirror_token:
            raise ConfigError("mirror org is set but VESPASEARCH_MIRROR_TOKEN is missing")
        return cls(
            org=cfg.mirror_org or "",
            token=cfg.mirror_token,
            host=cfg.mirror_host,
            policy=RetryPolicy.from_settings(cfg),
        )

    @staticmethod
    def mirror_name(record: RepoRecord) -> str:
        return f"{record.owner}-{record.name}"

    def remote_url(self, name: str) -> str:
        return f"https://{self.host}/{self.org}/{name}.git"

    def auth_header(self) -> str:
        credentials = base64.b64encode(f"x-access-token:{self.token}".encode("utf-8"))
        return f"Authorization: Basic {credentials.decode('ascii')}"

    async def ensure_repository(self, name: str) -> None:
        url = f"https://api.{self.host}/orgs/{self.org}/repos"
        headers = {"Accept": "application/vnd.github+json", **bearer_headers(self.token)}
        try:
            await request_with_retry(
                self._client,
                "POST",
                url,
                service=self.service,
                policy=self.policy,
                sleep=self._sleep,
                json={"name": name, "private": True},
                headers=headers,
            )
        except RemoteRejected as exc:
            if exc.status == 422 and "already exists" in exc.body:
                log.info("mirror_repository_exists", org=self.org, name=name)
                return
            raise
        log.info("mirror_repository_created", org=self.org, name=name)

    async def mirror(self, record: RepoRecord, checkout: Path) -> None:
        name = self.mirror_name(record)
        await self.ensure_repository(name)
        try:
            await git.push_mirror(checkout, self.remote_url(name), self.auth_header())
        except IngestionError as exc:
            raise IngestionError(str(exc).replace(self.token, "***")) from None
        log.info("mirror_pushed", repo_id=record.id, target=f"{self.org}/{name}")

    async def aclose(self) -> None:
        await self._client.aclose()
