"""
Vespa document and query API integration.

Only two endpoints are used: the document/v1 PUT for feeding and the
``/search/`` POST for queries. Ranking and storage are Vespa's concern.
"""

from __future__ import annotations

import json
from typing import Any, Dict, Optional
from urllib.parse import quote

import httpx

from ..errors import RemoteRejected, RemoteTransportError, SerializationError
from ..http import build_vespa_client
from ..logger import get_logger
from ..settings import AppSettings, settings

log = get_logger(__name__)

_PREVIEW_CHARS = 1024


class VespaClient:
    """Thin wrapper around the Vespa HTTP APIs for our document type."""

    service = "vespa"

    def __init__(
        self,
        http_client: Optional[httpx.AsyncClient] = None,
        cfg: Optional[AppSettings] = None,
    ) -> None:
        self.cfg = cfg or settings
        self._client = http_client

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = build_vespa_client(self.cfg)
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()

    def document_url(self, doc_id: str) -> str:
        return "{}/document/v1/{}/{}/docid/{}".format(
            self.cfg.document_endpoint.rstrip("/"),
            self.cfg.vespa_namespace,
            self.cfg.vespa_document_type,
            quote(doc_id, safe=""),
        )

    def search_url(self) -> str:
        return f"{self.cfg.vespa_endpoint.rstrip('/')}/search/"

    async def put_document(self, doc_id: str, fields: Dict[str, Any]) -> None:
        """PUT a document; any non-success status raises :class:`RemoteRejected`."""
        try:
            body = json.dumps({"fields": fields})
        except (TypeError, ValueError) as exc:
            raise SerializationError(str(exc)) from exc

        try:
            response = await self.client.put(
                self.document_url(doc_id),
                content=body,
                headers={
                    "Content-Type": "application/json",
                    "Accept": "application/json",
                },
            )
        except httpx.TransportError as exc:
            raise RemoteTransportError(self.service, str(exc) or type(exc).__name__) from exc

        if not response.is_success:
            log.error(
                "vespa_feed_rejected",
                status=response.status_code,
                doc_id=doc_id,
                request_preview=body[:_PREVIEW_CHARS],
                response=response.text[:_PREVIEW_CHARS],
            )
            raise RemoteRejected(self.service, response.status_code, response.text)

    async def search(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        try:
            response = await self.client.post(self.search_url(), json=payload)
        except httpx.TransportError as exc:
            raise RemoteTransportError(self.service, str(exc) or type(exc).__name__) from exc
        if not response.is_success:
            raise RemoteRejected(self.service, response.status_code, response.text)
        try:
            return response.json()
        except ValueError as exc:
            raise SerializationError(f"invalid search response: {exc}") from exc
