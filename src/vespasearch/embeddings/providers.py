"""
Embedding providers.

The default provider calls a Hugging Face ``feature-extraction`` pipeline.
Responses come back either as one sentence vector or as one vector per token
(which we mean-pool); everything else is rejected. Results are cached on disk
keyed by the sha256 of the embedded content.
"""
from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass
from numbers import Real
from pathlib import Path
from typing import Any, List, Optional, Protocol, Union

import httpx

from ..errors import ConfigError, EmbeddingParseError
from ..http import RetryPolicy, Sleeper, bearer_headers, request_with_retry
from ..logger import get_logger
from ..settings import AppSettings, settings
from ..storage.artifacts import sha256_hex

log = get_logger(__name__)


# ----------------------------------------------------------------------
# Response shapes
# ----------------------------------------------------------------------
@dataclass(frozen=True)
class FlatVector:
    """A single pooled vector."""

    values: List[float]

    def pooled(self) -> List[float]:
        return list(self.values)


@dataclass(frozen=True)
class TokenMatrix:
    """Token-level vectors, one row per token."""

    rows: List[List[float]]

    def pooled(self) -> List[float]:
        width = len(self.rows[0])
        totals = [0.0] * width
        for row in self.rows:
            for index, value in enumerate(row):
                totals[index] += value
        return [total / len(self.rows) for total in totals]


ParsedEmbedding = Union[FlatVector, TokenMatrix]


def _is_number(value: Any) -> bool:
    return isinstance(value, Real) and not isinstance(value, bool)


def parse_embedding_response(payload: Any) -> ParsedEmbedding:
    """Classify a feature-extraction response; anything unexpected is fatal."""
    if isinstance(payload, dict):
        if "error" in payload:
            raise EmbeddingParseError(str(payload["error"]))
        raise EmbeddingParseError(f"object with keys {sorted(payload)}")
    if not isinstance(payload, list) or not payload:
        raise EmbeddingParseError(f"expected a non-empty list, got {type(payload).__name__}")

    if all(_is_number(value) for value in payload):
        return FlatVector([float(value) for value in payload])

    if all(isinstance(row, list) and row and all(_is_number(v) for v in row) for row in payload):
        width = len(payload[0])
        if any(len(row) != width for row in payload):
            raise EmbeddingParseError("token vectors have inconsistent lengths")
        return TokenMatrix([[float(v) for v in row] for row in payload])

    raise EmbeddingParseError("list is neither a vector nor a list of vectors")


def normalize_dimension(values: List[float], dimension: int) -> List[float]:
    """Truncate or zero-pad ``values`` to exactly ``dimension`` entries."""
    if len(values) == dimension:
        return values
    log.warning("embedding_dimension_mismatch", expected=dimension, received=len(values))
    if len(values) > dimension:
        return values[:dimension]
    return values + [0.0] * (dimension - len(values))


# ----------------------------------------------------------------------
# Cache
# ----------------------------------------------------------------------
class EmbeddingCache:
    """Content-addressed vectors stored as ``<root>/<sha256>.json``."""

    def __init__(self, root: Path) -> None:
        self.root = root

    def _path(self, content_sha: str) -> Path:
        return self.root / f"{content_sha}.json"

    def get(self, content_sha: str) -> Optional[List[float]]:
        path = self._path(content_sha)
        if not path.exists():
            return None
        try:
            values = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            log.warning("embedding_cache_read_failed", path=str(path), error=str(exc))
            return None
        if not isinstance(values, list):
            return None
        return [float(value) for value in values]

    def put(self, content_sha: str, values: List[float]) -> None:
        """Best effort; failures are logged and swallowed."""
        path = self._path(content_sha)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(json.dumps(values), encoding="utf-8")
        except OSError as exc:
            log.warning("embedding_cache_write_failed", path=str(path), error=str(exc))


# ----------------------------------------------------------------------
# Providers
# ----------------------------------------------------------------------
class EmbeddingAdapter(Protocol):
    """Protocol representing a pluggable embeddings client."""

    dimension: int

    async def embed(self, text: str, cache: Optional[EmbeddingCache] = None) -> List[float]:
        ...

    async def aclose(self) -> None:
        ...


class _CachedEmbedder:
    dimension: int

    async def embed(self, text: str, cache: Optional[EmbeddingCache] = None) -> List[float]:
        """Return a ``dimension``-length vector for ``text``, consulting ``cache`` first."""
        content_sha = sha256_hex(text.encode("utf-8"))
        if cache is not None:
            cached = cache.get(content_sha)
            if cached is not None:
                return normalize_dimension(cached, self.dimension)

        vector = await self._compute(text)
        if cache is not None:
            cache.put(content_sha, vector)
        return vector

    async def _compute(self, text: str) -> List[float]:
        raise NotImplementedError

    async def aclose(self) -> None:
        return None


class HuggingFaceEmbeddings(_CachedEmbedder):
    """Remote ``feature-extraction`` pipeline client."""

    service = "embedding"

    def __init__(
        self,
        api_base: str,
        model: str,
        api_key: Optional[str] = None,
        dimension: int = 768,
        max_chars: int = 8000,
        timeout: float = 60.0,
        policy: Optional[RetryPolicy] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        sleep: Sleeper = asyncio.sleep,
    ) -> None:
        self.url = f"{api_base.rstrip('/')}/{model}/pipeline/feature-extraction"
        self.api_key = api_key
        self.dimension = dimension
        self.max_chars = max_chars
        self.policy = policy or RetryPolicy.from_settings()
        self._client = http_client or httpx.AsyncClient(timeout=timeout)
        self._sleep = sleep

    async def _compute(self, text: str) -> List[float]:
        payload = {
            "inputs": text[: self.max_chars],
            "options": {"wait_for_model": True},
        }
        response = await request_with_retry(
            self._client,
            "POST",
            self.url,
            service=self.service,
            policy=self.policy,
            sleep=self._sleep,
            json=payload,
            headers=bearer_headers(self.api_key),
        )
        try:
            body = response.json()
        except ValueError as exc:
            raise EmbeddingParseError(f"invalid JSON: {exc}") from exc
        parsed = parse_embedding_response(body)
        return normalize_dimension(parsed.pooled(), self.dimension)

    async def aclose(self) -> None:
        await self._client.aclose()


class ZeroEmbeddings(_CachedEmbedder):
    """Placeholder provider used when no inference endpoint is configured."""

    def __init__(self, dimension: int = 768) -> None:
        self.dimension = dimension

    async def _compute(self, text: str) -> List[float]:
        return [0.0] * self.dimension


class EmbeddingProviderFactory:
    """Factory that returns embedding clients based on configuration."""

    @staticmethod
    def create(
        provider: str | None = None, cfg: Optional[AppSettings] = None
    ) -> EmbeddingAdapter:
        cfg = cfg or settings
        provider_name = (provider or cfg.embedding_provider).lower()

        if provider_name in {"huggingface", "hf"}:
            log.info(
                "initializing_huggingface_embeddings",
                model=cfg.embedding_model,
                dimension=cfg.embedding_dimension,
            )
            return HuggingFaceEmbeddings(
                api_base=cfg.embedding_api_base,
                model=cfg.embedding_model,
                api_key=cfg.embedding_api_key,
                dimension=cfg.embedding_dimension,
                max_chars=cfg.embedding_max_chars,
                timeout=cfg.embedding_timeout,
                policy=RetryPolicy.from_settings(cfg),
            )

        if provider_name in {"none", "zero"}:
            log.warning("embedding_provider_disabled", dimension=cfg.embedding_dimension)
            return ZeroEmbeddings(dimension=cfg.embedding_dimension)

        raise ConfigError(f"embedding provider not supported: {provider_name}")
