"""
Repository summaries via a remote summarisation pipeline.

The model sees a digest of the repository (header, language histogram, file
tree excerpt, README excerpt). If the service rejects the digest as too
large, one more attempt is made with a much smaller excerpt. Each success is
appended to the repository's versioned summary history.
"""
from __future__ import annotations

import asyncio
from collections import Counter
from pathlib import Path
from typing import List, Optional, Sequence

import httpx

from ..errors import AppError, SummarizationError
from ..http import RetryPolicy, Sleeper, bearer_headers, request_with_retry
from ..ingestion.classifier import guess_language
from ..logger import get_logger
from ..settings import AppSettings, settings
from ..storage.artifacts import RepoPaths, SummaryEntry, SummaryStore
from ..storage.registry import RepoRecord

log = get_logger(__name__)

README_CANDIDATES: Sequence[str] = (
    "README.md",
    "README.rst",
    "README.txt",
    "README",
    "readme.md",
    "Readme.md",
)
MAX_TREE_ENTRIES = 120
TOP_LANGUAGES = 8

# Substrings seen in inference errors for oversized or unparseable inputs.
_LENGTH_FAILURE_MARKERS = (
    "too long",
    "too large",
    "maximum sequence length",
    "sequence length",
    "index out of range",
    "exceeds",
    "input is too long",
    "malformed",
)


def is_length_failure(message: str) -> bool:
    lowered = message.lower()
    return any(marker in lowered for marker in _LENGTH_FAILURE_MARKERS)


def _read_readme(checkout: Path) -> Optional[str]:
    for candidate in README_CANDIDATES:
        path = checkout / candidate
        if path.is_file():
            return path.read_text(encoding="utf-8", errors="replace")
    return None


def build_summary_input(
    record: RepoRecord, checkout: Path, files: Sequence[str], max_chars: int
) -> str:
    """Assemble the repository digest sent to the summariser."""
    sections: List[str] = [f"Repository: {record.owner}/{record.name}"]

    histogram = Counter(guess_language(path) for path in files)
    if histogram:
        languages = ", ".join(
            f"{language} ({count})" for language, count in histogram.most_common(TOP_LANGUAGES)
        )
        sections.append(f"Languages: {languages}")

    if files:
        tree = "\n".join(sorted(files)[:MAX_TREE_ENTRIES])
        sections.append(f"Files:\n{tree}")

    readme = _read_readme(checkout)
    if readme:
        sections.append(f"README:\n{readme[: max_chars // 2]}")

    return "\n\n".join(sections)[:max_chars]


class SummarizationClient:
    """Remote ``summarization`` pipeline client with a length fallback."""

    service = "summarization"

    def __init__(
        self,
        api_base: str,
        model: str,
        api_key: Optional[str] = None,
        fallback_chars: int = 2000,
        max_length: int = 400,
        min_length: int = 120,
        timeout: float = 120.0,
        policy: Optional[RetryPolicy] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        sleep: Sleeper = asyncio.sleep,
    ) -> None:
        self.url = f"{api_base.rstrip('/')}/{model}/pipeline/summarization"
        self.api_key = api_key
        self.fallback_chars = fallback_chars
        self.max_length = max_length
        self.min_length = min_length
        self.policy = policy or RetryPolicy.from_settings()
        self._client = http_client or httpx.AsyncClient(timeout=timeout)
        self._sleep = sleep

    @classmethod
    def from_settings(cls, cfg: Optional[AppSettings] = None) -> "SummarizationClient":
        cfg = cfg or settings
        return cls(
            api_base=cfg.summary_base,
            model=cfg.summary_model,
            api_key=cfg.summary_api_key or cfg.embedding_api_key,
            fallback_chars=cfg.summary_fallback_chars,
            max_length=cfg.summary_max_length,
            min_length=cfg.summary_min_length,
            timeout=cfg.summary_timeout,
            policy=RetryPolicy.from_settings(cfg),
        )

    async def summarize(self, text: str) -> str:
        try:
            return await self._request(text)
        except AppError as exc:
            if isinstance(exc, SummarizationError) and not is_length_failure(str(exc)):
                raise
            if not is_length_failure(str(exc)):
                raise SummarizationError(str(exc), exc) from exc
            log.warning(
                "summary_input_rejected",
                error=str(exc),
                retry_chars=self.fallback_chars,
            )

        try:
            return await self._request(text[: self.fallback_chars])
        except AppError as exc:
            raise SummarizationError(f"truncated retry failed: {exc}", exc) from exc

    async def _request(self, text: str) -> str:
        payload = {
            "inputs": text,
            "parameters": {
                "max_length": self.max_length,
                "min_length": self.min_length,
                "do_sample": False,
                "truncation": True,
            },
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
            raise SummarizationError(f"invalid JSON: {exc}") from exc
        return self._extract(body)

    @staticmethod
    def _extract(body: object) -> str:
        if isinstance(body, dict):
            if "error" in body:
                raise SummarizationError(str(body["error"]))
            body = [body]
        if isinstance(body, list) and body and isinstance(body[0], dict):
            text = body[0].get("summary_text")
            if isinstance(text, str) and text.strip():
                return text.strip()
        raise SummarizationError("response did not contain summary_text")

    async def aclose(self) -> None:
        await self._client.aclose()


class RepositorySummarizer:
    """Builds the digest, calls the client and records the result."""

    def __init__(
        self,
        client: Optional[SummarizationClient] = None,
        max_chars: Optional[int] = None,
    ) -> None:
        self.client = client or SummarizationClient.from_settings()
        self.max_chars = max_chars or settings.summary_max_chars

    async def generate(
        self, record: RepoRecord, paths: RepoPaths, files: Sequence[str]
    ) -> SummaryEntry:
        digest = build_summary_input(record, paths.checkout, files, self.max_chars)
        log.info("summarizing_repository", repo_id=record.id, digest_chars=len(digest))
        summary = await self.client.summarize(digest)

        store = SummaryStore(paths.summaries_file)
        entry = store.append(summary)
        paths.wiki_dir.mkdir(parents=True, exist_ok=True)
        paths.wiki_file.write_text(
            f"# CodeWiki for {record.owner}/{record.name}\n\n{summary}\n",
            encoding="utf-8",
        )
        log.info("summary_recorded", repo_id=record.id, version=entry.version)
        return entry
