"""
Search over the indexed repositories.

Queries are compiled to YQL in one of three modes: lexical (``bm25``),
nearest-neighbour over the file embeddings (``semantic``) or both joined by
``or`` (``hybrid``). Vector modes embed the query text and send it as the
``query_embedding`` ranking input.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from ..embeddings import EmbeddingAdapter
from ..logger import get_logger
from ..settings import AppSettings, settings
from ..storage.vespa import VespaClient

log = get_logger(__name__)

SELECT_FIELDS = "repo_id, file_path, line_start, line_end, content"
SNIPPET_MAX_CHARS = 400


class SearchMode(str, Enum):
    BM25 = "bm25"
    SEMANTIC = "semantic"
    HYBRID = "hybrid"

    @property
    def lexical(self) -> bool:
        return self in (SearchMode.BM25, SearchMode.HYBRID)

    @property
    def vector(self) -> bool:
        return self in (SearchMode.SEMANTIC, SearchMode.HYBRID)


def escape_yql_string(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"')


def _clean_filter(repo_filter: Optional[str]) -> Optional[str]:
    if repo_filter is None:
        return None
    trimmed = repo_filter.strip()
    return trimmed or None


def compile_query(
    query: str,
    repo_filter: Optional[str],
    mode: SearchMode,
    embedding: Optional[Sequence[float]] = None,
    cfg: Optional[AppSettings] = None,
) -> Dict[str, Any]:
    """Render the Vespa query body; vector modes need ``embedding``."""
    cfg = cfg or settings
    clauses: List[str] = []
    if mode.lexical:
        clauses.append("userQuery()")
    if mode.vector:
        if embedding is None:
            raise ValueError(f"{mode.value} search requires a query embedding")
        clauses.append(
            f"({{targetHits:{cfg.vespa_target_hits}}}nearestNeighbor(embedding, query_embedding))"
        )

    where = " or ".join(clauses)
    repo_id = _clean_filter(repo_filter)
    if repo_id:
        where = f'({where}) and repo_id contains "{escape_yql_string(repo_id)}"'

    body: Dict[str, Any] = {
        "yql": f"select {SELECT_FIELDS} from sources * where {where};",
        "hits": cfg.vespa_hits,
    }
    if mode.lexical:
        body["query"] = query
    if repo_id:
        body["repo_id"] = repo_id
    if mode.vector:
        body["ranking.profile"] = (
            cfg.vespa_semantic_profile if mode is SearchMode.SEMANTIC else cfg.vespa_hybrid_profile
        )
        body["input.query(query_embedding)"] = list(embedding or [])
    return body


class SearchQueryBuilder:
    """Compiles user queries, embedding the text for vector modes."""

    def __init__(self, embedder: EmbeddingAdapter, cfg: Optional[AppSettings] = None) -> None:
        self.embedder = embedder
        self.cfg = cfg or settings

    async def build(
        self, query: str, repo_filter: Optional[str], mode: SearchMode
    ) -> Dict[str, Any]:
        embedding = await self.embedder.embed(query) if mode.vector else None
        return compile_query(query, repo_filter, mode, embedding, self.cfg)


@dataclass
class SearchResult:
    repo_id: str
    file_path: str
    line_start: int
    line_end: int
    snippet: str
    score: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def build_snippet(content: str) -> str:
    trimmed = content.strip()
    if len(trimmed) <= SNIPPET_MAX_CHARS:
        return trimmed
    return trimmed[:SNIPPET_MAX_CHARS] + "..."


def _as_int(value: Any, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def parse_hits(body: Dict[str, Any]) -> List[SearchResult]:
    children = (body.get("root") or {}).get("children") or []
    results: List[SearchResult] = []
    for child in children:
        fields = child.get("fields")
        if not isinstance(fields, dict):
            continue
        line_start = max(1, _as_int(fields.get("line_start"), 1))
        line_end = max(1, _as_int(fields.get("line_end"), line_start))
        relevance = child.get("relevance")
        results.append(
            SearchResult(
                repo_id=str(fields.get("repo_id") or ""),
                file_path=str(fields.get("file_path") or ""),
                line_start=line_start,
                line_end=line_end,
                snippet=build_snippet(str(fields.get("content") or "")),
                score=float(relevance) if isinstance(relevance, (int, float)) else None,
            )
        )
    return results


class SearchService:
    """Read path: compile, query Vespa, flatten hits."""

    def __init__(self, builder: SearchQueryBuilder, vespa: VespaClient) -> None:
        self.builder = builder
        self.vespa = vespa

    async def search(
        self,
        query: str,
        repo_filter: Optional[str] = None,
        mode: SearchMode = SearchMode.HYBRID,
    ) -> List[SearchResult]:
        query = query.strip()
        if not query:
            return []
        body = await self.builder.build(query, repo_filter, mode)
        log.info("search_query", mode=mode.value, repo_filter=repo_filter)
        response = await self.vespa.search(body)
        results = parse_hits(response)
        log.debug("search_completed", mode=mode.value, hits=len(results))
        return results
