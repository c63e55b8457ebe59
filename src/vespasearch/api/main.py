"""
FastAPI entrypoint for repository ingestion, wiki summaries and search.
"""

from __future__ import annotations

import json
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, List, Optional

import uvicorn
from fastapi import APIRouter, Depends, FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel

from ..errors import AppError
from ..logger import configure_logging, get_logger
from ..rag import SearchMode
from ..services import AppServices, build_services
from ..settings import settings
from ..storage import RepoRecord, SummaryEntry, SummaryStore
from ..storage.artifacts import NO_WIKI_CONTENT
from ..version import __version__
from .dependencies import get_jobs, get_services, require_api_key
from .jobs import JobManager

log = get_logger(__name__)


class RepoRequest(BaseModel):
    repo_url: str


class RepoResponse(BaseModel):
    id: str
    repo_url: str
    owner: str
    name: str
    path: str


class IndexResponse(BaseModel):
    status: str
    message: str


class StatusResponse(BaseModel):
    status: str
    message: Optional[str] = None


class SummaryResponse(BaseModel):
    version: int
    created_at: str
    summary: str


class WikiResponse(BaseModel):
    content: str
    summary: Optional[SummaryResponse] = None
    history: List[SummaryResponse]


class SearchRequest(BaseModel):
    query: str
    repo_filter: Optional[str] = None
    search_mode: SearchMode = SearchMode.HYBRID


class SearchHit(BaseModel):
    repo_id: str
    file_path: str
    line_start: int
    line_end: int
    snippet: str
    score: Optional[float] = None


class SearchResponse(BaseModel):
    results: List[SearchHit]


router = APIRouter()
protected = [Depends(require_api_key)]


@router.get("/healthz")
def health() -> Dict[str, str]:
    return {"status": "ok", "version": __version__}


@router.post(
    "/repos",
    response_model=RepoResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=protected,
)
async def register_repository(
    request: RepoRequest, services: AppServices = Depends(get_services)
) -> RepoResponse:
    record = await services.registry.register(request.repo_url)
    return _repo_to_response(services, record)


@router.get("/repos", response_model=List[RepoResponse], dependencies=protected)
async def list_repositories(
    services: AppServices = Depends(get_services),
) -> List[RepoResponse]:
    return [_repo_to_response(services, record) for record in await services.registry.list()]


@router.post(
    "/repos/{repo_id}/index",
    response_model=IndexResponse,
    status_code=status.HTTP_202_ACCEPTED,
    dependencies=protected,
)
async def index_repository(
    repo_id: str,
    services: AppServices = Depends(get_services),
    jobs: JobManager = Depends(get_jobs),
) -> IndexResponse:
    record = await services.registry.get(repo_id)
    await jobs.start(record)
    return IndexResponse(status="queued", message="Ingestion queued")


@router.get(
    "/repos/{repo_id}/status", response_model=StatusResponse, dependencies=protected
)
async def repository_status(
    repo_id: str, services: AppServices = Depends(get_services)
) -> StatusResponse:
    snapshot = await services.bus.read(repo_id)
    return StatusResponse(**snapshot.to_dict())


@router.get("/repos/{repo_id}/events", dependencies=protected)
async def repository_events(
    repo_id: str, request: Request, services: AppServices = Depends(get_services)
) -> StreamingResponse:
    await services.registry.get(repo_id)
    subscription = services.bus.subscribe(repo_id)
    keepalive = settings.events_keepalive_seconds

    async def stream() -> AsyncIterator[str]:
        try:
            while not await request.is_disconnected():
                event = await subscription.get(timeout=keepalive)
                if event is None:
                    yield ": keep-alive\n\n"
                    continue
                yield f"event: status\ndata: {json.dumps(event.to_dict())}\n\n"
                if event.stage.terminal:
                    break
        finally:
            subscription.close()
            if subscription.dropped:
                log.info(
                    "status_stream_closed", repo_id=repo_id, dropped=subscription.dropped
                )

    return StreamingResponse(
        stream(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


@router.get("/repos/{repo_id}/wiki", response_model=WikiResponse, dependencies=protected)
async def repository_wiki(
    repo_id: str, services: AppServices = Depends(get_services)
) -> WikiResponse:
    record = await services.registry.get(repo_id)
    return _wiki_response(services, record)


@router.post(
    "/repos/{repo_id}/wiki/summary",
    response_model=WikiResponse,
    dependencies=protected,
)
async def regenerate_summary(
    repo_id: str, services: AppServices = Depends(get_services)
) -> WikiResponse:
    record = await services.registry.get(repo_id)
    entry = await services.orchestrator.resummarize(record)
    log.info("summary_regenerated", repo_id=repo_id, version=entry.version)
    return _wiki_response(services, record)


@router.post("/search", response_model=SearchResponse, dependencies=protected)
async def search(
    request: SearchRequest, services: AppServices = Depends(get_services)
) -> SearchResponse:
    results = await services.search.search(
        request.query, repo_filter=request.repo_filter, mode=request.search_mode
    )
    return SearchResponse(results=[SearchHit(**result.to_dict()) for result in results])


def _repo_to_response(services: AppServices, record: RepoRecord) -> RepoResponse:
    return RepoResponse(
        id=record.id,
        repo_url=record.repo_url,
        owner=record.owner,
        name=record.name,
        path=str(services.manager.paths_for(record).checkout),
    )


def _summary_to_response(entry: SummaryEntry) -> SummaryResponse:
    return SummaryResponse(
        version=entry.version, created_at=entry.created_at, summary=entry.summary
    )


def _wiki_response(services: AppServices, record: RepoRecord) -> WikiResponse:
    paths = services.manager.paths_for(record)
    content = NO_WIKI_CONTENT
    if paths.wiki_file.exists():
        content = paths.wiki_file.read_text(encoding="utf-8")
    store = SummaryStore(paths.summaries_file)
    latest = store.latest()
    return WikiResponse(
        content=content,
        summary=_summary_to_response(latest) if latest else None,
        history=[_summary_to_response(entry) for entry in store.history()],
    )


async def _app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    if exc.status_code >= 500:
        log.error("request_failed", path=request.url.path, error=exc.message)
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


def create_app(
    services: Optional[AppServices] = None,
    jobs: Optional[JobManager] = None,
) -> FastAPI:
    """Build the application; tests inject pre-wired services."""

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        owned = services is None
        app.state.services = services or build_services()
        app.state.jobs = jobs or JobManager(app.state.services.orchestrator)
        log.info("api_started", version=__version__)
        try:
            yield
        finally:
            await app.state.jobs.shutdown()
            if owned:
                await app.state.services.aclose()

    app = FastAPI(title="Vespa Repository Search", version=__version__, lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(AppError, _app_error_handler)
    app.include_router(router)
    return app


app = create_app()


def run() -> None:
    """CLI entrypoint to run the FastAPI server."""
    configure_logging(json_output=settings.log_json)
    uvicorn.run(
        "vespasearch.api.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=False,
    )
