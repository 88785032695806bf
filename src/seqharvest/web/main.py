"""
FastAPI query front end for SeqHarvest.

Thin request/response glue over the search service and the dedup index.
Query-path failures become error responses; they never affect ingestion.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncGenerator, Dict, List

import structlog
from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import HTMLResponse, JSONResponse, Response
from pydantic import BaseModel, Field

from seqharvest import __version__
from seqharvest.container import DependencyContainer
from seqharvest.dedup.hasher import is_content_hash
from seqharvest.errors import SearchToolFailure, StoreError
from seqharvest.observability import export_prometheus

logger = structlog.get_logger(__name__)

HTML_TEMPLATE_PATH = Path(__file__).parent / "templates" / "index.html"


class SearchRequest(BaseModel):
    sequence: str = Field(..., description="Query sequence, raw or FASTA.")


class SequenceEntry(BaseModel):
    content_hash: str
    identifiers: List[str]


def create_app(container: DependencyContainer, manage_lifecycle: bool = True) -> FastAPI:
    """Build the application around an already-configured container."""

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        if manage_lifecycle:
            await container.initialize()
        logger.info("Query front end started", port=container.config.web.port)
        try:
            yield
        finally:
            if manage_lifecycle:
                await container.shutdown()
            logger.info("Query front end stopped")

    app = FastAPI(title="SeqHarvest", version=__version__, lifespan=lifespan)
    app.state.container = container

    @app.exception_handler(SearchToolFailure)
    async def search_tool_failure_handler(request: Request, exc: SearchToolFailure) -> JSONResponse:
        logger.error("Search failed", error=str(exc), output=exc.output)
        return JSONResponse(status_code=502, content={"error": str(exc), "detail": exc.output})

    @app.exception_handler(StoreError)
    async def store_error_handler(request: Request, exc: StoreError) -> JSONResponse:
        logger.error("Store unavailable", error=str(exc), path=request.url.path)
        return JSONResponse(status_code=503, content={"error": str(exc)})

    @app.get("/", response_class=HTMLResponse)
    async def index() -> str:
        """Serves the search form."""
        return HTML_TEMPLATE_PATH.read_text(encoding="utf-8")

    @app.post("/blast")
    async def blast(request: SearchRequest) -> Dict[str, Any]:
        try:
            results = await container.search_service.search(request.sequence)
        except ValueError as e:
            raise HTTPException(status_code=422, detail=str(e)) from e
        return results.to_dict()

    @app.get("/sequences/{content_hash}", response_model=SequenceEntry)
    async def sequence_entry(content_hash: str) -> SequenceEntry:
        content_hash = content_hash.lower()
        if not is_content_hash(content_hash):
            raise HTTPException(status_code=422, detail="not a content hash")
        identifiers = await container.dedup_index.identifiers_for(content_hash)
        if not identifiers:
            raise HTTPException(status_code=404, detail="unknown content hash")
        return SequenceEntry(content_hash=content_hash, identifiers=sorted(identifiers))

    @app.get("/health")
    async def health() -> Dict[str, Any]:
        status = await container.get_status()
        return {"status": "healthy", "version": __version__, **status}

    @app.get("/metrics")
    async def metrics() -> Response:
        """Endpoint for Prometheus to scrape."""
        return Response(export_prometheus(), media_type="text/plain; version=0.0.4")

    return app


__all__ = ["create_app"]
