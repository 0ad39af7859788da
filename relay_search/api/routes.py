"""API routes for the search service."""

import time
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import BaseModel, Field
import structlog

from ..hybrid.search_manager import SearchManager, choose_strategy
from ..intelligence.query_parser import build_lexical_query, parse_query

logger = structlog.get_logger("search_service.api")

router = APIRouter()


class SearchRequest(BaseModel):
    """Request model for search endpoint."""
    query: str = Field(..., description="Search string in the search mini-language")
    limit: Optional[int] = Field(None, ge=0, description="Maximum number of results")
    semantic: bool = Field(False, description="Fuse with the semantic source")
    timeout_ms: Optional[int] = Field(None, gt=0, description="Deadline for unified sub-searches")
    hydrate: bool = Field(False, description="Attach full entity records")


class SearchResultModel(BaseModel):
    """Search result model."""
    entity_type: str = Field(..., description="Entity type")
    entity_id: str = Field(..., description="Entity ID")
    score: float = Field(..., description="Relevance score")
    fusion_score: Optional[float] = Field(None, description="RRF score when fused")
    snippet: Optional[str] = Field(None, description="Highlighted match context")
    match_fields: List[str] = Field(default_factory=list, description="Fields that matched")
    created_at: int = Field(0, description="Entity creation time")
    entity: Optional[Dict[str, Any]] = Field(None, description="Full entity record")


class SearchResponse(BaseModel):
    """Response model for search endpoint."""
    results: List[SearchResultModel] = Field(..., description="Search results")
    total: int = Field(..., description="Number of results returned")
    query: str = Field(..., description="Original query")
    strategy: str = Field(..., description="unified or single")
    semantic: bool = Field(..., description="Semantic fusion requested")
    latency_ms: float = Field(..., description="Search latency in milliseconds")


class ParseResponse(BaseModel):
    """Response model for the parse endpoint."""
    raw: str
    terms: List[str]
    entity_type: Optional[str]
    filters: Dict[str, Any]
    lexical_query: str
    strategy: str


def get_search_manager(request: Request) -> SearchManager:
    """Get search manager from application state."""
    return request.app.state.search_manager


@router.post("/search", response_model=SearchResponse)
async def search(
    request: SearchRequest,
    search_manager: SearchManager = Depends(get_search_manager),
):
    """Run a search."""
    start_time = time.time()

    try:
        query = parse_query(request.query)
        timeout = request.timeout_ms / 1000.0 if request.timeout_ms else None
        results = await search_manager.search_parsed(
            query,
            limit=request.limit,
            semantic=request.semantic,
            timeout=timeout,
        )
        records = await search_manager.hydrate(results) if request.hydrate else [None] * len(results)

        latency_ms = (time.time() - start_time) * 1000

        search_results = []
        for result, record in zip(results, records):
            payload = result.to_dict()
            payload["entity"] = record
            search_results.append(SearchResultModel(**payload))

        logger.info(
            "Search completed",
            query=request.query,
            semantic=request.semantic,
            results_count=len(search_results),
            latency_ms=latency_ms
        )

        return SearchResponse(
            results=search_results,
            total=len(search_results),
            query=request.query,
            strategy=choose_strategy(query).kind,
            semantic=request.semantic,
            latency_ms=latency_ms
        )

    except Exception as e:
        logger.error("Search failed", query=request.query, error=str(e))
        raise HTTPException(status_code=500, detail=f"Search failed: {str(e)}")


@router.get("/parse", response_model=ParseResponse)
async def parse(q: str = Query("", description="Search string to parse")):
    """Show how a search string is understood."""
    query = parse_query(q)
    payload = query.to_dict()
    return ParseResponse(
        lexical_query=build_lexical_query(query.terms),
        strategy=choose_strategy(query).kind,
        **payload
    )
