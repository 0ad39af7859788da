"""Search service main application."""

import time
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse
import structlog

from .api.routes import router as api_router
from .common.config import SearchConfig
from .common.logging import configure_logging
from .common.metrics import get_metrics_collector
from .hybrid.search_manager import SearchManager
from .index_store.factory import create_index_store_from_config
from .retrievers.semantic import SemanticSearchClient

logger = structlog.get_logger("search_service")


def build_search_manager(config: SearchConfig, metrics=None) -> SearchManager:
    """Wire the index store and optional semantic source from config."""
    semantic_source = None
    if config.relay_semantic_service_url:
        semantic_source = SemanticSearchClient(
            base_url=config.relay_semantic_service_url,
            timeout=config.relay_semantic_timeout_seconds,
            retry_attempts=config.relay_semantic_retry_attempts,
            retry_base_delay=config.relay_semantic_retry_base_delay,
            retry_max_delay=config.relay_semantic_retry_max_delay,
        )

    return SearchManager(
        index_store=create_index_store_from_config(config),
        config=config,
        semantic_source=semantic_source,
        metrics=metrics,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    config = SearchConfig()
    configure_logging("search-service", config.relay_log_level, config.relay_log_format)

    logger.info("Starting search service", index_backend=config.relay_index_backend)

    app.state.metrics_collector = get_metrics_collector("search-service")
    app.state.search_manager = build_search_manager(config, app.state.metrics_collector)

    logger.info(
        "Search service started successfully",
        semantic_enabled=app.state.search_manager.semantic_source is not None
    )

    yield

    logger.info("Shutting down search service")
    await app.state.search_manager.cleanup()
    logger.info("Search service shutdown complete")


app = FastAPI(
    title="Relay Search Service",
    description="Query parsing, unified entity search and hybrid fusion",
    version="0.1.0",
    lifespan=lifespan
)

app.include_router(api_router, prefix="/api/v1")


@app.middleware("http")
async def metrics_middleware(request: Request, call_next):
    """Collect metrics for HTTP requests."""
    start_time = time.time()

    try:
        response = await call_next(request)
        status_code = response.status_code
    except Exception as e:
        logger.error("Unhandled request error", path=request.url.path, error=str(e))
        status_code = 500
        response = JSONResponse(
            status_code=500,
            content={"error": "Internal server error", "detail": str(e)}
        )

    duration = time.time() - start_time
    response.headers["X-Process-Time"] = str(duration)

    metrics_collector = getattr(app.state, "metrics_collector", None)
    if metrics_collector is not None:
        metrics_collector.record_http_request(
            method=request.method,
            endpoint=request.url.path,
            status=status_code,
            duration=duration
        )

    return response


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    search_manager = getattr(app.state, "search_manager", None)
    healthy = search_manager is not None and await search_manager.health_check()

    if healthy:
        return {"status": "healthy", "service": "search-service"}
    return JSONResponse(
        status_code=503,
        content={"status": "unhealthy", "service": "search-service"}
    )


@app.get("/metrics")
async def metrics():
    """Prometheus metrics endpoint."""
    metrics_collector = getattr(app.state, "metrics_collector", None)
    if metrics_collector is None:
        return Response(content="# No metrics available\n", media_type="text/plain")
    return Response(content=metrics_collector.get_metrics(), media_type="text/plain")


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "service": "search-service",
        "version": "0.1.0",
        "status": "running",
        "endpoints": {
            "health": "/health",
            "metrics": "/metrics",
            "search": "/api/v1/search",
            "parse": "/api/v1/parse"
        }
    }


def run() -> None:
    """Console entry point."""
    config = SearchConfig()
    uvicorn.run(
        "relay_search.main:app",
        host="0.0.0.0",
        port=config.relay_search_port,
        log_level=config.relay_log_level.lower()
    )


if __name__ == "__main__":
    run()
