"""Main FastAPI application for the Daily Puzzle Engine."""

import logging
import secrets
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from fastapi import Depends, FastAPI, Header, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import structlog

from .config import settings
from .database import CacheManager, PuzzleStore
from .errors import DateRangeError, MalformedDateInput
from .models import (
    DateRangePreviewRequest,
    GenerationParams,
    GenerationSuccess,
    PuzzleRecord,
)
from .pipeline import DailyPuzzleCoordinator
from .pipeline.coordinator import create_coordinator

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

logger = structlog.get_logger(__name__)

# Global components
puzzle_store: Optional[PuzzleStore] = None
cache_manager: Optional[CacheManager] = None
coordinator: Optional[DailyPuzzleCoordinator] = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan context manager."""
    logger.info("Starting Daily Puzzle Engine...")

    global puzzle_store, cache_manager, coordinator

    try:
        puzzle_store = PuzzleStore()
        await puzzle_store.create_all()

        if settings.enable_response_cache:
            cache_manager = CacheManager()
            if not await cache_manager.health_check():
                logger.warning("Redis unavailable, continuing without response cache")
                await cache_manager.close()
                cache_manager = None

        coordinator = create_coordinator(puzzle_store, cache_manager=cache_manager)

        logger.info("Daily Puzzle Engine started successfully")

        yield

    except Exception as e:
        logger.error(f"Failed to start application: {e}")
        raise

    finally:
        logger.info("Shutting down Daily Puzzle Engine...")

        if cache_manager:
            await cache_manager.close()
        if puzzle_store:
            await puzzle_store.close()

        logger.info("Daily Puzzle Engine shut down")


# Create FastAPI app
app = FastAPI(
    title="Daily Puzzle Engine",
    description="One unique, quality-checked rebus puzzle per day",
    version="1.0.0",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Dependency injection
def get_puzzle_store() -> PuzzleStore:
    """Get puzzle store dependency."""
    if puzzle_store is None:
        raise HTTPException(status_code=503, detail="Puzzle store not available")
    return puzzle_store


def get_cache_manager() -> Optional[CacheManager]:
    """Get cache manager dependency; None when Redis is not in use."""
    return cache_manager


def get_coordinator() -> DailyPuzzleCoordinator:
    """Get puzzle coordinator dependency."""
    if coordinator is None:
        raise HTTPException(status_code=503, detail="Puzzle coordinator not available")
    return coordinator


async def require_admin_token(x_admin_token: Optional[str] = Header(None)) -> None:
    """Admin and cron routes need X-Admin-Token when a token is configured."""
    expected = settings.admin_api_token
    if expected and not (x_admin_token and secrets.compare_digest(x_admin_token, expected)):
        raise HTTPException(status_code=401, detail="Invalid or missing admin token")


def serialize_record(record: PuzzleRecord) -> Dict[str, Any]:
    data = record.model_dump(mode="json")
    data["difficulty_category"] = record.difficulty_category
    return data


# Health check endpoints
@app.get("/health")
async def health_check():
    """Basic health check endpoint."""
    return {"status": "healthy", "service": "Daily Puzzle Engine"}


@app.get("/health/detailed")
async def detailed_health_check(
    store: PuzzleStore = Depends(get_puzzle_store),
    cache: Optional[CacheManager] = Depends(get_cache_manager)
):
    """Detailed health check with component status."""
    components = {"store": await store.health_check()}
    if cache is not None:
        components["cache"] = await cache.health_check()

    # The cache is optional, only the store decides availability
    healthy = components["store"]
    health_status = {
        "service": "Daily Puzzle Engine",
        "status": "healthy" if healthy and all(components.values()) else ("degraded" if healthy else "unhealthy"),
        "components": components,
    }

    return JSONResponse(content=health_status, status_code=200 if healthy else 503)


# Puzzle endpoints
@app.get("/api/v1/puzzles/today")
async def get_todays_puzzle(coordinator: DailyPuzzleCoordinator = Depends(get_coordinator)):
    """Today's puzzle (UTC)."""
    record = await coordinator.get_todays_puzzle()
    return {"puzzle": serialize_record(record)}


@app.get("/api/v1/puzzles/{date_string}")
async def get_puzzle_for_date(
    date_string: str,
    coordinator: DailyPuzzleCoordinator = Depends(get_coordinator)
):
    """Puzzle for a specific YYYY-MM-DD date."""
    try:
        record = await coordinator.get_puzzle_for_date(date_string)
    except MalformedDateInput as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"puzzle": serialize_record(record)}


@app.post("/api/v1/cron/generate-puzzle", dependencies=[Depends(require_admin_token)])
async def generate_next_puzzle(coordinator: DailyPuzzleCoordinator = Depends(get_coordinator)):
    """Scheduled job entrypoint; safe to call repeatedly."""
    record = await coordinator.generate_next_puzzle()
    logger.info("Cron generation completed", puzzle_id=record.id, fallback_tier=record.fallback_tier)
    return {
        "success": True,
        "ai_generated": record.ai_generated,
        "puzzle": serialize_record(record),
    }


@app.post("/api/v1/admin/puzzles/preview", dependencies=[Depends(require_admin_token)])
async def preview_puzzle(
    params: GenerationParams,
    coordinator: DailyPuzzleCoordinator = Depends(get_coordinator)
):
    """Generate a candidate without publishing it."""
    result = await coordinator.preview_generation(params)
    return {
        "success": isinstance(result, GenerationSuccess),
        "result": result.model_dump(mode="json"),
    }


@app.post("/api/v1/admin/puzzles/generate-date-range", dependencies=[Depends(require_admin_token)])
async def preview_date_range(
    request: DateRangePreviewRequest,
    coordinator: DailyPuzzleCoordinator = Depends(get_coordinator)
):
    """Preview candidates for every date in a range (max 90 days). Nothing is saved."""
    try:
        previews = await coordinator.generate_date_range_preview(
            request.start_date, request.end_date, request.params
        )
    except (DateRangeError, MalformedDateInput) as e:
        raise HTTPException(status_code=400, detail=str(e))

    return {
        "total": len(previews),
        "succeeded": sum(1 for preview in previews if preview.error is None),
        "previews": [preview.model_dump(mode="json") for preview in previews],
    }


# Pipeline management endpoints
@app.get("/api/v1/pipeline/status")
async def get_pipeline_status(coordinator: DailyPuzzleCoordinator = Depends(get_coordinator)):
    """Get current pipeline status and metrics."""
    return {"pipeline_status": coordinator.get_status()}


# Error handlers
@app.exception_handler(HTTPException)
async def http_exception_handler(request, exc):
    """Handle HTTP exceptions."""
    logger.error(f"HTTP exception: {exc.status_code} - {exc.detail}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail, "status_code": exc.status_code}
    )


@app.exception_handler(Exception)
async def general_exception_handler(request, exc):
    """Handle general exceptions."""
    logger.error(f"Unhandled exception: {exc}")
    return JSONResponse(
        status_code=500,
        content={"error": "Internal server error", "status_code": 500}
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "puzzle_engine.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.environment == "development"
    )
