"""FastAPI application for the LawKita case pipeline.

Serves the admin scraping endpoints plus health checks. Run with:

    uvicorn main:app --app-dir src
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from lawkita.api import register_exception_handlers
from lawkita.api.scraping import router as scraping_router
from lawkita.cases.run_log import SqlJobRunLog
from lawkita.config import get_settings
from lawkita.db import close_all_connections, ping
from lawkita.logging import get_logger, setup_logging

setup_logging()
logger = get_logger(__name__)
settings = get_settings()

ABANDONED_RUN_REASON = "Server restarted - run abandoned"


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(
        "Starting LawKita API",
        extra={"environment": settings.environment, "debug": settings.api_debug},
    )

    # Crawl jobs run inside the request, so a restart leaves their rows running
    try:
        abandoned = await SqlJobRunLog().abandon_running(ABANDONED_RUN_REASON)
        if abandoned:
            logger.info(f"Marked {abandoned} orphaned crawl run(s) as failed")
    except Exception as e:
        logger.warning(f"Failed to clean up orphaned crawl runs: {e}")

    yield

    logger.info("Shutting down LawKita API")
    await close_all_connections()


app = FastAPI(
    title="LawKita API",
    description="Admin API for the news-derived legal case pipeline",
    version="0.1.0",
    docs_url="/docs" if settings.is_development else None,
    redoc_url=None,
    openapi_url="/openapi.json" if settings.is_development else None,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)

register_exception_handlers(app)

app.include_router(scraping_router, prefix="/api/v1", tags=["Scraping"])


@app.get("/health", tags=["Health"])
async def health_check():
    return {"status": "healthy", "service": "lawkita-api"}


@app.get("/health/ready", tags=["Health"])
async def readiness_check():
    """Ready once PostgreSQL answers."""
    try:
        await ping()
        postgres = "healthy"
    except Exception as e:
        postgres = f"unhealthy: {e}"

    ready = postgres == "healthy"
    return JSONResponse(
        status_code=200 if ready else 503,
        content={"status": "ready" if ready else "not_ready", "checks": {"postgres": postgres}},
    )
