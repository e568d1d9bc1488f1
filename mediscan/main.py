"""
MediScan AI - FastAPI Application

Medical image scan analysis service. Users upload a scan, a hosted
multimodal model returns an informational analysis, and every scan is
kept in the user's history.

IMPORTANT: This is NOT a diagnostic tool.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from mediscan.config import settings
from mediscan.api.routes import router
from mediscan.api.middleware import (
    UserContextMiddleware,
    RequestLoggingMiddleware,
    ErrorHandlingMiddleware,
    setup_rate_limiting
)
from mediscan.utils.logger import get_logger, configure_logging

logger = get_logger("main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Handles startup and shutdown events.
    """
    logger.info(
        "Starting MediScan AI",
        version=settings.app_version,
        debug=settings.debug,
        storage_backend=settings.storage_backend
    )

    if settings.storage_backend == "local":
        settings.upload_path.mkdir(parents=True, exist_ok=True)

    configure_logging(
        log_level=settings.log_level,
        json_format=not settings.debug
    )

    if not settings.ai_gateway_api_key:
        logger.warning("AI_GATEWAY_API_KEY is not set; every analysis will fail")

    logger.info("Application ready")

    yield

    logger.info("Shutting down MediScan AI")


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns:
        Configured FastAPI instance
    """
    app = FastAPI(
        title=settings.app_name,
        description="""
## MediScan AI - Medical Image Scan Analysis

Upload medical scans for AI analysis and keep a history of results.

### ⚠️ Important Disclaimer

**This is NOT a diagnostic tool.** Results are informational only and
must not replace professional medical advice.

### API Endpoints

| Endpoint | Method | Description |
|----------|--------|-------------|
| `/scans` | POST | Upload a scan image |
| `/scans` | GET | Scan history, newest first |
| `/scans/{id}` | GET | One scan and its status |
| `/health` | GET | Health check |
        """,
        version=settings.app_version,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc" if settings.debug else None,
    )

    app.add_middleware(ErrorHandlingMiddleware)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(UserContextMiddleware)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    setup_rate_limiting(app)

    app.include_router(router, tags=["API"])

    # Locally stored scan images; the supabase backend serves its own URLs
    if settings.storage_backend == "local":
        app.mount(
            "/uploads",
            StaticFiles(directory=settings.upload_dir, check_dir=False),
            name="uploads"
        )

    return app


# Create app instance
app = create_app()


# Run with: uvicorn mediscan.main:app --reload
if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "mediscan.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug
    )
