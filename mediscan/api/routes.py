"""
API routes for MediScan AI.

Defines the REST endpoints for uploading scans and reading scan history,
plus the HTML history page.
"""

from fastapi import (
    APIRouter,
    BackgroundTasks,
    Depends,
    File,
    HTTPException,
    Request,
    UploadFile,
)
from starlette.concurrency import run_in_threadpool
from fastapi.responses import HTMLResponse

from mediscan.api.middleware import limiter
from mediscan.config import settings
from mediscan.core.scan_repository import PersistenceError
from mediscan.core.storage import StorageError
from mediscan.models.schemas import (
    ErrorResponse,
    HealthResponse,
    Scan,
    ScanListResponse,
    ScanUploadResponse,
)
from mediscan.services.history_renderer import get_history_renderer
from mediscan.services.scan_analyzer import ScanAnalyzer, get_scan_analyzer
from mediscan.utils.file_validators import ScanValidationError
from mediscan.utils.logger import get_logger

logger = get_logger("routes")

# Create router
router = APIRouter()


def get_analyzer() -> ScanAnalyzer:
    """Dependency returning the scan analyzer."""
    return get_scan_analyzer()


def get_current_user(request: Request) -> str:
    """Dependency returning the authenticated user, or 401."""
    user_id = getattr(request.state, "user_id", None)
    if not user_id:
        raise HTTPException(status_code=401, detail="User not authenticated")
    return user_id


# =============================================================================
# Health Check
# =============================================================================

@router.get(
    "/health",
    response_model=HealthResponse,
    tags=["System"],
    summary="Health check endpoint"
)
async def health_check():
    """
    Check if the service is healthy and running.

    Returns basic health status and version information.
    """
    return HealthResponse(
        status="healthy",
        version=settings.app_version,
        storage_backend=settings.storage_backend
    )


# =============================================================================
# Scan Upload
# =============================================================================

@router.post(
    "/scans",
    response_model=ScanUploadResponse,
    status_code=202,
    tags=["Scans"],
    summary="Upload a medical image for analysis",
    responses={
        400: {"model": ErrorResponse, "description": "Invalid file"},
        401: {"model": ErrorResponse, "description": "Not authenticated"},
        413: {"model": ErrorResponse, "description": "File too large"},
        502: {"model": ErrorResponse, "description": "Storage unavailable"}
    }
)
@limiter.limit(f"{settings.rate_limit_per_minute}/minute")
async def upload_scan(
    request: Request,
    background_tasks: BackgroundTasks,
    file: UploadFile = File(..., description="Medical image file"),
    user_id: str = Depends(get_current_user),
    analyzer: ScanAnalyzer = Depends(get_analyzer)
):
    """
    Upload a medical image (X-ray, CT, MRI, etc.) for analysis.

    The image is stored and a scan record is created right away; the
    analysis itself runs after the response is sent. Poll the scan (or the
    history) to see it move from ``processing`` to ``completed`` or
    ``failed``.

    **Important**: This is NOT a diagnostic tool. Always consult a
    qualified healthcare professional.
    """
    content = await file.read()

    try:
        scan = await run_in_threadpool(
            analyzer.submit,
            file_content=content,
            filename=file.filename or "scan",
            content_type=file.content_type,
            user_id=user_id
        )
    except ScanValidationError as e:
        status_code = 413 if e.error_code == "FILE_TOO_LARGE" else 400
        raise HTTPException(status_code=status_code, detail=e.message)
    except (StorageError, PersistenceError) as e:
        logger.error("Upload failed", user_id=user_id, error=e.message, error_code=e.error_code)
        raise HTTPException(status_code=502, detail=e.message)

    background_tasks.add_task(analyzer.analyze, scan.id, content)

    return ScanUploadResponse(scan=scan)


# =============================================================================
# Scan History
# =============================================================================

@router.get(
    "/scans",
    response_model=ScanListResponse,
    tags=["Scans"],
    summary="List the current user's scans, newest first"
)
async def list_scans(
    user_id: str = Depends(get_current_user),
    analyzer: ScanAnalyzer = Depends(get_analyzer)
):
    """Return the scan history for the current user."""
    try:
        scans = await run_in_threadpool(analyzer.list_scans, user_id)
    except PersistenceError as e:
        raise HTTPException(status_code=502, detail=e.message)

    return ScanListResponse(scans=scans, count=len(scans))


@router.get(
    "/scans/{scan_id}",
    response_model=Scan,
    tags=["Scans"],
    summary="Get one scan",
    responses={404: {"model": ErrorResponse, "description": "Scan not found"}}
)
async def get_scan(
    scan_id: str,
    user_id: str = Depends(get_current_user),
    analyzer: ScanAnalyzer = Depends(get_analyzer)
):
    """Return a single scan; other users' scans are reported as missing."""
    try:
        scan = await run_in_threadpool(analyzer.get_scan, scan_id, user_id)
    except PersistenceError as e:
        raise HTTPException(status_code=502, detail=e.message)

    if scan is None:
        raise HTTPException(status_code=404, detail=f"Scan not found: {scan_id}")

    return scan


@router.get("/", response_class=HTMLResponse, include_in_schema=False)
async def history_page(
    user_id: str = Depends(get_current_user),
    analyzer: ScanAnalyzer = Depends(get_analyzer)
):
    """Upload control and scan history."""
    try:
        scans = await run_in_threadpool(analyzer.list_scans, user_id)
    except PersistenceError as e:
        raise HTTPException(status_code=502, detail=e.message)

    return HTMLResponse(get_history_renderer().render(scans))
