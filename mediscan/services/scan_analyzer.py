"""
Scan analyzer service for MediScan AI.

Orchestrates the upload and analysis pipeline for one scan:
validate → store → create record → encode → infer → parse → finalize.
"""

import base64
import time
from pathlib import Path
from typing import Optional, List

from starlette.concurrency import run_in_threadpool

from mediscan.config import settings
from mediscan.core.inference_client import InferenceClient, InferenceError
from mediscan.core.result_parser import parse_analysis
from mediscan.core.scan_repository import (
    ScanRepository,
    InMemoryScanRepository,
    SupabaseScanRepository,
    PersistenceError,
)
from mediscan.core.storage import (
    ImageStorage,
    LocalImageStorage,
    SupabaseImageStorage,
)
from mediscan.models.schemas import Scan, ScanStatus
from mediscan.utils.file_validators import ImageUploadValidator, file_validator
from mediscan.utils.logger import bind_scan_context, clear_scan_context, get_logger

logger = get_logger("scan_analyzer")


def build_storage_path(user_id: str, filename: str, timestamp_ms: Optional[int] = None) -> str:
    """Namespace an upload by owner and time: ``<user>/<millis>-<name>``."""
    timestamp_ms = timestamp_ms if timestamp_ms is not None else int(time.time() * 1000)
    name = Path(filename or "").name.replace(" ", "_") or "scan"
    return f"{user_id}/{timestamp_ms}-{name}"


class ScanAnalyzer:
    """
    Main analysis orchestrator for MediScan AI.

    Steps 1-3 (validate, store, create record) run synchronously and raise
    to the caller. Backend calls made from coroutines go through the
    threadpool, since the storage and repository clients block. Steps 4-7 (encode, infer, parse, finalize) never raise:
    any failure there ends the scan in the ``failed`` state, which the
    user sees through the scan history.
    """

    def __init__(
        self,
        storage: ImageStorage,
        repository: ScanRepository,
        inference_client: InferenceClient,
        validator: Optional[ImageUploadValidator] = None
    ):
        self.storage = storage
        self.repository = repository
        self.inference_client = inference_client
        self.validator = validator or file_validator

    def submit(
        self,
        file_content: bytes,
        filename: str,
        content_type: Optional[str],
        user_id: str
    ) -> Scan:
        """
        Validate and store an upload, then create its processing record.

        Args:
            file_content: Raw image bytes
            filename: Original filename
            content_type: Declared MIME type
            user_id: Owner of the scan

        Returns:
            The new scan, in the processing state

        Raises:
            ScanValidationError: Bad media type, empty or too large
            StorageError: The image could not be stored
            PersistenceError: The record could not be created
        """
        self.validator.validate_content_type(content_type, filename)
        self.validator.validate_file_size(file_content, filename)

        path = build_storage_path(user_id, filename)
        self.storage.upload(path, file_content, content_type)
        image_url = self.storage.get_public_url(path)

        scan = Scan(
            user_id=user_id,
            image_url=image_url,
            status=ScanStatus.PROCESSING
        )
        # An orphaned image is left behind if this insert fails
        scan_id = self.repository.insert(scan)
        if scan_id != scan.id:
            scan = scan.model_copy(update={"id": scan_id})

        logger.info(
            "Scan submitted",
            scan_id=scan.id,
            user_id=user_id,
            filename=filename,
            size_bytes=len(file_content)
        )

        return scan

    async def analyze(self, scan_id: str, file_content: bytes) -> Optional[Scan]:
        """
        Run the remote analysis for a submitted scan and record the outcome.

        Never raises.

        Args:
            scan_id: ID returned by submit
            file_content: The same raw image bytes that were submitted

        Returns:
            The finalized scan, or None if it could not be written
        """
        bind_scan_context(scan_id)
        try:
            return await self._run_analysis(scan_id, file_content)
        finally:
            clear_scan_context()

    async def _run_analysis(self, scan_id: str, file_content: bytes) -> Optional[Scan]:
        try:
            current = await run_in_threadpool(self.repository.get, scan_id)
        except PersistenceError as e:
            logger.error("Scan lookup failed", scan_id=scan_id, error=e.message)
            return None

        if current is None:
            logger.error("Scan not found for analysis", scan_id=scan_id)
            return None
        if current.status.is_terminal:
            logger.warning(
                "Scan already finalized, skipping analysis",
                scan_id=scan_id,
                status=current.status.value
            )
            return current

        start_time = time.time()
        logger.info("Starting analysis", scan_id=scan_id)

        try:
            encoded = base64.b64encode(file_content).decode("ascii")
            completion = await self.inference_client.complete(encoded)
            result = parse_analysis(completion)
        except InferenceError as e:
            logger.error(
                "Analysis failed",
                scan_id=scan_id,
                error=e.message,
                error_code=e.error_code
            )
            return await self._mark_failed(scan_id)
        except Exception as e:
            logger.error("Analysis failed", scan_id=scan_id, error=str(e), exc_info=True)
            return await self._mark_failed(scan_id)

        fields = {
            "status": ScanStatus.COMPLETED.value,
            "analysis_result": result.model_dump(mode="json", by_alias=True),
            "confidence_score": result.confidence_score,
            "detected_conditions": list(result.detected_conditions),
        }

        try:
            scan = await run_in_threadpool(self.repository.update, scan_id, fields)
        except PersistenceError as e:
            logger.error("Failed to store analysis result", scan_id=scan_id, error=e.message)
            return await self._mark_failed(scan_id)

        logger.info(
            "Analysis complete",
            scan_id=scan_id,
            processing_time_ms=int((time.time() - start_time) * 1000),
            confidence=result.confidence_score,
            risk_level=result.risk_level.value
        )

        return scan

    async def process_upload(
        self,
        file_content: bytes,
        filename: str,
        content_type: Optional[str],
        user_id: str
    ) -> Scan:
        """
        Submit and analyze in one call.

        Raises only what submit raises; returns the scan in its final state.
        """
        scan = await run_in_threadpool(
            self.submit, file_content, filename, content_type, user_id
        )
        finalized = await self.analyze(scan.id, file_content)
        return finalized or scan

    def list_scans(self, user_id: Optional[str]) -> List[Scan]:
        """Scans for a user (or all users), newest first."""
        return self.repository.list(user_id)

    def get_scan(self, scan_id: str, user_id: str) -> Optional[Scan]:
        """A single scan, only if it belongs to the user."""
        scan = self.repository.get(scan_id)
        if scan is None or scan.user_id != user_id:
            return None
        return scan

    async def _mark_failed(self, scan_id: str) -> Optional[Scan]:
        try:
            return await run_in_threadpool(
                self.repository.update,
                scan_id,
                {"status": ScanStatus.FAILED.value, "analysis_result": None}
            )
        except PersistenceError as e:
            # Row stays in processing; nothing else can be done here
            logger.error("Failed to mark scan as failed", scan_id=scan_id, error=e.message)
            return None


def create_scan_analyzer() -> ScanAnalyzer:
    """Build an analyzer wired to the configured backend."""
    if settings.storage_backend == "supabase":
        storage: ImageStorage = SupabaseImageStorage()
        repository: ScanRepository = SupabaseScanRepository()
    else:
        storage = LocalImageStorage()
        repository = InMemoryScanRepository()

    logger.info("Scan analyzer created", storage_backend=settings.storage_backend)

    return ScanAnalyzer(
        storage=storage,
        repository=repository,
        inference_client=InferenceClient()
    )


# Lazy-loaded singleton
_scan_analyzer: Optional[ScanAnalyzer] = None


def get_scan_analyzer() -> ScanAnalyzer:
    """Get or create scan analyzer singleton."""
    global _scan_analyzer
    if _scan_analyzer is None:
        _scan_analyzer = create_scan_analyzer()
    return _scan_analyzer
