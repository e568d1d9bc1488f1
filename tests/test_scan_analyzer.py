"""
Tests for the scan analysis orchestrator.
"""

import asyncio
import base64
import threading

import pytest

from mediscan.core.inference_client import (
    InferenceFailure,
    InferenceQuotaExceeded,
    InferenceRateLimited,
)
from mediscan.core.scan_repository import InMemoryScanRepository, PersistenceError
from mediscan.core.storage import StorageError
from mediscan.models.schemas import RiskLevel, ScanStatus
from mediscan.services.scan_analyzer import ScanAnalyzer, build_storage_path
from mediscan.utils.file_validators import ScanValidationError

from conftest import FakeInferenceClient, make_jpeg

USER = "user-123"
TWO_MB = 2 * 1024 * 1024


class FailingStorage:
    def __init__(self):
        self.calls = 0

    def upload(self, path, content, content_type):
        self.calls += 1
        raise StorageError("bucket unavailable")

    def get_public_url(self, path):
        raise AssertionError("no URL for a failed upload")


class FlakyRepository(InMemoryScanRepository):
    """Fails the update that stores a completed result."""

    def update(self, scan_id, fields):
        if fields.get("status") == ScanStatus.COMPLETED.value:
            raise PersistenceError("connection reset")
        return super().update(scan_id, fields)


class ThreadRecordingRepository(InMemoryScanRepository):
    """Remembers which thread each call ran on."""

    def __init__(self):
        super().__init__()
        self.threads = []

    def insert(self, scan):
        self.threads.append(threading.get_ident())
        return super().insert(scan)

    def get(self, scan_id):
        self.threads.append(threading.get_ident())
        return super().get(scan_id)

    def update(self, scan_id, fields):
        self.threads.append(threading.get_ident())
        return super().update(scan_id, fields)


class TestSubmit:
    """Validation, storage and record creation."""

    def test_creates_processing_scan(self, analyzer, storage, repository):
        content = make_jpeg(TWO_MB)
        scan = analyzer.submit(content, "chest xray.jpg", "image/jpeg", USER)

        assert scan.status == ScanStatus.PROCESSING
        assert scan.user_id == USER
        assert scan.analysis_result is None
        assert len(storage.uploads) == 1
        assert storage.uploads[0].startswith(f"{USER}/")
        assert storage.uploads[0].endswith("-chest_xray.jpg")
        assert scan.image_url == f"http://testserver/uploads/{storage.uploads[0]}"
        assert (storage.root / storage.uploads[0]).read_bytes() == content
        assert repository.get(scan.id).model_dump() == scan.model_dump()

    def test_non_image_rejected_without_store(self, analyzer, storage, repository):
        with pytest.raises(ScanValidationError):
            analyzer.submit(b"%PDF-1.4", "report.pdf", "application/pdf", USER)

        assert storage.uploads == []
        assert repository.list() == []

    def test_oversized_rejected_without_store(self, analyzer, storage, repository):
        with pytest.raises(ScanValidationError) as exc_info:
            analyzer.submit(make_jpeg(10 * 1024 * 1024 + 1), "big.jpg", "image/jpeg", USER)

        assert exc_info.value.error_code == "FILE_TOO_LARGE"
        assert storage.uploads == []
        assert repository.list() == []

    def test_storage_failure_creates_no_record(self, repository, inference_client):
        storage = FailingStorage()
        analyzer = ScanAnalyzer(storage, repository, inference_client)

        with pytest.raises(StorageError):
            analyzer.submit(make_jpeg(1024), "scan.jpg", "image/jpeg", USER)

        assert storage.calls == 1
        assert repository.list() == []
        assert inference_client.calls == []

    def test_insert_failure_propagates(self, storage, inference_client):
        class BrokenRepository(InMemoryScanRepository):
            def insert(self, scan):
                raise PersistenceError("table missing")

        analyzer = ScanAnalyzer(storage, BrokenRepository(), inference_client)

        with pytest.raises(PersistenceError):
            analyzer.submit(make_jpeg(1024), "scan.jpg", "image/jpeg", USER)

        # Orphaned image is a known limitation
        assert len(storage.uploads) == 1
        assert inference_client.calls == []


class TestAnalyze:
    """Inference, parsing and finalization."""

    def test_completed_scan_mirrors_result(self, analyzer, inference_client):
        content = make_jpeg(TWO_MB)
        scan = asyncio.run(analyzer.process_upload(content, "scan.jpg", "image/jpeg", USER))

        assert scan.status == ScanStatus.COMPLETED
        assert scan.analysis_result.confidence_score == 90
        assert scan.analysis_result.risk_level == RiskLevel.HIGH
        assert scan.confidence_score == scan.analysis_result.confidence_score
        assert scan.detected_conditions == scan.analysis_result.detected_conditions == ["nodule"]
        assert inference_client.calls == [base64.b64encode(content).decode("ascii")]

    def test_rate_limited_marks_failed_without_retry(self, storage, repository):
        client = FakeInferenceClient(error=InferenceRateLimited())
        analyzer = ScanAnalyzer(storage, repository, client)

        scan = asyncio.run(analyzer.process_upload(make_jpeg(TWO_MB), "scan.jpg", "image/jpeg", USER))

        assert scan.status == ScanStatus.FAILED
        assert scan.analysis_result is None
        assert len(client.calls) == 1
        assert repository.get(scan.id).status == ScanStatus.FAILED

    @pytest.mark.parametrize("error", [
        InferenceQuotaExceeded(),
        InferenceFailure("AI analysis failed: boom"),
        RuntimeError("unexpected"),
    ])
    def test_inference_errors_mark_failed(self, storage, repository, error):
        analyzer = ScanAnalyzer(storage, repository, FakeInferenceClient(error=error))

        scan = asyncio.run(analyzer.process_upload(make_jpeg(1024), "scan.jpg", "image/jpeg", USER))

        assert scan.status == ScanStatus.FAILED
        assert scan.analysis_result is None
        assert scan.confidence_score is None

    def test_unparseable_completion_still_completes(self, storage, repository):
        analyzer = ScanAnalyzer(storage, repository, FakeInferenceClient(completion="no json here"))

        scan = asyncio.run(analyzer.process_upload(make_jpeg(1024), "scan.jpg", "image/jpeg", USER))

        assert scan.status == ScanStatus.COMPLETED
        assert scan.analysis_result.analysis == "no json here"
        assert scan.confidence_score == 75
        assert scan.detected_conditions == []

    def test_oversized_confidence_still_completes(self, storage, repository):
        completion = '{"confidenceScore": ' + "9" * 400 + ', "riskLevel": "high"}'
        analyzer = ScanAnalyzer(storage, repository, FakeInferenceClient(completion=completion))

        scan = asyncio.run(analyzer.process_upload(make_jpeg(1024), "scan.jpg", "image/jpeg", USER))

        assert scan.status == ScanStatus.COMPLETED
        assert scan.confidence_score == 100
        assert scan.analysis_result.risk_level == RiskLevel.HIGH

    def test_backend_calls_run_off_the_event_loop(self, storage, inference_client):
        repository = ThreadRecordingRepository()
        analyzer = ScanAnalyzer(storage, repository, inference_client)

        scan = asyncio.run(analyzer.process_upload(make_jpeg(1024), "scan.jpg", "image/jpeg", USER))

        assert scan.status == ScanStatus.COMPLETED
        assert len(repository.threads) == 3
        assert threading.get_ident() not in repository.threads

    def test_failed_result_write_falls_back_to_failed(self, storage, inference_client):
        repository = FlakyRepository()
        analyzer = ScanAnalyzer(storage, repository, inference_client)

        scan = asyncio.run(analyzer.process_upload(make_jpeg(1024), "scan.jpg", "image/jpeg", USER))

        assert scan.status == ScanStatus.FAILED
        assert repository.get(scan.id).analysis_result is None

    def test_finalized_scan_is_not_analyzed_again(self, analyzer, inference_client, repository):
        content = make_jpeg(1024)
        scan = asyncio.run(analyzer.process_upload(content, "scan.jpg", "image/jpeg", USER))

        again = asyncio.run(analyzer.analyze(scan.id, content))

        assert again.status == ScanStatus.COMPLETED
        assert len(inference_client.calls) == 1

    def test_unknown_scan(self, analyzer, inference_client):
        assert asyncio.run(analyzer.analyze("missing", b"data")) is None
        assert inference_client.calls == []


class TestReads:
    """History listing."""

    def test_list_is_newest_first_and_per_user(self, analyzer):
        first = analyzer.submit(make_jpeg(1024), "a.jpg", "image/jpeg", USER)
        analyzer.submit(make_jpeg(1024), "other.jpg", "image/jpeg", "someone-else")
        second = analyzer.submit(make_jpeg(1024), "b.jpg", "image/jpeg", USER)

        scans = analyzer.list_scans(USER)

        assert [scan.id for scan in scans] == [second.id, first.id]

    def test_relisting_is_idempotent(self, analyzer):
        for name in ("a.jpg", "b.jpg", "c.jpg"):
            asyncio.run(analyzer.process_upload(make_jpeg(1024), name, "image/jpeg", USER))

        assert analyzer.list_scans(USER) == analyzer.list_scans(USER)

    def test_get_scan_hides_other_users(self, analyzer):
        scan = analyzer.submit(make_jpeg(1024), "a.jpg", "image/jpeg", USER)

        assert analyzer.get_scan(scan.id, USER).model_dump() == scan.model_dump()
        assert analyzer.get_scan(scan.id, "someone-else") is None


class TestStoragePath:
    """Object naming."""

    def test_path_namespaced_by_owner_and_time(self):
        assert build_storage_path("u1", "scan.png", timestamp_ms=1700000000000) == "u1/1700000000000-scan.png"

    def test_directory_components_stripped(self):
        assert build_storage_path("u1", "../../etc/passwd", timestamp_ms=1) == "u1/1-passwd"

    def test_empty_filename(self):
        assert build_storage_path("u1", "", timestamp_ms=1) == "u1/1-scan"
