"""
Shared fixtures for MediScan AI tests.
"""

from typing import List, Optional

import pytest

from mediscan.core.scan_repository import InMemoryScanRepository
from mediscan.core.storage import LocalImageStorage
from mediscan.services.scan_analyzer import ScanAnalyzer


VALID_COMPLETION = (
    'Findings: {"detectedConditions":["nodule"],"confidenceScore":90,'
    '"riskLevel":"high","analysis":"x","recommendations":["see a doctor"]} end'
)

JPEG_HEADER = b"\xff\xd8\xff\xe0"


def make_jpeg(size: int) -> bytes:
    """Bytes that look like a JPEG, padded to the given size."""
    return JPEG_HEADER + b"\x00" * (size - len(JPEG_HEADER))


class FakeInferenceClient:
    """Stands in for the AI gateway; records every call."""

    def __init__(self, completion: str = VALID_COMPLETION, error: Optional[Exception] = None):
        self.completion = completion
        self.error = error
        self.calls: List[str] = []

    async def complete(self, image_base64: str) -> str:
        self.calls.append(image_base64)
        if self.error is not None:
            raise self.error
        return self.completion


class RecordingStorage(LocalImageStorage):
    """Local storage that also remembers what was uploaded."""

    def __init__(self, root, base_url: str = "http://testserver"):
        super().__init__(root=root, base_url=base_url)
        self.uploads: List[str] = []

    def upload(self, path: str, content: bytes, content_type: str) -> None:
        super().upload(path, content, content_type)
        self.uploads.append(path)


@pytest.fixture
def storage(tmp_path):
    return RecordingStorage(tmp_path / "uploads")


@pytest.fixture
def repository():
    return InMemoryScanRepository()


@pytest.fixture
def inference_client():
    return FakeInferenceClient()


@pytest.fixture
def analyzer(storage, repository, inference_client):
    return ScanAnalyzer(
        storage=storage,
        repository=repository,
        inference_client=inference_client
    )
