"""
Tests for the scan history page.
"""

import pytest

from mediscan.models.schemas import AnalysisResult, RiskLevel, Scan, ScanStatus
from mediscan.services.history_renderer import (
    HistoryRenderer,
    format_confidence,
    risk_badge,
)


def completed_scan(**result_fields):
    result = AnalysisResult(
        detected_conditions=["nodule"],
        confidence_score=90,
        risk_level=RiskLevel.HIGH,
        analysis="Small nodule in the left lung.",
        recommendations=["see a doctor"],
    ).model_copy(update=result_fields)
    return Scan(
        user_id="u1",
        image_url="http://testserver/uploads/u1/1-scan.jpg",
        status=ScanStatus.COMPLETED,
        analysis_result=result,
        confidence_score=result.confidence_score,
        detected_conditions=result.detected_conditions,
    )


@pytest.fixture
def renderer():
    return HistoryRenderer()


class TestHistoryPage:
    """Rendered history entries."""

    def test_empty_history(self, renderer):
        html = renderer.render([])

        assert "No scans yet" in html
        assert 'accept="image/*"' in html

    def test_completed_entry(self, renderer):
        html = renderer.render([completed_scan()])

        assert "High Risk" in html
        assert "90%" in html
        assert "nodule" in html
        assert "Small nodule in the left lung." in html
        assert "see a doctor" in html
        assert "Medical Disclaimer" in html

    def test_processing_entry(self, renderer):
        scan = Scan(user_id="u1", image_url="http://testserver/x.jpg")
        html = renderer.render([scan])

        assert "Analysis in progress..." in html
        assert "Medical Disclaimer:" not in html

    def test_failed_entry(self, renderer):
        scan = Scan(user_id="u1", image_url="http://testserver/x.jpg", status=ScanStatus.FAILED)
        html = renderer.render([scan])

        assert "Analysis failed. Please try uploading again." in html

    def test_disclaimer_on_every_completed_entry(self, renderer):
        html = renderer.render([completed_scan(), completed_scan()])

        assert html.count("Medical Disclaimer:") == 2

    def test_model_text_is_escaped(self, renderer):
        html = renderer.render([completed_scan(analysis="<script>alert(1)</script>")])

        assert "<script>alert(1)</script>" not in html
        assert "&lt;script&gt;" in html


class TestBadges:
    """Display helpers."""

    @pytest.mark.parametrize("level,label", [
        (RiskLevel.LOW, "Low Risk"),
        (RiskLevel.MODERATE, "Moderate Risk"),
        (RiskLevel.HIGH, "High Risk"),
        (RiskLevel.UNKNOWN, "Unknown"),
        (None, "Unknown"),
    ])
    def test_risk_badge(self, level, label):
        assert risk_badge(level)[0] == label

    def test_format_confidence(self):
        assert format_confidence(87.0) == "87%"
        assert format_confidence(87.5) == "87.5%"
        assert format_confidence(None) is None
