"""
Scan history page for MediScan AI.

Renders the upload control and the user's scan history as HTML.
"""

from typing import List, Optional

from jinja2 import Template

from mediscan.config import settings
from mediscan.models.schemas import (
    Scan,
    ScanStatus,
    RiskLevel,
    MEDICAL_DISCLAIMER,
)
from mediscan.utils.logger import get_logger

logger = get_logger("history_renderer")


RISK_BADGES = {
    RiskLevel.LOW: ("Low Risk", "risk-low"),
    RiskLevel.MODERATE: ("Moderate Risk", "risk-moderate"),
    RiskLevel.HIGH: ("High Risk", "risk-high"),
}

STATUS_ICONS = {
    ScanStatus.COMPLETED: ("✔", "status-completed"),
    ScanStatus.PROCESSING: ("⏳", "status-processing"),
    ScanStatus.PENDING: ("⏳", "status-processing"),
    ScanStatus.FAILED: ("✖", "status-failed"),
}


def risk_badge(risk_level: Optional[RiskLevel]) -> tuple:
    """Badge label and CSS class; anything unrecognized renders as Unknown."""
    return RISK_BADGES.get(risk_level, ("Unknown", "risk-unknown"))


def status_icon(status: ScanStatus) -> tuple:
    return STATUS_ICONS.get(status, ("!", "status-unknown"))


def format_confidence(score: Optional[float]) -> Optional[str]:
    if score is None:
        return None
    return f"{score:g}%"


class HistoryRenderer:
    """
    Renders the scan history page.

    Each entry shows timestamp, status icon, risk badge, confidence,
    findings, narrative and recommendations. Completed entries always
    carry the medical disclaimer.
    """

    PAGE_CSS = """
    body {
        font-family: 'Segoe UI', Tahoma, Geneva, Verdana, sans-serif;
        max-width: 960px;
        margin: 0 auto;
        padding: 2rem 1rem;
        color: #1f2937;
    }
    header h1 { margin-bottom: 0; }
    header p { margin-top: 0.25rem; color: #6b7280; }
    .upload {
        border: 2px dashed #93c5fd;
        border-radius: 8px;
        padding: 2rem;
        text-align: center;
    }
    .notice {
        background: #f3f4f6;
        border-left: 4px solid #2563eb;
        padding: 1rem 1.5rem;
        margin: 2rem 0;
        font-size: 0.9rem;
    }
    .scan {
        border: 1px solid #e5e7eb;
        border-radius: 8px;
        padding: 1rem 1.5rem;
        margin-bottom: 1rem;
    }
    .scan-header { display: flex; justify-content: space-between; align-items: center; }
    .scan img { max-width: 100%; max-height: 320px; display: block; margin: 1rem auto; }
    .badge { padding: 0.2rem 0.6rem; border-radius: 999px; font-size: 0.8rem; }
    .risk-low { background: #dcfce7; color: #166534; }
    .risk-moderate { background: #fef3c7; color: #92400e; }
    .risk-high { background: #fee2e2; color: #991b1b; }
    .risk-unknown { background: #e5e7eb; color: #374151; }
    .status-completed { color: #16a34a; }
    .status-processing { color: #d97706; }
    .status-failed, .error { color: #dc2626; }
    .disclaimer { background: #f9fafb; padding: 0.75rem 1rem; font-size: 0.8rem; color: #6b7280; }
    """

    def __init__(self):
        self.template_html = self._get_html_template()

    def _get_html_template(self) -> str:
        return """<!DOCTYPE html>
<html>
<head>
    <meta charset="utf-8">
    <title>{{ app_name }}</title>
    <style>{{ css|safe }}</style>
</head>
<body>
<header>
    <h1>{{ app_name }}</h1>
    <p>AI-Powered Medical Imaging Analysis</p>
</header>

<section class="upload">
    <h3>Upload Medical Scan</h3>
    <p>Upload X-ray, CT, MRI, or other medical imaging files</p>
    <input id="file-upload" type="file" accept="image/*">
    <p><small>Supported: JPG, PNG, DICOM &bull; Max {{ max_file_size_mb }}MB</small></p>
    <p id="upload-status"></p>
</section>

<section class="notice">
    <h3>Important Medical Disclaimer</h3>
    <p>This AI-powered analysis tool is designed to assist medical professionals and should not
    be used as a substitute for professional medical advice, diagnosis, or treatment. Always
    seek the advice of qualified healthcare providers with any questions regarding medical
    conditions.</p>
</section>

<section class="history">
{% if scans %}
    <h2>Scan History</h2>
    {% for scan in scans %}
    <article class="scan">
        <div class="scan-header">
            <strong><span class="{{ scan.status_class }}">{{ scan.status_icon }}</span> {{ scan.created }}</strong>
            {% if scan.risk_label %}<span class="badge {{ scan.risk_class }}">{{ scan.risk_label }}</span>{% endif %}
        </div>
        <img src="{{ scan.image_url }}" alt="Medical scan">

        {% if scan.status == "completed" %}
            {% if scan.confidence %}
            <p>Confidence Score: <strong>{{ scan.confidence }}</strong></p>
            {% endif %}
            {% if scan.findings %}
            <p><strong>Detected Findings:</strong></p>
            <ul>{% for finding in scan.findings %}<li>{{ finding }}</li>{% endfor %}</ul>
            {% endif %}
            {% if scan.analysis %}
            <p><strong>Analysis:</strong></p>
            <p>{{ scan.analysis }}</p>
            {% endif %}
            {% if scan.recommendations %}
            <p><strong>Recommendations:</strong></p>
            <ul>{% for rec in scan.recommendations %}<li>{{ rec }}</li>{% endfor %}</ul>
            {% endif %}
            <p class="disclaimer">&#9877; <strong>Medical Disclaimer:</strong> {{ disclaimer }}</p>
        {% elif scan.status == "failed" %}
            <p class="error">Analysis failed. Please try uploading again.</p>
        {% else %}
            <p>Analysis in progress...</p>
        {% endif %}
    </article>
    {% endfor %}
{% else %}
    <p class="empty">No scans yet. Upload your first medical image to get started.</p>
{% endif %}
</section>

<script>
const maxBytes = {{ max_file_size_bytes }};
document.getElementById("file-upload").addEventListener("change", async (event) => {
    const file = event.target.files[0];
    const status = document.getElementById("upload-status");
    if (!file) return;
    if (!file.type.startsWith("image/")) { status.textContent = "Please upload an image file"; return; }
    if (file.size > maxBytes) { status.textContent = "File size must be less than {{ max_file_size_mb }}MB"; return; }

    status.textContent = "Uploading image...";
    const body = new FormData();
    body.append("file", file);
    const response = await fetch("/scans", { method: "POST", body: body });
    if (!response.ok) {
        const error = await response.json();
        status.textContent = error.detail || error.message || "Failed to upload image";
        return;
    }
    window.location.reload();
});
</script>
</body>
</html>
"""

    def _prepare_scan_data(self, scan: Scan) -> dict:
        """Prepare one scan entry for template rendering."""
        result = scan.analysis_result
        icon, icon_class = status_icon(scan.status)

        data = {
            "id": scan.id,
            "status": scan.status.value,
            "status_icon": icon,
            "status_class": icon_class,
            "created": scan.created_at.strftime("%B %d, %Y at %I:%M %p"),
            "image_url": scan.image_url,
            "risk_label": None,
            "risk_class": None,
            "confidence": format_confidence(scan.confidence_score),
            "findings": scan.detected_conditions or [],
            "analysis": None,
            "recommendations": [],
        }

        if result is not None:
            data["risk_label"], data["risk_class"] = risk_badge(result.risk_level)
            data["analysis"] = result.analysis
            data["recommendations"] = result.recommendations

        return data

    def render(self, scans: List[Scan]) -> str:
        """
        Render the history page.

        Args:
            scans: Scans to show, already ordered newest first

        Returns:
            HTML string
        """
        template = Template(self.template_html, autoescape=True)
        html_content = template.render(
            app_name=settings.app_name,
            css=self.PAGE_CSS,
            max_file_size_mb=settings.max_file_size_mb,
            max_file_size_bytes=settings.max_file_size_bytes,
            disclaimer=MEDICAL_DISCLAIMER,
            scans=[self._prepare_scan_data(scan) for scan in scans],
        )

        logger.debug("History page rendered", scan_count=len(scans))
        return html_content


# Lazy-loaded singleton
_history_renderer: Optional[HistoryRenderer] = None


def get_history_renderer() -> HistoryRenderer:
    """Get or create history renderer singleton."""
    global _history_renderer
    if _history_renderer is None:
        _history_renderer = HistoryRenderer()
    return _history_renderer
