"""
Pydantic schemas for MediScan AI.

Defines the scan record, the structured analysis result and the
request/response models for all API endpoints.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional, List
from uuid import uuid4

from pydantic import BaseModel, Field, ConfigDict


def utc_now() -> datetime:
    """Timezone-aware current time, comparable with database timestamps."""
    return datetime.now(timezone.utc)


# =============================================================================
# Enums
# =============================================================================

class ScanStatus(str, Enum):
    """Lifecycle state of a scan.

    PENDING and PROCESSING are the same transient state; new scans are
    stored as PROCESSING.
    """
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (ScanStatus.COMPLETED, ScanStatus.FAILED)


class RiskLevel(str, Enum):
    """Risk classification levels reported by the model."""
    LOW = "low"
    MODERATE = "moderate"
    HIGH = "high"
    UNKNOWN = "unknown"


# =============================================================================
# Analysis Results
# =============================================================================

DEFAULT_CONFIDENCE_SCORE = 75.0
DEFAULT_RECOMMENDATION = "Consult with a medical professional for proper diagnosis"

MEDICAL_DISCLAIMER = (
    "This AI analysis is for informational purposes only and should not "
    "replace professional medical advice. Always consult with qualified "
    "healthcare professionals for diagnosis and treatment."
)


class AnalysisResult(BaseModel):
    """Structured record extracted from the model's completion.

    Serialized with the camelCase keys the model is asked to produce.
    """

    detected_conditions: List[str] = Field(
        default_factory=list,
        alias="detectedConditions",
        description="Short findings reported by the model"
    )
    confidence_score: float = Field(
        default=DEFAULT_CONFIDENCE_SCORE,
        ge=0.0,
        le=100.0,
        alias="confidenceScore",
        description="Model confidence, 0-100"
    )
    risk_level: RiskLevel = Field(
        default=RiskLevel.MODERATE,
        alias="riskLevel",
        description="Informational risk level"
    )
    analysis: str = Field(
        default="",
        description="Free-text narrative"
    )
    recommendations: List[str] = Field(
        default_factory=lambda: [DEFAULT_RECOMMENDATION],
        description="Short follow-up suggestions"
    )

    model_config = ConfigDict(populate_by_name=True)


# =============================================================================
# Scans
# =============================================================================

class Scan(BaseModel):
    """One user-submitted image and its lifecycle state."""

    id: str = Field(
        default_factory=lambda: str(uuid4()),
        description="Unique scan ID"
    )
    user_id: str = Field(description="Submitting user")
    image_url: str = Field(description="Public URL of the stored image")
    status: ScanStatus = Field(default=ScanStatus.PROCESSING)

    analysis_result: Optional[AnalysisResult] = Field(
        default=None,
        description="Present only when status is completed"
    )

    # Mirrors of analysis_result fields, kept for querying and display
    confidence_score: Optional[float] = Field(default=None)
    detected_conditions: Optional[List[str]] = Field(default=None)

    created_at: datetime = Field(default_factory=utc_now)

    model_config = ConfigDict(from_attributes=True)


class ScanUploadResponse(BaseModel):
    """Response after an accepted upload."""

    scan: Scan = Field(description="The newly created scan record")
    message: str = Field(
        default="Image uploaded successfully. Analysis is in progress."
    )


class ScanListResponse(BaseModel):
    """Scan history, newest first."""

    scans: List[Scan] = Field(default_factory=list)
    count: int = Field(default=0)


# =============================================================================
# Health & Status
# =============================================================================

class HealthResponse(BaseModel):
    """Health check response."""

    status: str = Field(default="healthy")
    version: str = Field(description="Application version")
    storage_backend: str = Field(description="Configured storage backend")
    timestamp: datetime = Field(default_factory=utc_now)


# =============================================================================
# Error Responses
# =============================================================================

class ErrorResponse(BaseModel):
    """Standard error response."""

    error: str = Field(description="Error type")
    message: str = Field(description="Human-readable error message")
    error_code: str = Field(description="Machine-readable error code")
    timestamp: datetime = Field(default_factory=utc_now)
