"""
Result parser for MediScan AI.

Turns the raw text completion returned by the model into a structured
AnalysisResult. The model is asked for JSON but is not guaranteed to
return it, so parsing degrades to a fallback record instead of failing.
"""

import json
import math
import re
from typing import Any, List, Optional

from mediscan.models.schemas import (
    AnalysisResult,
    RiskLevel,
    DEFAULT_CONFIDENCE_SCORE,
    DEFAULT_RECOMMENDATION,
)
from mediscan.utils.logger import get_logger

logger = get_logger("result_parser")

# Greedy: first "{" through last "}"
JSON_OBJECT_PATTERN = re.compile(r"\{.*\}", re.DOTALL)


def fallback_result(raw_text: str) -> AnalysisResult:
    """Fallback record used when no usable JSON object is found."""
    return AnalysisResult(
        detected_conditions=[],
        confidence_score=DEFAULT_CONFIDENCE_SCORE,
        risk_level=RiskLevel.MODERATE,
        analysis=raw_text,
        recommendations=[DEFAULT_RECOMMENDATION],
    )


def parse_analysis(raw_text: Optional[str]) -> AnalysisResult:
    """
    Parse a model completion into an AnalysisResult.

    Never raises. Fields present in the embedded JSON object are adopted;
    missing or ill-typed fields fall back one by one.

    Args:
        raw_text: Raw completion text

    Returns:
        AnalysisResult with all fields populated
    """
    text = raw_text if isinstance(raw_text, str) else ""

    match = JSON_OBJECT_PATTERN.search(text)
    if not match:
        logger.warning("No JSON object in completion, using fallback", length=len(text))
        return fallback_result(text)

    try:
        payload = json.loads(match.group(0))
    except (ValueError, RecursionError) as e:
        # ValueError also covers integer literals past the int digit limit
        logger.warning("Completion JSON could not be parsed, using fallback", error=str(e))
        return fallback_result(text)

    if not isinstance(payload, dict):
        logger.warning("Completion JSON is not an object, using fallback")
        return fallback_result(text)

    return AnalysisResult(
        detected_conditions=_string_list(payload.get("detectedConditions"), []),
        confidence_score=_confidence(payload.get("confidenceScore")),
        risk_level=_risk_level(payload.get("riskLevel")),
        analysis=_narrative(payload.get("analysis"), text),
        recommendations=_string_list(
            payload.get("recommendations"),
            [DEFAULT_RECOMMENDATION]
        ),
    )


def _string_list(value: Any, default: List[str]) -> List[str]:
    if value is None:
        return list(default)
    if isinstance(value, str):
        return [value] if value.strip() else list(default)
    if isinstance(value, list):
        return [item if isinstance(item, str) else json.dumps(item) for item in value]
    return list(default)


def _confidence(value: Any) -> float:
    # bool is an int subclass; true/false is not a score
    if value is None or isinstance(value, bool):
        return DEFAULT_CONFIDENCE_SCORE

    if isinstance(value, str):
        value = value.strip().rstrip("%")

    try:
        score = float(value)
    except OverflowError:
        # int too large for a float
        return 100.0 if value > 0 else 0.0
    except (TypeError, ValueError):
        return DEFAULT_CONFIDENCE_SCORE

    if math.isnan(score):
        return DEFAULT_CONFIDENCE_SCORE

    return max(0.0, min(100.0, score))


def _risk_level(value: Any) -> RiskLevel:
    if value is None:
        return RiskLevel.MODERATE
    if not isinstance(value, str):
        return RiskLevel.UNKNOWN
    try:
        return RiskLevel(value.strip().lower())
    except ValueError:
        return RiskLevel.UNKNOWN


def _narrative(value: Any, raw_text: str) -> str:
    if isinstance(value, str) and value:
        return value
    return raw_text
