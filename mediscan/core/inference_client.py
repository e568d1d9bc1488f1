"""
Inference client for MediScan AI.

Sends a medical image to a hosted, OpenAI-compatible chat completion
endpoint and returns the raw completion text. One request per call,
no retries.
"""

import asyncio
from typing import Any, Dict, Optional

import aiohttp

from mediscan.config import settings
from mediscan.utils.logger import get_logger

logger = get_logger("inference_client")


SYSTEM_INSTRUCTION = """You are a medical imaging AI assistant specializing in cancer detection. Analyze medical images and provide:
1. Detected abnormalities or concerning areas
2. Confidence score (0-100)
3. Brief description of findings
4. Risk level: low, moderate, or high
5. Recommendations

IMPORTANT: You are an AI assistant, not a replacement for professional medical diagnosis. Always recommend consulting with healthcare professionals.

Respond in JSON format:
{
  "detectedConditions": ["list of findings"],
  "confidenceScore": 85,
  "riskLevel": "moderate",
  "analysis": "detailed description",
  "recommendations": ["list of recommendations"]
}"""

USER_INSTRUCTION = (
    "Please analyze this medical imaging scan for potential cancer "
    "indicators or abnormalities."
)


class InferenceError(Exception):
    """Base class for inference endpoint failures."""

    def __init__(self, message: str, error_code: str = "INFERENCE_FAILED"):
        self.message = message
        self.error_code = error_code
        super().__init__(self.message)


class InferenceRateLimited(InferenceError):
    """The endpoint answered 429."""

    def __init__(self, message: str = "Rate limit exceeded. Please try again later."):
        super().__init__(message, error_code="RATE_LIMITED")


class InferenceQuotaExceeded(InferenceError):
    """The endpoint answered 402."""

    def __init__(self, message: str = "Payment required. Please add credits to your workspace."):
        super().__init__(message, error_code="QUOTA_EXCEEDED")


class InferenceFailure(InferenceError):
    """Any other non-success outcome, including timeouts."""


def error_for_status(status: int, error_text: str) -> InferenceError:
    """Map a non-success HTTP status to the matching inference error."""
    if status == 429:
        return InferenceRateLimited()
    if status == 402:
        return InferenceQuotaExceeded()
    return InferenceFailure(f"AI analysis failed: {error_text}")


def build_payload(
    image_base64: str,
    model: str,
    temperature: float
) -> Dict[str, Any]:
    """Build the chat completion request body."""
    return {
        "model": model,
        "messages": [
            {"role": "system", "content": SYSTEM_INSTRUCTION},
            {
                "role": "user",
                "content": [
                    {"type": "text", "text": USER_INSTRUCTION},
                    {
                        "type": "image_url",
                        "image_url": {
                            "url": f"data:image/jpeg;base64,{image_base64}"
                        }
                    }
                ]
            }
        ],
        "temperature": temperature,
    }


def extract_completion(body: Any) -> str:
    """Pull choices[0].message.content out of a response body."""
    try:
        content = body["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError):
        return "{}"
    return content if isinstance(content, str) and content else "{}"


class InferenceClient:
    """
    Client for the hosted multimodal completion endpoint.

    A fresh aiohttp session is opened per call; uploads are independent
    and share no connection state.
    """

    def __init__(
        self,
        url: Optional[str] = None,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        timeout_seconds: Optional[float] = None
    ):
        self.url = url or settings.ai_gateway_url
        self.api_key = api_key if api_key is not None else settings.ai_gateway_api_key
        self.model = model or settings.ai_model
        self.temperature = settings.ai_temperature if temperature is None else temperature
        self.timeout_seconds = timeout_seconds or settings.inference_timeout_seconds

    async def complete(self, image_base64: str) -> str:
        """
        Request an analysis of a base64-encoded image.

        Args:
            image_base64: Base64 image payload (no data URI prefix)

        Returns:
            Raw completion text

        Raises:
            InferenceRateLimited: Endpoint answered 429
            InferenceQuotaExceeded: Endpoint answered 402
            InferenceFailure: Any other failure, including timeouts
        """
        if not self.api_key:
            raise InferenceFailure(
                "AI gateway API key is not configured",
                error_code="INFERENCE_NOT_CONFIGURED"
            )

        payload = build_payload(image_base64, self.model, self.temperature)
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        timeout = aiohttp.ClientTimeout(total=self.timeout_seconds)

        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.post(self.url, json=payload, headers=headers) as response:
                    if response.status < 200 or response.status >= 300:
                        error_text = await response.text()
                        logger.error(
                            "AI gateway error",
                            status_code=response.status,
                            error=error_text[:500]
                        )
                        raise error_for_status(response.status, error_text)

                    body = await response.json(content_type=None)

        except asyncio.TimeoutError:
            logger.error("AI gateway timeout", timeout_seconds=self.timeout_seconds)
            raise InferenceFailure(
                f"AI analysis timed out after {self.timeout_seconds:g}s"
            )
        except aiohttp.ClientError as e:
            logger.error("AI gateway request failed", error=str(e))
            raise InferenceFailure(f"AI analysis failed: {e}")
        except ValueError as e:
            logger.error("AI gateway returned invalid JSON", error=str(e))
            raise InferenceFailure("AI analysis failed: invalid response body")

        completion = extract_completion(body)
        logger.info("AI completion received", model=self.model, length=len(completion))
        return completion

