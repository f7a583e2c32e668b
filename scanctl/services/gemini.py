"""
Gemini client over the Generative Language REST API.
"""

import logging
import time
from typing import Any, Dict, Optional

import httpx

from ..collaborators import AnalysisService
from ..errors import AnalysisServiceError, QuotaExceededError
from ..logging_config import get_api_logger

logger = logging.getLogger(__name__)

GEMINI_API_URL = "https://generativelanguage.googleapis.com/v1beta"
DEFAULT_MODEL = "gemini-2.0-flash"
DEFAULT_TIMEOUT_SECONDS = 120.0

GENERATION_CONFIG = {
    "temperature": 0.2,
    "maxOutputTokens": 8192,
}


def _retry_after(response: httpx.Response) -> Optional[float]:
    value = response.headers.get("retry-after")
    if not value:
        return None
    try:
        return float(value)
    except ValueError:
        return None


def extract_text(data: Dict[str, Any]) -> str:
    """Pull the first candidate's text out of a generateContent response.

    Raises:
        AnalysisServiceError: If the response carries no text
    """
    try:
        return data["candidates"][0]["content"]["parts"][0]["text"]
    except (KeyError, IndexError, TypeError):
        reason = None
        if isinstance(data, dict):
            feedback = data.get("promptFeedback") or {}
            reason = feedback.get("blockReason")
        raise AnalysisServiceError(
            f"Gemini response contained no text{f' (blocked: {reason})' if reason else ''}"
        ) from None


class GeminiAnalysisService(AnalysisService):
    """Sends prompts to a Gemini model and returns the raw text answer."""

    def __init__(self, api_key: str, model: str = DEFAULT_MODEL,
                 client: Optional[httpx.AsyncClient] = None,
                 api_url: str = GEMINI_API_URL,
                 timeout: float = DEFAULT_TIMEOUT_SECONDS):
        if not api_key:
            raise ValueError("A Gemini API key is required")
        self.api_key = api_key
        self.model = model
        self.api_url = api_url.rstrip('/')
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=httpx.Timeout(timeout))
        self.api_logger = get_api_logger()

    @property
    def endpoint(self) -> str:
        return f"{self.api_url}/models/{self.model}:generateContent"

    async def submit(self, prompt: str) -> str:
        body = {
            "contents": [{"parts": [{"text": prompt}]}],
            "generationConfig": dict(GENERATION_CONFIG),
        }
        headers = {"Content-Type": "application/json", "x-goog-api-key": self.api_key}

        start_time = time.time()
        try:
            response = await self._client.post(self.endpoint, json=body, headers=headers)
        except httpx.HTTPError as e:
            raise AnalysisServiceError(f"Gemini request failed: {e}") from e

        self.api_logger.debug("Gemini response received",
                              model=self.model,
                              status_code=response.status_code,
                              prompt_chars=len(prompt),
                              execution_time_seconds=time.time() - start_time)

        if response.status_code == 429 or (
                response.status_code != 200 and "RESOURCE_EXHAUSTED" in response.text):
            raise QuotaExceededError(
                f"Gemini quota exceeded (429): {response.text[:200]}",
                retry_after=_retry_after(response),
            )
        if response.status_code != 200:
            raise AnalysisServiceError(
                f"Gemini API error {response.status_code}: {response.text[:200]}"
            )

        try:
            data = response.json()
        except ValueError as e:
            raise AnalysisServiceError(f"Gemini returned invalid JSON: {e}") from e
        return extract_text(data)

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()
