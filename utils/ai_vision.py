"""Gemini Vision integration for classifying civic issue photos."""
from __future__ import annotations

import json
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional

from google import genai
from google.genai import types

from models import COMPLAINT_PRIORITIES, ISSUE_TYPES
from utils.errors import ExternalServiceUnavailable


class AIVisionError(ExternalServiceUnavailable):
    """Raised when Gemini Vision cannot return a valid result."""


@dataclass(frozen=True)
class VisionResult:
    issue_type: str
    priority: str
    description: str


VISION_PROMPT = (
    "Analyze this civic issue image. "
    "Return a purely JSON object (no markdown) with these fields: "
    f"issueType: one of {list(ISSUE_TYPES)}; "
    f"priority: one of {list(COMPLAINT_PRIORITIES)}; "
    "description: a short 1-sentence technical description of the issue. "
    'Example: {"issueType": "pothole", "priority": "high", '
    '"description": "Large pothole in center of road."}'
)


def _first_json_block(text: str) -> str:
    """Extract the first JSON object block from free-form text."""
    start = text.find("{")
    end = text.rfind("}")
    if start != -1 and end != -1 and end > start:
        return text[start : end + 1]
    return text


def _safe_json_loads(raw_text: str) -> Dict[str, Any]:
    """Parse JSON robustly, tolerating leading/trailing noise or code fences."""
    cleaned = raw_text.strip()
    cleaned = re.sub(r"^```[a-zA-Z0-9_-]*", "", cleaned).strip()
    cleaned = re.sub(r"```$", "", cleaned).strip()
    try:
        payload = json.loads(cleaned)
    except json.JSONDecodeError:
        payload = json.loads(_first_json_block(cleaned))
    if not isinstance(payload, dict):
        raise AIVisionError("Gemini Vision returned a non-object payload")
    return payload


def _normalize_issue_type(value: Any) -> str | None:
    if not value:
        return None
    normalized = re.sub(r"[\s_]+", "-", str(value).strip().lower())
    if normalized in ISSUE_TYPES:
        return normalized
    return None


def _normalize_priority(value: Any) -> str:
    normalized = str(value or "").strip().lower()
    if normalized in COMPLAINT_PRIORITIES:
        return normalized
    return "medium"


def parse_vision_response(raw_text: str) -> VisionResult:
    if not raw_text or not raw_text.strip():
        raise AIVisionError("Gemini Vision returned empty response")
    try:
        payload = _safe_json_loads(raw_text)
    except (json.JSONDecodeError, ValueError) as exc:
        raise AIVisionError("Gemini Vision returned non-JSON output") from exc

    issue_type = _normalize_issue_type(payload.get("issueType") or payload.get("issue_type"))
    if not issue_type:
        raise AIVisionError("Gemini Vision did not return a known issue type")

    description = str(payload.get("description") or "").strip()
    return VisionResult(
        issue_type=issue_type,
        priority=_normalize_priority(payload.get("priority")),
        description=description,
    )


class VisionClassifier(ABC):
    """Image classification capability; ``classify`` returns None when unavailable."""

    @abstractmethod
    def classify(self, image_bytes: bytes, mime_type: str) -> Optional[VisionResult]:
        ...


class DisabledVisionClassifier(VisionClassifier):
    def classify(self, image_bytes: bytes, mime_type: str) -> Optional[VisionResult]:
        return None


class GeminiVisionClassifier(VisionClassifier):
    def __init__(
        self,
        api_key: str,
        model_name: str = "gemini-2.5-flash",
        timeout_seconds: float = 20,
        client=None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.api_key = api_key
        self.model_name = model_name
        self.timeout_seconds = timeout_seconds
        self._client = client
        self.logger = logger or logging.getLogger(__name__)

    def _get_client(self):
        if self._client is None:
            self._client = genai.Client(
                api_key=self.api_key,
                http_options=types.HttpOptions(timeout=int(self.timeout_seconds * 1000)),
            )
        return self._client

    def analyze(self, image_bytes: bytes, mime_type: str) -> VisionResult:
        if not self.api_key:
            raise AIVisionError("GEMINI_API_KEY is not configured")

        self.logger.info("Dispatching Gemini Vision analysis", extra={"model": self.model_name})
        try:
            response = self._get_client().models.generate_content(
                model=self.model_name,
                contents=[
                    types.Part.from_bytes(data=image_bytes, mime_type=mime_type),
                    types.Part.from_text(text=VISION_PROMPT),
                ],
                config=types.GenerateContentConfig(response_mime_type="application/json"),
            )
            # Blocked or malformed candidates raise when .text is read.
            raw_text = response.text or ""
        except Exception as exc:
            raise AIVisionError("Gemini Vision request failed") from exc

        return parse_vision_response(raw_text)

    def classify(self, image_bytes: bytes, mime_type: str) -> Optional[VisionResult]:
        if not self.api_key:
            self.logger.info("No GEMINI_API_KEY configured; skipping image analysis")
            return None
        try:
            return self.analyze(image_bytes, mime_type)
        except AIVisionError as exc:
            self.logger.warning("AI analysis failed", extra={"error": str(exc)}, exc_info=exc.__cause__ is not None)
            return None


def build_vision_classifier(config, logger: logging.Logger | None = None) -> VisionClassifier:
    api_key = config.get("GEMINI_API_KEY") or ""
    if not api_key:
        return DisabledVisionClassifier()
    return GeminiVisionClassifier(
        api_key=api_key,
        model_name=config.get("GEMINI_VISION_MODEL", "gemini-2.5-flash"),
        timeout_seconds=float(config.get("VISION_TIMEOUT_SECONDS", 20)),
        logger=logger,
    )
