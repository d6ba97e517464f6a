# ============================================================================
# backend/compliance_intake/core/registry/classification_client.py
# ============================================================================
# HTTP client for the external document classification service.
#
# Classification is advisory: any failure (service not configured, timeout,
# HTTP error, malformed body, unknown category) yields category OTHER with
# confidence 0.0 and never blocks document registration.
#
# Environment-driven configuration (see settings in config.py):
#   - settings.classification_url (e.g., http://classifier:8000)
#   - settings.classification_timeout (float seconds)
# ============================================================================

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

import httpx

from ...config import settings
from ..models.enums import DocumentCategory

logger = logging.getLogger("compliance.classification")

CLASSIFY_PATH = "/v1/classify"


@dataclass(frozen=True)
class ClassificationResult:
    category: DocumentCategory
    confidence: float
    fallback: bool = False


FALLBACK_RESULT = ClassificationResult(category=DocumentCategory.OTHER, confidence=0.0, fallback=True)


class ClassificationClient:
    """Async client to call the classification service."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = base_url if base_url is not None else settings.classification_url
        self.timeout = timeout or settings.classification_timeout
        self._transport = transport

    async def classify(self, content: bytes, filename: str, mime_type: str) -> ClassificationResult:
        """
        Ask the classifier for the probable category of a file.

        Expected response body: ``{"category": "PRL", "confidence": 0.93}``

        Returns:
            ClassificationResult, the OTHER fallback on any failure
        """
        if not self.base_url:
            logger.debug("Classification service not configured; using fallback category")
            return FALLBACK_RESULT

        try:
            async with httpx.AsyncClient(
                base_url=self.base_url, timeout=self.timeout, transport=self._transport
            ) as client:
                response = await client.post(
                    CLASSIFY_PATH,
                    files={"file": (filename, content, mime_type)},
                    data={"filename": filename, "mime_type": mime_type},
                )
                response.raise_for_status()
                payload = response.json()
        except (httpx.HTTPError, httpx.InvalidURL, ValueError) as e:
            logger.warning(f"Classification failed for {filename}: {e}")
            return FALLBACK_RESULT

        if not isinstance(payload, dict):
            logger.warning(f"Classification returned a non-object body for {filename}")
            return FALLBACK_RESULT

        category = DocumentCategory.coerce(payload.get("category"))
        try:
            confidence = float(payload.get("confidence", 0.0))
        except (TypeError, ValueError):
            confidence = 0.0
        confidence = min(max(confidence, 0.0), 1.0)

        if category is DocumentCategory.OTHER and str(payload.get("category", "")).upper() != "OTHER":
            logger.info(f"Classifier returned unknown category {payload.get('category')!r}; using OTHER")
            return ClassificationResult(category=category, confidence=0.0, fallback=True)

        return ClassificationResult(category=category, confidence=confidence)
