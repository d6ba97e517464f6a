# ============================================================================
# backend/compliance_intake/core/fulfillment/portal_client.py
# ============================================================================
# Uploader interface for the external compliance portals, plus the HTTP
# client that drives a per-platform automation endpoint.
#
# The portals have no public API. Where an automation endpoint exists (a
# browser-automation worker that logs in with the vaulted credential) the
# batch processor can hand documents to it; without one, the upload stays
# manual and the operator updates the queue entry by hand.
#
# Environment-driven configuration (see settings in config.py):
#   - settings.portal_endpoints ({"nalanda": "http://automation:8011", ...})
#   - settings.portal_timeout (float seconds, per attempt)
#   - settings.portal_max_retries (int, retries after the first attempt)
#   - settings.portal_backoff_base / settings.portal_backoff_cap (seconds)
# ============================================================================

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, Optional

import httpx

from ...config import settings
from ..errors import PlatformUploadFailure, PlatformUploadTimeout
from ..models.enums import Platform
from ..vault.credential_vault import PlatformSecret

logger = logging.getLogger("compliance.portal")

UPLOAD_PATH = "/v1/uploads"


@dataclass(frozen=True)
class UploadReceipt:
    """Successful portal upload."""
    platform: Platform
    reference: Optional[str]
    attempts: int

    @property
    def retries(self) -> int:
        return max(0, self.attempts - 1)


class PortalUploader(ABC):
    """Anything that can place a document on an external portal."""

    @abstractmethod
    async def upload(
        self,
        platform: Platform,
        credential: PlatformSecret,
        filename: str,
        content: bytes,
        mime_type: str,
    ) -> UploadReceipt:
        """
        Upload one document.

        Raises:
            PlatformUploadTimeout: If every attempt timed out
            PlatformUploadFailure: If the portal rejected or failed the upload
        """


class HttpPortalClient(PortalUploader):
    """Async client for the portal automation endpoints, with retry and backoff."""

    def __init__(
        self,
        endpoints: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None,
        max_retries: Optional[int] = None,
        backoff_base: Optional[float] = None,
        backoff_cap: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.endpoints = endpoints if endpoints is not None else dict(settings.portal_endpoints)
        self.timeout = timeout or settings.portal_timeout
        self.max_retries = max_retries if max_retries is not None else settings.portal_max_retries
        self.backoff_base = backoff_base if backoff_base is not None else settings.portal_backoff_base
        self.backoff_cap = backoff_cap if backoff_cap is not None else settings.portal_backoff_cap
        self._transport = transport

    async def _post(
        self,
        base_url: str,
        platform: Platform,
        credential: PlatformSecret,
        filename: str,
        content: bytes,
        mime_type: str,
    ) -> httpx.Response:
        async with httpx.AsyncClient(
            base_url=base_url, timeout=self.timeout, transport=self._transport
        ) as client:
            return await client.post(
                UPLOAD_PATH,
                data={
                    "platform": platform.value,
                    "username": credential.username,
                    "password": credential.password,
                },
                files={"file": (filename, content, mime_type)},
            )

    async def upload(
        self,
        platform: Platform,
        credential: PlatformSecret,
        filename: str,
        content: bytes,
        mime_type: str,
    ) -> UploadReceipt:
        platform = Platform(platform)
        base_url = self.endpoints.get(platform.value)
        if not base_url:
            raise PlatformUploadFailure(
                f"No automation endpoint configured for {platform.value}; upload must be done manually",
                attempts=0,
            )

        retries = max(0, int(self.max_retries))
        attempt = 0
        last_error: Optional[BaseException] = None

        while attempt <= retries:
            try:
                response = await self._post(base_url, platform, credential, filename, content, mime_type)

                if response.status_code >= 500:
                    response.raise_for_status()
                if response.status_code >= 400:
                    # Rejections (bad credential, refused document) are not retried
                    raise PlatformUploadFailure(
                        f"{platform.value} rejected {filename}: HTTP {response.status_code} {response.text[:500]}",
                        attempts=attempt + 1,
                        upstream_status=response.status_code,
                    )

                try:
                    body = response.json()
                except ValueError:
                    body = {}
                reference = body.get("reference") if isinstance(body, dict) else None
                logger.info(f"Uploaded {filename} to {platform.value} (attempt {attempt + 1})")
                return UploadReceipt(platform=platform, reference=reference, attempts=attempt + 1)

            except (httpx.RequestError, httpx.HTTPStatusError) as e:
                last_error = e
                if attempt >= retries:
                    break
                # Exponential backoff
                sleep_for = min(2 ** attempt * self.backoff_base, self.backoff_cap)
                logger.warning(
                    f"Portal upload to {platform.value} failed (attempt {attempt + 1}/{retries + 1}), "
                    f"retrying in {sleep_for}s: {e}"
                )
                await asyncio.sleep(sleep_for)
                attempt += 1

        message = f"Upload of {filename} to {platform.value} failed after {retries + 1} attempt(s): {last_error!s}"
        if isinstance(last_error, httpx.TimeoutException):
            raise PlatformUploadTimeout(message, attempts=retries + 1)
        raise PlatformUploadFailure(message, attempts=retries + 1)
