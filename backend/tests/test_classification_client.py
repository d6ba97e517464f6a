"""
Tests for ClassificationClient. Every failure falls back to OTHER.
"""

import httpx
import pytest

from compliance_intake.core.models.enums import DocumentCategory
from compliance_intake.core.registry.classification_client import (
    FALLBACK_RESULT,
    ClassificationClient,
)


def client_for(handler):
    return ClassificationClient(base_url="http://classifier", transport=httpx.MockTransport(handler))


async def classify(client):
    return await client.classify(b"%PDF", "doc.pdf", "application/pdf")


class TestClassify:
    @pytest.mark.asyncio
    async def test_known_category(self):
        result = await classify(
            client_for(lambda request: httpx.Response(200, json={"category": "dni", "confidence": 0.91}))
        )
        assert result.category is DocumentCategory.DNI
        assert result.confidence == pytest.approx(0.91)
        assert result.fallback is False

    @pytest.mark.asyncio
    async def test_confidence_is_clamped(self):
        result = await classify(
            client_for(lambda request: httpx.Response(200, json={"category": "PRL", "confidence": 7}))
        )
        assert result.confidence == 1.0

    @pytest.mark.asyncio
    async def test_unknown_category_falls_back(self):
        result = await classify(
            client_for(lambda request: httpx.Response(200, json={"category": "INVOICE", "confidence": 0.99}))
        )
        assert result.category is DocumentCategory.OTHER
        assert result.confidence == 0.0
        assert result.fallback is True


class TestFallback:
    @pytest.mark.asyncio
    async def test_not_configured(self):
        assert await classify(ClassificationClient(base_url="")) is FALLBACK_RESULT

    @pytest.mark.asyncio
    async def test_server_error(self):
        result = await classify(client_for(lambda request: httpx.Response(500)))
        assert result is FALLBACK_RESULT

    @pytest.mark.asyncio
    async def test_malformed_body(self):
        result = await classify(client_for(lambda request: httpx.Response(200, text="<html>")))
        assert result is FALLBACK_RESULT

    @pytest.mark.asyncio
    async def test_non_object_body(self):
        result = await classify(client_for(lambda request: httpx.Response(200, json=["PRL"])))
        assert result is FALLBACK_RESULT

    @pytest.mark.asyncio
    async def test_network_error(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        assert await classify(client_for(handler)) is FALLBACK_RESULT

    @pytest.mark.asyncio
    async def test_invalid_url(self):
        def handler(request):
            raise httpx.InvalidURL("Invalid non-printable ASCII character in URL")

        assert await classify(client_for(handler)) is FALLBACK_RESULT
