"""Tests for the Gemini provider."""

import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
from google.genai import errors

from willi_core.contracts import ModelProvider
from willi_core.providers import GeminiProvider, ProviderError


def reply(text):
    return SimpleNamespace(candidates=[SimpleNamespace()], text=text)


@pytest.fixture
def client():
    """Stub genai.Client with an async generate_content."""
    client = MagicMock()
    client.aio.models.generate_content = AsyncMock(return_value=reply("Die GPKE regelt Prozesse."))
    client.aio.aclose = AsyncMock()
    return client


class TestGeminiProvider:
    """Test model handles over a stubbed SDK client."""

    def test_is_model_provider(self, client):
        """Satisfies the ModelProvider protocol."""
        assert isinstance(GeminiProvider("key", client=client), ModelProvider)

    def test_default_model(self, client):
        """Falls back to the configured model."""
        provider = GeminiProvider("key", default_model="gemini-2.5-flash", client=client)

        assert provider.get_generative_model().model == "gemini-2.5-flash"
        assert provider.get_generative_model(model="gemini-2.5-pro").model == "gemini-2.5-pro"

    def test_one_client_per_key(self):
        """Each provider builds its own SDK client from its key."""
        free, paid = GeminiProvider("free-key"), GeminiProvider("paid-key")

        assert free.client is not paid.client
        assert free.client is free.client

    @pytest.mark.asyncio
    async def test_generate_content(self, client):
        """Sends model, prompt and merged generation config; returns the text."""
        provider = GeminiProvider("free-key", client=client)
        model = provider.get_generative_model(model="gemini-2.5-flash", generation_config={"temperature": 0.2})

        text = await model.generate_content("Was regelt die GPKE?", max_output_tokens=256)
        await provider.aclose()

        assert text == "Die GPKE regelt Prozesse."
        client.aio.models.generate_content.assert_awaited_once_with(
            model="gemini-2.5-flash",
            contents="Was regelt die GPKE?",
            config={"temperature": 0.2, "max_output_tokens": 256},
        )
        client.aio.aclose.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_api_error(self, client):
        """SDK API errors become ProviderError with the status code."""
        client.aio.models.generate_content.side_effect = errors.ClientError(
            429, {"error": {"code": 429, "message": "Resource has been exhausted", "status": "RESOURCE_EXHAUSTED"}}
        )
        provider = GeminiProvider("key", client=client)

        with pytest.raises(ProviderError, match="exhausted") as exc_info:
            await provider.get_generative_model().generate_content("hi")

        assert exc_info.value.status_code == 429

    @pytest.mark.asyncio
    async def test_transport_error(self, client):
        """Connection failures become ProviderError."""
        client.aio.models.generate_content.side_effect = httpx.ConnectError("refused")
        provider = GeminiProvider("key", client=client)

        with pytest.raises(ProviderError, match="request failed"):
            await provider.get_generative_model().generate_content("hi")

    @pytest.mark.asyncio
    async def test_unreadable_response(self, client):
        """A 2xx body that is not JSON becomes ProviderError."""
        client.aio.models.generate_content.side_effect = json.JSONDecodeError("Expecting value", "<html>", 0)
        provider = GeminiProvider("key", client=client)

        with pytest.raises(ProviderError, match="invalid response"):
            await provider.get_generative_model().generate_content("hi")

    @pytest.mark.asyncio
    async def test_no_candidates(self, client):
        """An empty answer is an error."""
        client.aio.models.generate_content.return_value = SimpleNamespace(candidates=None, text=None)
        provider = GeminiProvider("key", client=client)

        with pytest.raises(ProviderError, match="no candidates"):
            await provider.get_generative_model().generate_content("hi")

    @pytest.mark.asyncio
    async def test_aclose_without_client(self):
        """Closing a provider that never made a call is a no-op."""
        await GeminiProvider(None).aclose()
