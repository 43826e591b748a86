"""
Gemini Provider - ModelProvider backed by the google-genai SDK.

One provider per API key, each with its own genai.Client. The key manager
asks a provider for model handles; the handles share that client.

Example:
    free = GeminiProvider(config.free_api_key, config.default_model)
    model = free.get_generative_model(model="gemini-2.5-flash")
    text = await model.generate_content("Was regelt die GPKE?")
    await free.aclose()
"""

from typing import Any

import httpx
import structlog
from google import genai
from google.genai import errors, types

__all__ = ["GeminiModel", "GeminiProvider", "ProviderError"]

logger = structlog.get_logger(__name__)


class ProviderError(Exception):
    """Raised when the provider rejects a request or returns no content."""

    def __init__(self, model: str, message: str, status_code: int | None = None):
        self.model = model
        self.status_code = status_code
        super().__init__(f"{model}: {message}")


class GeminiModel:
    """Handle for one model, bound to the provider's key."""

    def __init__(self, client: genai.Client, model: str, generation_config: dict[str, Any] | None = None):
        self._client = client
        self.model = model
        self.generation_config = generation_config or {}

    async def generate_content(self, prompt: str, **generation_config: Any) -> str:
        """Generate a completion and return its text.

        Raises:
            ProviderError: API error, transport failure, unreadable response
                or empty candidates
        """
        merged = {**self.generation_config, **generation_config}

        try:
            response = await self._client.aio.models.generate_content(
                model=self.model,
                contents=prompt,
                config=merged or None,
            )
        except errors.APIError as e:
            logger.warning("provider_request_failed", model=self.model, status=e.code)
            raise ProviderError(self.model, e.message or str(e), status_code=e.code) from e
        except httpx.HTTPError as e:
            raise ProviderError(self.model, f"request failed: {e}") from e
        except ValueError as e:
            # Non-JSON or malformed body on a 2xx response
            raise ProviderError(self.model, f"invalid response: {e}") from e

        if not response.candidates:
            raise ProviderError(self.model, "no candidates returned")
        return response.text or ""


class GeminiProvider:
    """Implements ModelProvider for one Gemini API key.

    The SDK client is created on first use, so a provider without a key can
    exist (the key manager degrades around it) until it is actually called.

    Args:
        api_key: Gemini API key for this tier
        default_model: Model used when get_generative_model() gets none
        timeout: Request timeout in seconds
        client: Prebuilt genai.Client (tests pass a stub)
    """

    def __init__(
        self,
        api_key: str | None,
        default_model: str = "gemini-2.5-flash",
        timeout: float = 60.0,
        client: genai.Client | None = None,
    ) -> None:
        if not api_key and client is None:
            logger.warning("provider_without_api_key", default_model=default_model)
        self.default_model = default_model
        self._api_key = api_key
        self._timeout = timeout
        self._client = client

    @property
    def client(self) -> genai.Client:
        if self._client is None:
            try:
                self._client = genai.Client(
                    api_key=self._api_key,
                    http_options=types.HttpOptions(timeout=int(self._timeout * 1000)),
                )
            except ValueError as e:
                raise ProviderError(self.default_model, f"cannot create client: {e}") from e
        return self._client

    def get_generative_model(self, **options: Any) -> GeminiModel:
        model = options.pop("model", None) or self.default_model
        return GeminiModel(self.client, model, options.pop("generation_config", None))

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aio.aclose()
