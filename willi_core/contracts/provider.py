"""
Model Provider Protocol - Contract for generative model factories.

The key manager holds one provider per tier (free, paid) and treats each as
an opaque factory: it never inspects the returned handle.
"""

from typing import Any, Protocol, runtime_checkable

__all__ = ["ModelProvider"]


@runtime_checkable
class ModelProvider(Protocol):
    """Factory for provider-bound model handles.

    Example:
        class GeminiProvider:
            def get_generative_model(self, **options) -> GeminiModel:
                return GeminiModel(self._client, options.get("model", "gemini-2.5-flash"))
    """

    def get_generative_model(self, **options: Any) -> Any:
        """Return a handle bound to this provider's credentials."""
        ...
