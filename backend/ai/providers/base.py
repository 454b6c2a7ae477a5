from abc import ABC, abstractmethod

import httpx

from config import settings


class AIProviderError(RuntimeError):
    """Raised when a provider call fails or returns a non-success status."""

    def __init__(self, provider: str, status_code: int | None, detail: str):
        self.provider = provider
        self.status_code = status_code
        self.detail = detail
        super().__init__(f"{provider} API error ({status_code}): {detail}")


class AIProvider(ABC):
    """Abstract base class for all AI providers."""

    NAME = "base"
    DEFAULT_MODEL = ""

    def __init__(
        self,
        api_key: str,
        model: str | None = None,
        timeout_s: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_key = api_key
        self._model = model
        self.timeout_s = timeout_s if timeout_s is not None else settings.AI_REQUEST_TIMEOUT_SECONDS
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout_s, transport=self._transport)

    def _raise_for_status(self, resp: httpx.Response) -> None:
        if resp.status_code != 200:
            raise AIProviderError(self.NAME, resp.status_code, resp.text[:500])

    @abstractmethod
    async def chat(
        self,
        messages: list[dict],
        model: str,
        system: str = "",
        max_tokens: int = 1024,
    ) -> dict:
        """Send a non-streaming chat request to the provider.

        Args:
            messages: List of message dicts with role and content.
            model: Model identifier to use.
            system: Optional system prompt.
            max_tokens: Upper bound on generated tokens.

        Returns:
            dict with content, tokens_in, tokens_out, model.
        """
        ...

    async def complete(self, prompt: str, system: str = "") -> str:
        """Single-turn text completion using the provider's default model."""
        result = await self.chat(
            [{"role": "user", "content": prompt}],
            model=self.get_model(),
            system=system,
        )
        return str(result.get("content") or "")

    def get_model(self) -> str:
        return self._model or self.DEFAULT_MODEL
