import httpx

from ai.providers.base import AIProvider, AIProviderError


class AnthropicProvider(AIProvider):
    """Anthropic messages API provider."""

    NAME = "anthropic"
    BASE_URL = "https://api.anthropic.com/v1/messages"
    DEFAULT_MODEL = "claude-haiku-4-5-20251001"

    @property
    def _headers(self) -> dict:
        return {
            "x-api-key": self.api_key,
            "anthropic-version": "2023-06-01",
            "content-type": "application/json",
        }

    async def chat(
        self,
        messages: list[dict],
        model: str,
        system: str = "",
        max_tokens: int = 1024,
    ) -> dict:
        payload: dict = {
            "model": model,
            "max_tokens": max_tokens,
            "messages": messages,
        }
        if system:
            payload["system"] = system

        async with self._client() as client:
            try:
                resp = await client.post(self.BASE_URL, headers=self._headers, json=payload)
            except httpx.HTTPError as exc:
                raise AIProviderError(self.NAME, None, str(exc)) from exc
            self._raise_for_status(resp)
            data = resp.json()

        content = ""
        for block in data.get("content", []):
            if block.get("type") == "text":
                content += block["text"]

        usage = data.get("usage", {})
        return {
            "content": content,
            "tokens_in": usage.get("input_tokens", 0),
            "tokens_out": usage.get("output_tokens", 0),
            "model": data.get("model", model),
        }
