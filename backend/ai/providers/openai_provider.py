import httpx

from ai.providers.base import AIProvider, AIProviderError


class OpenAIProvider(AIProvider):
    """OpenAI chat completions provider."""

    NAME = "openai"
    BASE_URL = "https://api.openai.com/v1/chat/completions"
    DEFAULT_MODEL = "gpt-4o-mini"

    @property
    def _headers(self) -> dict:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    async def chat(
        self,
        messages: list[dict],
        model: str,
        system: str = "",
        max_tokens: int = 1024,
    ) -> dict:
        full_messages = list(messages)
        if system:
            full_messages = [{"role": "system", "content": system}] + full_messages
        payload: dict = {
            "model": model,
            "messages": full_messages,
            "max_completion_tokens": max_tokens,
        }

        async with self._client() as client:
            try:
                resp = await client.post(self.BASE_URL, headers=self._headers, json=payload)
            except httpx.HTTPError as exc:
                raise AIProviderError(self.NAME, None, str(exc)) from exc
            self._raise_for_status(resp)
            data = resp.json()

        choice = (data.get("choices") or [{}])[0]
        content = choice.get("message", {}).get("content") or ""
        usage = data.get("usage", {})
        return {
            "content": content,
            "tokens_in": usage.get("prompt_tokens", 0),
            "tokens_out": usage.get("completion_tokens", 0),
            "model": data.get("model", model),
        }
