import httpx

from ai.providers.base import AIProvider, AIProviderError


class GoogleProvider(AIProvider):
    """Google Gemini AI provider."""

    NAME = "google"
    BASE_URL = "https://generativelanguage.googleapis.com/v1beta/models"
    DEFAULT_MODEL = "gemini-2.0-flash"

    def _endpoint(self, model: str) -> str:
        return f"{self.BASE_URL}/{model}:generateContent"

    @staticmethod
    def _convert_messages(messages: list[dict]) -> list[dict]:
        """Convert OpenAI-style messages to Gemini format."""
        contents = []
        for msg in messages:
            # Gemini uses "user" and "model" roles
            role = "model" if msg["role"] == "assistant" else "user"
            contents.append({
                "role": role,
                "parts": [{"text": str(msg.get("content", ""))}],
            })
        return contents

    async def chat(
        self,
        messages: list[dict],
        model: str,
        system: str = "",
        max_tokens: int = 1024,
    ) -> dict:
        payload: dict = {
            "contents": self._convert_messages(messages),
            "generationConfig": {"maxOutputTokens": max_tokens},
        }
        if system:
            payload["system_instruction"] = {"parts": [{"text": system}]}

        async with self._client() as client:
            try:
                resp = await client.post(
                    self._endpoint(model),
                    params={"key": self.api_key},
                    headers={"Content-Type": "application/json"},
                    json=payload,
                )
            except httpx.HTTPError as exc:
                raise AIProviderError(self.NAME, None, str(exc)) from exc
            self._raise_for_status(resp)
            data = resp.json()

        content = ""
        candidates = data.get("candidates", [])
        if candidates:
            for part in candidates[0].get("content", {}).get("parts", []):
                content += part.get("text", "")

        usage = data.get("usageMetadata", {})
        return {
            "content": content,
            "tokens_in": usage.get("promptTokenCount", 0),
            "tokens_out": usage.get("candidatesTokenCount", 0),
            "model": model,
        }
