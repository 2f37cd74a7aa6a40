"""Claude (Anthropic) LLM provider."""

from anthropic import APIError, AsyncAnthropic, AuthenticationError, RateLimitError

from ..base import LLMAuthError, LLMError, LLMProvider, LLMRateLimitError


class ClaudeProvider(LLMProvider):
    """Anthropic Claude provider."""

    provider_name = "claude"

    def __init__(self, api_key: str | None = None, model: str | None = None, client=None):
        self.model = model or "claude-sonnet-4-20250514"
        self.client = client or AsyncAnthropic(api_key=api_key)

    def _handle_error(self, e: Exception):
        if isinstance(e, AuthenticationError):
            raise LLMAuthError(f"Claude auth failed: {e}") from e
        if isinstance(e, RateLimitError):
            raise LLMRateLimitError(f"Claude rate limit: {e}") from e
        if isinstance(e, APIError):
            raise LLMError(f"Claude API error: {e}") from e
        raise LLMError(f"Claude error: {e}") from e

    async def generate(
        self,
        messages: list[dict],
        system: str | None = None,
        max_tokens: int = 400,
        temperature: float = 0.9,
    ) -> str:
        kwargs = {
            "model": self.model,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "messages": messages,
        }
        if system:
            kwargs["system"] = system

        try:
            response = await self.client.messages.create(**kwargs)
        except Exception as e:
            self._handle_error(e)

        text_parts = [block.text for block in response.content if getattr(block, "type", "text") == "text"]
        return "".join(text_parts).strip()
