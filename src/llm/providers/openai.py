"""OpenAI LLM provider."""

from openai import APIError, AsyncOpenAI, AuthenticationError, RateLimitError

from ..base import LLMAuthError, LLMError, LLMProvider, LLMRateLimitError


def _handle_openai_error(e: Exception):
    if isinstance(e, AuthenticationError):
        raise LLMAuthError(f"OpenAI auth failed: {e}") from e
    if isinstance(e, RateLimitError):
        raise LLMRateLimitError(f"OpenAI rate limit: {e}") from e
    if isinstance(e, APIError):
        raise LLMError(f"OpenAI API error: {e}") from e
    raise LLMError(f"OpenAI error: {e}") from e


class OpenAIProvider(LLMProvider):
    """OpenAI GPT provider."""

    provider_name = "openai"

    def __init__(self, api_key: str | None = None, model: str | None = None, client=None):
        self.model = model or "gpt-4o-mini"
        self.client = client or AsyncOpenAI(api_key=api_key)

    async def generate(
        self,
        messages: list[dict],
        system: str | None = None,
        max_tokens: int = 400,
        temperature: float = 0.9,
    ) -> str:
        full_messages = []
        if system:
            full_messages.append({"role": "system", "content": system})
        full_messages.extend(messages)

        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                max_tokens=max_tokens,
                temperature=temperature,
                messages=full_messages,
            )
        except Exception as e:
            _handle_openai_error(e)

        return (response.choices[0].message.content or "").strip()
