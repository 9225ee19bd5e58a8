"""Anthropic messages API."""

from anthropic import (
    APIConnectionError,
    APIError,
    APIStatusError,
    APITimeoutError,
    AsyncAnthropic,
    RateLimitError,
)

from agp.errors import ProviderError
from agp.llm.base import Completion, TokenUsage


class AnthropicProvider:
    """Async Anthropic completion."""

    def __init__(self, api_key: str | None = None, *, name: str = "anthropic"):
        self.name = name
        self._client = AsyncAnthropic(api_key=api_key)

    async def complete(
        self,
        prompt: str,
        *,
        model: str,
        temperature: float,
        max_tokens: int,
        timeout: float | None = None,
    ) -> Completion:
        try:
            response = await self._client.messages.create(
                model=model,
                max_tokens=max_tokens,
                temperature=temperature,
                messages=[{"role": "user", "content": prompt}],
                timeout=timeout,
            )
        except RateLimitError as e:
            raise ProviderError(self.name, model, f"rate limited: {e}", retryable=True) from e
        except (APITimeoutError, APIConnectionError) as e:
            raise ProviderError(self.name, model, f"connection error: {e}", retryable=True) from e
        except APIStatusError as e:
            raise ProviderError(
                self.name, model, f"status {e.status_code}: {e.message}",
                retryable=e.status_code >= 500,
            ) from e
        except APIError as e:
            raise ProviderError(self.name, model, str(e)) from e

        text = "".join(
            block.text for block in response.content if getattr(block, "type", "") == "text"
        )
        if not text.strip():
            raise ProviderError(self.name, model, "empty completion")
        return Completion(
            content=text,
            usage=TokenUsage(
                prompt_tokens=response.usage.input_tokens,
                completion_tokens=response.usage.output_tokens,
            ),
            model=response.model or model,
            provider=self.name,
        )
