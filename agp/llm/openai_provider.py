"""OpenAI chat completions (also DeepSeek and OpenRouter via base_url)."""

from openai import (
    APIConnectionError,
    APIError,
    APIStatusError,
    APITimeoutError,
    AsyncOpenAI,
    RateLimitError,
)

from agp.errors import ProviderError
from agp.llm.base import Completion, TokenUsage


class OpenAIProvider:
    """Async chat completion against an OpenAI-compatible endpoint."""

    def __init__(
        self,
        api_key: str | None = None,
        *,
        name: str = "openai",
        base_url: str | None = None,
        token_param: str = "max_completion_tokens",
    ):
        self.name = name
        self._client = AsyncOpenAI(api_key=api_key, base_url=base_url)
        # DeepSeek and OpenRouter still expect max_tokens
        self._token_param = token_param

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
            response = await self._client.chat.completions.create(
                model=model,
                messages=[{"role": "user", "content": prompt}],
                temperature=temperature,
                timeout=timeout,
                **{self._token_param: max_tokens},
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

        if not response.choices:
            raise ProviderError(self.name, model, "response has no choices")
        content = response.choices[0].message.content or ""
        if not content.strip():
            raise ProviderError(self.name, model, "empty completion")

        usage = TokenUsage()
        if response.usage is not None:
            usage = TokenUsage(
                prompt_tokens=response.usage.prompt_tokens or 0,
                completion_tokens=response.usage.completion_tokens or 0,
            )
        return Completion(
            content=content,
            usage=usage,
            model=response.model or model,
            provider=self.name,
        )
