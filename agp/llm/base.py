"""Abstract AI completion protocol."""

from typing import Protocol

from pydantic import BaseModel


class TokenUsage(BaseModel):
    prompt_tokens: int = 0
    completion_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens

    def __add__(self, other: "TokenUsage") -> "TokenUsage":
        return TokenUsage(
            prompt_tokens=self.prompt_tokens + other.prompt_tokens,
            completion_tokens=self.completion_tokens + other.completion_tokens,
        )


class Completion(BaseModel):
    """Text returned by a provider plus the usage it reported."""

    content: str
    usage: TokenUsage = TokenUsage()
    model: str = ""
    provider: str = ""


class LLMProvider(Protocol):
    """Protocol for completion backends (OpenAI-compatible, Anthropic)."""

    name: str

    async def complete(
        self,
        prompt: str,
        *,
        model: str,
        temperature: float,
        max_tokens: int,
        timeout: float | None = None,
    ) -> Completion:
        """Return the completion; raise ProviderError on any failure."""
        ...
