"""Process-wide dispatch of completion calls.

The router owns one provider client per backend and one rate limiter per
model, so all concurrently running jobs share the provider ceilings.  When a
call fails with a provider error it walks the tier fallback chain (skipping
backends without credentials) and reports which model actually answered.
"""

from __future__ import annotations

import logging

from agp.errors import ProviderError
from agp.llm.base import Completion, LLMProvider
from agp.llm.catalog import ModelInfo, fallback_chain, get_model
from agp.llm.rate_limit import RateLimiter

logger = logging.getLogger(__name__)


def estimate_tokens(prompt: str, max_tokens: int) -> int:
    """Rough pre-call estimate: ~4 characters per prompt token plus the output cap."""
    return len(prompt) // 4 + max_tokens


class ModelRouter:
    """Resolve model ids to providers, rate-limit, dispatch, fall back."""

    def __init__(
        self,
        providers: dict[str, LLMProvider],
        *,
        enable_fallback: bool = True,
        limiters: dict[str, RateLimiter] | None = None,
    ):
        self._providers = providers
        self._enable_fallback = enable_fallback
        self._limiters: dict[str, RateLimiter] = dict(limiters or {})

    @property
    def providers(self) -> dict[str, LLMProvider]:
        return self._providers

    def has_provider(self, name: str) -> bool:
        return name in self._providers

    def limiter_for(self, info: ModelInfo) -> RateLimiter:
        limiter = self._limiters.get(info.id)
        if limiter is None:
            limiter = RateLimiter(info.rpm, info.tpm, name=info.id)
            self._limiters[info.id] = limiter
        return limiter

    def candidates(self, model_id: str) -> list[ModelInfo]:
        """Models to try, in order, for a request naming ``model_id``."""
        ids = fallback_chain(model_id) if self._enable_fallback else [model_id]
        return [info for info in map(get_model, ids) if self.has_provider(info.provider)]

    async def complete(
        self,
        prompt: str,
        *,
        model: str,
        temperature: float,
        max_tokens: int,
        timeout: float | None = None,
    ) -> Completion:
        last_error: ProviderError | None = None
        for info in self.candidates(model):
            provider = self._providers[info.provider]
            limiter = self.limiter_for(info)
            estimate = estimate_tokens(prompt, max_tokens)
            await limiter.acquire(estimate)
            try:
                completion = await provider.complete(
                    prompt,
                    model=info.api_model,
                    temperature=temperature,
                    max_tokens=max_tokens,
                    timeout=timeout,
                )
            except ProviderError as e:
                last_error = e
                logger.warning("Model %s failed: %s", info.id, e)
                continue
            limiter.report_usage(estimate, completion.usage.total_tokens)
            if info.id != model:
                logger.info("Model %s served request for %s (fallback)", info.id, model)
            # Report the catalog id so billing multipliers resolve
            return completion.model_copy(update={"model": info.id})

        if last_error is None:
            raise ProviderError(get_model(model).provider, model, "no configured provider can serve this model")
        raise last_error


def build_providers(settings) -> dict[str, LLMProvider]:
    """Instantiate one provider per backend that has credentials."""
    from agp.llm.anthropic_provider import AnthropicProvider
    from agp.llm.openai_provider import OpenAIProvider

    providers: dict[str, LLMProvider] = {}
    if settings.openai_api_key:
        providers["openai"] = OpenAIProvider(settings.openai_api_key)
    if settings.anthropic_api_key:
        providers["anthropic"] = AnthropicProvider(settings.anthropic_api_key)
    if settings.deepseek_api_key:
        providers["deepseek"] = OpenAIProvider(
            settings.deepseek_api_key,
            name="deepseek",
            base_url=settings.agp_deepseek_base_url,
            token_param="max_tokens",
        )
    if settings.openrouter_api_key:
        providers["openrouter"] = OpenAIProvider(
            settings.openrouter_api_key,
            name="openrouter",
            base_url=settings.agp_openrouter_base_url,
            token_param="max_tokens",
        )
    return providers
