"""AI completion layer — providers behind a common protocol, one shared router."""

from agp.llm.anthropic_provider import AnthropicProvider
from agp.llm.base import Completion, LLMProvider, TokenUsage
from agp.llm.openai_provider import OpenAIProvider
from agp.llm.router import ModelRouter, build_providers

_router: ModelRouter | None = None


def get_router() -> ModelRouter:
    """Return the process-wide router built from settings."""
    global _router
    if _router is not None:
        return _router
    from agp.config import get_settings

    settings = get_settings()
    _router = ModelRouter(build_providers(settings), enable_fallback=settings.agp_enable_fallback)
    return _router


__all__ = [
    "AnthropicProvider",
    "Completion",
    "LLMProvider",
    "ModelRouter",
    "OpenAIProvider",
    "TokenUsage",
    "build_providers",
    "get_router",
]
