"""Model catalog — provider routing, rate ceilings and fallback chains."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel


class ModelTier(str, Enum):
    COMPLEX = "complex"   # research, strategy
    SIMPLE = "simple"     # outline, writing, conclusion, meta


class ModelInfo(BaseModel):
    """One entry of the catalog.

    ``id`` is what settings and agent inputs refer to; ``api_model`` is the
    name the provider expects on the wire.
    """

    id: str
    provider: str                    # openai | anthropic | deepseek | openrouter
    api_model: str
    tier: ModelTier
    rpm: int = 60                    # requests per minute
    tpm: int = 200_000               # tokens per minute
    is_free: bool = False
    billing_multiplier: float = 1.0


_MODELS: list[ModelInfo] = [
    ModelInfo(id="deepseek-reasoner", provider="deepseek", api_model="deepseek-reasoner",
              tier=ModelTier.COMPLEX, rpm=60, tpm=1_000_000, billing_multiplier=1.5),
    ModelInfo(id="deepseek-chat", provider="deepseek", api_model="deepseek-chat",
              tier=ModelTier.SIMPLE, rpm=60, tpm=1_000_000),
    ModelInfo(id="gpt-5", provider="openai", api_model="gpt-5",
              tier=ModelTier.COMPLEX, rpm=500, tpm=500_000, billing_multiplier=3.0),
    ModelInfo(id="gpt-4o", provider="openai", api_model="gpt-4o",
              tier=ModelTier.COMPLEX, rpm=500, tpm=300_000, billing_multiplier=2.5),
    ModelInfo(id="gpt-5-mini", provider="openai", api_model="gpt-5-mini",
              tier=ModelTier.SIMPLE, rpm=500, tpm=500_000, billing_multiplier=1.2),
    ModelInfo(id="gpt-4o-mini", provider="openai", api_model="gpt-4o-mini",
              tier=ModelTier.SIMPLE, rpm=500, tpm=200_000),
    ModelInfo(id="claude-sonnet-4-5", provider="anthropic", api_model="claude-sonnet-4-5",
              tier=ModelTier.COMPLEX, rpm=50, tpm=80_000, billing_multiplier=3.0),
    ModelInfo(id="gemini-2.5-flash", provider="openrouter", api_model="google/gemini-2.5-flash",
              tier=ModelTier.SIMPLE, rpm=60, tpm=200_000, billing_multiplier=0.8),
    ModelInfo(id="llama-3.3-70b-free", provider="openrouter",
              api_model="meta-llama/llama-3.3-70b-instruct:free",
              tier=ModelTier.SIMPLE, rpm=20, tpm=40_000, is_free=True, billing_multiplier=0.0),
]

CATALOG: dict[str, ModelInfo] = {m.id: m for m in _MODELS}

FALLBACK_CHAINS: dict[ModelTier, list[str]] = {
    ModelTier.COMPLEX: [
        "deepseek-reasoner",
        "gpt-5",
        "gpt-4o",
        "claude-sonnet-4-5",
        "gemini-2.5-flash",
    ],
    ModelTier.SIMPLE: [
        "deepseek-chat",
        "gpt-5-mini",
        "gpt-4o-mini",
        "gemini-2.5-flash",
        "llama-3.3-70b-free",
    ],
}


def get_model(model_id: str) -> ModelInfo:
    """Look up a catalog entry; unknown ids are routed as OpenAI simple-tier models."""
    info = CATALOG.get(model_id)
    if info is not None:
        return info
    provider = "anthropic" if model_id.startswith("claude") else "openai"
    return ModelInfo(id=model_id, provider=provider, api_model=model_id, tier=ModelTier.SIMPLE)


def fallback_chain(model_id: str) -> list[str]:
    """Requested model first, then the rest of its tier's chain."""
    tier = get_model(model_id).tier
    return [model_id] + [m for m in FALLBACK_CHAINS[tier] if m != model_id]


def billing_multiplier(model_id: str) -> float:
    return get_model(model_id).billing_multiplier
