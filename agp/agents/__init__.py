"""Content agents — one engine, one declarative variant per kind."""

from agp.agents import conclusion, image, meta, outline, research, strategy, writer
from agp.agents.base import (
    Agent,
    AgentKind,
    AgentVariant,
    Completer,
    count_words,
    language_name,
    parse_json,
    render_prompt,
)
from agp.agents.image import ImageGenerator, OpenAIImageGenerator, render_images
from agp.agents.meta import sanitize_slug

VARIANTS: dict[AgentKind, AgentVariant] = {
    v.kind: v
    for v in (
        research.VARIANT,
        strategy.VARIANT,
        outline.VARIANT,
        writer.VARIANT,
        conclusion.VARIANT,
        meta.VARIANT,
        image.VARIANT,
    )
}


def build_agents(completer: Completer, models: dict[str, str]) -> dict[AgentKind, Agent]:
    """One agent per kind; ``models`` maps kind value -> default model id."""
    return {
        kind: Agent(variant, completer, default_model=models[kind.value])
        for kind, variant in VARIANTS.items()
    }


__all__ = [
    "Agent",
    "AgentKind",
    "AgentVariant",
    "Completer",
    "ImageGenerator",
    "OpenAIImageGenerator",
    "VARIANTS",
    "build_agents",
    "count_words",
    "language_name",
    "parse_json",
    "render_images",
    "render_prompt",
    "sanitize_slug",
]
