"""Image — briefs for a featured image and one image per leading section.

Briefs come from a completion call.  Turning a brief into pixels is a
separate capability (``ImageGenerator``); when one is configured the
orchestrator calls :func:`render_images` after the briefs are written.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Protocol

from agp.agents.base import AgentKind, AgentVariant, language_name, parse_json_object
from agp.errors import AgentExecutionFailure, ProviderError
from agp.schemas.agents import GeneratedImage, ImageInput, ImageOutput

logger = logging.getLogger(__name__)

NO_TEXT_RULE = (
    "Absolutely no text, letters, numbers, watermarks or captions in the image; "
    "use only visual symbols, illustrations and metaphors."
)


class ImageGenerator(Protocol):
    async def generate(self, prompt: str, *, timeout: float | None = None) -> str:
        """Render ``prompt`` and return the image URL (or data URI)."""
        ...


class OpenAIImageGenerator:
    """OpenAI Images API (``gpt-image-1`` / ``dall-e-3``)."""

    def __init__(self, api_key: str, *, model: str = "gpt-image-1", size: str = "1024x1024"):
        from openai import AsyncOpenAI

        self._client = AsyncOpenAI(api_key=api_key)
        self.model = model
        self.size = size

    async def generate(self, prompt: str, *, timeout: float | None = None) -> str:
        import openai

        try:
            resp = await self._client.images.generate(
                model=self.model, prompt=prompt, size=self.size, n=1, timeout=timeout,
            )
        except openai.APIError as e:
            raise ProviderError("openai", self.model, str(e), retryable=False) from e
        if not resp.data:
            raise ProviderError("openai", self.model, "no image returned")
        item = resp.data[0]
        if item.url:
            return item.url
        if item.b64_json:
            return f"data:image/png;base64,{item.b64_json}"
        raise ProviderError("openai", self.model, "image has neither url nor data")


def _context(data: ImageInput) -> dict[str, Any]:
    return {
        "title": data.title,
        "sections": data.outline.sections[: max(data.count - 1, 0)],
        "count": data.count,
        "image_style": data.image_style,
        "language_name": language_name(data.target_language),
    }


def _brief(obj: Any, section_index: int | None) -> GeneratedImage | None:
    if not isinstance(obj, dict) or not str(obj.get("prompt") or "").strip():
        return None
    prompt = str(obj["prompt"]).strip()
    if NO_TEXT_RULE not in prompt:
        prompt = f"{prompt}\n\n{NO_TEXT_RULE}"
    return GeneratedImage(
        prompt=prompt,
        alt_text=str(obj.get("alt_text") or ""),
        section_index=section_index,
    )


def _parse(raw: str, data: ImageInput) -> ImageOutput:
    obj = parse_json_object(raw)
    featured = _brief(obj.get("featured"), None)
    if featured is None:
        raise ValueError("missing featured image brief")
    if not featured.alt_text:
        featured.alt_text = data.title

    sections = data.outline.sections
    content: list[GeneratedImage] = []
    for i, item in enumerate(obj.get("content") or []):
        idx = item.get("section_index", i) if isinstance(item, dict) else i
        try:
            idx = int(idx)
        except (TypeError, ValueError):
            idx = i
        if not 0 <= idx < len(sections) or any(c.section_index == idx for c in content):
            continue
        brief = _brief(item, idx)
        if brief is not None:
            brief.alt_text = brief.alt_text or sections[idx].heading
            content.append(brief)
    content.sort(key=lambda c: c.section_index)
    return ImageOutput(featured_image=featured, content_images=content[: max(data.count - 1, 0)])


async def render_images(
    output: ImageOutput,
    generator: ImageGenerator,
    *,
    model: str,
    timeout: float | None = None,
) -> ImageOutput:
    """Fill in ``url`` for every brief.

    A featured image that cannot be rendered fails the phase; content images
    that fail are kept as briefs without a URL.
    """
    async def _render(image: GeneratedImage) -> None:
        image.url = await generator.generate(image.prompt, timeout=timeout)
        image.model = model

    if output.featured_image is not None and not output.featured_image.url:
        try:
            await _render(output.featured_image)
        except Exception as e:
            raise AgentExecutionFailure("ImageAgent", e) from e

    pending = [img for img in output.content_images if not img.url]
    results = await asyncio.gather(*(_render(img) for img in pending), return_exceptions=True)
    for img, result in zip(pending, results):
        if isinstance(result, BaseException):
            logger.warning("Content image for section %s not rendered: %s", img.section_index, result)
    return output


VARIANT = AgentVariant(
    kind=AgentKind.IMAGE,
    name="ImageAgent",
    phase="image",
    template="image.j2",
    temperature=0.6,
    max_tokens=1500,
    timeout_s=180.0,
    build_context=_context,
    parse=_parse,
)
