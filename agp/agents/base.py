"""Agent engine — one class drives every variant.

A variant is plain data: which template to render, which model tier and
defaults to use, how to turn a typed input into template variables and how
to parse the raw completion back into a typed output.  ``Agent.execute``
wraps the call with timing, logging and failure conversion.
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
import time
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Protocol, final

from jinja2 import Environment, FileSystemLoader, StrictUndefined
from pydantic import BaseModel

from agp.errors import AgentExecutionFailure, PhaseTimeout
from agp.llm.base import Completion
from agp.schemas.agents import AgentInput, ExecutionInfo

logger = logging.getLogger(__name__)

PROMPTS_DIR = Path(__file__).resolve().parent.parent / "prompts"

LANGUAGE_NAMES: dict[str, str] = {
    "zh-TW": "Traditional Chinese (繁體中文)",
    "zh-CN": "Simplified Chinese (简体中文)",
    "en": "English",
    "ja": "Japanese (日本語)",
    "ko": "Korean (한국어)",
    "es": "Spanish (Español)",
    "fr": "French (Français)",
    "de": "German (Deutsch)",
    "pt": "Portuguese (Português)",
    "it": "Italian (Italiano)",
    "ru": "Russian (Русский)",
    "ar": "Arabic (العربية)",
    "th": "Thai (ไทย)",
    "vi": "Vietnamese (Tiếng Việt)",
    "id": "Indonesian (Bahasa Indonesia)",
}


class AgentKind(str, Enum):
    RESEARCH = "research"
    STRATEGY = "strategy"
    OUTLINE = "outline"
    WRITER = "writer"
    CONCLUSION = "conclusion"
    META = "meta"
    IMAGE = "image"


class Completer(Protocol):
    """Anything that can answer a prompt — normally the shared ModelRouter."""

    async def complete(
        self,
        prompt: str,
        *,
        model: str,
        temperature: float,
        max_tokens: int,
        timeout: float | None = None,
    ) -> Completion: ...


@dataclass(frozen=True)
class AgentVariant:
    kind: AgentKind
    name: str
    phase: str
    template: str
    temperature: float
    max_tokens: int
    timeout_s: float
    build_context: Callable[[Any], dict[str, Any]]
    parse: Callable[[str, Any], BaseModel]


# ---------------------------------------------------------------------------
# Helpers shared by the variants
# ---------------------------------------------------------------------------

_WORD_MARKUP = re.compile(r"[#*`]")


def count_words(markdown: str) -> int:
    """Whitespace-delimited tokens after dropping ``#``, ``*`` and backticks."""
    return len(_WORD_MARKUP.sub("", markdown).split())


def language_name(code: str | None) -> str:
    return LANGUAGE_NAMES.get(code or "", LANGUAGE_NAMES["zh-TW"])


def _strip_code_fence(raw: str) -> str:
    s = raw.strip()
    if s.startswith("```"):
        s = re.sub(r"^```\w*\n?", "", s)
        s = re.sub(r"\n?```\s*$", "", s)
    return s.strip()


def parse_json(raw: str) -> Any:
    """Parse a JSON reply, tolerating a code fence or prose around the payload."""
    s = _strip_code_fence(raw)
    try:
        return json.loads(s)
    except json.JSONDecodeError:
        pass
    match = re.search(r"\{.*\}|\[.*\]", s, re.DOTALL)
    if not match:
        raise ValueError(f"response is not JSON: {s[:120]!r}")
    return json.loads(match.group(0))


def parse_json_object(raw: str) -> dict[str, Any]:
    data = parse_json(raw)
    if not isinstance(data, dict):
        raise ValueError(f"expected a JSON object, got {type(data).__name__}")
    return data


def extract_markdown(raw: str) -> str:
    """Markdown body of a reply that is either plain markdown or {"content": ...}."""
    s = _strip_code_fence(raw)
    if s.startswith("{"):
        try:
            return str(parse_json_object(s).get("content") or "").strip()
        except ValueError:
            pass
    return s


_env: Environment | None = None


def render_prompt(template_name: str, **kwargs: Any) -> str:
    global _env
    if _env is None:
        _env = Environment(
            loader=FileSystemLoader(str(PROMPTS_DIR)),
            undefined=StrictUndefined,
            trim_blocks=True,
            lstrip_blocks=True,
        )
    return _env.get_template(template_name).render(**kwargs)


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------

class Agent:
    """Stateless executor for one variant."""

    def __init__(self, variant: AgentVariant, completer: Completer, *, default_model: str):
        self.variant = variant
        self._completer = completer
        self.default_model = default_model

    @property
    def name(self) -> str:
        return self.variant.name

    @property
    def kind(self) -> AgentKind:
        return self.variant.kind

    async def complete(
        self,
        prompt: str,
        *,
        model: str,
        temperature: float,
        max_tokens: int,
        timeout: float | None = None,
    ) -> Completion:
        return await self._completer.complete(
            prompt, model=model, temperature=temperature, max_tokens=max_tokens, timeout=timeout,
        )

    @final
    async def execute(self, agent_input: AgentInput, *, timeout: float | None = None) -> Any:
        """Run the variant once; every failure comes out as AgentExecutionFailure."""
        variant = self.variant
        model = agent_input.model or self.default_model
        temperature = variant.temperature if agent_input.temperature is None else agent_input.temperature
        max_tokens = agent_input.max_tokens or variant.max_tokens
        call_timeout = variant.timeout_s if timeout is None else min(timeout, variant.timeout_s)

        started = time.perf_counter()
        logger.info("[%s] start model=%s timeout=%.0fs", self.name, model, call_timeout)
        try:
            prompt = render_prompt(variant.template, **variant.build_context(agent_input))
            completion = await asyncio.wait_for(
                self.complete(
                    prompt,
                    model=model,
                    temperature=temperature,
                    max_tokens=max_tokens,
                    timeout=call_timeout,
                ),
                timeout=call_timeout,
            )
            output = variant.parse(completion.content, agent_input)
        except asyncio.TimeoutError as e:
            logger.error("[%s] timed out after %.1fs", self.name, time.perf_counter() - started)
            raise PhaseTimeout(self.name, f"timed out after {call_timeout:.0f}s") from e
        except AgentExecutionFailure:
            raise
        except Exception as e:
            logger.error("[%s] failed: %s", self.name, e)
            raise AgentExecutionFailure(self.name, e) from e

        latency_ms = int((time.perf_counter() - started) * 1000)
        output.execution_info = ExecutionInfo(
            agent_name=self.name,
            phase=variant.phase,
            model=completion.model or model,
            temperature=temperature,
            max_tokens=max_tokens,
            latency_ms=latency_ms,
            usage=completion.usage,
        )
        logger.info(
            "[%s] done in %dms model=%s tokens=%d",
            self.name, latency_ms, output.execution_info.model, completion.usage.total_tokens,
        )
        return output
