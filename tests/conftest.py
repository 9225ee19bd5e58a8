"""Pytest configuration and shared fixtures."""

import asyncio
import json
import re
from typing import Callable

import pytest

from agp.billing import FileTokenLedger
from agp.articles.store import FileArticleSink
from agp.config import Settings
from agp.jobs.models import ArticleJob
from agp.jobs.store import InMemoryJobStore
from agp.llm.base import Completion, TokenUsage
from agp.pipeline.orchestrator import ParallelOrchestrator

MODELS = {
    "research": "fake-research",
    "strategy": "fake-strategy",
    "outline": "fake-outline",
    "writer": "fake-writer",
    "conclusion": "fake-conclusion",
    "meta": "fake-meta",
    "image": "fake-image",
}

SECTION_HEADINGS = ["Section A", "Section B", "Section C"]
CONCLUSION_MD = "## 結論\n這是 **重點** 總結。"


def _research(prompt: str) -> str:
    return json.dumps({
        "search_intent": "informational",
        "key_findings": ["finding one", "finding two"],
        "content_gaps": ["gap"],
        "related_keywords": ["related"],
        "references": [{"title": "Ref", "url": "https://example.com", "note": "n"}],
    })


def _strategy(prompt: str) -> str:
    return "```json\n" + json.dumps({
        "title_options": ["Best Title", "Second Title"],
        "selected_title": "Best Title",
        "angle": "practical",
        "target_audience": "beginners",
        "keywords": ["coffee", "brewing"],
        "target_word_count": 1200,
        "image_style": "flat illustration",
    }) + "\n```"


def _outline(prompt: str) -> str:
    return "Here is the outline:\n" + json.dumps({
        "introduction": {"hook": "h", "context": "c", "thesis": "t"},
        "sections": [
            {"heading": h, "subheadings": [], "key_points": [f"{h} point"], "target_word_count": 300}
            for h in SECTION_HEADINGS
        ],
        "conclusion": {"summary": "s", "call_to_action": "act"},
        "faq": [{"question": "Why?", "answer_hint": "because"}],
    })


def _writer(prompt: str) -> str:
    if "Write the introduction" in prompt:
        return json.dumps({"content": "Intro paragraph about coffee."})
    heading = re.search(r"- Heading: (.+)", prompt).group(1).strip()
    return json.dumps({"content": f"## {heading}\n\nBody text for {heading}."})


def _conclusion(prompt: str) -> str:
    return json.dumps({"content": CONCLUSION_MD})


def _meta(prompt: str) -> str:
    return json.dumps({
        "title": "Best Title | Coffee",
        "description": "All about coffee.",
        "slug": "Best Title: Coffee!",
        "openGraph": {"title": "OG"},
        "twitterCard": {},
        "focusKeyphrase": "coffee",
        "categories": ["Coffee Guides", "Other"],
        "tags": ["espresso", {"name": "Pour Over", "relevance": 0.7}, "Espresso"],
    })


def _image(prompt: str) -> str:
    return json.dumps({
        "featured": {"prompt": "a cup of coffee", "alt_text": "coffee"},
        "content": [
            {"section_index": 1, "prompt": "beans", "alt_text": "beans"},
            {"section_index": 0, "prompt": "grinder", "alt_text": "grinder"},
        ],
    })


RESPONDERS: dict[str, Callable[[str], str]] = {
    "fake-research": _research,
    "fake-strategy": _strategy,
    "fake-outline": _outline,
    "fake-writer": _writer,
    "fake-conclusion": _conclusion,
    "fake-meta": _meta,
    "fake-image": _image,
}


class FakeLLM:
    """Scripted completer: answers by model id, with optional latency and failures."""

    def __init__(self, latency: Callable[[str, str], float] | None = None):
        self.calls: list[tuple[str, str]] = []
        self.latency = latency
        self.failures: dict[str, BaseException] = {}
        self.responders = dict(RESPONDERS)

    def fail(self, model: str, error: BaseException) -> None:
        self.failures[model] = error

    def calls_for(self, model: str) -> list[str]:
        return [p for m, p in self.calls if m == model]

    async def complete(self, prompt, *, model, temperature, max_tokens, timeout=None):
        self.calls.append((model, prompt))
        if self.latency:
            await asyncio.sleep(self.latency(model, prompt))
        if model in self.failures:
            raise self.failures[model]
        return Completion(
            content=self.responders[model](prompt),
            usage=TokenUsage(prompt_tokens=10, completion_tokens=20),
            model=model,
            provider="fake",
        )


class FakeImageGenerator:
    def __init__(self, fail_prompts: tuple[str, ...] = ()):
        self.prompts: list[str] = []
        self.fail_prompts = fail_prompts

    async def generate(self, prompt, *, timeout=None):
        self.prompts.append(prompt)
        if any(prompt.startswith(p) for p in self.fail_prompts):
            raise RuntimeError("render failed")
        return f"https://img.example/{len(self.prompts)}.png"


def make_settings(tmp_path, **overrides) -> Settings:
    values = dict(
        _env_file=None,
        agp_data_dir=str(tmp_path),
        agp_research_model=MODELS["research"],
        agp_strategy_model=MODELS["strategy"],
        agp_outline_model=MODELS["outline"],
        agp_writing_model=MODELS["writer"],
        agp_conclusion_model=MODELS["conclusion"],
        agp_meta_model=MODELS["meta"],
        agp_image_prompt_model=MODELS["image"],
        agp_job_budget_s=30.0,
    )
    values.update(overrides)
    settings = Settings(**values)
    settings.ensure_dirs()
    return settings


@pytest.fixture
def settings(tmp_path):
    return make_settings(tmp_path)


@pytest.fixture
def store():
    return InMemoryJobStore()


@pytest.fixture
def llm():
    return FakeLLM()


@pytest.fixture
def sink(tmp_path):
    return FileArticleSink(tmp_path)


@pytest.fixture
def ledger(tmp_path):
    ledger = FileTokenLedger(tmp_path)
    ledger.credit("co_1", purchased=100_000)
    return ledger


@pytest.fixture
def orchestrator(store, llm, sink, ledger, settings):
    return ParallelOrchestrator(store, llm, sink, ledger, settings)


def make_job(store, job_id="job_1", **kwargs) -> ArticleJob:
    data = dict(
        id=job_id,
        company_id="co_1",
        website_id="site_1",
        keywords=["coffee", "brewing"],
        metadata={"title": "How to brew coffee", "targetLanguage": "en", "wordCount": "1,200", "imageCount": 3},
    )
    data.update(kwargs)
    job = ArticleJob(**data)
    store.create(job)
    return job


def run(coro):
    return asyncio.run(coro)
