"""Tests for the agent engine and variant parsing."""

import asyncio
import json

import pytest

from conftest import FakeLLM, run
from agp.agents import VARIANTS, Agent, AgentKind, build_agents
from agp.errors import AgentExecutionFailure, PhaseTimeout, ProviderError
from agp.schemas.agents import (
    IntroductionPlan,
    MetaInput,
    Outline,
    OutlineSection,
    ResearchInput,
    SectionInput,
)


def _agent(kind, llm, model="fake-model"):
    return Agent(VARIANTS[kind], llm, default_model=model)


def test_registry_has_every_kind():
    assert set(VARIANTS) == set(AgentKind)
    agents = build_agents(FakeLLM(), {k.value: f"m-{k.value}" for k in AgentKind})
    assert agents[AgentKind.WRITER].default_model == "m-writer"
    assert agents[AgentKind.META].name == "MetaAgent"


def test_execute_records_execution_info():
    llm = FakeLLM()
    agent = _agent(AgentKind.RESEARCH, llm, model="fake-research")
    out = run(agent.execute(ResearchInput(title="Coffee", keywords=["coffee"], target_language="en")))
    assert out.key_findings == ["finding one", "finding two"]
    info = out.execution_info
    assert info.agent_name == "ResearchAgent"
    assert info.phase == "research"
    assert info.model == "fake-research"
    assert info.usage.total_tokens == 30
    assert info.temperature == VARIANTS[AgentKind.RESEARCH].temperature
    # prompt names the target language explicitly
    assert "English" in llm.calls[0][1]


def test_caller_overrides_win():
    llm = FakeLLM()
    agent = _agent(AgentKind.RESEARCH, llm, model="not-used")
    out = run(agent.execute(ResearchInput(title="C", model="fake-research", temperature=0.9, max_tokens=77)))
    assert llm.calls[0][0] == "fake-research"
    assert out.execution_info.temperature == 0.9
    assert out.execution_info.max_tokens == 77


def test_provider_error_is_wrapped():
    llm = FakeLLM()
    err = ProviderError("openai", "fake-research", "503", retryable=True)
    llm.fail("fake-research", err)
    agent = _agent(AgentKind.RESEARCH, llm, model="fake-research")
    with pytest.raises(AgentExecutionFailure) as exc:
        run(agent.execute(ResearchInput(title="C")))
    assert exc.value.agent_name == "ResearchAgent"
    assert exc.value.cause is err
    assert exc.value.retryable


def test_unparseable_output_is_wrapped():
    llm = FakeLLM()
    llm.responders["fake-research"] = lambda prompt: "I cannot help with that."
    agent = _agent(AgentKind.RESEARCH, llm, model="fake-research")
    with pytest.raises(AgentExecutionFailure) as exc:
        run(agent.execute(ResearchInput(title="C")))
    assert not exc.value.retryable


def test_timeout_becomes_phase_timeout():
    llm = FakeLLM(latency=lambda model, prompt: 1.0)
    agent = _agent(AgentKind.RESEARCH, llm, model="fake-research")
    with pytest.raises(PhaseTimeout):
        run(agent.execute(ResearchInput(title="C"), timeout=0.05))


def test_writer_adds_missing_heading():
    llm = FakeLLM()
    llm.responders["fake-writer"] = lambda prompt: "Just body text."
    agent = _agent(AgentKind.WRITER, llm, model="fake-writer")
    section = OutlineSection(heading="Grinding", key_points=["burr"])
    out = run(agent.execute(SectionInput(index=2, role="section", title="T", section=section)))
    assert out.index == 2
    assert out.heading == "Grinding"
    assert out.markdown.startswith("## Grinding\n\n")
    assert out.word_count == 4


def test_introduction_has_no_heading():
    llm = FakeLLM()
    agent = _agent(AgentKind.WRITER, llm, model="fake-writer")
    out = run(agent.execute(SectionInput(
        index=0, role="introduction", title="T", introduction=IntroductionPlan(hook="h"),
    )))
    assert out.heading == ""
    assert out.markdown == "Intro paragraph about coffee."
    assert "150 ~ 250 words" in llm.calls[0][1]


def test_meta_fills_missing_fields_and_sanitizes_slug():
    llm = FakeLLM()
    llm.responders["fake-meta"] = lambda prompt: '{"slug": "", "description": ""}'
    agent = _agent(AgentKind.META, llm, model="fake-meta")
    out = run(agent.execute(MetaInput(
        title_options=["First Option"], keyword="Cold Brew", content_markdown="## Head\n\nBody [link]",
    )))
    assert out.title == "First Option"
    assert out.slug == "cold-brew"
    assert out.description == "Head\n\nBody link"
    assert out.focus_keyphrase == "Cold Brew"
    assert out.keywords == ["Cold Brew"]
    assert out.open_graph.title == "First Option"
    assert out.twitter_card.card == "summary_large_image"


def test_meta_slug_from_model_is_sanitized():
    llm = FakeLLM()
    agent = _agent(AgentKind.META, llm, model="fake-meta")
    out = run(agent.execute(MetaInput(title_options=["T"], keyword="coffee")))
    assert out.slug == "best-title-coffee"
    assert out.open_graph.title == "OG"
    assert out.twitter_card.title == "Best Title | Coffee"


def test_meta_keeps_one_category_and_unique_tags():
    llm = FakeLLM()
    agent = _agent(AgentKind.META, llm, model="fake-meta")
    out = run(agent.execute(MetaInput(title_options=["T"], keyword="coffee", keywords=["coffee", "beans"])))
    assert [(c.name, c.slug, c.score) for c in out.categories] == [("Coffee Guides", "coffee-guides", 0.9)]
    assert [(t.name, t.slug, t.score) for t in out.tags] == [("espresso", "espresso", 1.0), ("Pour Over", "pour-over", 0.7)]
    assert "coffee, beans" in llm.calls[0][1]


def test_meta_category_and_tags_fall_back_to_keywords():
    llm = FakeLLM()
    llm.responders["fake-meta"] = lambda prompt: '{"categories": [], "tags": "none"}'
    agent = _agent(AgentKind.META, llm, model="fake-meta")
    keywords = ["cold brew", "coffee", "ice", "filter", "grind", "kettle"]
    out = run(agent.execute(MetaInput(title_options=["T"], keyword="cold brew", keywords=keywords)))
    assert [(c.name, c.slug) for c in out.categories] == [("Cold Brew", "cold-brew")]
    assert [t.name for t in out.tags] == keywords[:5]
    assert [t.score for t in out.tags] == [1.0, 0.9, 0.8, 0.7, 0.6]


def test_meta_tags_are_capped():
    llm = FakeLLM()
    llm.responders["fake-meta"] = lambda prompt: json.dumps({"tags": [f"tag {i}" for i in range(15)]})
    agent = _agent(AgentKind.META, llm, model="fake-meta")
    out = run(agent.execute(MetaInput(title_options=["T"], keyword="")))
    assert len(out.tags) == 10
    assert out.tags[1].slug == "tag-1"
    assert out.categories[0].name == "General"


def test_image_briefs_sorted_and_bounded():
    from agp.schemas.agents import ImageInput

    llm = FakeLLM()
    agent = _agent(AgentKind.IMAGE, llm, model="fake-image")
    outline = Outline(sections=[OutlineSection(heading=h) for h in ("A", "B", "C")])
    out = run(agent.execute(ImageInput(title="T", outline=outline, count=2)))
    assert out.featured_image.alt_text == "coffee"
    assert out.featured_image.section_index is None
    # count=2 → featured plus one content image, lowest section first
    assert [c.section_index for c in out.content_images] == [0]
