"""Model routing: provider selection, fallback chain and reported model."""

import pytest

from conftest import run
from agp.errors import ProviderError
from agp.llm.base import Completion, TokenUsage
from agp.llm.catalog import billing_multiplier, fallback_chain, get_model
from agp.llm.router import ModelRouter, estimate_tokens


class ScriptedProvider:
    def __init__(self, name, fail_models=()):
        self.name = name
        self.fail_models = set(fail_models)
        self.calls: list[str] = []

    async def complete(self, prompt, *, model, temperature, max_tokens, timeout=None):
        self.calls.append(model)
        if model in self.fail_models:
            raise ProviderError(self.name, model, "HTTP 500", retryable=True)
        return Completion(
            content=f"answer from {model}",
            usage=TokenUsage(prompt_tokens=5, completion_tokens=5),
            model=model,
            provider=self.name,
        )


def _complete(router, model):
    return run(router.complete("hello", model=model, temperature=0.2, max_tokens=100))


def test_requested_model_answers():
    deepseek = ScriptedProvider("deepseek")
    completion = _complete(ModelRouter({"deepseek": deepseek}), "deepseek-chat")
    assert completion.content == "answer from deepseek-chat"
    assert completion.model == "deepseek-chat"
    assert deepseek.calls == ["deepseek-chat"]


def test_falls_back_along_tier_chain():
    deepseek = ScriptedProvider("deepseek", fail_models={"deepseek-chat"})
    openai = ScriptedProvider("openai")
    completion = _complete(ModelRouter({"deepseek": deepseek, "openai": openai}), "deepseek-chat")
    assert completion.model == "gpt-5-mini"
    assert openai.calls == ["gpt-5-mini"]


def test_reports_catalog_id_not_wire_name():
    openrouter = ScriptedProvider("openrouter")
    completion = _complete(ModelRouter({"openrouter": openrouter}), "gemini-2.5-flash")
    assert openrouter.calls == ["google/gemini-2.5-flash"]
    assert completion.model == "gemini-2.5-flash"


def test_skips_providers_without_credentials():
    router = ModelRouter({"anthropic": ScriptedProvider("anthropic")})
    assert [m.id for m in router.candidates("deepseek-reasoner")] == ["claude-sonnet-4-5"]


def test_fallback_disabled_tries_only_requested_model():
    deepseek = ScriptedProvider("deepseek", fail_models={"deepseek-chat"})
    openai = ScriptedProvider("openai")
    router = ModelRouter({"deepseek": deepseek, "openai": openai}, enable_fallback=False)
    with pytest.raises(ProviderError):
        _complete(router, "deepseek-chat")
    assert openai.calls == []


def test_last_error_raised_when_every_candidate_fails():
    deepseek = ScriptedProvider("deepseek", fail_models={"deepseek-chat"})
    openai = ScriptedProvider("openai", fail_models={"gpt-5-mini", "gpt-4o-mini"})
    router = ModelRouter({"deepseek": deepseek, "openai": openai})
    with pytest.raises(ProviderError) as exc:
        _complete(router, "deepseek-chat")
    assert exc.value.model == "gpt-4o-mini"
    assert exc.value.retryable


def test_no_provider_at_all():
    with pytest.raises(ProviderError, match="no configured provider"):
        _complete(ModelRouter({}), "gpt-5")


def test_no_provider_for_requested_backend_without_fallback():
    openai = ScriptedProvider("openai")
    router = ModelRouter({"openai": openai}, enable_fallback=False)
    with pytest.raises(ProviderError, match="no configured provider") as exc:
        _complete(router, "deepseek-chat")
    assert exc.value.provider == "deepseek"
    assert not exc.value.retryable
    assert openai.calls == []


def test_limiters_are_shared_per_model():
    router = ModelRouter({"deepseek": ScriptedProvider("deepseek")})
    _complete(router, "deepseek-chat")
    _complete(router, "deepseek-chat")
    assert router.limiter_for(get_model("deepseek-chat")).usage()["requests"] == 2


def test_catalog_helpers():
    assert fallback_chain("gpt-5")[0] == "gpt-5"
    assert "deepseek-reasoner" in fallback_chain("gpt-5")
    assert get_model("claude-opus-x").provider == "anthropic"
    assert get_model("some-new-model").provider == "openai"
    assert billing_multiplier("some-new-model") == 1.0
    assert billing_multiplier("deepseek-reasoner") == 1.5


def test_estimate_tokens():
    assert estimate_tokens("x" * 400, 1000) == 1100
