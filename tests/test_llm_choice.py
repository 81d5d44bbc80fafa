"""Tests for the LLM-backed choice module (LLM calls are faked)."""

import pytest

from choiceverse.agent import AgentAttributes
from choiceverse.choice import ChoiceContext
from choiceverse.environment import PhysicalAsset
from choiceverse.errors import ChoiceError
from choiceverse.llm_choice import LLMChoiceModule, LLMChoiceResponse
from choiceverse.schemas import Information, Trigger, TriggerType


OPTIONS = [
    PhysicalAsset(asset_id="ice", name="Petrol car"),
    PhysicalAsset(asset_id="ev", name="Electric car"),
]


def make_context():
    trigger = Trigger(
        trigger_id="t2-0", trigger_type=TriggerType.ECONOMIC, tick=2, payload={"asset_type": "vehicle"}
    )
    return ChoiceContext(
        agent_id="agent-1",
        tick=2,
        trigger=trigger,
        attributes=AgentAttributes(
            agent_id="agent-1", psychological={"risk_aversion": 0.7}, socioeconomic={"income": 52000.0}
        ),
        information=[Information(info_id="n1", topic="price:fuel", payload=1.9, reliability=0.8)],
    )


def fake_llm(monkeypatch, response, calls):
    def fake_call(**kwargs):
        calls.append(kwargs)
        return response

    monkeypatch.setattr("choiceverse.llm_choice.call_llm_with_retries", fake_call)


def test_llm_index_maps_back_to_candidate(monkeypatch, capsys):
    calls = []
    fake_llm(monkeypatch, LLMChoiceResponse(choice_index=1, reasoning="fuel is expensive"), calls)
    module = LLMChoiceModule(llm_provider="openai", llm_model="gpt-5-nano")
    context = make_context()

    choice = module.make_choice(OPTIONS, context, context.trigger)

    assert choice is OPTIONS[1]
    assert module.last_reasoning == "fuel is expensive"
    assert calls[0]["response_model"] is LLMChoiceResponse
    assert calls[0]["llm_model"] == "gpt-5-nano"
    prompt = calls[0]["user_prompt"]
    assert "0. Petrol car" in prompt
    assert "1. Electric car" in prompt
    assert "[price:fuel] (reliability 0.80)" in prompt
    assert '"risk_aversion": 0.7' in prompt
    assert "[AI]" in capsys.readouterr().out


def test_null_index_defers(monkeypatch):
    calls = []
    fake_llm(monkeypatch, LLMChoiceResponse(choice_index=None, reasoning="wait"), calls)
    module = LLMChoiceModule(llm_provider="openai", llm_model="gpt-5-nano")
    context = make_context()

    assert module.make_choice(OPTIONS, context, context.trigger) is None


def test_out_of_range_index_is_a_choice_error(monkeypatch):
    calls = []
    fake_llm(monkeypatch, LLMChoiceResponse(choice_index=5), calls)
    module = LLMChoiceModule(llm_provider="openai", llm_model="gpt-5-nano")
    context = make_context()

    with pytest.raises(ChoiceError) as excinfo:
        module.make_choice(OPTIONS, context, context.trigger)
    assert excinfo.value.trigger_id == "t2-0"


def test_empty_candidates_skip_the_llm(monkeypatch):
    calls = []
    fake_llm(monkeypatch, LLMChoiceResponse(choice_index=0), calls)
    module = LLMChoiceModule(llm_provider="openai", llm_model="gpt-5-nano")
    context = make_context()

    assert module.make_choice([], context, context.trigger) is None
    assert calls == []


def test_provider_defaults_come_from_config(monkeypatch):
    monkeypatch.setattr("choiceverse.llm_choice.Config.LLM_PROVIDER", "anthropic")
    monkeypatch.setattr("choiceverse.llm_choice.Config.LLM_MODEL", "claude-test")

    module = LLMChoiceModule()

    assert module.llm_provider == "anthropic"
    assert module.llm_model == "claude-test"
