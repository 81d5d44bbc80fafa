"""Tests for console tags ([•], [✓], [!]) in orchestrator output."""

from __future__ import annotations

import contextlib
import io

import pytest

from choiceverse.agent import AgentAttributes, ConsumerAgent
from choiceverse.choice import SimpleChoiceModule
from choiceverse.environment import Environment, PeriodicInformationProcess, PhysicalAsset
from choiceverse.information import Transformer
from choiceverse.logging_utils import Color, colored, is_verbose
from choiceverse.model import ConsumerChoiceModel
from choiceverse.schemas import ModelConfiguration, StopCondition, TriggerType


class CrashingModule(SimpleChoiceModule):
    def make_choice(self, choices, context, trigger):
        raise RuntimeError("boom")


def _model(module=None, processes=()):
    environment = Environment(
        physical_assets=[PhysicalAsset(asset_id="a", name="A")], processes=list(processes)
    )
    model = ConsumerChoiceModel(
        ModelConfiguration(name="tags", stop_condition=StopCondition(max_ticks=1)),
        environment,
        Transformer(),
    )
    model.add_agent(ConsumerAgent(AgentAttributes(agent_id="alpha"), module or SimpleChoiceModule()))
    model.inject_trigger(TriggerType.ECONOMIC)
    return model


async def _captured_run(model) -> str:
    buf = io.StringIO()
    with contextlib.redirect_stdout(buf):
        await model.run()
    return buf.getvalue()


@pytest.fixture(autouse=True)
def plain_output(monkeypatch):
    monkeypatch.setenv("CHOICEVERSE_NO_COLOR", "1")
    monkeypatch.delenv("CHOICEVERSE_QUIET", raising=False)
    monkeypatch.delenv("CHOICEVERSE_VERBOSE", raising=False)


@pytest.mark.asyncio
async def test_tick_summary_and_completion_tags():
    out = await _captured_run(_model())

    assert "=== Tick 1/1 ===" in out
    assert "[✓] Tick 1: 1 choice(s), 0 deferred, 0 failed" in out
    assert "[✓] Simulation complete (max_ticks)." in out
    assert "[•] [Environment]" not in out


@pytest.mark.asyncio
async def test_environment_tag_only_when_changes_apply():
    out = await _captured_run(_model(processes=[PeriodicInformationProcess("news", "price", trigger_type=None)]))
    assert "[•] [Environment] 1 change(s) applied" in out


@pytest.mark.asyncio
async def test_failure_tag_names_agent_and_kind():
    out = await _captured_run(_model(CrashingModule()))
    assert "[!] [alpha] choice failure on economic" in out
    assert "[✓] Tick 1: 0 choice(s), 0 deferred, 1 failed" in out


@pytest.mark.asyncio
async def test_verbose_prints_each_decision(monkeypatch):
    monkeypatch.setenv("CHOICEVERSE_VERBOSE", "1")
    out = await _captured_run(_model())
    assert "alpha <- economic: chose A" in out


@pytest.mark.asyncio
async def test_quiet_silences_progress(monkeypatch):
    monkeypatch.setenv("CHOICEVERSE_QUIET", "1")
    monkeypatch.setenv("CHOICEVERSE_VERBOSE", "1")
    assert not is_verbose()
    out = await _captured_run(_model())
    assert out == ""


def test_colored_respects_no_color(monkeypatch):
    assert colored("plain", Color.RED) == "plain"
    monkeypatch.delenv("CHOICEVERSE_NO_COLOR")
    assert colored("bold", Color.GREEN, bold=True) == "\033[1m\033[92mbold\033[0m"
