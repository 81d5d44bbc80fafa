"""Schema validation and factory tests."""

import pytest
from pydantic import ValidationError

from choiceverse.config import Config
from choiceverse.environment import PhysicalAsset
from choiceverse.schemas import (
    DECISION_KINDS,
    Event,
    EventKind,
    Information,
    ModelConfiguration,
    Severity,
    StopCondition,
    Trigger,
    TriggerType,
    Violation,
    clamp_unit,
    describe_choice,
)


def test_information_rejects_reliability_outside_unit_interval():
    with pytest.raises(ValidationError):
        Information(topic="price", reliability=1.2)
    with pytest.raises(ValidationError):
        Information(topic="price", reliability=-0.1)


def test_information_helpers_return_new_instances():
    item = Information(info_id="i1", topic="price", payload=10, reliability=0.4, timestamp=2)

    clamped = item.with_reliability(1.7)
    assert clamped.reliability == 1.0
    assert clamped.info_id == "i1"
    assert item.reliability == 0.4

    assert item.with_payload(12).payload == 12
    assert item.with_metadata("seen", True).metadata == {"seen": True}
    assert item.metadata == {}

    assert item.age(5) == 3
    assert item.is_recent(5, threshold=3)
    assert not item.is_recent(10, threshold=3)


def test_information_is_frozen():
    item = Information(topic="price", reliability=0.5)
    with pytest.raises(ValidationError):
        item.reliability = 0.9


def test_trigger_targets_and_display_name():
    everyone = Trigger(trigger_type=TriggerType.ECONOMIC)
    assert everyone.applies_to("anyone")
    assert everyone.display_name == "economic"

    targeted = Trigger(trigger_type=TriggerType.CUSTOM, label="tax_rebate", targets=["a"])
    assert targeted.applies_to("a")
    assert not targeted.applies_to("b")
    assert targeted.display_name == "custom(tax_rebate)"


def test_standard_trigger_types_exclude_custom():
    standard = TriggerType.standard_types()
    assert TriggerType.CUSTOM not in standard
    assert len(standard) == 9


def test_choice_made_event_payload():
    trigger = Trigger(trigger_id="t1-0", trigger_type=TriggerType.SOCIAL, tick=1)
    event = Event.choice_made(
        "agent-1",
        1,
        choice="A",
        choice_index=0,
        trigger=trigger,
        evaluation_scores={"economic": 0.5},
        information_delivered=2,
    )
    assert event.kind is EventKind.CHOICE_MADE
    assert event.kind in DECISION_KINDS
    assert event.sequence is None
    assert event.payload["trigger_id"] == "t1-0"
    assert event.payload["trigger"] == "social"
    assert event.payload["information_delivered"] == 2


def test_validation_violation_event_round_trips_violation():
    violation = Violation(
        rule="attribute_range",
        severity=Severity.FATAL,
        message="bad",
        agent_id="a",
        tick=3,
        details={"value": 2.0},
    )
    event = Event.validation_violation(violation, 3)
    assert event.agent_id == "a"
    assert Violation.model_validate(event.payload) == violation


def test_model_configuration_validation():
    with pytest.raises(ValidationError):
        ModelConfiguration(name="")
    with pytest.raises(ValidationError):
        ModelConfiguration(name="x", seed=-1)
    with pytest.raises(ValidationError):
        StopCondition(max_ticks=0)

    config = ModelConfiguration(name="x")
    assert config.stop_condition.max_ticks == 100
    assert config.validation_enabled
    assert not config.parallel_agents


def test_model_configuration_from_env(monkeypatch):
    monkeypatch.setattr(Config, "DEFAULT_TICK_COUNT", 7)
    monkeypatch.setattr(Config, "DEFAULT_SEED", 99)

    config = ModelConfiguration.from_env("ev-adoption", parallel_agents=True)

    assert config.stop_condition.max_ticks == 7
    assert config.seed == 99
    assert config.parallel_agents


def test_stop_condition_convergence_is_not_serialized():
    condition = StopCondition(max_ticks=5, convergence=lambda population, tick: True)
    assert "convergence" not in condition.model_dump()


def test_describe_choice_and_clamp():
    assert describe_choice(None) == "none"
    assert describe_choice("A") == "A"
    assert describe_choice(3) == "3"
    assert describe_choice(PhysicalAsset(asset_id="ev", name="Electric")) == "Electric"
    assert clamp_unit(2) == 1.0
    assert clamp_unit(-1) == 0.0
