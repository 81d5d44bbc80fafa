"""Tests for TickInterval cadences and the trigger schedule."""

import pytest

from choiceverse.schemas import Information, TriggerType
from choiceverse.triggers import ScheduledTrigger, TickInterval, TriggerSchedule


def test_tick_interval_every_offset_until():
    interval = TickInterval(every=3, offset=2, until=8)
    due = [tick for tick in range(12) if interval.is_due(tick=tick)]
    assert due == [2, 5, 8]


def test_tick_interval_defaults_fire_every_tick_from_one():
    interval = TickInterval()
    assert not interval.is_due(tick=0)
    assert all(interval.is_due(tick=tick) for tick in range(1, 6))


def test_tick_interval_respects_last_run():
    interval = TickInterval(every=1)
    assert not interval.is_due(tick=4, last_run_tick=4)
    assert interval.is_due(tick=5, last_run_tick=4)


def test_schedule_returns_due_entries_in_registration_order():
    schedule = (
        TriggerSchedule()
        .every(TriggerType.ECONOMIC, 2)
        .every(TriggerType.TEMPORAL)
        .every(TriggerType.CUSTOM, 4, label="inspection", targets=["a"])
    )

    assert len(schedule) == 3
    assert [entry.trigger_type for entry in schedule.due(1)] == [
        TriggerType.ECONOMIC,
        TriggerType.TEMPORAL,
        TriggerType.CUSTOM,
    ]
    assert [entry.trigger_type for entry in schedule.due(2)] == [TriggerType.TEMPORAL]
    assert schedule.due(5)[-1].targets == ("a",)


def test_schedule_carries_payload_and_information():
    news = Information(info_id="news", topic="price", reliability=0.7)
    schedule = TriggerSchedule().every(
        TriggerType.INFORMATIONAL, payload={"asset_type": "vehicle"}, information=[news]
    )
    entry = schedule.due(1)[0]

    assert entry.payload == {"asset_type": "vehicle"}
    assert entry.information == (news,)


def test_custom_scheduled_trigger_needs_label():
    with pytest.raises(ValueError):
        ScheduledTrigger(trigger_type=TriggerType.CUSTOM)
    with pytest.raises(ValueError):
        TriggerSchedule().every(TriggerType.CUSTOM)
