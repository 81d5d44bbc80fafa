"""Tests for the in-memory and JSON persistence backends."""

from datetime import datetime, timezone

import pytest

from choiceverse.persistence import InMemoryPersistence, JsonPersistence, SimulationRun
from choiceverse.schemas import (
    AgentSnapshot,
    Event,
    PopulationSnapshot,
    RunStatus,
    Summary,
)


def make_events():
    return [
        Event.tick_started(1, triggers=1).model_copy(update={"sequence": 2}),
        Event.agent_added("alpha", 1).model_copy(update={"sequence": 3}),
    ]


def make_snapshot():
    return PopulationSnapshot(
        tick=1,
        agents=[AgentSnapshot(agent_id="alpha", psychological={"risk_aversion": 0.7}, choices_made=1)],
    )


async def exercise_backend(persistence):
    await persistence.initialize()

    run = SimulationRun(run_id="run-1", name="ev-adoption", seed=42, max_ticks=3, agent_count=1)
    await persistence.save_run_metadata(run)
    assert (await persistence.get_run_metadata("run-1")).seed == 42

    setup = Event.simulation_started(0, agents=1, seed=42).model_copy(update={"sequence": 0})
    await persistence.save_events("run-1", 0, [setup])
    await persistence.save_events("run-1", 1, make_events())
    await persistence.save_events(
        "run-1", 1, [Event.tick_completed(1, decisions=1, choices=1, deferred=0, failures=0).model_copy(
            update={"sequence": 4}
        )]
    )

    tick_one = await persistence.get_events("run-1", tick=1)
    assert [event.sequence for event in tick_one] == [2, 3, 4]
    everything = await persistence.get_events("run-1")
    assert [event.sequence for event in everything] == [0, 2, 3, 4]
    assert await persistence.get_events("run-1", tick=9) == []

    await persistence.save_snapshot("run-1", 1, make_snapshot())
    assert await persistence.get_snapshot("run-1", 1) == make_snapshot()
    assert await persistence.get_snapshot("run-1", 2) is None

    summary = Summary(name="ev-adoption", status=RunStatus.COMPLETED, ticks_completed=1)
    await persistence.save_summary("run-1", summary)
    assert await persistence.get_summary("run-1") == summary

    ended = datetime(2030, 1, 1, tzinfo=timezone.utc)
    await persistence.update_run_status("run-1", RunStatus.COMPLETED, ended)
    stored = await persistence.get_run_metadata("run-1")
    assert stored.status is RunStatus.COMPLETED
    assert stored.end_time == ended

    await persistence.close()
    assert await persistence.get_summary("run-1") == summary

    await persistence.delete_run("run-1")
    assert await persistence.get_run_metadata("run-1") is None
    assert await persistence.get_events("run-1") == []
    assert await persistence.get_summary("run-1") is None


@pytest.mark.asyncio
async def test_in_memory_persistence_round_trip():
    await exercise_backend(InMemoryPersistence())


@pytest.mark.asyncio
async def test_json_persistence_round_trip(tmp_path):
    await exercise_backend(JsonPersistence(tmp_path / "runs"))


@pytest.mark.asyncio
async def test_json_persistence_layout(tmp_path):
    persistence = JsonPersistence(tmp_path)
    await persistence.initialize()
    await persistence.save_run_metadata(SimulationRun(run_id="run-2", name="layout"))
    await persistence.save_events("run-2", 1, make_events())
    await persistence.save_snapshot("run-2", 1, make_snapshot())

    run_dir = tmp_path / "run-2"
    assert (run_dir / "run.json").exists()
    assert len((run_dir / "events" / "00001.jsonl").read_text("utf-8").splitlines()) == 2
    assert (run_dir / "snapshots" / "00001.json").exists()


@pytest.mark.asyncio
async def test_update_status_for_unknown_run_is_ignored(tmp_path):
    for persistence in (InMemoryPersistence(), JsonPersistence(tmp_path)):
        await persistence.initialize()
        await persistence.update_run_status("missing", RunStatus.HALTED)
        assert await persistence.get_run_metadata("missing") is None


@pytest.mark.asyncio
async def test_json_persistence_defaults_to_config_runs_dir(monkeypatch, tmp_path):
    monkeypatch.setattr("choiceverse.persistence.Config.RUNS_DIR", tmp_path / "configured")
    persistence = JsonPersistence()
    await persistence.initialize()
    assert persistence.base_path == tmp_path / "configured"
    assert persistence.base_path.exists()
