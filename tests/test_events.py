"""Tests for the append-only event log."""

import threading

from choiceverse.events import ConsoleEventSink, EventSystem
from choiceverse.schemas import Event, EventKind


def test_record_assigns_contiguous_sequence_numbers():
    system = EventSystem()
    first = system.record(Event.tick_started(1, triggers=0))
    second = system.record(Event.agent_added("a", 1))

    assert (first.sequence, second.sequence) == (0, 1)
    assert len(system) == 2
    assert system.last() == second


def test_recorded_events_are_copies():
    system = EventSystem()
    original = Event.tick_started(1, triggers=2)
    stamped = system.record(original)

    assert original.sequence is None
    assert stamped.sequence == 0
    assert stamped.payload == {"triggers": 2}


def test_subscribers_see_every_event_in_order():
    system = EventSystem()
    seen = []
    system.subscribe(lambda event: seen.append(event.sequence))

    system.record_all([Event.tick_started(t, triggers=0) for t in range(1, 4)])

    assert seen == [0, 1, 2]


def test_failing_subscriber_is_isolated(capsys):
    system = EventSystem()
    seen = []

    def broken(event):
        raise RuntimeError("sink down")

    system.subscribe(broken)
    system.subscribe(lambda event: seen.append(event.kind))

    system.record(Event.tick_started(1, triggers=0))
    system.record(Event.tick_completed(1, decisions=0, choices=0, deferred=0, failures=0))

    assert seen == [EventKind.TICK_STARTED, EventKind.TICK_COMPLETED]
    assert len(system) == 2
    assert len(system.subscriber_failures) == 2
    assert system.subscriber_failures[0].sequence == 0
    assert "sink down" in system.subscriber_failures[0].error
    assert "failed on event #0" in capsys.readouterr().out


def test_subscriber_recording_reentrantly_keeps_order():
    system = EventSystem()
    seen = []

    def echo(event):
        seen.append(event.sequence)
        if event.kind is EventKind.TICK_STARTED:
            system.record(Event.agent_added("late", event.tick))

    system.subscribe(echo)
    system.record(Event.tick_started(1, triggers=0))

    assert seen == [0, 1]
    assert [event.kind for event in system.events] == [EventKind.TICK_STARTED, EventKind.AGENT_ADDED]


def test_reentrant_record_reaches_every_subscriber_in_log_order():
    system = EventSystem()
    first_seen = []
    second_seen = []

    def echo(event):
        first_seen.append(event.sequence)
        if event.kind is EventKind.TICK_STARTED:
            recorded = system.record(Event.agent_added("late", event.tick))
            # delivery of the echoed event waits until every handler saw #0
            assert recorded.sequence == 1
            assert second_seen == []

    system.subscribe(echo)
    system.subscribe(lambda event: second_seen.append(event.sequence))
    system.record(Event.tick_started(1, triggers=0))

    assert first_seen == [0, 1]
    assert second_seen == [0, 1]
    assert system.subscriber_failures == []


def test_unsubscribe_stops_delivery():
    system = EventSystem()
    seen = []
    handler = seen.append
    system.subscribe(handler)
    system.record(Event.tick_started(1, triggers=0))
    system.unsubscribe(handler)
    system.record(Event.tick_started(2, triggers=0))

    assert len(seen) == 1


def test_queries_filter_the_log():
    system = EventSystem()
    system.record(Event.agent_added("a", 0))
    system.record(Event.agent_added("b", 0))
    system.record(Event.tick_started(1, triggers=1))
    system.record(Event.agent_removed("a", 1))

    assert [event.agent_id for event in system.events_of_kind(EventKind.AGENT_ADDED)] == ["a", "b"]
    assert [event.kind for event in system.events_for_agent("a")] == [
        EventKind.AGENT_ADDED,
        EventKind.AGENT_REMOVED,
    ]
    assert len(system.events_for_tick(1)) == 2
    assert [event.sequence for event in system.events_since(2)] == [2, 3]


def test_concurrent_recording_produces_one_total_order():
    system = EventSystem()
    seen = []
    system.subscribe(lambda event: seen.append(event.sequence))

    def worker(agent_id):
        for tick in range(50):
            system.record(Event.agent_added(agent_id, tick))

    threads = [threading.Thread(target=worker, args=(f"agent-{i}",)) for i in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert [event.sequence for event in system.events] == list(range(200))
    assert seen == list(range(200))


def test_console_sink_prints_selected_kinds(capsys, monkeypatch):
    monkeypatch.setenv("CHOICEVERSE_NO_COLOR", "1")
    sink = ConsoleEventSink(kinds=[EventKind.SIMULATION_HALTED])
    system = EventSystem()
    system.subscribe(sink)

    system.record(Event.tick_started(1, triggers=0))
    system.record(Event.simulation_halted(1, reason="cancelled"))

    out = capsys.readouterr().out
    assert "Simulation halted: cancelled" in out
    assert "Tick 1 started" not in out
