"""Tests for call-scoped random sources."""

from choiceverse.randomness import derive_rng, derive_seed


def test_same_coordinates_same_stream():
    first = derive_rng(42, 3, "agent-1", "choice:0")
    second = derive_rng(42, 3, "agent-1", "choice:0")
    assert [first.random() for _ in range(5)] == [second.random() for _ in range(5)]


def test_each_coordinate_changes_the_seed():
    base = derive_seed(42, 3, "agent-1", "choice:0")
    assert derive_seed(43, 3, "agent-1", "choice:0") != base
    assert derive_seed(42, 4, "agent-1", "choice:0") != base
    assert derive_seed(42, 3, "agent-2", "choice:0") != base
    assert derive_seed(42, 3, "agent-1", "pipeline:0") != base


def test_seed_is_64_bit_and_handles_missing_agent():
    seed = derive_seed(0, 1, None, "environment")
    assert 0 <= seed < 2**64
    assert seed == derive_seed(0, 1, None, "environment")
