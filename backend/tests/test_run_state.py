"""Tests for the per-conversation run slot."""

from advisor.core import metrics
from advisor.services import BeginResult, RunStateMachine


def test_second_begin_is_rejected_until_end() -> None:
    machine = RunStateMachine()

    assert machine.try_begin_run("c1") is BeginResult.OK
    assert machine.try_begin_run("c1") is BeginResult.ALREADY_RUNNING
    assert machine.is_running("c1")

    machine.end_run("c1")

    assert not machine.is_running("c1")
    assert machine.try_begin_run("c1") is BeginResult.OK


def test_conversations_are_independent() -> None:
    machine = RunStateMachine()

    assert machine.try_begin_run("c1") is BeginResult.OK
    assert machine.try_begin_run("c2") is BeginResult.OK
    assert machine.running_ids() == frozenset({"c1", "c2"})
    assert len(machine) == 2


def test_end_run_on_idle_conversation_is_noop() -> None:
    machine = RunStateMachine()

    machine.end_run("never-started")
    machine.try_begin_run("c1")
    machine.end_run("c1")
    machine.end_run("c1")

    assert machine.running_ids() == frozenset()


def test_active_runs_gauge_tracks_slots() -> None:
    machine = RunStateMachine()

    machine.try_begin_run("gauge-1")
    assert metrics.snapshot()["gauges"]["active_runs"] == 1.0

    machine.end_run("gauge-1")
    assert metrics.snapshot()["gauges"]["active_runs"] == 0.0
