"""Tests for the pipeline run state machine."""

import pytest

from src.pipeline.run_state import PipelineRun, RunPhase, RunResult, RunStateError, RunStatus


def test_new_run_is_collecting():
    run = PipelineRun(trigger_type="manual", mode="full")
    assert run.status == RunStatus.RUNNING
    assert run.phase == RunPhase.COLLECTING
    assert len(run.id) == 12
    assert not run.is_finalized


def test_phases_move_forward_and_may_skip():
    run = PipelineRun()
    run.advance(RunPhase.RESOLVING)
    run.advance(RunPhase.SCORING)
    assert run.phase == RunPhase.SCORING
    with pytest.raises(RunStateError):
        run.advance(RunPhase.ENRICHING)


def test_failed_phase_only_via_fail():
    run = PipelineRun()
    with pytest.raises(RunStateError):
        run.advance(RunPhase.FAILED)


def test_complete_finalizes_once():
    run = PipelineRun()
    run.record(discovered=5)
    run.complete()

    assert run.status == RunStatus.COMPLETED
    assert run.phase == RunPhase.DONE
    assert run.completed_at is not None
    assert run.duration_seconds is not None
    with pytest.raises(RunStateError):
        run.fail("late error")
    with pytest.raises(RunStateError):
        run.complete()


def test_fail_keeps_counters_and_error():
    run = PipelineRun()
    run.record(discovered=10, resolved=8)
    run.advance(RunPhase.ENRICHING)
    run.fail("enriching: boom")

    result = RunResult.from_run(run)
    assert result.status == RunStatus.FAILED
    assert result.errors == ["enriching: boom"]
    assert result.counts == {"discovered": 10, "resolved": 8}
    assert run.phase == RunPhase.FAILED
