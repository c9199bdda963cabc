"""Unit tests for app/core/saga.py (steps, policies, compensation, fan-out)."""
import threading
import time

import pytest

from app.core.saga import Saga, Step, StepFailed, StepPolicy, fan_out


def test_run_returns_action_result():
    saga = Saga("demo")
    assert saga.run(Step("one", lambda: 42)) == 42
    assert saga.failures == []


def test_default_policy_is_fail_fast():
    assert Step("x", lambda: None).policy is StepPolicy.FAIL_FAST


def test_fail_fast_unwinds_compensations_in_reverse_order():
    undone = []
    saga = Saga("demo")
    saga.run(Step("a", lambda: "A", compensate=lambda r: undone.append(("a", r))))
    saga.run(Step("b", lambda: "B", compensate=lambda r: undone.append(("b", r))))

    def boom():
        raise RuntimeError("c failed")

    with pytest.raises(StepFailed) as excinfo:
        saga.run(Step("c", boom))

    assert excinfo.value.step == "c"
    assert isinstance(excinfo.value.cause, RuntimeError)
    assert undone == [("b", "B"), ("a", "A")]
    assert saga.compensated == ["b", "a"]


def test_failing_step_does_not_compensate_itself():
    undone = []

    def boom():
        raise ValueError("nope")

    saga = Saga("demo")
    with pytest.raises(StepFailed):
        saga.run(Step("only", boom, compensate=lambda r: undone.append(r)))
    assert undone == []


def test_log_and_continue_records_failure_and_keeps_going():
    undone = []
    saga = Saga("demo", context={"user_id": "u1"})
    saga.run(Step("a", lambda: 1, compensate=lambda r: undone.append(r)))

    def boom():
        raise RuntimeError("ignored")

    assert saga.run(Step("b", boom, policy=StepPolicy.LOG_AND_CONTINUE)) is None
    assert saga.run(Step("c", lambda: "still runs")) == "still runs"
    assert [name for name, _ in saga.failures] == ["b"]
    assert undone == []


def test_compensation_failure_does_not_stop_unwind():
    undone = []

    def broken_undo(_):
        raise RuntimeError("undo failed")

    saga = Saga("demo")
    saga.run(Step("a", lambda: "A", compensate=lambda r: undone.append(r)))
    saga.run(Step("b", lambda: "B", compensate=broken_undo))

    def boom():
        raise RuntimeError("c failed")

    with pytest.raises(StepFailed):
        saga.run(Step("c", boom))
    assert undone == ["A"]
    assert saga.compensated == ["a"]


def test_rollback_runs_each_compensation_once():
    undone = []
    saga = Saga("demo")
    saga.run(Step("create", lambda: "created-id", compensate=lambda r: undone.append(r)))
    saga.rollback()
    assert undone == ["created-id"]
    saga.rollback()
    assert undone == ["created-id"]


def test_fan_out_reports_in_input_order():
    def work(item):
        # Later items finish first
        time.sleep(0.01 * (5 - item))
        if item % 2 == 0:
            raise RuntimeError(f"even {item}")

    outcomes = fan_out(work, [1, 2, 3, 4], max_workers=4)
    assert [item for item, _ in outcomes] == [1, 2, 3, 4]
    assert [error is None for _, error in outcomes] == [True, False, True, False]
    assert str(outcomes[1][1]) == "even 2"


def test_fan_out_respects_worker_bound():
    active = 0
    peak = 0
    lock = threading.Lock()

    def work(_):
        nonlocal active, peak
        with lock:
            active += 1
            peak = max(peak, active)
        time.sleep(0.02)
        with lock:
            active -= 1

    fan_out(work, range(8), max_workers=2)
    assert peak <= 2


def test_fan_out_empty_input():
    assert fan_out(lambda item: item, [], max_workers=3) == []
