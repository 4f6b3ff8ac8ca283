"""
Tests for the step/compensation runner used by multi-store writes.
"""
from __future__ import annotations

from unittest.mock import Mock

import pytest

from src.domain.errors import PartialFailureError, StoreError
from src.domain.services.saga import Saga, SagaStep


def test_all_steps_run_in_order_and_return_results():
    calls = []
    saga = Saga(
        operation="op",
        steps=[
            SagaStep("a", lambda: calls.append("a") or 1),
            SagaStep("b", lambda: calls.append("b") or 2),
        ],
    )
    assert saga.run() == [1, 2]
    assert calls == ["a", "b"]


def test_first_step_failure_reraises_original_error():
    error = StoreError("boom", operation="x", retryable=True)
    second = Mock()
    saga = Saga("op", [SagaStep("a", Mock(side_effect=error)), SagaStep("b", second)])

    with pytest.raises(StoreError) as exc_info:
        saga.run()

    assert exc_info.value is error
    second.assert_not_called()


def test_successful_compensation_reraises_original_error():
    undo_a = Mock()
    error = StoreError("insert failed", operation="insert")
    saga = Saga(
        "op",
        [
            SagaStep("a", Mock(return_value="ok"), compensate=undo_a),
            SagaStep("b", Mock(side_effect=error)),
        ],
    )

    with pytest.raises(StoreError) as exc_info:
        saga.run()

    assert exc_info.value is error
    undo_a.assert_called_once_with()


def test_compensation_runs_in_reverse_order():
    order = []
    saga = Saga(
        "op",
        [
            SagaStep("a", Mock(), compensate=lambda: order.append("a")),
            SagaStep("b", Mock(), compensate=lambda: order.append("b")),
            SagaStep("c", Mock(side_effect=StoreError("nope"))),
        ],
    )
    with pytest.raises(StoreError):
        saga.run()
    assert order == ["b", "a"]


def test_failed_compensation_raises_partial_failure():
    saga = Saga(
        "request_deletion",
        [
            SagaStep("a", Mock(), compensate=Mock(side_effect=StoreError("undo failed"))),
            SagaStep("b", Mock(side_effect=StoreError("insert failed"))),
        ],
        context={"user_id": "u1"},
    )

    with pytest.raises(PartialFailureError) as exc_info:
        saga.run()

    err = exc_info.value
    assert err.operation == "request_deletion"
    assert err.failed_step == "b"
    assert err.completed_steps == ["a"]
    assert err.compensated_steps == []
    assert err.compensation_failed == ["a"]
    assert err.details["user_id"] == "u1"
    assert isinstance(err.cause, StoreError)


def test_irreversible_step_raises_partial_failure():
    saga = Saga(
        "recover",
        [SagaStep("cancel", Mock()), SagaStep("reactivate", Mock(side_effect=StoreError("down")))],
    )

    with pytest.raises(PartialFailureError) as exc_info:
        saga.run()

    assert exc_info.value.failed_step == "reactivate"
    assert exc_info.value.completed_steps == ["cancel"]
    assert exc_info.value.compensation_failed == []
