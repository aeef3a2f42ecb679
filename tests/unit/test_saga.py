"""Tests for compensating actions."""

from unittest.mock import MagicMock

import pytest

from triddle.services.saga import Saga


def test_compensations_run_newest_first_on_failure():
    """Undo steps run in reverse and the original error propagates."""
    calls = []

    with pytest.raises(RuntimeError, match="write failed"):
        with Saga("test") as saga:
            saga.on_failure("first", calls.append, "first")
            saga.on_failure("second", calls.append, "second")
            raise RuntimeError("write failed")

    assert calls == ["second", "first"]
    assert saga.compensated


def test_no_compensation_on_success():
    """Nothing is undone when the block succeeds."""
    action = MagicMock()

    with Saga("test") as saga:
        saga.on_failure("undo", action)

    action.assert_not_called()
    assert not saga.compensated


def test_failed_compensation_does_not_mask_error():
    """An undo step that fails is reported and the others still run."""
    later = MagicMock()
    broken = MagicMock(side_effect=OSError("gone"))

    saga = Saga("test", form_id="form-1")
    saga.on_failure("later", later)
    saga.on_failure("broken", broken)

    assert saga.compensate() == ["broken"]
    later.assert_called_once_with()

    with pytest.raises(ValueError):
        with Saga("test") as failing:
            failing.on_failure("broken", MagicMock(side_effect=OSError("gone")))
            raise ValueError("original")
