"""Tests for the backoff retry primitive."""

import os
import sys
import threading
import time
from unittest.mock import patch

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from billing_errors import ImportCancelled
from retry_backoff import BackoffPolicy, run_with_backoff, wait


class TestBackoffPolicy:
    """Test cases for the delays a BackoffPolicy produces."""

    def test_default_schedule(self):
        with patch("retry_backoff.time.sleep") as mock_sleep:
            run_with_backoff(lambda pending: pending, ["x"], BackoffPolicy())

        assert [c.args[0] for c in mock_sleep.call_args_list] == pytest.approx([0.05, 0.1, 0.2, 0.4])

    def test_delay_is_capped(self):
        policy = BackoffPolicy(attempts=4, base_delay=2.0, max_delay=5.0)

        with patch("retry_backoff.time.sleep") as mock_sleep:
            run_with_backoff(lambda pending: pending, ["x"], policy)

        assert [c.args[0] for c in mock_sleep.call_args_list] == pytest.approx([2.0, 4.0, 5.0])

    def test_single_attempt_never_sleeps(self):
        with patch("retry_backoff.time.sleep") as mock_sleep:
            remaining = run_with_backoff(lambda pending: pending, ["x"], BackoffPolicy(attempts=1))

        assert remaining == ["x"]
        mock_sleep.assert_not_called()


class TestRunWithBackoff:
    """Test cases for run_with_backoff."""

    def test_returns_after_first_complete_attempt(self):
        calls = []

        def step(pending):
            calls.append(list(pending))
            return []

        with patch("retry_backoff.time.sleep") as mock_sleep:
            assert run_with_backoff(step, [1, 2, 3], BackoffPolicy()) == []

        assert calls == [[1, 2, 3]]
        mock_sleep.assert_not_called()

    def test_retries_only_what_is_left(self):
        calls = []

        def step(pending):
            calls.append(list(pending))
            return pending[1:]

        with patch("retry_backoff.time.sleep") as mock_sleep:
            remaining = run_with_backoff(step, [1, 2, 3], BackoffPolicy())

        assert remaining == []
        assert calls == [[1, 2, 3], [2, 3], [3]]
        assert [c.args[0] for c in mock_sleep.call_args_list] == pytest.approx([0.05, 0.1])

    def test_gives_up_after_attempts(self):
        calls = []

        def step(pending):
            calls.append(pending)
            return pending

        with patch("retry_backoff.time.sleep") as mock_sleep:
            remaining = run_with_backoff(step, ["x"], BackoffPolicy(attempts=5))

        assert remaining == ["x"]
        assert len(calls) == 5
        assert mock_sleep.call_count == 4

    def test_step_errors_are_not_retried(self):
        def step(pending):
            raise OSError("boom")

        with pytest.raises(OSError):
            run_with_backoff(step, ["x"], BackoffPolicy())

    def test_cancel_interrupts_sleep(self):
        cancel = threading.Event()
        cancel.set()

        with pytest.raises(ImportCancelled):
            run_with_backoff(lambda pending: pending, ["x"], BackoffPolicy(base_delay=10.0), cancel)


def test_wait_without_cancel_sleeps():
    with patch("retry_backoff.time.sleep") as mock_sleep:
        wait(0.5)

    mock_sleep.assert_called_once_with(0.5)


def test_cancel_wakes_a_sleep_in_progress():
    cancel = threading.Event()
    timer = threading.Timer(0.1, cancel.set)
    started = time.monotonic()
    timer.start()
    try:
        with pytest.raises(ImportCancelled):
            run_with_backoff(lambda pending: pending, ["x"], BackoffPolicy(base_delay=10.0), cancel)
    finally:
        timer.cancel()

    assert time.monotonic() - started < 1.0
