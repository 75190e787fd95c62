"""Unit tests for RecurringSync."""
import threading
from unittest.mock import Mock

import pytest

from processor.models import SyncOutcome
from sync.auto_sync import RecurringSync


def test_runs_immediately_and_stops_cleanly():
    """Test the first sync runs on start and stop joins the thread."""
    ran = threading.Event()
    orchestrator = Mock()

    def run_sync():
        ran.set()
        return SyncOutcome(success=True, message='ok')

    orchestrator.run_sync.side_effect = run_sync
    timer = RecurringSync(orchestrator, interval_seconds=60)

    timer.start()
    assert ran.wait(5)
    assert timer.running is True

    timer.stop(timeout=5)

    assert timer.running is False
    assert orchestrator.run_sync.call_count == 1


def test_exceptions_do_not_kill_the_timer():
    """Test a raising run is logged and the next one still happens."""
    second_run = threading.Event()
    calls = []
    orchestrator = Mock()

    def run_sync():
        calls.append(1)
        if len(calls) == 1:
            raise RuntimeError('boom')
        second_run.set()
        return SyncOutcome(success=True, message='ok')

    orchestrator.run_sync.side_effect = run_sync
    timer = RecurringSync(orchestrator, interval_seconds=0.01)

    timer.start()
    assert second_run.wait(5)
    timer.stop(timeout=5)

    assert len(calls) >= 2
    assert timer.running is False


def test_start_twice_keeps_one_thread():
    """Test starting a running timer does not spawn a second thread."""
    release = threading.Event()
    orchestrator = Mock()

    def run_sync():
        release.wait(5)
        return SyncOutcome(success=True, message='ok')

    orchestrator.run_sync.side_effect = run_sync
    timer = RecurringSync(orchestrator, interval_seconds=60)

    timer.start()
    thread = timer._thread
    timer.start()

    assert timer._thread is thread
    release.set()
    timer.stop(timeout=5)


def test_interval_must_be_positive():
    """Test a non-positive interval is rejected."""
    with pytest.raises(ValueError):
        RecurringSync(Mock(), interval_seconds=0)
