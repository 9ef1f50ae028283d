import threading
from datetime import timedelta

import pytest

from studycore.autosave import AUTOSAVE_JOB_ID, AutosaveTimer


def test_interval_must_be_positive():
    with pytest.raises(ValueError):
        AutosaveTimer(lambda: True, interval_seconds=0)


def test_tick_returns_flush_result():
    assert AutosaveTimer(lambda: True).tick() is True
    assert AutosaveTimer(lambda: False).tick() is False


def test_tick_logs_and_survives_errors(caplog):
    def broken():
        raise RuntimeError("disk on fire")

    assert AutosaveTimer(broken).tick() is False
    assert "unexpected error" in caplog.text


def test_job_never_overlaps_and_coalesces():
    timer = AutosaveTimer(lambda: False, interval_seconds=45)
    timer.start()
    try:
        job = timer._scheduler.get_job(AUTOSAVE_JOB_ID)
        assert job.max_instances == 1
        assert job.coalesce is True
        assert job.trigger.interval == timedelta(seconds=45)
    finally:
        timer.stop()


def test_timer_flushes_periodically():
    flushed = threading.Event()
    calls = []

    def flush():
        calls.append(1)
        if len(calls) >= 2:
            flushed.set()
        return True

    timer = AutosaveTimer(flush, interval_seconds=0.05)
    timer.start()
    try:
        assert flushed.wait(timeout=5)
        assert timer.is_running
    finally:
        timer.stop()
    assert not timer.is_running


def test_stop_from_inside_flush_does_not_block():
    stopped = threading.Event()
    timer = None

    def flush():
        timer.stop()
        stopped.set()
        return False

    timer = AutosaveTimer(flush, interval_seconds=0.05)
    timer.start()
    assert stopped.wait(timeout=5)
    assert not timer.is_running


def test_cannot_start_twice():
    timer = AutosaveTimer(lambda: False, interval_seconds=60)
    timer.start()
    try:
        with pytest.raises(ValueError):
            timer.start()
    finally:
        timer.stop()


def test_can_restart_after_stop():
    timer = AutosaveTimer(lambda: False, interval_seconds=60)
    timer.start()
    timer.stop()
    timer.start()
    try:
        assert timer.is_running
    finally:
        timer.stop()


def test_stop_without_start_is_safe():
    AutosaveTimer(lambda: False).stop()
