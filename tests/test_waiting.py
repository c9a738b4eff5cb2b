import threading
import time

from totalrecall.worker.waiting import WaitResult, interruptible_sleep, wait_with_timeout


def test_wait_times_out_when_event_not_set() -> None:
    assert wait_with_timeout(threading.Event(), 0.01) is WaitResult.TIMED_OUT


def test_wait_returns_immediately_when_event_already_set() -> None:
    event = threading.Event()
    event.set()

    started = time.monotonic()
    assert wait_with_timeout(event, 10) is WaitResult.SIGNALED
    assert time.monotonic() - started < 1


def test_sleep_runs_full_duration_without_signal() -> None:
    started = time.monotonic()
    assert interruptible_sleep(threading.Event(), 0.2, tick=0.05) is WaitResult.TIMED_OUT
    assert time.monotonic() - started >= 0.2


def test_sleep_wakes_early_on_signal() -> None:
    event = threading.Event()
    timer = threading.Timer(0.1, event.set)
    timer.start()

    started = time.monotonic()
    try:
        result = interruptible_sleep(event, 600, tick=0.05)
    finally:
        timer.cancel()

    assert result is WaitResult.SIGNALED
    assert time.monotonic() - started < 5


def test_zero_duration_sleep_times_out() -> None:
    assert interruptible_sleep(threading.Event(), 0, tick=1) is WaitResult.TIMED_OUT
