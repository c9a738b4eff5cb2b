import time
import threading
from enum import Enum


class WaitResult(Enum):
    TIMED_OUT = "timed_out"
    SIGNALED = "signaled"


def wait_with_timeout(event: threading.Event, duration: float) -> WaitResult:
    """
    Waits up to `duration` seconds for `event` to be set.

    :param event: The event that signals a shutdown request.
    :param duration: The maximum number of seconds to wait.
    :return WaitResult: SIGNALED if the event was set, TIMED_OUT otherwise.
    """
    if event.wait(max(duration, 0)):
        return WaitResult.SIGNALED
    return WaitResult.TIMED_OUT


def interruptible_sleep(event: threading.Event, duration: float, tick: float) -> WaitResult:
    """
    Sleeps for `duration` seconds as a series of bounded waits of at most `tick` seconds.

    A shutdown request is therefore observed within one tick regardless of
    how long the full sleep is.

    :param event: The event that signals a shutdown request.
    :param duration: The total number of seconds to sleep.
    :param tick: The upper bound of each individual wait.
    :return WaitResult: SIGNALED if the event was set before the sleep ended, TIMED_OUT otherwise.
    """
    deadline = time.monotonic() + duration
    while True:
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            return WaitResult.SIGNALED if event.is_set() else WaitResult.TIMED_OUT
        if wait_with_timeout(event, min(tick, remaining)) is WaitResult.SIGNALED:
            return WaitResult.SIGNALED
