import threading

import pytest

from directory_bootstrap.core.errors import LookupFailed
from directory_bootstrap.reconcile.retry import RetryPolicy, poll_until_visible


def counting_check(visible_on: int):
    calls = {"n": 0}

    def check() -> bool:
        calls["n"] += 1
        return calls["n"] >= visible_on

    return check, calls


def test_poll_stops_when_visible():
    check, calls = counting_check(visible_on=2)

    outcome = poll_until_visible(check, RetryPolicy(max_attempts=5, interval_seconds=0))

    assert outcome.visible
    assert outcome.attempts == 2
    assert calls["n"] == 2


def test_poll_gives_up_after_budget():
    check, calls = counting_check(visible_on=99)

    outcome = poll_until_visible(check, RetryPolicy(max_attempts=4, interval_seconds=0))

    assert not outcome.visible
    assert not outcome.cancelled
    assert outcome.attempts == 4
    assert calls["n"] == 4


def test_lookup_errors_count_as_not_visible():
    state = {"n": 0}

    def check() -> bool:
        state["n"] += 1
        if state["n"] == 1:
            raise LookupFailed("server unavailable")
        return True

    outcome = poll_until_visible(check, RetryPolicy(max_attempts=3, interval_seconds=0))

    assert outcome.visible
    assert outcome.attempts == 2
    assert outcome.last_error == "server unavailable"


def test_cancel_from_another_thread_interrupts_the_wait():
    cancel = threading.Event()
    policy = RetryPolicy(max_attempts=10, interval_seconds=30, cancel=cancel)
    timer = threading.Timer(0.05, cancel.set)
    timer.start()

    try:
        outcome = poll_until_visible(lambda: False, policy)
    finally:
        timer.cancel()

    assert outcome.cancelled
    assert outcome.attempts == 1


@pytest.mark.parametrize(("attempts", "interval"), [(0, 1.0), (1, -1.0)])
def test_policy_rejects_invalid_values(attempts, interval):
    with pytest.raises(ValueError):
        RetryPolicy(max_attempts=attempts, interval_seconds=interval)
