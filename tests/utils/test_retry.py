"""Tests for retry_on_transient_error."""

import pytest

from utils.deadline import Deadline
from utils.retry import retry_on_transient_error, is_transient_network_error


class Flaky:
    """Raises the given exceptions in order, then returns "ok"."""

    def __init__(self, *errors):
        self.errors = list(errors)
        self.calls = 0

    def __call__(self):
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return "ok"


def retrying(func, sleeps, **kwargs):
    return retry_on_transient_error(
        is_retryable=is_transient_network_error, sleep=sleeps.append, **kwargs
    )(func)


def test_succeeds_after_transient_errors():
    sleeps = []
    func = Flaky(ConnectionError(), TimeoutError())
    assert retrying(func, sleeps, base_delay=1.0)() == "ok"
    assert func.calls == 3
    assert len(sleeps) == 2
    # Jitter keeps each delay within 0.5x..1.5x of the exponential step
    assert 0.5 <= sleeps[0] <= 1.5
    assert 1.0 <= sleeps[1] <= 3.0


def test_non_retryable_raises_immediately():
    sleeps = []
    func = Flaky(ValueError("bad request"))
    with pytest.raises(ValueError):
        retrying(func, sleeps)()
    assert func.calls == 1
    assert sleeps == []


def test_gives_up_after_max_retries():
    sleeps = []
    func = Flaky(*[ConnectionError(str(i)) for i in range(5)])
    with pytest.raises(ConnectionError, match="2"):
        retrying(func, sleeps, max_retries=2)()
    assert func.calls == 3


def test_max_delay_caps_backoff():
    sleeps = []
    func = Flaky(*[ConnectionError() for _ in range(4)])
    retrying(func, sleeps, base_delay=10.0, max_delay=10.0)()
    assert all(s <= 15.0 for s in sleeps)


def test_on_retry_callback():
    seen = []
    func = Flaky(ConnectionError())
    retry_on_transient_error(
        is_retryable=is_transient_network_error,
        on_retry=lambda exc, attempt, delay: seen.append(attempt),
        sleep=lambda delay: None,
    )(func)()
    assert seen == [1]


def test_no_retry_past_deadline():
    sleeps = []
    func = Flaky(ConnectionError(), ConnectionError())
    with pytest.raises(ConnectionError):
        retrying(func, sleeps, deadline=Deadline(0.1), base_delay=1.0)()
    assert func.calls == 1
    assert sleeps == []
