"""Tests for the retry combinator."""

from __future__ import annotations

import pytest

from radio_builder.utils.retry import linear_backoff, retry_call


class Flaky:
    def __init__(self, failures: int, error: type[Exception] = ConnectionError) -> None:
        self.failures = failures
        self.error = error
        self.calls = 0

    def __call__(self) -> str:
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error(f"failure {self.calls}")
        return "ok"


def test_linear_backoff_grows_with_attempt() -> None:
    delay = linear_backoff(1.5)
    assert [delay(attempt) for attempt in (1, 2, 3)] == [1.5, 3.0, 4.5]


def test_retry_call_succeeds_after_failures() -> None:
    sleeps: list[float] = []
    operation = Flaky(failures=2)

    result = retry_call(
        operation,
        max_attempts=3,
        backoff=linear_backoff(1.0),
        retry_on=(ConnectionError,),
        sleep=sleeps.append,
    )

    assert result == "ok"
    assert operation.calls == 3
    assert sleeps == [1.0, 2.0]


def test_retry_call_reraises_last_error_when_exhausted() -> None:
    sleeps: list[float] = []
    operation = Flaky(failures=5)

    with pytest.raises(ConnectionError, match="failure 3"):
        retry_call(
            operation,
            max_attempts=3,
            retry_on=(ConnectionError,),
            sleep=sleeps.append,
        )

    assert operation.calls == 3
    assert len(sleeps) == 2


def test_retry_call_does_not_retry_unlisted_errors() -> None:
    operation = Flaky(failures=1, error=KeyError)

    with pytest.raises(KeyError):
        retry_call(operation, max_attempts=3, retry_on=(ConnectionError,), sleep=lambda _s: None)

    assert operation.calls == 1


def test_retry_call_rejects_zero_attempts() -> None:
    with pytest.raises(ValueError):
        retry_call(lambda: None, max_attempts=0)
