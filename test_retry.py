import pytest

from retry import linear_backoff, retry_with_backoff


class Flaky(Exception):
    pass


def failing(times, exc=Flaky):
    calls = []

    def operation(attempt):
        calls.append(attempt)
        if len(calls) <= times:
            raise exc(f'failure {attempt}')
        return 'ok'
    return operation, calls


def test_first_success_returns_immediately():
    sleeps = []
    operation, calls = failing(0)
    assert retry_with_backoff(operation, sleep=sleeps.append) == 'ok'
    assert calls == [1]
    assert sleeps == []


def test_retries_with_linear_backoff():
    sleeps = []
    operation, calls = failing(2)
    result = retry_with_backoff(operation, max_attempts=3, backoff=linear_backoff(2),
                                retry_on=(Flaky,), sleep=sleeps.append)
    assert result == 'ok'
    assert calls == [1, 2, 3]
    assert sleeps == [2, 4]


def test_last_failure_is_reraised():
    sleeps = []
    operation, calls = failing(5)
    with pytest.raises(Flaky, match='failure 3'):
        retry_with_backoff(operation, max_attempts=3, retry_on=(Flaky,), sleep=sleeps.append)
    assert calls == [1, 2, 3]
    assert len(sleeps) == 2


def test_other_exceptions_are_not_retried():
    sleeps = []
    operation, calls = failing(1, exc=KeyError)
    with pytest.raises(KeyError):
        retry_with_backoff(operation, retry_on=(Flaky,), sleep=sleeps.append)
    assert calls == [1]
    assert sleeps == []


def test_max_attempts_must_be_positive():
    with pytest.raises(ValueError):
        retry_with_backoff(lambda attempt: None, max_attempts=0)
