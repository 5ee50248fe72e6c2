"""Tests for the fixed-delay retry executor."""

from unittest.mock import Mock

import pytest

from alloykit.core.errors import ConfigurationError, ProcessError, TransientNetworkError
from alloykit.core.types import RetryConfig
from alloykit.orchestration.retry import RetryExecutor, retry


class TestRetry:
    """Attempt counting and sleeping."""

    def setup_method(self) -> None:
        self.sleep = Mock()

    def test_success_on_third_attempt(self) -> None:
        operation = Mock(side_effect=[False, False, True])

        assert retry(operation, 3, 2.0, "fetch loki", sleep=self.sleep)

        assert operation.call_count == 3
        assert self.sleep.call_count == 2
        self.sleep.assert_called_with(2.0)

    def test_always_failing_makes_exactly_max_attempts(self) -> None:
        operation = Mock(return_value=False)

        assert not retry(operation, 3, 2.0, "fetch loki", sleep=self.sleep)

        assert operation.call_count == 3
        # No sleep after the final attempt
        assert self.sleep.call_count == 2

    def test_first_try_success_never_sleeps(self) -> None:
        operation = Mock(return_value=True)
        assert retry(operation, 3, 2.0, "op", sleep=self.sleep)
        assert operation.call_count == 1
        self.sleep.assert_not_called()

    def test_retryable_exceptions_count_as_failures(self) -> None:
        operation = Mock(side_effect=[TransientNetworkError("reset"), ProcessError("exit"), True])
        assert retry(operation, 3, 0.0, "op", sleep=self.sleep)
        assert operation.call_count == 3

    def test_other_exceptions_propagate(self) -> None:
        operation = Mock(side_effect=ConfigurationError("bad"))
        with pytest.raises(ConfigurationError):
            retry(operation, 3, 0.0, "op", sleep=self.sleep)
        assert operation.call_count == 1

    def test_single_attempt(self) -> None:
        operation = Mock(return_value=False)
        assert not retry(operation, 1, 5.0, "op", sleep=self.sleep)
        self.sleep.assert_not_called()

    def test_invalid_attempts(self) -> None:
        with pytest.raises(ValueError):
            retry(Mock(), 0, 1.0, "op", sleep=self.sleep)


class TestRetryExecutor:
    """Policy bound to RetryConfig."""

    def test_uses_config(self) -> None:
        sleep = Mock()
        executor = RetryExecutor(RetryConfig(max_attempts=2, delay=0.5), sleep=sleep)
        operation = Mock(return_value=False)

        assert not executor.run(operation, "op")

        assert executor.max_attempts == 2
        assert operation.call_count == 2
        sleep.assert_called_once_with(0.5)
