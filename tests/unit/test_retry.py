"""
Unit tests for retry logic with exponential backoff

Tests verify:
- Exponential backoff calculation
- Jitter bounds
- Exception filtering
- Retry callbacks
- PostgreSQL-specific retry decisions
"""

import pytest
from unittest.mock import Mock, patch

import psycopg2
from psycopg2 import errorcodes

from utils.retry import (
    compute_backoff_delay,
    is_retryable_db_exception,
    retry_database_operation,
    retry_with_backoff,
)


class PgError(Exception):
    """Driver-style error carrying a SQLSTATE."""

    def __init__(self, message, pgcode):
        super().__init__(message)
        self.pgcode = pgcode


class TestComputeBackoffDelay:
    """Test compute_backoff_delay"""

    @pytest.mark.parametrize("attempt,expected", [(0, 1.0), (1, 2.0), (2, 4.0), (3, 8.0)])
    def test_exponential_growth(self, attempt, expected):
        """Test delay doubles with each attempt"""
        assert compute_backoff_delay(attempt, 1.0, 30.0, jitter=False) == expected

    def test_capped_at_max_delay(self):
        """Test delay never exceeds max_delay"""
        assert compute_backoff_delay(10, 1.0, 5.0, jitter=False) == 5.0

    def test_jitter_stays_within_quarter(self):
        """Test jitter keeps delay within +/-25%"""
        for _ in range(50):
            delay = compute_backoff_delay(2, 1.0, 30.0)
            assert 3.0 <= delay <= 5.0

    def test_jitter_floor(self):
        """Test jittered delay never drops below 0.1s"""
        assert compute_backoff_delay(0, 0.01, 30.0) >= 0.1


class TestRetryWithBackoff:
    """Test retry_with_backoff decorator"""

    def test_success_on_first_attempt(self):
        """Test function succeeds on first attempt without retries"""
        mock_func = Mock(return_value="success")
        decorated = retry_with_backoff(max_retries=3)(mock_func)

        assert decorated() == "success"
        assert mock_func.call_count == 1

    def test_success_after_retries(self):
        """Test function succeeds after transient failures"""
        mock_func = Mock(side_effect=[
            ConnectionError("Connection failed"),
            ConnectionError("Connection failed"),
            "success"
        ])

        with patch("utils.retry.time.sleep"):
            decorated = retry_with_backoff(max_retries=3)(mock_func)
            result = decorated()

        assert result == "success"
        assert mock_func.call_count == 3

    def test_max_retries_exceeded(self):
        """Test function fails after max retries exceeded"""
        mock_func = Mock(side_effect=ConnectionError("Persistent error"))

        with patch("utils.retry.time.sleep"):
            decorated = retry_with_backoff(max_retries=2)(mock_func)
            with pytest.raises(ConnectionError, match="Persistent error"):
                decorated()

        # initial + 2 retries
        assert mock_func.call_count == 3

    def test_exponential_backoff_timing(self):
        """Test sleeps follow base * 2^attempt without jitter"""
        mock_func = Mock(side_effect=[TimeoutError("t"), TimeoutError("t"), "success"])

        with patch("utils.retry.time.sleep") as mock_sleep:
            decorated = retry_with_backoff(
                max_retries=2, base_delay=1.0, exponential_base=2.0, jitter=False
            )(mock_func)
            decorated()

        assert [c[0][0] for c in mock_sleep.call_args_list] == [1.0, 2.0]

    def test_retryable_exceptions_filter(self):
        """Test only specified exceptions are retried"""
        mock_func = Mock(side_effect=ValueError("Not retryable"))
        decorated = retry_with_backoff(
            max_retries=3,
            retryable_exceptions=(ConnectionError, TimeoutError)
        )(mock_func)

        with pytest.raises(ValueError, match="Not retryable"):
            decorated()

        assert mock_func.call_count == 1

    def test_should_retry_predicate(self):
        """Test should_retry returning False fails immediately"""
        mock_func = Mock(side_effect=ConnectionError("nope"))
        decorated = retry_with_backoff(max_retries=3, should_retry=lambda e: False)(mock_func)

        with pytest.raises(ConnectionError):
            decorated()

        assert mock_func.call_count == 1

    def test_on_retry_callback_called(self):
        """Test on_retry callback receives (attempt, exception, delay)"""
        mock_callback = Mock()
        mock_func = Mock(side_effect=[ConnectionError("1"), ConnectionError("2"), "success"])

        with patch("utils.retry.time.sleep"):
            decorated = retry_with_backoff(max_retries=3, on_retry=mock_callback)(mock_func)
            decorated()

        assert mock_callback.call_count == 2
        attempt, exception, delay = mock_callback.call_args_list[0][0]
        assert attempt == 1
        assert isinstance(exception, ConnectionError)
        assert isinstance(delay, float)

    def test_on_retry_callback_exception_handled(self):
        """Test exception in callback doesn't break retry logic"""
        mock_callback = Mock(side_effect=Exception("Callback error"))
        mock_func = Mock(side_effect=[ConnectionError("Error"), "success"])

        with patch("utils.retry.time.sleep"):
            decorated = retry_with_backoff(max_retries=2, on_retry=mock_callback)(mock_func)
            assert decorated() == "success"

    def test_function_with_arguments(self):
        """Test retry passes arguments through on every attempt"""
        mock_func = Mock(side_effect=[ConnectionError("Error"), "ok"])

        with patch("utils.retry.time.sleep"):
            decorated = retry_with_backoff(max_retries=2)(mock_func)
            decorated("arg1", key="value")

        assert mock_func.call_args_list[1][0] == ("arg1",)
        assert mock_func.call_args_list[1][1] == {"key": "value"}


class TestIsRetryableDbException:
    """Test is_retryable_db_exception function"""

    @pytest.mark.parametrize("pgcode", [
        errorcodes.SERIALIZATION_FAILURE,
        errorcodes.DEADLOCK_DETECTED,
        errorcodes.LOCK_NOT_AVAILABLE,
        errorcodes.ADMIN_SHUTDOWN,
    ])
    def test_transient_sqlstates_retryable(self, pgcode):
        """Test serialization and deadlock SQLSTATEs are retried"""
        assert is_retryable_db_exception(PgError("conflict", pgcode)) is True

    @pytest.mark.parametrize("pgcode", [
        errorcodes.UNIQUE_VIOLATION,
        errorcodes.NOT_NULL_VIOLATION,
        errorcodes.SYNTAX_ERROR,
        errorcodes.UNDEFINED_TABLE,
    ])
    def test_permanent_sqlstates_not_retryable(self, pgcode):
        """Test constraint and syntax SQLSTATEs are not retried"""
        assert is_retryable_db_exception(PgError("connection reset", pgcode)) is False

    def test_driver_connection_errors_retryable(self):
        """Test psycopg2 connection level errors are retried"""
        assert is_retryable_db_exception(psycopg2.OperationalError("boom")) is True
        assert is_retryable_db_exception(psycopg2.InterfaceError("closed")) is True

    def test_builtin_connection_errors_retryable(self):
        """Test ConnectionError and TimeoutError are retried"""
        assert is_retryable_db_exception(ConnectionError("x")) is True
        assert is_retryable_db_exception(TimeoutError("x")) is True

    @pytest.mark.parametrize("message", [
        "Connection refused",
        "connection reset by peer",
        "SERVER CLOSED THE CONNECTION unexpectedly",
        "could not connect to server",
        "SSL SYSCALL error: EOF detected",
    ])
    def test_message_patterns(self, message):
        """Test matching on error text is case-insensitive"""
        assert is_retryable_db_exception(Exception(message)) is True

    @pytest.mark.parametrize("message", [
        "syntax error at or near SELECT",
        "relation does not exist",
        "duplicate key value violates unique constraint",
    ])
    def test_other_errors_not_retryable(self, message):
        """Test unrelated errors are not retried"""
        assert is_retryable_db_exception(Exception(message)) is False


class TestRetryDatabaseOperation:
    """Test retry_database_operation decorator"""

    def test_retries_on_operational_error(self):
        """Test database operation retries on connection loss"""
        mock_func = Mock(side_effect=[psycopg2.OperationalError("lost"), "success"])

        with patch("utils.retry.time.sleep"):
            decorated = retry_database_operation(max_retries=3)(mock_func)
            assert decorated() == "success"

        assert mock_func.call_count == 2

    def test_does_not_retry_data_error(self):
        """Test database operation does not retry data errors"""
        mock_func = Mock(side_effect=psycopg2.DataError("invalid input syntax"))

        decorated = retry_database_operation(max_retries=3)(mock_func)

        with pytest.raises(psycopg2.DataError):
            decorated()

        assert mock_func.call_count == 1

    def test_max_retries_with_persistent_error(self):
        """Test max retries behavior with persistent connection error"""
        mock_func = Mock(side_effect=ConnectionError("Persistent connection issue"))

        with patch("utils.retry.time.sleep"):
            decorated = retry_database_operation(max_retries=2)(mock_func)
            with pytest.raises(ConnectionError, match="Persistent connection issue"):
                decorated()

        assert mock_func.call_count == 3

    def test_callback_receives_retry_info(self):
        """Test callback receives retry information"""
        mock_callback = Mock()
        mock_func = Mock(side_effect=[ConnectionError("Connection failed"), "success"])

        with patch("utils.retry.time.sleep"):
            decorated = retry_database_operation(
                max_retries=3, on_retry=mock_callback
            )(mock_func)
            decorated()

        attempt, exception, _ = mock_callback.call_args[0]
        assert attempt == 1
        assert isinstance(exception, ConnectionError)
