"""
Unit tests for retry logic with exponential backoff

Tests verify:
- Exception filtering for Oracle and network errors
- Retry counts and delay capping
- Retry callbacks
- Connection opening with retries
"""

from unittest.mock import Mock, patch

import pytest
from prometheus_client import REGISTRY

from catalog_recon.models import ConnectionRef
from catalog_recon.sources.oracle import open_connection
from catalog_recon.utils.retry import error_code, is_retryable_db_exception, retry_database_operation


class TestIsRetryableDbException:
    """Test is_retryable_db_exception"""

    def test_listener_errors_retryable(self):
        """Test that listener and network errors are retryable"""
        assert is_retryable_db_exception(Exception("ORA-12541: TNS:no listener"))
        assert is_retryable_db_exception(Exception("ORA-03113: end-of-file on communication channel"))
        assert is_retryable_db_exception(Exception("DPY-6005: cannot connect to database"))

    def test_connection_error_type_retryable(self):
        """Test that ConnectionError and TimeoutError are retryable by type"""
        assert is_retryable_db_exception(ConnectionError("refused"))
        assert is_retryable_db_exception(TimeoutError("slow"))

    def test_bad_credentials_not_retryable(self):
        """Test that invalid credentials fail immediately"""
        assert not is_retryable_db_exception(
            Exception("ORA-01017: invalid username/password; logon denied")
        )
        assert not is_retryable_db_exception(Exception("ORA-28000: the account is locked"))

    def test_sql_errors_not_retryable(self):
        """Test that SQL errors are not retryable"""
        assert not is_retryable_db_exception(Exception("ORA-00942: table or view does not exist"))

    def test_case_insensitive_matching(self):
        """Test pattern matching ignores case"""
        assert is_retryable_db_exception(Exception("CONNECTION RESET BY PEER"))

    def test_error_code_from_message(self):
        """Test the ORA-/DPY- code is read from the message"""
        assert error_code(Exception("ora-12514: TNS:listener does not know of service")) == "ORA-12514"
        assert error_code(RuntimeError("DPY-4011: the database closed the connection")) == "DPY-4011"
        assert error_code(Exception("Connection reset")) is None

    def test_unknown_code_not_retryable(self):
        """Test a coded error outside the transient set fails fast even if it mentions a timeout"""
        assert not is_retryable_db_exception(Exception("ORA-01013: user requested cancel (timed out)"))
        assert not is_retryable_db_exception(ConnectionError("ORA-01045: user lacks CREATE SESSION privilege"))


class TestRetryDatabaseOperation:
    """Test retry_database_operation decorator"""

    @patch("catalog_recon.utils.retry.time.sleep")
    def test_retries_on_connection_error(self, mock_sleep):
        """Test transient failures are retried until success"""
        mock_func = Mock(side_effect=[ConnectionError("Connection lost"), "ok"])
        mock_func.__name__ = "connect"

        result = retry_database_operation(max_retries=2, base_delay=0.1)(mock_func)()

        assert result == "ok"
        assert mock_func.call_count == 2
        mock_sleep.assert_called_once()

    @patch("catalog_recon.utils.retry.time.sleep")
    def test_does_not_retry_sql_error(self, mock_sleep):
        """Test non-retryable errors raise on the first attempt"""
        mock_func = Mock(side_effect=ValueError("ORA-00904: invalid identifier"))
        mock_func.__name__ = "query"

        with pytest.raises(ValueError):
            retry_database_operation(max_retries=3)(mock_func)()

        assert mock_func.call_count == 1
        mock_sleep.assert_not_called()

    @patch("catalog_recon.utils.retry.time.sleep")
    def test_max_retries_with_persistent_error(self, mock_sleep):
        """Test the last error propagates after max_retries"""
        mock_func = Mock(side_effect=ConnectionError("Connection refused"))
        mock_func.__name__ = "connect"

        with pytest.raises(ConnectionError):
            retry_database_operation(max_retries=2, base_delay=0.1)(mock_func)()

        assert mock_func.call_count == 3

    @patch("catalog_recon.utils.retry.time.sleep")
    def test_delay_capped(self, mock_sleep):
        """Test delays never exceed max_delay plus jitter"""
        mock_func = Mock(side_effect=[TimeoutError("timeout")] * 4 + ["ok"])
        mock_func.__name__ = "connect"

        retry_database_operation(max_retries=4, base_delay=1.0, max_delay=2.0)(mock_func)()

        delays = [c.args[0] for c in mock_sleep.call_args_list]
        assert len(delays) == 4
        assert all(d <= 2.5 for d in delays)

    @patch("catalog_recon.utils.retry.time.sleep")
    def test_callback_receives_retry_info(self, mock_sleep):
        """Test on_retry receives attempt, exception and delay"""
        error = ConnectionError("Connection reset")
        mock_func = Mock(side_effect=[error, "ok"])
        mock_func.__name__ = "connect"
        callback = Mock()

        retry_database_operation(max_retries=1, base_delay=0.1, on_retry=callback)(mock_func)()

        attempt, exc, delay = callback.call_args.args
        assert attempt == 1
        assert exc is error
        assert delay >= 0

    @patch("catalog_recon.utils.retry.time.sleep")
    def test_callback_exception_handled(self, mock_sleep):
        """Test a failing callback does not break the retry"""
        mock_func = Mock(side_effect=[ConnectionError("Connection reset"), "ok"])
        mock_func.__name__ = "connect"
        callback = Mock(side_effect=RuntimeError("metrics down"))

        assert retry_database_operation(max_retries=1, on_retry=callback)(mock_func)() == "ok"

    def test_preserves_function_metadata(self):
        """Test the decorator keeps the wrapped function's name"""
        @retry_database_operation()
        def list_catalog():
            """List the catalog."""

        assert list_catalog.__name__ == "list_catalog"
        assert list_catalog.__doc__ == "List the catalog."


class TestOpenConnection:
    """Test open_connection retries"""

    def _ref(self):
        return ConnectionRef(id="prod", host="db", port=1521, service_name="ORCL", username="audit", password="x")

    @patch("catalog_recon.utils.retry.time.sleep")
    @patch("catalog_recon.sources.oracle.oracledb.connect")
    def test_listener_failure_retried(self, mock_connect, mock_sleep):
        """Test a transient listener failure is retried"""
        conn = Mock()
        mock_connect.side_effect = [Exception("ORA-12541: TNS:no listener"), conn]

        assert open_connection(self._ref(), retries=2) is conn
        mock_connect.assert_called_with(user="audit", password="x", dsn="db:1521/ORCL")

    @patch("catalog_recon.utils.retry.time.sleep")
    @patch("catalog_recon.sources.oracle.oracledb.connect")
    def test_bad_password_not_retried(self, mock_connect, mock_sleep):
        """Test invalid credentials fail on the first attempt"""
        mock_connect.side_effect = Exception("ORA-01017: invalid username/password")

        with pytest.raises(Exception, match="ORA-01017"):
            open_connection(self._ref(), retries=2)

        assert mock_connect.call_count == 1

    @patch("catalog_recon.utils.retry.time.sleep")
    @patch("catalog_recon.sources.oracle.oracledb.connect")
    def test_retries_counted_per_connection(self, mock_connect, mock_sleep):
        """Test each retry increments the connection's retry counter"""
        labels = {"connection_id": "prod"}
        before = REGISTRY.get_sample_value("catalog_recon_connect_retries_total", labels) or 0
        mock_connect.side_effect = [ConnectionError("reset"), ConnectionError("reset"), Mock()]

        open_connection(self._ref(), retries=2)

        after = REGISTRY.get_sample_value("catalog_recon_connect_retries_total", labels)
        assert after - before == 2
