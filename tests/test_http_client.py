"""Tests for the JSON HTTP client and retry wrapper."""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
import requests

from stock_report.data.http_client import RetryAttempt, RetryResult, fetch_json, with_retry
from stock_report.errors import UpstreamFetchError


def _response(status: int = 200, body=None, json_error: Exception | None = None) -> MagicMock:
    response = MagicMock()
    response.status_code = status
    if json_error is not None:
        response.json.side_effect = json_error
    else:
        response.json.return_value = body
    return response


class TestFetchJson:
    """Tests for fetch_json."""

    @patch("stock_report.data.http_client.requests.get")
    def test_returns_parsed_body(self, mock_get) -> None:
        """Test 2xx body is parsed and the connection released."""
        response = _response(body={"ok": True})
        mock_get.return_value = response

        assert fetch_json("https://example.com/a.json") == {"ok": True}
        response.close.assert_called_once()

    @patch("stock_report.data.http_client.requests.get")
    def test_default_headers_merged(self, mock_get) -> None:
        """Test caller headers override the defaults."""
        mock_get.return_value = _response(body=[])

        fetch_json("https://example.com", headers={"User-Agent": "custom/1.0"}, timeout=3)

        _, kwargs = mock_get.call_args
        assert kwargs["headers"]["User-Agent"] == "custom/1.0"
        assert kwargs["headers"]["Accept"] == "application/json"
        assert kwargs["timeout"] == 3

    @patch("stock_report.data.http_client.requests.get")
    def test_bad_status(self, mock_get) -> None:
        """Test non-2xx status raises and still closes the response."""
        response = _response(status=503)
        mock_get.return_value = response

        with pytest.raises(UpstreamFetchError, match="HTTP 503") as exc_info:
            fetch_json("https://example.com")
        assert exc_info.value.url == "https://example.com"
        response.close.assert_called_once()

    @patch("stock_report.data.http_client.requests.get")
    def test_invalid_json(self, mock_get) -> None:
        """Test an unparseable body raises UpstreamFetchError."""
        response = _response(json_error=ValueError("Expecting value"))
        mock_get.return_value = response

        with pytest.raises(UpstreamFetchError, match="Invalid JSON"):
            fetch_json("https://example.com")
        response.close.assert_called_once()

    @patch("stock_report.data.http_client.requests.get")
    def test_timeout(self, mock_get) -> None:
        """Test timeouts surface as UpstreamFetchError."""
        mock_get.side_effect = requests.exceptions.Timeout("slow")

        with pytest.raises(UpstreamFetchError, match="Timeout after 2s"):
            fetch_json("https://example.com", timeout=2)

    @patch("stock_report.data.http_client.requests.get")
    def test_connection_error(self, mock_get) -> None:
        """Test connection failures surface as UpstreamFetchError."""
        mock_get.side_effect = requests.exceptions.ConnectionError("refused")

        with pytest.raises(UpstreamFetchError, match="Request failed"):
            fetch_json("https://example.com")


class TestWithRetry:
    """Tests for the fixed-delay retry wrapper."""

    @patch("stock_report.data.http_client.asyncio.sleep", new_callable=AsyncMock)
    def test_first_attempt_succeeds(self, mock_sleep) -> None:
        """Test no delay when the first attempt works."""
        result = asyncio.run(with_retry("op", lambda: 42, attempts=3, delay=0.5))

        assert result.result == 42
        assert result.attempts == 1
        assert result.total_delay_seconds == 0
        mock_sleep.assert_not_called()
        assert "retry_trace" not in result.to_provenance()

    @patch("stock_report.data.http_client.asyncio.sleep", new_callable=AsyncMock)
    def test_retries_with_fixed_delay(self, mock_sleep) -> None:
        """Test the same delay is used between every attempt."""
        calls = {"n": 0}

        def flaky():
            calls["n"] += 1
            if calls["n"] < 3:
                raise UpstreamFetchError("HTTP 502")
            return "ok"

        result = asyncio.run(with_retry("op", flaky, attempts=3, delay=0.4))

        assert result.result == "ok"
        assert result.attempts == 3
        assert result.total_delay_seconds == 0.8
        assert [c.args[0] for c in mock_sleep.call_args_list] == [0.4, 0.4]

        prov = result.to_provenance()
        assert prov["retry_trace"][0] == {
            "attempt": 1,
            "ok": False,
            "error": "UpstreamFetchError",
            "delay_s": 0.4,
        }
        assert prov["retry_trace"][-1] == {"attempt": 3, "ok": True}

    @patch("stock_report.data.http_client.asyncio.sleep", new_callable=AsyncMock)
    def test_exhausted_budget_raises_last_error(self, mock_sleep) -> None:
        """Test the last UpstreamFetchError is re-raised with the attempt count."""

        def always_fails():
            raise UpstreamFetchError("HTTP 500", url="https://example.com")

        with pytest.raises(UpstreamFetchError, match="HTTP 500") as exc_info:
            asyncio.run(with_retry("op", always_fails, attempts=2, delay=0.1))

        assert exc_info.value.attempts == 2
        assert mock_sleep.call_count == 1

    @patch("stock_report.data.http_client.asyncio.sleep", new_callable=AsyncMock)
    def test_other_errors_are_wrapped(self, mock_sleep) -> None:
        """Test non-upstream exceptions are wrapped in UpstreamFetchError."""

        def broken():
            raise KeyError("quoteResponse")

        with pytest.raises(UpstreamFetchError, match="failed after 1 attempts") as exc_info:
            asyncio.run(with_retry("op", broken, attempts=1))

        assert isinstance(exc_info.value.last_error, KeyError)
        mock_sleep.assert_not_called()

    def test_zero_attempts_still_runs_once(self) -> None:
        """Test the attempt budget is at least one."""
        result = asyncio.run(with_retry("op", lambda: "x", attempts=0))
        assert result.attempts == 1


class TestRetryResult:
    """Tests for RetryResult provenance."""

    def test_single_trace_omitted(self) -> None:
        result = RetryResult(result=None, attempts=1, total_delay_seconds=0.0, retry_trace=[RetryAttempt(1, True)])
        assert result.to_provenance() == {"attempts": 1, "total_delay_seconds": 0.0}
