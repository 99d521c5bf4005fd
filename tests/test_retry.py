"""Tests for retry decorator with tenacity."""
import pytest
import requests
from tenacity import wait_none

from errors import GitHubAPIError
from retry import retry_transient, is_transient_error


class TestIsTransientError:
    """Tests for transient error detection."""

    def test_connection_reset_is_transient(self):
        assert is_transient_error(ConnectionResetError("reset"))

    def test_requests_connection_error_is_transient(self):
        assert is_transient_error(requests.exceptions.ConnectionError("boom"))

    def test_requests_timeout_is_transient(self):
        assert is_transient_error(requests.exceptions.ReadTimeout("read timeout"))

    @pytest.mark.parametrize("exc", [
        requests.exceptions.MissingSchema("Invalid URL 'api.github.com/graphql': No scheme supplied"),
        requests.exceptions.InvalidURL("Failed to parse: http://"),
        requests.exceptions.InvalidHeader("Invalid return character or leading space in header"),
        requests.exceptions.JSONDecodeError("Expecting value", "<html></html>", 0),
    ])
    def test_request_setup_and_decode_errors_are_not_transient(self, exc):
        """These fail the same way on every attempt."""
        assert not is_transient_error(exc)

    def test_connection_aborted_message_is_transient(self):
        exc = Exception("('Connection aborted.', RemoteDisconnected('Remote end closed connection'))")
        assert is_transient_error(exc)

    def test_value_error_is_not_transient(self):
        assert not is_transient_error(ValueError("bad input"))

    def test_api_error_is_not_transient(self):
        """Errors raised by our own boundaries are final, even if they mention timeouts."""
        assert not is_transient_error(GitHubAPIError("request timed out", 504))


class TestRetryTransient:
    """Tests for retry decorator."""

    def test_retries_on_transient_error(self):
        """Should retry and succeed after transient errors."""
        call_count = 0

        @retry_transient
        def fails_twice():
            nonlocal call_count
            call_count += 1
            if call_count < 3:
                raise ConnectionResetError("transient")
            return "success"

        result = fails_twice.retry_with(wait=wait_none())()

        assert result == "success"
        assert call_count == 3

    def test_gives_up_after_max_attempts(self):
        call_count = 0

        @retry_transient
        def always_fails():
            nonlocal call_count
            call_count += 1
            raise TimeoutError("timed out")

        with pytest.raises(TimeoutError):
            always_fails.retry_with(wait=wait_none())()

        assert call_count == 4

    def test_no_retry_on_invalid_url(self):
        call_count = 0

        @retry_transient
        def bad_url():
            nonlocal call_count
            call_count += 1
            raise requests.exceptions.MissingSchema("No scheme supplied")

        with pytest.raises(requests.exceptions.MissingSchema):
            bad_url()

        assert call_count == 1

    def test_no_retry_on_non_transient(self):
        """Non-transient errors should not be retried."""
        call_count = 0

        @retry_transient
        def raises_value_error():
            nonlocal call_count
            call_count += 1
            raise ValueError("not transient")

        with pytest.raises(ValueError):
            raises_value_error()

        assert call_count == 1
