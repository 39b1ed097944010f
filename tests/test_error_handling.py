"""
Test the error taxonomy and error mapping.
"""

import errno
import logging

import httpx
import pytest

from openapi_directory.core.exceptions import (
    AuthError,
    DirectoryError,
    DuplicateSpecError,
    ErrorCode,
    ErrorContext,
    ErrorFactory,
    ErrorHandler,
    NetworkError,
    NotFoundError,
    RateLimitError,
    SecurityBlockedError,
    ServerError,
    TimeoutError,
    UnknownError,
    ValidationError,
)


def status_error(status):
    request = httpx.Request("GET", "https://registry.test/list.json")
    response = httpx.Response(status, request=request)
    return httpx.HTTPStatusError(f"HTTP {status}", request=request, response=response)


class TestDirectoryError:
    """Test error construction and user messages."""

    def test_str_includes_code(self):
        error = NetworkError("connection refused", ErrorContext(source="primary"))
        assert str(error) == "[NETWORK_ERROR] connection refused"

    def test_user_messages(self):
        """Test that user messages are derived from code and context."""
        assert "Unable to connect to primary service" in NetworkError(
            "x", ErrorContext(source="primary")).user_message
        assert 'The API "a.com" was not found in the secondary source' in NotFoundError(
            "x", ErrorContext(source="secondary", api_id="a.com")).user_message
        assert 'The provider "b.com" was not found' in NotFoundError(
            "x", ErrorContext(provider="b.com")).user_message
        assert UnknownError("x", ErrorContext(operation="merge")).user_message == (
            "An unexpected error occurred during merge. Please try again or contact support."
        )

    def test_explicit_user_message(self):
        error = ValidationError("bad", user_message="Fix the name")
        assert error.user_message == "Fix the name"

    def test_code_override(self):
        error = DirectoryError("x", code=ErrorCode.CACHE_ERROR)
        assert error.code == ErrorCode.CACHE_ERROR
        assert DirectoryError.code == ErrorCode.UNKNOWN_ERROR

    def test_to_dict(self):
        error = NotFoundError("gone", ErrorContext(operation="get_provider", provider="x.com"))
        data = error.to_dict()

        assert data["error"] == "NotFoundError"
        assert data["code"] == "NOT_FOUND_ERROR"
        assert data["context"] == {"operation": "get_provider", "provider": "x.com"}
        assert "timestamp" in data

    def test_retryable(self):
        assert NetworkError("x").retryable is True
        assert ServerError("x").retryable is True
        assert ValidationError("x").retryable is False
        assert ErrorHandler.is_retryable(TimeoutError("x")) is True
        assert ErrorHandler.is_retryable(RuntimeError("x")) is False

    def test_subclasses(self):
        """Test that import rejections are validation errors."""
        blocked = SecurityBlockedError("blocked", scan_result=None, report="r")
        duplicate = DuplicateSpecError("dup", spec_id="custom:a:1")

        assert isinstance(blocked, ValidationError)
        assert isinstance(duplicate, ValidationError)
        assert blocked.code == ErrorCode.VALIDATION_ERROR
        assert duplicate.spec_id == "custom:a:1"


class TestErrorFactory:
    """Test mapping of transport errors."""

    @pytest.mark.parametrize("status,expected", [
        (404, NotFoundError),
        (401, AuthError),
        (403, AuthError),
        (429, RateLimitError),
        (400, ValidationError),
        (500, ServerError),
        (502, ServerError),
    ])
    def test_http_status(self, status, expected):
        assert isinstance(ErrorFactory.from_http_error(status_error(status)), expected)

    def test_httpx_timeout(self):
        error = ErrorFactory.from_http_error(httpx.ReadTimeout("slow"))
        assert isinstance(error, TimeoutError)

    def test_httpx_connect_error(self):
        error = ErrorFactory.from_http_error(httpx.ConnectError("refused"))
        assert isinstance(error, NetworkError)

    @pytest.mark.parametrize("number,expected", [
        (errno.ECONNREFUSED, NetworkError),
        (errno.ECONNRESET, NetworkError),
        (errno.ETIMEDOUT, TimeoutError),
    ])
    def test_socket_errors(self, number, expected):
        assert isinstance(ErrorFactory.from_http_error(OSError(number, "socket")), expected)

    def test_directory_errors_pass_through(self):
        original = NotFoundError("x")
        assert ErrorFactory.from_http_error(original) is original

    def test_unknown(self):
        error = ErrorFactory.from_http_error(RuntimeError(""), ErrorContext(operation="list"))
        assert isinstance(error, UnknownError)
        assert error.message == "Unknown error"
        assert error.context.operation == "list"

    def test_other_factories(self):
        assert ErrorFactory.from_cache_error(OSError("disk")).code == ErrorCode.CACHE_ERROR
        assert ErrorFactory.from_validation_error("bad").code == ErrorCode.VALIDATION_ERROR
        assert ErrorFactory.from_spec_parse_error(ValueError("")).message == (
            "Failed to parse OpenAPI specification"
        )


class TestErrorHandler:
    """Test log levels per error code."""

    @pytest.mark.parametrize("error,level", [
        (NetworkError("x"), logging.ERROR),
        (TimeoutError("x"), logging.WARNING),
        (NotFoundError("x"), logging.INFO),
    ])
    def test_log_levels(self, caplog, error, level):
        with caplog.at_level(logging.DEBUG, logger="openapi_directory.core.exceptions"):
            ErrorHandler.log_error(error)

        record = caplog.records[-1]
        assert record.levelno == level
        assert record.getMessage() == f"[{error.code}] x"
        assert record.user_message == error.user_message

    def test_plain_exception(self, caplog):
        with caplog.at_level(logging.DEBUG, logger="openapi_directory.core.exceptions"):
            ErrorHandler.log_error(RuntimeError("boom"))

        assert caplog.records[-1].levelno == logging.ERROR
        assert "Unhandled error: boom" in caplog.records[-1].getMessage()
