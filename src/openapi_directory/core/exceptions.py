"""
Exception classes for the OpenAPI directory.

Defines the error taxonomy shared by the remote sources, the cache, the
custom spec pipeline and the aggregator. Every error carries a code, a
context bag and a user-facing message generated from both.
"""

import errno
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import httpx

from openapi_directory.utils.logging import get_logger

logger = get_logger(__name__)


class ErrorCode:
    """Error codes used across the package."""

    NETWORK_ERROR = "NETWORK_ERROR"
    TIMEOUT_ERROR = "TIMEOUT_ERROR"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    NOT_FOUND_ERROR = "NOT_FOUND_ERROR"
    RATE_LIMIT_ERROR = "RATE_LIMIT_ERROR"
    CACHE_ERROR = "CACHE_ERROR"
    SPEC_PARSE_ERROR = "SPEC_PARSE_ERROR"
    AUTH_ERROR = "AUTH_ERROR"
    SERVER_ERROR = "SERVER_ERROR"
    MANIFEST_ERROR = "MANIFEST_ERROR"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"


RETRYABLE_CODES = frozenset({
    ErrorCode.NETWORK_ERROR,
    ErrorCode.TIMEOUT_ERROR,
    ErrorCode.RATE_LIMIT_ERROR,
    ErrorCode.SERVER_ERROR,
})


@dataclass
class ErrorContext:
    """Where an error happened."""

    operation: Optional[str] = None
    source: Optional[str] = None
    provider: Optional[str] = None
    api_id: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v not in (None, {})}


class DirectoryError(Exception):
    """Base exception for all OpenAPI directory errors."""

    code = ErrorCode.UNKNOWN_ERROR

    def __init__(
        self,
        message: str,
        context: Optional[ErrorContext] = None,
        user_message: Optional[str] = None,
        code: Optional[str] = None,
    ):
        """
        Initialize DirectoryError.

        Args:
            message: Error message
            context: Optional context describing the failing operation
            user_message: Override for the generated user-facing message
            code: Override for the class error code
        """
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        self.context = context or ErrorContext()
        self.timestamp = datetime.now(timezone.utc)
        self.user_message = user_message or self._generate_user_message()

    def _generate_user_message(self) -> str:
        ctx = self.context

        if self.code == ErrorCode.NETWORK_ERROR:
            return (
                f"Unable to connect to {ctx.source or 'API'} service. "
                "Please check your internet connection and try again."
            )
        if self.code == ErrorCode.TIMEOUT_ERROR:
            return (
                f"The {ctx.operation or 'operation'} took too long to complete. "
                "Please try again or contact support if the problem persists."
            )
        if self.code == ErrorCode.NOT_FOUND_ERROR:
            if ctx.api_id:
                return (
                    f'The API "{ctx.api_id}" was not found in the {ctx.source or ""} '
                    "source. Please verify the API identifier."
                )
            if ctx.provider:
                return (
                    f'The provider "{ctx.provider}" was not found. '
                    "Please check the provider name."
                )
            return "The requested resource was not found. Please verify your request and try again."
        if self.code == ErrorCode.VALIDATION_ERROR:
            return "The provided data is invalid. Please check your input and try again."
        if self.code == ErrorCode.RATE_LIMIT_ERROR:
            return "Too many requests. Please wait a moment before trying again."
        if self.code == ErrorCode.SPEC_PARSE_ERROR:
            return (
                "Unable to parse the OpenAPI specification. "
                "The file may be corrupted or in an unsupported format."
            )
        if self.code == ErrorCode.AUTH_ERROR:
            return "Authentication failed. Please check your credentials and try again."
        if self.code == ErrorCode.SERVER_ERROR:
            return "The server encountered an error. Please try again later or contact support."
        if self.code == ErrorCode.CACHE_ERROR:
            return "The local cache could not be used. Results will be fetched again."
        if self.code == ErrorCode.MANIFEST_ERROR:
            return "The custom spec manifest could not be updated. Check the cache directory permissions."

        during = f" during {ctx.operation}" if ctx.operation else ""
        return f"An unexpected error occurred{during}. Please try again or contact support."

    @property
    def retryable(self) -> bool:
        return self.code in RETRYABLE_CODES

    def __str__(self) -> str:
        """String representation of the error."""
        return f"[{self.code}] {self.message}"

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary representation."""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "user_message": self.user_message,
            "code": self.code,
            "context": self.context.to_dict(),
            "timestamp": self.timestamp.isoformat(),
        }


class NetworkError(DirectoryError):
    """Connection-level failures."""
    code = ErrorCode.NETWORK_ERROR


class TimeoutError(DirectoryError):
    """Operation timeout errors."""
    code = ErrorCode.TIMEOUT_ERROR


class ValidationError(DirectoryError):
    """Invalid input or invalid spec content."""
    code = ErrorCode.VALIDATION_ERROR


class NotFoundError(DirectoryError):
    """Unknown API, provider or custom spec."""
    code = ErrorCode.NOT_FOUND_ERROR


class RateLimitError(DirectoryError):
    code = ErrorCode.RATE_LIMIT_ERROR


class CacheError(DirectoryError):
    code = ErrorCode.CACHE_ERROR


class SpecParseError(DirectoryError):
    """Spec content that is neither valid JSON nor valid YAML."""
    code = ErrorCode.SPEC_PARSE_ERROR


class AuthError(DirectoryError):
    code = ErrorCode.AUTH_ERROR


class ServerError(DirectoryError):
    """Remote 5xx responses."""
    code = ErrorCode.SERVER_ERROR


class UnknownError(DirectoryError):
    code = ErrorCode.UNKNOWN_ERROR


class ManifestError(DirectoryError):
    """Manifest or spec file could not be read or written."""
    code = ErrorCode.MANIFEST_ERROR


class SecurityBlockedError(ValidationError):
    """Import rejected by the security scanner."""

    def __init__(
        self,
        message: str,
        scan_result: Any = None,
        report: str = "",
        context: Optional[ErrorContext] = None,
    ):
        """
        Initialize SecurityBlockedError.

        Args:
            message: Error message, normally embedding the report
            scan_result: The scan result that caused the block
            report: Rendered security report
            context: Optional error context
        """
        super().__init__(message, context)
        self.scan_result = scan_result
        self.report = report


class DuplicateSpecError(ValidationError):
    """A custom spec with the same name and version already exists."""

    def __init__(self, message: str, spec_id: str, context: Optional[ErrorContext] = None):
        super().__init__(message, context)
        self.spec_id = spec_id


_NETWORK_ERRNOS = {"ECONNREFUSED", "ENOTFOUND"}
_TIMEOUT_ERRNOS = {"ETIMEDOUT", "ECONNABORTED"}


def _errno_name(error: BaseException) -> Optional[str]:
    code = getattr(error, "code", None)
    if isinstance(code, str):
        return code
    number = getattr(error, "errno", None)
    if isinstance(number, int):
        return errno.errorcode.get(number)
    return None


class ErrorFactory:
    """Maps transport and library errors onto the directory taxonomy."""

    @staticmethod
    def from_http_error(
        error: BaseException,
        context: Optional[ErrorContext] = None,
    ) -> DirectoryError:
        """
        Build a taxonomy error from an HTTP or socket level failure.

        Args:
            error: The original exception
            context: Optional error context

        Returns:
            The matching DirectoryError subclass instance
        """
        if isinstance(error, DirectoryError):
            return error

        message = str(error) or "Unknown error"

        if isinstance(error, httpx.TimeoutException):
            return TimeoutError(message, context)
        if isinstance(error, (httpx.ConnectError, httpx.NetworkError)):
            return NetworkError(message, context)

        name = _errno_name(error)
        if name in _NETWORK_ERRNOS or name == "ECONNRESET":
            return NetworkError(message, context)
        if name in _TIMEOUT_ERRNOS:
            return TimeoutError(message, context)

        status = None
        if isinstance(error, httpx.HTTPStatusError):
            status = error.response.status_code
        else:
            status = getattr(error, "status", None) or getattr(error, "status_code", None)

        if isinstance(status, int):
            if status == 404:
                return NotFoundError(message, context)
            if status in (401, 403):
                return AuthError(message, context)
            if status == 429:
                return RateLimitError(message, context)
            if 400 <= status < 500:
                return ValidationError(message, context)
            if status >= 500:
                return ServerError(message, context)

        return UnknownError(message, context)

    @staticmethod
    def from_cache_error(
        error: BaseException,
        context: Optional[ErrorContext] = None,
    ) -> CacheError:
        return CacheError(str(error) or "Cache operation failed", context)

    @staticmethod
    def from_validation_error(
        message: str,
        context: Optional[ErrorContext] = None,
    ) -> ValidationError:
        return ValidationError(message, context)

    @staticmethod
    def from_spec_parse_error(
        error: BaseException,
        context: Optional[ErrorContext] = None,
    ) -> SpecParseError:
        return SpecParseError(str(error) or "Failed to parse OpenAPI specification", context)


class ErrorHandler:
    """Consistent logging and retry classification for directory errors."""

    _LOG_LEVELS = {
        ErrorCode.NETWORK_ERROR: "error",
        ErrorCode.SERVER_ERROR: "error",
        ErrorCode.UNKNOWN_ERROR: "error",
        ErrorCode.TIMEOUT_ERROR: "warning",
        ErrorCode.RATE_LIMIT_ERROR: "warning",
        ErrorCode.CACHE_ERROR: "warning",
        ErrorCode.NOT_FOUND_ERROR: "info",
        ErrorCode.VALIDATION_ERROR: "info",
    }

    @classmethod
    def get_log_level(cls, code: str) -> str:
        return cls._LOG_LEVELS.get(code, "error")

    @classmethod
    def log_error(cls, error: BaseException) -> None:
        """Log an error at a level matching its code."""
        if isinstance(error, DirectoryError):
            log = getattr(logger, cls.get_log_level(error.code))
            log(
                f"[{error.code}] {error.message}",
                extra={
                    "user_message": error.user_message,
                    "error_context": error.context.to_dict(),
                },
            )
        else:
            logger.error(f"Unhandled error: {error}", exc_info=error)

    @staticmethod
    def is_retryable(error: BaseException) -> bool:
        """Whether a caller may retry the failed operation."""
        if isinstance(error, DirectoryError):
            return error.retryable
        return False
