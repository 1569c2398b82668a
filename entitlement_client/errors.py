"""
Failure taxonomy and classification for license validation.

The transport raises these exceptions; the ErrorClassifier decides whether a
failure is worth retrying and which fallback bucket the orchestrator should
route it to.
"""

from enum import Enum
from typing import Iterable, Optional

# Error codes carried on TransportFailure
VALIDATION_FAILED = "VALIDATION_FAILED"
INVALID_LICENSE = "INVALID_LICENSE"
CONNECTION_ERROR = "CONNECTION_ERROR"
SERVER_ERROR = "SERVER_ERROR"
PROTOCOL_ERROR = "PROTOCOL_ERROR"

RETRYABLE_STATUS_CODES = frozenset({408, 429})

# Structured codes a transport can attach to a ConnectivityFailure
CONNECTIVITY_ERROR_CODES = frozenset({
    "ECONNREFUSED",
    "ECONNRESET",
    "ENOTFOUND",
    "ETIMEDOUT",
    "EAI_AGAIN",
})

# Fallback for opaque failures that carry no status and no code
CONNECTIVITY_KEYWORDS = (
    "network",
    "connection",
    "timeout",
    "econnrefused",
    "enotfound",
    "etimedout",
)


class LicenseClientError(Exception):
    """Base class for every error raised by the license client."""


class ConfigurationError(LicenseClientError):
    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class TransportFailure(LicenseClientError):
    """The license authority answered with a non-success status."""

    def __init__(self, message: str, status_code: int, code: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.code = code or VALIDATION_FAILED
        self.retryable = is_retryable_status(status_code)


class ProtocolFailure(TransportFailure):
    """The authority answered 2xx with a body that does not match the schema."""

    def __init__(self, reason: str):
        super().__init__(reason, 500, PROTOCOL_ERROR)
        self.reason = reason


class ConnectivityFailure(LicenseClientError):
    """The authority could not be reached at all."""

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.code = code or CONNECTION_ERROR


class UnexpectedFailure(LicenseClientError):
    pass


class FailureCategory(str, Enum):
    SERVER = "server"
    CLIENT = "client"
    CONNECTIVITY = "connectivity"
    UNEXPECTED = "unexpected"


def is_retryable_status(status_code: int) -> bool:
    return status_code >= 500 or status_code in RETRYABLE_STATUS_CODES


def is_server_error(status_code: int) -> bool:
    return status_code >= 500


def is_client_error(status_code: int) -> bool:
    return 400 <= status_code < 500


def format_error_message(error: object) -> str:
    if isinstance(error, BaseException):
        message = str(error)
        return message or error.__class__.__name__
    return str(error)


class ErrorClassifier:
    """
    Sort failures into retry eligibility and fallback buckets.

    Status codes win over everything else. For failures without a status the
    structured error code is checked before the keyword scan over the message,
    which only exists for opaque errors raised outside the transport.
    """

    def __init__(
        self,
        connectivity_keywords: Iterable[str] = CONNECTIVITY_KEYWORDS,
        connectivity_codes: Iterable[str] = CONNECTIVITY_ERROR_CODES,
    ):
        self.connectivity_keywords = tuple(k.lower() for k in connectivity_keywords)
        self.connectivity_codes = frozenset(c.upper() for c in connectivity_codes)

    def category(self, error: BaseException) -> FailureCategory:
        status_code = getattr(error, "status_code", None)
        if isinstance(status_code, int):
            if status_code in RETRYABLE_STATUS_CODES or is_server_error(status_code):
                return FailureCategory.SERVER
            if is_client_error(status_code):
                return FailureCategory.CLIENT
            return FailureCategory.UNEXPECTED

        if self.is_connectivity_error(error):
            return FailureCategory.CONNECTIVITY

        return FailureCategory.UNEXPECTED

    def is_retryable(self, error: BaseException) -> bool:
        if isinstance(error, TransportFailure):
            return error.retryable
        return self.category(error) in (FailureCategory.SERVER, FailureCategory.CONNECTIVITY)

    def is_connectivity_error(self, error: BaseException) -> bool:
        if isinstance(error, ConnectivityFailure):
            return True

        code = getattr(error, "code", None)
        if isinstance(code, str) and code.upper() in self.connectivity_codes:
            return True

        message = format_error_message(error).lower()
        return any(keyword in message for keyword in self.connectivity_keywords)
