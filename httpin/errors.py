"""
Error types raised by the http-in pipeline and listener.

Per-request errors (body reads, parsers, middleware hooks) end up in the
chain's error handler and become a 500 response. Configuration, bind and
listener errors are terminal for the node instance until it is redeployed.
"""

from enum import Enum
from typing import Optional


class ErrorCategory(str, Enum):
    """Classification used when reporting errors to the operator."""
    CONFIGURATION_ERROR = "configuration_error"
    BIND_ERROR = "bind_error"
    BODY_READ_ERROR = "body_read_error"
    PARSE_ERROR = "parse_error"
    LISTENER_ERROR = "listener_error"
    RESPONSE_ERROR = "response_error"
    UNKNOWN = "unknown"


class HttpInError(Exception):
    category = ErrorCategory.UNKNOWN
    status_code = 500

    def __init__(self, message: str, *, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class ConfigurationError(HttpInError):
    """Node config is missing something required, e.g. the url."""
    category = ErrorCategory.CONFIGURATION_ERROR


class BindError(HttpInError):
    """The listener could not bind its port."""
    category = ErrorCategory.BIND_ERROR

    def __init__(self, message: str, *, port: Optional[int] = None):
        super().__init__(message)
        self.port = port


class BodyReadError(HttpInError):
    """The request body stream ended early, overran, or timed out."""
    category = ErrorCategory.BODY_READ_ERROR
    status_code = 400


class ParseError(HttpInError):
    """A body parser rejected the request (too large, malformed, bad charset)."""
    category = ErrorCategory.PARSE_ERROR
    status_code = 400


class RuntimeListenerError(HttpInError):
    """The listener failed after it had been bound."""
    category = ErrorCategory.LISTENER_ERROR


class HeadersSentError(HttpInError):
    """A response was committed twice."""
    category = ErrorCategory.RESPONSE_ERROR

    def __init__(self, message: str = "Cannot set headers after they are sent to the client"):
        super().__init__(message)


def categorize(error: BaseException) -> ErrorCategory:
    if isinstance(error, HttpInError):
        return error.category
    return ErrorCategory.UNKNOWN
