from enum import Enum

from typing import Optional
from pydantic import BaseModel, Field


class ErrorCategory(Enum):
    HOST = "host"
    WORKER = "worker"
    TRANSPORT = "transport"


class ErrorCode(Enum):
    MALFORMED_MESSAGE = "malformed_message"
    TARGET_NOT_FOUND = "target_not_found"
    NOT_A_FUNCTION = "not_a_function"
    INVOCATION_ERROR = "invocation_error"
    SERIALIZATION_ERROR = "serialization_error"
    BRIDGE_TIMEOUT = "bridge_timeout"
    CHANNEL_CLOSED = "channel_closed"
    REMOTE_ERROR = "remote_error"


class ErrorInfo(BaseModel):
    category: ErrorCategory
    code: ErrorCode
    message: Optional[str] = Field(default=None)

    def to_dict(self):
        return self.model_dump(mode="json")


class BridgeError(Exception):
    """Base exception class for bridge errors with category support.

    This exception class integrates with the ErrorInfo model so that a failure can be
    logged or inspected with its category and code, while ``str(exc)`` stays the plain
    human-readable message that crosses the channel.
    """

    category: ErrorCategory = ErrorCategory.HOST
    code: ErrorCode = ErrorCode.INVOCATION_ERROR

    def __init__(self, message: str):
        self.error_info = ErrorInfo(
            category=self.category,
            code=self.code,
            message=message,
        )
        super().__init__(message)

    @property
    def message(self) -> Optional[str]:
        return self.error_info.message

    def to_error_info(self) -> ErrorInfo:
        """Convert this exception to an ErrorInfo object."""
        return self.error_info


class MalformedMessageError(BridgeError):
    """A request payload is missing its target or method, or is not a mapping."""

    code = ErrorCode.MALFORMED_MESSAGE


class TargetNotFoundError(BridgeError):
    """A dotted path or handle id does not resolve to a live object."""

    code = ErrorCode.TARGET_NOT_FOUND


class NotAFunctionError(BridgeError):
    code = ErrorCode.NOT_A_FUNCTION


class SerializationError(BridgeError):
    """A value cannot be turned into (or rebuilt from) its wire form."""

    code = ErrorCode.SERIALIZATION_ERROR


class BridgeTimeoutError(BridgeError):
    """No response arrived for a request within the client deadline."""

    category = ErrorCategory.TRANSPORT
    code = ErrorCode.BRIDGE_TIMEOUT


class ChannelClosedError(BridgeError):
    category = ErrorCategory.TRANSPORT
    code = ErrorCode.CHANNEL_CLOSED


class RemoteCallError(BridgeError):
    """Raised on the worker side when the host reported ``success: false``."""

    category = ErrorCategory.WORKER
    code = ErrorCode.REMOTE_ERROR

    def __init__(self, remote_message: str):
        self.remote_message = remote_message
        super().__init__(f"Playwright operation failed: {remote_message}")
