"""
Error taxonomy for the window restore daemon.

Every failure is scoped to one window, one slot or one stabilization cycle.
Errors carry a structured code so the IPC server can hand them to clients.
"""

from enum import Enum
from typing import Optional, Dict, Any


class ErrorCode(Enum):
    """
    Error codes for the window restore daemon.

    JSON-RPC standard codes:
    - -32700: Parse error
    - -32600: Invalid request
    - -32601: Method not found
    - -32602: Invalid params
    - -32603: Internal error

    Custom codes (1000-1999):
    - 1100-1199: Configuration errors
    - 1200-1299: Snapshot store errors
    - 1400-1499: Window system collaborator errors
    - 1500-1599: State errors
    """

    # JSON-RPC standard errors
    PARSE_ERROR = -32700
    INVALID_REQUEST = -32600
    METHOD_NOT_FOUND = -32601
    INVALID_PARAMS = -32602
    INTERNAL_ERROR = -32603

    # Configuration errors (1100-1199)
    CONFIG_LOAD_FAILED = 1100
    CONFIG_INVALID = 1101

    # Snapshot store errors (1200-1299)
    ENCODING_FAILURE = 1200

    # Collaborator errors (1400-1499)
    COLLABORATOR_UNAVAILABLE = 1400
    WINDOW_NOT_FOUND = 1401
    TOLERANCE_EXCEEDED = 1402

    # State errors (1500-1599)
    INVALID_SLOT = 1500


class WindowRestoreError(Exception):
    """Base exception for the window restore daemon."""

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        suggestion: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None
    ):
        """
        Initialize error.

        Args:
            code: Error code from ErrorCode enum
            message: Human-readable error message
            suggestion: Suggested recovery action
            context: Additional context for debugging
        """
        self.code = code
        self.message = message
        self.suggestion = suggestion
        self.context = context or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert error to dictionary for JSON-RPC response.

        Returns:
            Error dictionary with code, message, suggestion, and context
        """
        result = {
            "code": self.code.value,
            "message": self.message
        }

        if self.suggestion:
            result["suggestion"] = self.suggestion

        if self.context:
            result["context"] = self.context

        return result


class CollaboratorUnavailable(WindowRestoreError):
    """A window system collaborator (enumerator, controller, displays) failed."""

    def __init__(self, collaborator: str, reason: str):
        super().__init__(
            code=ErrorCode.COLLABORATOR_UNAVAILABLE,
            message=f"{collaborator} unavailable: {reason}",
            suggestion="Check that the compositor is running and its IPC socket is reachable",
            context={"collaborator": collaborator, "reason": reason}
        )


class WindowNotFound(WindowRestoreError):
    """The window controller could not locate the window."""

    def __init__(self, window_number: Optional[int]):
        super().__init__(
            code=ErrorCode.WINDOW_NOT_FOUND,
            message=f"Window {window_number} not found",
            context={"window_number": window_number}
        )


class EncodingFailure(WindowRestoreError):
    """Snapshot data could not be serialized or deserialized."""

    def __init__(self, operation: str, reason: str):
        """
        Initialize encoding failure.

        Args:
            operation: "encode" or "decode"
            reason: Underlying error text
        """
        super().__init__(
            code=ErrorCode.ENCODING_FAILURE,
            message=f"Snapshot {operation} failed: {reason}",
            suggestion="Stored snapshot data was left untouched",
            context={"operation": operation, "reason": reason}
        )


class ToleranceExceeded(WindowRestoreError):
    """The window moved between enumeration and restoration."""

    def __init__(self, window_key: str, drift: float, tolerance: float):
        super().__init__(
            code=ErrorCode.TOLERANCE_EXCEEDED,
            message=f"Window {window_key} moved {drift:.1f}px since enumeration (tolerance {tolerance:.0f}px)",
            context={"window_key": window_key, "drift": drift, "tolerance": tolerance}
        )


class ConfigError(WindowRestoreError):
    """Configuration file could not be loaded or validated."""

    def __init__(self, file_path: str, reason: str, invalid: bool = False):
        super().__init__(
            code=ErrorCode.CONFIG_INVALID if invalid else ErrorCode.CONFIG_LOAD_FAILED,
            message=f"Failed to load configuration from {file_path}: {reason}",
            suggestion="Check file syntax and value ranges",
            context={"file_path": file_path, "reason": reason}
        )


class InvalidSlotError(WindowRestoreError):
    """Slot index outside the configured range."""

    def __init__(self, slot: Any, max_slot: int):
        super().__init__(
            code=ErrorCode.INVALID_SLOT,
            message=f"Invalid slot {slot!r}",
            suggestion=f"Use a slot between 0 and {max_slot}",
            context={"slot": slot, "max_slot": max_slot}
        )


def error_response(request_id: Any, error: Exception) -> Dict[str, Any]:
    """
    Build a JSON-RPC error response from an exception.

    Args:
        request_id: Request ID from the JSON-RPC request
        error: Exception raised while handling the request

    Returns:
        JSON-RPC error response dict
    """
    if isinstance(error, WindowRestoreError):
        payload = error.to_dict()
    else:
        payload = {
            "code": ErrorCode.INTERNAL_ERROR.value,
            "message": str(error) or error.__class__.__name__,
        }

    return {
        "jsonrpc": "2.0",
        "error": payload,
        "id": request_id
    }
