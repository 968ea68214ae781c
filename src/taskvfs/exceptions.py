"""
Task VFS Exception Hierarchy

Every failure raised by the scoped filesystem and the host tool layer derives
from VFSError. Each error carries a stable error code, the scope and logical
path involved (when known), and free-form context so the tool registry can
turn it into a uniform failure envelope without inspecting the message.
"""

import time
from typing import Any, Dict, Iterable, List, Optional


class VFSError(Exception):
    """
    Base exception class for all task VFS errors.

    Attributes:
        message: Human-readable error message (used verbatim in envelopes)
        error_code: Unique error code for programmatic handling
        scope: Scope the operation targeted (if applicable)
        path: Logical path the operation targeted (if applicable)
        timestamp: When the error occurred
        context: Additional context information
        suggestion: Suggested fix or next steps (if applicable)
    """

    def __init__(
        self,
        message: str,
        error_code: str = "VFS_ERROR",
        scope: Optional[str] = None,
        path: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        suggestion: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.scope = scope
        self.path = path
        self.timestamp = time.time()
        self.context = context or {}
        self.suggestion = suggestion

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "error_code": self.error_code,
            "message": self.message,
            "scope": self.scope,
            "path": self.path,
            "timestamp": self.timestamp,
            "context": self.context,
            "suggestion": self.suggestion,
        }

    def __str__(self) -> str:
        return self.message


class VFSConfigurationError(VFSError):
    """Raised when a VFSConfig cannot produce a valid scope layout."""

    def __init__(self, message: str, field_name: Optional[str] = None, **kwargs):
        self.field_name = field_name
        context = kwargs.pop("context", {})
        if field_name:
            context["field"] = field_name
        super().__init__(
            message,
            error_code="CONFIGURATION_ERROR",
            context=context,
            **kwargs
        )


# =============================================================================
# PATH RESOLUTION ERRORS
# =============================================================================

class InvalidScopeError(VFSError):
    """Raised when a scope name is not one of run, task or global."""

    def __init__(self, scope: Any, allowed: Iterable[str], **kwargs):
        self.allowed = list(allowed)
        super().__init__(
            f"Invalid scope: {scope}. Must be {', '.join(self.allowed[:-1])}, or {self.allowed[-1]}",
            error_code="INVALID_SCOPE",
            scope=str(scope),
            context={"allowed_scopes": self.allowed},
            suggestion="Use one of the documented scope names.",
            **kwargs
        )


class EmptyPathError(VFSError):
    """Raised when a logical path is missing, empty or whitespace-only."""

    def __init__(self, scope: Optional[str] = None, **kwargs):
        super().__init__(
            "Path must be a non-empty string",
            error_code="EMPTY_PATH",
            scope=scope,
            **kwargs
        )


class PathTraversalError(VFSError):
    """
    Raised when a logical path would resolve outside its scope root.

    Covers '..' segments, absolute-path injection and symlinks whose target
    lies outside the root.
    """

    def __init__(self, path: str, scope: str, reason: str = "path escapes scope root", **kwargs):
        self.reason = reason
        super().__init__(
            f"Path traversal detected: {path} ({reason})",
            error_code="PATH_TRAVERSAL",
            scope=scope,
            path=path,
            context={"reason": reason},
            suggestion="Use a path relative to the scope root without '..' segments.",
            **kwargs
        )


# =============================================================================
# OPERATION ERRORS
# =============================================================================

class VFSNotFoundError(VFSError):
    """Raised when the target of read/delete/stat/watch does not exist."""

    def __init__(
        self,
        path: str,
        scope: Optional[str] = None,
        reasons: Optional[Dict[str, str]] = None,
        **kwargs
    ):
        self.reasons = reasons or {}
        message = f"File not found: {path}"
        if self.reasons:
            detail = "; ".join(f"{name}: {reason}" for name, reason in self.reasons.items())
            message = f"{message} (searched {detail})"
        super().__init__(
            message,
            error_code="NOT_FOUND",
            scope=scope,
            path=path,
            context={"reasons": self.reasons} if self.reasons else {},
            **kwargs
        )


class IOFailureError(VFSError):
    """Raised for any underlying storage error not otherwise classified."""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        original_error: Optional[BaseException] = None,
        **kwargs
    ):
        self.operation = operation
        self.original_error = original_error
        context = kwargs.pop("context", {})
        if operation:
            context["operation"] = operation
        if original_error is not None:
            context["original_error"] = type(original_error).__name__
        super().__init__(
            message,
            error_code="IO_FAILURE",
            context=context,
            **kwargs
        )


class WatchTimeoutError(VFSError):
    """Raised when a one-shot watch sees no change before its timeout."""

    def __init__(self, path: str, scope: str, timeout: float, **kwargs):
        self.timeout = timeout
        super().__init__(
            f"No change observed on {path} within {timeout}s",
            error_code="WATCH_TIMEOUT",
            scope=scope,
            path=path,
            context={"timeout": timeout},
            **kwargs
        )


# =============================================================================
# TOOL CALL ERRORS
# =============================================================================

class ToolCallError(VFSError):
    """Base class for errors raised while dispatching a host tool call."""

    def __init__(self, message: str, tool_name: Optional[str] = None, **kwargs):
        self.tool_name = tool_name
        error_code = kwargs.pop("error_code", "TOOL_CALL_ERROR")
        context = kwargs.pop("context", {})
        if tool_name:
            context["tool_name"] = tool_name
        super().__init__(message, error_code=error_code, context=context, **kwargs)


class MissingParametersError(ToolCallError):
    """Raised when a tool call omits one or more required parameters."""

    def __init__(self, tool_name: str, missing: List[str], **kwargs):
        self.missing = list(missing)
        super().__init__(
            f"{tool_name} requires parameters: {', '.join(self.missing)}",
            tool_name=tool_name,
            error_code="MISSING_PARAMETERS",
            context={"missing": self.missing},
            **kwargs
        )


class InvalidParametersError(ToolCallError):
    """Raised when tool parameters are present but have unusable values."""

    def __init__(self, tool_name: str, details: List[str], **kwargs):
        self.details = list(details)
        super().__init__(
            f"{tool_name} received invalid parameters: {'; '.join(self.details)}",
            tool_name=tool_name,
            error_code="INVALID_PARAMETERS",
            context={"details": self.details},
            **kwargs
        )


class UnknownToolError(ToolCallError):
    """Raised when a tool name is not registered."""

    def __init__(self, tool_name: str, suggestions: Optional[List[str]] = None, **kwargs):
        self.suggestions = suggestions or []
        message = f"Unknown tool: {tool_name}"
        if self.suggestions:
            message = f"{message}. Did you mean: {', '.join(self.suggestions)}?"
        super().__init__(
            message,
            tool_name=tool_name,
            error_code="UNKNOWN_TOOL",
            context={"suggestions": self.suggestions},
            **kwargs
        )
