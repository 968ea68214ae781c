"""
taskvfs - Scoped virtual filesystem for sandboxed task code

Gives task code three storage namespaces (run, task, global) under one
ecosystem root, confines every logical path to its scope, and exposes the
file operations as host tools returning uniform result envelopes.
"""

__version__ = "0.1.0"

from .audit import AuditLogger
from .config import READ_AUTO, Scope, VFSConfig
from .events import (
    ALL_EVENTS,
    FILE_CHANGE,
    FILE_DELETE,
    FILE_MKDIR,
    FILE_READ,
    FILE_WRITE,
    ChangeNotifier,
    FileEvent,
)
from .exceptions import (
    EmptyPathError,
    InvalidParametersError,
    InvalidScopeError,
    IOFailureError,
    MissingParametersError,
    PathTraversalError,
    ToolCallError,
    UnknownToolError,
    VFSConfigurationError,
    VFSError,
    VFSNotFoundError,
    WatchTimeoutError,
)
from .filesystem import ScopeResolver, ScopeStore, TaskVFS, WatchSubscription
from .host_tools import HostToolRegistry, ToolCall, create_host_tools
from .utils import init_vfs_logging

__all__ = [
    # Main interface
    "TaskVFS",
    "HostToolRegistry",
    "create_host_tools",
    "ToolCall",
    # Configuration
    "VFSConfig",
    "Scope",
    "READ_AUTO",
    # Building blocks
    "ScopeStore",
    "ScopeResolver",
    "WatchSubscription",
    "ChangeNotifier",
    "FileEvent",
    "AuditLogger",
    "init_vfs_logging",
    # Event types
    "FILE_WRITE",
    "FILE_READ",
    "FILE_DELETE",
    "FILE_MKDIR",
    "FILE_CHANGE",
    "ALL_EVENTS",
    # Exceptions
    "VFSError",
    "VFSConfigurationError",
    "InvalidScopeError",
    "EmptyPathError",
    "PathTraversalError",
    "VFSNotFoundError",
    "IOFailureError",
    "WatchTimeoutError",
    "ToolCallError",
    "MissingParametersError",
    "InvalidParametersError",
    "UnknownToolError",
]
