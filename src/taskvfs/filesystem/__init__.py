"""Scoped virtual filesystem for task code.

Task code addresses files by logical path within one of three scopes (run,
task, global); this package confines every path to its scope root and
performs the file operations behind the host tools.

Example:
    >>> from taskvfs.filesystem import TaskVFS
    >>> vfs = TaskVFS(VFSConfig(ecosystem_root="/srv/eco", task_id="t1", run_id="r1"))
    >>> await vfs.write("notes/a.txt", "hello", "task")
"""

from .core import ScopeResolver, ScopeStore, coerce_scope
from .data_models import (
    DeleteResult,
    DirectoryResult,
    ExportResult,
    FileEntry,
    ListResult,
    ReadResult,
    StatResult,
    WriteResult,
)
from .operations import TaskVFS
from .watcher import WatchSubscription

__all__ = [
    "TaskVFS",
    "ScopeResolver",
    "ScopeStore",
    "coerce_scope",
    "WatchSubscription",
    # Data models
    "FileEntry",
    "WriteResult",
    "ReadResult",
    "ListResult",
    "DeleteResult",
    "StatResult",
    "DirectoryResult",
    "ExportResult",
]
