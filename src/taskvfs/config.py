"""
Configuration for the task virtual filesystem.

This module defines the configuration class that fixes the scope layout for
one task run and the behavioural switches of the filesystem and tool layer.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional, Union

from .exceptions import VFSConfigurationError


class Scope(str, Enum):
    """Storage namespaces available to task code."""
    RUN = "run"  # Private to a single run of a task
    TASK = "task"  # Shared by all runs of a task
    GLOBAL = "global"  # Shared by every task in the ecosystem


# Read-only pseudo-scope that probes run, task, then global
READ_AUTO = "auto"

# Fixed probe order for auto-scope reads
AUTO_SCOPE_ORDER = (Scope.RUN, Scope.TASK, Scope.GLOBAL)

DEFAULT_WATCH_EVENT_TYPES = [
    "created",
    "modified",
    "deleted",
    "moved",
]


@dataclass
class VFSConfig:
    """
    Configuration for a TaskVFS instance.

    The ecosystem root, task id and run id together determine the three scope
    roots. Everything else tunes behaviour; nothing here is read from the
    process environment.
    """

    # === Scope Layout ===

    ecosystem_root: Union[str, Path]
    """Root directory holding every task's storage and the global scope."""

    task_id: str
    """Identifier of the task; namespaces the task and run scopes."""

    run_id: str
    """Identifier of the current run; namespaces the run scope."""

    # === Behaviour ===

    debug: bool = False
    """Emit diagnostic logging and include error types in failure envelopes."""

    default_encoding: str = "utf8"
    """Encoding used when a caller does not specify one."""

    json_indent: int = 2
    """Indentation used when structured content is serialized on write."""

    allow_symlink_escape: bool = False
    """If True, symlinks inside a scope may point outside its root."""

    # === Notifications ===

    watch_event_types: List[str] = field(default_factory=lambda: DEFAULT_WATCH_EVENT_TYPES.copy())
    """Watchdog event kinds forwarded to watch subscribers."""

    event_history_size: int = 100
    """Number of recent file events retained by the change notifier."""

    # === Logging ===

    enable_audit_logging: bool = True
    """Record every file operation on the taskvfs.audit logger."""

    audit_log_path: Optional[Path] = None
    """Path to an audit log file (None disables file-based auditing)."""

    def __post_init__(self):
        """Normalize paths and validate identifiers."""
        if not self.ecosystem_root:
            raise VFSConfigurationError("ecosystem_root must be set", field_name="ecosystem_root")
        self.ecosystem_root = Path(self.ecosystem_root)

        for name in ("task_id", "run_id"):
            self._validate_identifier(name, getattr(self, name))

        if self.audit_log_path is not None:
            self.audit_log_path = Path(self.audit_log_path)

        if self.event_history_size < 0:
            raise VFSConfigurationError(
                "event_history_size must not be negative",
                field_name="event_history_size",
            )

    @staticmethod
    def _validate_identifier(name: str, value: str) -> None:
        if not isinstance(value, str) or not value.strip():
            raise VFSConfigurationError(f"{name} must be a non-empty string", field_name=name)
        if "/" in value or "\\" in value or value in (".", ".."):
            raise VFSConfigurationError(
                f"{name} must not contain path separators: {value!r}",
                field_name=name,
            )

    def scope_roots(self) -> Dict[Scope, Path]:
        """
        Compute the root directory of every scope.

        Returns:
            Mapping of scope to its (not yet canonicalized) root directory
        """
        root = Path(self.ecosystem_root)
        return {
            Scope.RUN: root / "tasks" / self.task_id / "runs" / self.run_id / "fs",
            Scope.TASK: root / "tasks" / self.task_id / "fs",
            Scope.GLOBAL: root / "vfs" / "global",
        }

    def export_root(self, external_root: Union[str, Path]) -> Path:
        """Directory under which this task's scopes are exported."""
        return Path(external_root) / "tasks" / self.task_id
