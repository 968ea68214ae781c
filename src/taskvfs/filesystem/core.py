"""Scope roots and logical path resolution for the task filesystem.

Caller-facing paths are always logical paths relative to a scope root. This
module owns the three scope root directories and turns (logical path, scope)
pairs into host paths that are guaranteed to stay inside their root.
"""

from __future__ import annotations

import logging
import os
import posixpath
import re
from pathlib import Path
from typing import Any, Dict, Optional, Union

from ..config import Scope, VFSConfig
from ..exceptions import (
    EmptyPathError,
    InvalidScopeError,
    IOFailureError,
    PathTraversalError,
)

logger = logging.getLogger(__name__)

_SEGMENT_SPLIT = re.compile(r"[\\/]")


def coerce_scope(scope: Union[str, Scope, Any]) -> Scope:
    """Convert a scope name to a Scope, raising InvalidScopeError otherwise."""
    try:
        return Scope(scope)
    except (ValueError, TypeError):
        raise InvalidScopeError(scope, [s.value for s in Scope]) from None


class ScopeStore:
    """Owns the root directory of every scope.

    Roots are created (if missing) and canonicalized once at construction and
    never change afterwards. The store never deletes a root.
    """

    def __init__(self, config: VFSConfig) -> None:
        """Initialize the store and make sure every scope root exists.

        Args:
            config: Configuration providing the scope layout

        Raises:
            IOFailureError: If a root directory cannot be created
        """
        self.config = config
        self._roots: Dict[Scope, Path] = {}
        for scope, root in config.scope_roots().items():
            self._ensure_directory(root)
            self._roots[scope] = root.resolve()

    @staticmethod
    def _ensure_directory(root: Path) -> None:
        try:
            root.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise IOFailureError(
                f"Unable to create scope root {root}: {e}",
                operation="ensure_directories",
                original_error=e,
            ) from e

    def ensure_directories(self) -> None:
        """Re-create any scope root that has gone missing. Idempotent."""
        for root in self._roots.values():
            self._ensure_directory(root)

    @property
    def roots(self) -> Dict[Scope, Path]:
        """A copy of the scope root table."""
        return dict(self._roots)

    def root(self, scope: Union[str, Scope]) -> Path:
        """Return the root directory of a scope."""
        return self._roots[coerce_scope(scope)]

    def tree(self) -> Dict[str, Dict[str, Any]]:
        """
        Describe every scope root.

        Never raises: a missing root reports ``exists=False`` and size zero.

        Returns:
            Mapping of scope name to ``{"path", "exists", "size"}``
        """
        tree: Dict[str, Dict[str, Any]] = {}
        for scope, root in self._roots.items():
            exists = root.is_dir()
            tree[scope.value] = {
                "path": str(root),
                "exists": exists,
                "size": self.directory_size(root) if exists else 0,
            }
        return tree

    @classmethod
    def directory_size(cls, directory: Path) -> int:
        """Sum the sizes of all files below a directory, depth first.

        Symlinks are not followed and unreadable entries are skipped.
        """
        total = 0
        pending = [str(directory)]
        while pending:
            current = pending.pop()
            try:
                with os.scandir(current) as entries:
                    for entry in entries:
                        try:
                            if entry.is_dir(follow_symlinks=False):
                                pending.append(entry.path)
                            elif entry.is_file(follow_symlinks=False):
                                total += entry.stat(follow_symlinks=False).st_size
                        except OSError as e:
                            logger.debug(f"Skipping {entry.path} while sizing: {e}")
            except OSError as e:
                logger.debug(f"Unable to scan {current}: {e}")
        return total


class ScopeResolver:
    """Resolves logical paths to host paths confined to a scope root.

    Example:
        >>> resolver = ScopeResolver(store.roots)
        >>> resolver.resolve("notes/a.txt", "task")
        PosixPath('/eco/tasks/t1/fs/notes/a.txt')
    """

    def __init__(self, roots: Dict[Scope, Path], allow_symlink_escape: bool = False) -> None:
        """
        Args:
            roots: Canonical root directory for each scope
            allow_symlink_escape: If True, skip the symlink canonicalization check
        """
        self._roots = dict(roots)
        self.allow_symlink_escape = allow_symlink_escape

    def resolve(self, logical_path: Optional[str], scope: Union[str, Scope] = Scope.RUN) -> Path:
        """Resolve a logical path within a scope.

        Args:
            logical_path: Path relative to the scope root; one leading
                separator is ignored
            scope: Scope name (run, task or global)

        Returns:
            The confined host path (not symlink-resolved)

        Raises:
            InvalidScopeError: If scope is not recognized
            EmptyPathError: If the path is missing or blank
            PathTraversalError: If the path would leave the scope root
        """
        scope_key = coerce_scope(scope)
        if not isinstance(logical_path, str) or not logical_path.strip():
            raise EmptyPathError(scope=scope_key.value)

        if "\x00" in logical_path:
            raise PathTraversalError(logical_path, scope_key.value, "path contains a NUL byte")

        if ".." in _SEGMENT_SPLIT.split(logical_path):
            raise PathTraversalError(logical_path, scope_key.value, "'..' segments are not allowed")

        normalized = logical_path[1:] if logical_path[0] in ("/", os.sep) else logical_path
        if os.path.isabs(normalized) or os.path.splitdrive(normalized)[0]:
            raise PathTraversalError(logical_path, scope_key.value, "absolute paths are not allowed")

        root = self._roots[scope_key]
        candidate = Path(os.path.normpath(os.path.join(root, normalized))) if normalized else root
        if not self._is_within(candidate, root):
            raise PathTraversalError(logical_path, scope_key.value)

        if not self.allow_symlink_escape:
            try:
                canonical = candidate.resolve(strict=False)
            except (OSError, RuntimeError):
                # Python 3.12 raises RuntimeError on symlink loops
                raise PathTraversalError(
                    logical_path, scope_key.value, "symlink cannot be resolved"
                ) from None
            if not self._is_within(canonical, root):
                raise PathTraversalError(
                    logical_path, scope_key.value, "symlink resolves outside scope root"
                )

        return candidate

    def to_logical(self, host_path: Path, scope: Union[str, Scope]) -> str:
        """Convert a host path inside a scope back to a logical path.

        Raises:
            ValueError: If the host path is not inside the scope root
        """
        root = self._roots[coerce_scope(scope)]
        rel = Path(host_path).relative_to(root).as_posix()
        return "/" if rel in ("", ".") else rel

    @staticmethod
    def join_logical(parent: str, name: str) -> str:
        """Join a logical directory path and an entry name."""
        return posixpath.join(parent, name)

    @staticmethod
    def _is_within(path: Path, root: Path) -> bool:
        try:
            path.relative_to(root)
        except ValueError:
            return False
        return True
