"""
Main TaskVFS interface.

This module provides the file operations task code performs (through the host
tool registry) against the run, task and global scopes.
"""

import asyncio
import base64
import binascii
import json
import logging
import os
import shutil
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from ..audit import AuditLogger
from ..config import AUTO_SCOPE_ORDER, READ_AUTO, Scope, VFSConfig
from ..events import (
    FILE_DELETE,
    FILE_MKDIR,
    FILE_READ,
    FILE_WRITE,
    ChangeNotifier,
    FileEvent,
    Listener,
)
from ..exceptions import IOFailureError, VFSError, VFSNotFoundError
from ..utils import creation_time, format_timestamp
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
from .watcher import WatchCallback, WatchSubscription

logger = logging.getLogger(__name__)

BASE64_ENCODING = "base64"

ScopeArg = Union[str, Scope]


class TaskVFS:
    """
    Scoped virtual filesystem for one task run.

    Every operation takes a logical path and a scope, resolves it through
    ScopeResolver and only then touches the disk. Failures are raised as
    VFSError subclasses:
    - InvalidScopeError / EmptyPathError / PathTraversalError from resolution
    - VFSNotFoundError for missing read/delete/stat/watch targets
    - IOFailureError for any other storage error

    Content written through ``write`` follows one rule: bytes-like values are
    stored raw, strings are encoded with the requested encoding, and anything
    else (dicts, lists, numbers, booleans, None) is serialized to indented
    JSON first.
    """

    def __init__(self, config: VFSConfig, notifier: Optional[ChangeNotifier] = None):
        """
        Initialize the filesystem and create any missing scope roots.

        Args:
            config: Scope layout and behaviour switches
            notifier: Optional shared notifier (a private one is created otherwise)
        """
        self.config = config
        self.store = ScopeStore(config)
        self.resolver = ScopeResolver(
            self.store.roots,
            allow_symlink_escape=config.allow_symlink_escape,
        )
        self.notifier = notifier or ChangeNotifier(history_size=config.event_history_size)
        self.audit = AuditLogger(config)
        self._subscriptions: List[WatchSubscription] = []

        logger.info(f"TaskVFS initialized for task {config.task_id} run {config.run_id}")

    @property
    def task_id(self) -> str:
        return self.config.task_id

    @property
    def run_id(self) -> str:
        return self.config.run_id

    @property
    def scopes(self) -> Dict[str, Path]:
        """Scope name to canonical root directory."""
        return {scope.value: root for scope, root in self.store.roots.items()}

    def resolve(self, path: str, scope: ScopeArg = Scope.RUN) -> Path:
        """Resolve a logical path to its confined host path."""
        full_path = self.resolver.resolve(path, scope)
        self._diagnostic(f"Resolved {scope}:{path} -> {full_path}")
        return full_path

    # ========== Events ==========

    def on(self, event_type: str, listener: Listener) -> None:
        """Register a listener for ``file:*`` events (``*`` for all)."""
        self.notifier.subscribe(event_type, listener)

    def off(self, event_type: str, listener: Listener) -> None:
        self.notifier.unsubscribe(event_type, listener)

    async def _emit(
        self,
        event_type: str,
        path: str,
        scope: str,
        full_path: Path,
        size: Optional[int] = None,
        **metadata: Any
    ) -> None:
        await self.notifier.publish(FileEvent(
            event_type,
            path,
            scope,
            full_path=str(full_path),
            size=size,
            metadata=metadata,
        ))

    # ========== File Operations ==========

    async def write(
        self,
        path: str,
        content: Any,
        scope: ScopeArg = Scope.RUN,
        encoding: Optional[str] = None,
        append: bool = False,
    ) -> WriteResult:
        """
        Write (or append) content to a file, creating parent directories.

        Args:
            path: Logical file path
            content: bytes, str, or a structured value serialized as JSON
            scope: Target scope (default run)
            encoding: Text encoding; ``base64`` decodes a base64 string to bytes
            append: Append after existing content instead of replacing it

        Returns:
            WriteResult with the size of the file after writing

        Raises:
            IOFailureError: If the target is a directory, the content cannot be
                encoded, or the disk write fails
        """
        full_path = self.resolve(path, scope)
        scope_name = coerce_scope(scope).value
        encoding = encoding or self.config.default_encoding
        data = self._encode_content(content, encoding, path, scope_name)

        if full_path.is_dir():
            raise IOFailureError(
                f"Cannot write to a directory: {path}",
                operation="write",
                scope=scope_name,
                path=path,
            )

        try:
            full_path.parent.mkdir(parents=True, exist_ok=True)
            appended = append and full_path.exists()
            with open(full_path, "ab" if append else "wb") as f:
                f.write(data)
            size = full_path.stat().st_size
        except OSError as e:
            raise self._io_failure("write", path, scope_name, e) from e

        self.audit.log_operation("write", scope_name, path, True, {
            "size": size,
            "append": append,
        })
        await self._emit(FILE_WRITE, path, scope_name, full_path, size)

        return WriteResult(
            path=path,
            scope=scope_name,
            size=size,
            full_path=full_path,
            appended=appended,
        )

    async def read(
        self,
        path: str,
        scope: ScopeArg = READ_AUTO,
        encoding: Optional[str] = None,
    ) -> ReadResult:
        """
        Read a file.

        With scope ``auto`` the run, task and global scopes are probed in that
        order and the first hit wins; a scope that lacks the file (or holds a
        directory there) is skipped. Resolution errors are the same for every
        scope and are raised immediately.

        Args:
            path: Logical file path
            scope: run, task, global or auto (default)
            encoding: Text encoding; ``base64`` returns the bytes base64-encoded

        Returns:
            ReadResult naming the scope the file was found in

        Raises:
            VFSNotFoundError: If no probed scope holds the file; for auto reads
                the message lists every scope's reason
            IOFailureError: If a concrete-scope target is a directory, or
                reading/decoding fails
        """
        encoding = encoding or self.config.default_encoding
        is_auto = scope == READ_AUTO
        candidates = AUTO_SCOPE_ORDER if is_auto else (coerce_scope(scope),)
        reasons: Dict[str, str] = {}

        for candidate in candidates:
            full_path = self.resolve(path, candidate)

            if not full_path.exists():
                reasons[candidate.value] = "does not exist"
                continue
            if full_path.is_dir():
                if not is_auto:
                    raise IOFailureError(
                        f"Path is a directory: {path}",
                        operation="read",
                        scope=candidate.value,
                        path=path,
                    )
                reasons[candidate.value] = "is a directory"
                continue

            try:
                data = full_path.read_bytes()
                stat = full_path.stat()
            except FileNotFoundError:
                reasons[candidate.value] = "does not exist"
                continue
            except OSError as e:
                raise self._io_failure("read", path, candidate.value, e) from e

            content = self._decode_content(data, encoding, path, candidate.value)

            self.audit.log_operation("read", candidate.value, path, True, {"size": stat.st_size})
            await self._emit(FILE_READ, path, candidate.value, full_path, stat.st_size)

            return ReadResult(
                content=content,
                path=path,
                scope=candidate.value,
                size=stat.st_size,
                modified=format_timestamp(stat.st_mtime),
                full_path=full_path,
            )

        self.audit.log_operation("read", str(scope), path, False, reasons)
        if is_auto:
            raise VFSNotFoundError(path, scope=READ_AUTO, reasons=reasons)
        raise VFSNotFoundError(path, scope=candidates[0].value)

    # ========== Directory Operations ==========

    async def list(self, path: str = "/", scope: ScopeArg = Scope.RUN) -> ListResult:
        """
        List the immediate children of a directory.

        A directory that does not exist yields empty collections.

        Returns:
            ListResult with files and directories, each sorted by name

        Raises:
            IOFailureError: If the path is a file or cannot be scanned
        """
        full_path = self.resolve(path, scope)
        scope_name = coerce_scope(scope).value
        result = ListResult(path=path, scope=scope_name)

        if not full_path.exists():
            return result
        if not full_path.is_dir():
            raise IOFailureError(
                f"Not a directory: {path}",
                operation="list",
                scope=scope_name,
                path=path,
            )

        try:
            with os.scandir(full_path) as it:
                entries = sorted(it, key=lambda e: e.name)
        except OSError as e:
            raise self._io_failure("list", path, scope_name, e) from e

        for entry in entries:
            try:
                is_dir = entry.is_dir()
                stat = entry.stat()
            except OSError as e:
                # Dangling symlinks and entries removed mid-listing
                logger.warning(f"Error getting info for {entry.path}: {e}")
                continue

            item = FileEntry.from_stat(
                entry.name,
                self.resolver.join_logical(path, entry.name),
                scope_name,
                stat,
                is_dir,
            )
            if is_dir:
                result.directories.append(item)
            else:
                result.files.append(item)

        return result

    async def list_recursive(self, path: str = "/", scope: ScopeArg = Scope.RUN) -> ListResult:
        """
        List a directory and, depth first, every directory below it.

        ``files`` aggregates every entry found (subdirectories included, each
        directory before the entries inside it); ``directories`` holds the
        subdirectories alone.
        """
        level = await self.list(path, scope)
        aggregate = ListResult(
            path=path,
            scope=level.scope,
            files=list(level.files),
            recursive=True,
        )
        pending = list(reversed(level.directories))
        while pending:
            directory = pending.pop()
            aggregate.directories.append(directory)
            aggregate.files.append(directory)
            nested = await self.list(directory.path, scope)
            aggregate.files.extend(nested.files)
            pending.extend(reversed(nested.directories))
        return aggregate

    async def mkdir(self, path: str, scope: ScopeArg = Scope.RUN) -> DirectoryResult:
        """
        Create a directory and any missing parents. Idempotent.

        Raises:
            IOFailureError: If a file occupies the path or a parent
        """
        full_path = self.resolve(path, scope)
        scope_name = coerce_scope(scope).value
        already_existed = full_path.is_dir()

        if full_path.exists() and not already_existed:
            raise IOFailureError(
                f"A file already exists at {path}",
                operation="mkdir",
                scope=scope_name,
                path=path,
            )

        try:
            full_path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise self._io_failure("mkdir", path, scope_name, e) from e

        self.audit.log_operation("mkdir", scope_name, path, True, {"already_existed": already_existed})
        if not already_existed:
            await self._emit(FILE_MKDIR, path, scope_name, full_path)

        return DirectoryResult(
            path=path,
            scope=scope_name,
            full_path=full_path,
            already_existed=already_existed,
        )

    async def delete(self, path: str, scope: ScopeArg = Scope.RUN) -> DeleteResult:
        """
        Delete a file, or a directory together with all of its descendants.

        Raises:
            VFSNotFoundError: If the path does not exist
            IOFailureError: If the path is the scope root or removal fails
        """
        full_path = self.resolve(path, scope)
        scope_name = coerce_scope(scope).value

        if full_path == self.store.root(scope_name):
            raise IOFailureError(
                f"Refusing to delete the {scope_name} scope root",
                operation="delete",
                scope=scope_name,
                path=path,
            )
        if not full_path.exists() and not full_path.is_symlink():
            self.audit.log_operation("delete", scope_name, path, False, {"error": "not found"})
            raise VFSNotFoundError(path, scope=scope_name)

        was_directory = full_path.is_dir() and not full_path.is_symlink()
        try:
            if was_directory:
                shutil.rmtree(full_path)
            else:
                full_path.unlink()
        except FileNotFoundError:
            raise VFSNotFoundError(path, scope=scope_name) from None
        except OSError as e:
            raise self._io_failure("delete", path, scope_name, e) from e

        self.audit.log_operation("delete", scope_name, path, True, {"directory": was_directory})
        await self._emit(FILE_DELETE, path, scope_name, full_path)

        return DeleteResult(
            path=path,
            scope=scope_name,
            full_path=full_path,
            was_directory=was_directory,
        )

    # ========== Metadata ==========

    async def exists(self, path: str, scope: ScopeArg = Scope.RUN) -> bool:
        """Whether the path exists. Never raises: invalid input means False."""
        try:
            return self.resolver.resolve(path, scope).exists()
        except (VFSError, OSError, ValueError) as e:
            self._diagnostic(f"exists({scope}:{path}) treated as False: {e}")
            return False

    async def stat(self, path: str, scope: ScopeArg = Scope.RUN) -> StatResult:
        """
        Get size, timestamps and type of a path.

        Raises:
            VFSNotFoundError: If the path does not exist
        """
        full_path = self.resolve(path, scope)
        scope_name = coerce_scope(scope).value

        try:
            stat = full_path.stat()
        except FileNotFoundError:
            raise VFSNotFoundError(path, scope=scope_name) from None
        except OSError as e:
            raise self._io_failure("stat", path, scope_name, e) from e

        return StatResult(
            path=path,
            scope=scope_name,
            size=stat.st_size,
            modified=format_timestamp(stat.st_mtime),
            created=format_timestamp(creation_time(stat)),
            accessed=format_timestamp(stat.st_atime),
            is_file=full_path.is_file(),
            is_directory=full_path.is_dir(),
            full_path=full_path,
        )

    def tree(self) -> Dict[str, Dict[str, Any]]:
        """Per-scope root path, existence flag and recursive size."""
        return self.store.tree()

    # ========== Watching ==========

    async def watch(
        self,
        path: str,
        scope: ScopeArg = Scope.RUN,
        on_event: Optional[WatchCallback] = None,
    ) -> WatchSubscription:
        """
        Watch an existing file or directory for changes (non-recursive).

        ``on_event`` receives ``{"event", "filename", "path", "scope",
        "timestamp"}`` for every change, delivered on the current event loop,
        until the returned subscription is closed.

        Raises:
            VFSNotFoundError: If the path does not exist
            IOFailureError: If the watch cannot be armed
        """
        if not callable(on_event):
            raise TypeError("watch() requires a callable on_event")
        full_path = self.resolve(path, scope)
        scope_name = coerce_scope(scope).value

        if not full_path.exists():
            raise VFSNotFoundError(path, scope=scope_name)

        try:
            subscription = WatchSubscription(
                full_path,
                path,
                scope_name,
                on_event,
                event_types=self.config.watch_event_types,
                notifier=self.notifier,
                loop=asyncio.get_running_loop(),
            ).start()
        except OSError as e:
            raise self._io_failure("watch", path, scope_name, e) from e

        self._subscriptions = [s for s in self._subscriptions if not s.closed]
        self._subscriptions.append(subscription)
        self.audit.log_operation("watch", scope_name, path, True)
        return subscription

    # ========== Export ==========

    async def export_tree(self, external_root: Union[str, Path]) -> ExportResult:
        """
        Copy every existing scope into ``<external_root>/tasks/<task_id>/<scope>``.

        Copies are additive: existing destination files are overwritten, other
        destination content is left in place.
        """
        export_path = self.config.export_root(external_root)
        copied: List[str] = []

        try:
            export_path.mkdir(parents=True, exist_ok=True)
            for scope, root in self.store.roots.items():
                if not root.is_dir():
                    continue
                await asyncio.to_thread(
                    shutil.copytree,
                    root,
                    export_path / scope.value,
                    dirs_exist_ok=True,
                )
                copied.append(scope.value)
        except OSError as e:
            raise self._io_failure("export", str(export_path), None, e) from e

        self.audit.log_operation("export", ",".join(copied), str(export_path), True)
        logger.info(f"Exported scopes {copied} to {export_path}")
        return ExportResult(export_path=export_path, scopes=copied)

    # ========== Lifecycle ==========

    def close(self) -> None:
        """Close every watch subscription opened through this instance."""
        for subscription in self._subscriptions:
            subscription.close()
        self._subscriptions.clear()
        self.audit.close()

    def __enter__(self) -> "TaskVFS":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    # ========== Utility Methods ==========

    def _diagnostic(self, message: str) -> None:
        if self.config.debug:
            logger.info(message)

    def _io_failure(
        self,
        operation: str,
        path: str,
        scope: Optional[str],
        error: OSError,
    ) -> IOFailureError:
        logger.error(f"Error during {operation} of {scope}:{path}: {error}")
        self.audit.log_operation(operation, scope, path, False, {"error": str(error)})
        return IOFailureError(
            f"{operation} failed for {path}: {error.strerror or error}",
            operation=operation,
            original_error=error,
            scope=scope,
            path=path,
        )

    def _encode_content(self, content: Any, encoding: str, path: str, scope: str) -> bytes:
        if isinstance(content, (bytes, bytearray, memoryview)):
            return bytes(content)

        is_base64 = encoding.lower() == BASE64_ENCODING
        if not isinstance(content, str):
            content = json.dumps(
                content,
                indent=self.config.json_indent,
                ensure_ascii=False,
                default=str,
            )
            if is_base64:
                return content.encode("utf-8")

        try:
            if is_base64:
                return base64.b64decode(content, validate=True)
            return content.encode(encoding)
        except (LookupError, UnicodeError, binascii.Error, ValueError) as e:
            raise IOFailureError(
                f"Cannot encode content for {path} as {encoding}: {e}",
                operation="write",
                original_error=e,
                scope=scope,
                path=path,
            ) from e

    def _decode_content(self, data: bytes, encoding: str, path: str, scope: str) -> str:
        if encoding.lower() == BASE64_ENCODING:
            return base64.b64encode(data).decode("ascii")
        try:
            return data.decode(encoding)
        except (LookupError, UnicodeError) as e:
            raise IOFailureError(
                f"Cannot decode {path} as {encoding}: {e}",
                operation="read",
                original_error=e,
                scope=scope,
                path=path,
            ) from e
