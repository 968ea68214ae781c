"""
Data models for the task filesystem.

Result types returned by TaskVFS operations. Each exposes ``to_dict()``
producing the camelCase mapping that host tools hand back to task code;
``path`` is always the caller's logical path and ``fullPath`` is only a
diagnostic field.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..utils import creation_time, format_timestamp


@dataclass
class FileEntry:
    """A file or directory discovered by a listing."""
    name: str  # Entry name (last path component)
    path: str  # Logical path of the entry
    scope: str  # Scope the entry lives in
    size: int  # Size in bytes
    modified: str  # Last modified timestamp (ISO format)
    created: str  # Created timestamp (ISO format)
    is_directory: bool = False
    extension: Optional[str] = None  # File extension without the dot (files only)

    @classmethod
    def from_stat(
        cls,
        name: str,
        path: str,
        scope: str,
        stat_result: os.stat_result,
        is_directory: bool,
    ) -> "FileEntry":
        return cls(
            name=name,
            path=path,
            scope=scope,
            size=stat_result.st_size,
            modified=format_timestamp(stat_result.st_mtime),
            created=format_timestamp(creation_time(stat_result)),
            is_directory=is_directory,
            extension=None if is_directory else Path(name).suffix.lstrip("."),
        )

    def __str__(self) -> str:
        type_str = "dir" if self.is_directory else "file"
        return f"FileEntry({type_str}: {self.scope}:{self.path}, {self.size} B)"

    def to_dict(self) -> Dict[str, Any]:
        result = {
            "name": self.name,
            "path": self.path,
            "scope": self.scope,
            "size": self.size,
            "modified": self.modified,
            "created": self.created,
        }
        if not self.is_directory:
            result["extension"] = self.extension
        return result


@dataclass
class WriteResult:
    """Result of a write operation."""
    path: str
    scope: str
    size: int  # Size of the file after writing
    full_path: Path
    appended: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": True,
            "path": self.path,
            "scope": self.scope,
            "size": self.size,
            "fullPath": str(self.full_path),
        }


@dataclass
class ReadResult:
    """Result of a read operation."""
    content: str  # Decoded content (base64 text for the base64 encoding)
    path: str
    scope: str  # Scope the file was actually found in
    size: int
    modified: str
    full_path: Path

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": True,
            "content": self.content,
            "path": self.path,
            "scope": self.scope,
            "size": self.size,
            "modified": self.modified,
            "fullPath": str(self.full_path),
        }


@dataclass
class ListResult:
    """Files and directories found below a logical directory."""
    path: str
    scope: str
    files: List[FileEntry] = field(default_factory=list)
    directories: List[FileEntry] = field(default_factory=list)
    recursive: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": True,
            "path": self.path,
            "scope": self.scope,
            "recursive": self.recursive,
            "files": [f.to_dict() for f in self.files],
            "directories": [d.to_dict() for d in self.directories],
        }


@dataclass
class DeleteResult:
    """Result of a delete operation."""
    path: str
    scope: str
    full_path: Path
    was_directory: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": True,
            "path": self.path,
            "scope": self.scope,
        }


@dataclass
class StatResult:
    """Metadata of a single file or directory."""
    path: str
    scope: str
    size: int
    modified: str
    created: str
    accessed: str
    is_file: bool
    is_directory: bool
    full_path: Path

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": True,
            "path": self.path,
            "scope": self.scope,
            "size": self.size,
            "modified": self.modified,
            "created": self.created,
            "accessed": self.accessed,
            "isFile": self.is_file,
            "isDirectory": self.is_directory,
        }


@dataclass
class DirectoryResult:
    """Result of directory creation."""
    path: str
    scope: str
    full_path: Path
    already_existed: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": True,
            "path": self.path,
            "scope": self.scope,
            "alreadyExisted": self.already_existed,
        }


@dataclass
class ExportResult:
    """Result of exporting all scopes to an external tree."""
    export_path: Path
    scopes: List[str] = field(default_factory=list)  # Scopes actually copied

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": True,
            "exportPath": str(self.export_path),
            "scopes": list(self.scopes),
        }
