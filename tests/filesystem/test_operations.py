"""
Tests for the taskvfs.filesystem.operations module.

This module tests:
- write/read across scopes, including auto-scope probing
- Content encoding rules (text, JSON, bytes, base64)
- list, list_recursive, mkdir, delete, exists, stat
- Event emission and audit logging
- export_tree
"""

import base64
import json
import logging
import os

import pytest

from taskvfs.audit import AUDIT_LOGGER_NAME
from taskvfs.config import VFSConfig
from taskvfs.events import ALL_EVENTS, FILE_DELETE, FILE_MKDIR, FILE_READ, FILE_WRITE
from taskvfs.exceptions import (
    EmptyPathError,
    InvalidScopeError,
    IOFailureError,
    PathTraversalError,
    VFSError,
    VFSNotFoundError,
)
from taskvfs.filesystem import TaskVFS


# =============================================================================
# Write / Read
# =============================================================================

class TestWrite:
    """Tests for TaskVFS.write()."""

    @pytest.mark.asyncio
    async def test_write_text_default_scope(self, vfs):
        result = await vfs.write("notes/a.txt", "hello")

        assert result.scope == "run"
        assert result.size == 5
        assert result.full_path == vfs.scopes["run"] / "notes" / "a.txt"
        assert result.full_path.read_text() == "hello"

    @pytest.mark.asyncio
    async def test_write_creates_parents(self, vfs):
        await vfs.write("a/b/c/d.txt", "x", "task")

        assert (vfs.scopes["task"] / "a" / "b" / "c").is_dir()

    @pytest.mark.asyncio
    async def test_overwrite_replaces(self, vfs):
        await vfs.write("a.txt", "first version")
        result = await vfs.write("a.txt", "second")

        assert result.full_path.read_text() == "second"
        assert result.size == 6

    @pytest.mark.asyncio
    async def test_append(self, vfs):
        await vfs.write("log.txt", "one\n")
        result = await vfs.write("log.txt", "two\n", append=True)

        assert result.full_path.read_text() == "one\ntwo\n"
        assert result.size == 8
        assert result.appended is True

    @pytest.mark.asyncio
    async def test_append_to_missing_file_creates_it(self, vfs):
        result = await vfs.write("new.txt", "x", append=True)

        assert result.full_path.read_text() == "x"
        assert result.appended is False

    @pytest.mark.asyncio
    async def test_structured_content_written_as_json(self, vfs):
        result = await vfs.write("data.json", {"a": 1, "b": [1, 2]})

        text = result.full_path.read_text()
        assert json.loads(text) == {"a": 1, "b": [1, 2]}
        assert text == json.dumps({"a": 1, "b": [1, 2]}, indent=2)

    @pytest.mark.asyncio
    async def test_non_string_scalars_serialized(self, vfs):
        result = await vfs.write("n.txt", 42)

        assert result.full_path.read_text() == "42"

    @pytest.mark.asyncio
    async def test_bytes_written_raw(self, vfs):
        result = await vfs.write("blob.bin", b"\x00\xff\x10")

        assert result.full_path.read_bytes() == b"\x00\xff\x10"

    @pytest.mark.asyncio
    async def test_base64_encoding(self, vfs):
        payload = base64.b64encode(b"\x89PNG").decode()

        result = await vfs.write("img.png", payload, encoding="base64")

        assert result.full_path.read_bytes() == b"\x89PNG"

    @pytest.mark.asyncio
    async def test_invalid_base64_fails(self, vfs):
        with pytest.raises(IOFailureError):
            await vfs.write("img.png", "not base64!!", encoding="base64")

    @pytest.mark.asyncio
    async def test_unknown_encoding_fails(self, vfs):
        with pytest.raises(IOFailureError):
            await vfs.write("a.txt", "x", encoding="no-such-codec")

    @pytest.mark.asyncio
    async def test_write_to_directory_fails(self, vfs):
        await vfs.mkdir("folder")

        with pytest.raises(IOFailureError):
            await vfs.write("folder", "x")

    @pytest.mark.asyncio
    async def test_traversal_rejected_without_touching_disk(self, vfs):
        with pytest.raises(PathTraversalError):
            await vfs.write("../../escape.txt", "x")

        assert not (vfs.scopes["run"].parent.parent / "escape.txt").exists()

    @pytest.mark.asyncio
    async def test_invalid_scope(self, vfs):
        with pytest.raises(InvalidScopeError):
            await vfs.write("a.txt", "x", "bogus")

    @pytest.mark.asyncio
    async def test_empty_path(self, vfs):
        with pytest.raises(EmptyPathError):
            await vfs.write("", "x")


class TestRead:
    """Tests for TaskVFS.read()."""

    @pytest.mark.asyncio
    async def test_read_concrete_scope(self, vfs):
        await vfs.write("a.txt", "task data", "task")

        result = await vfs.read("a.txt", "task")

        assert result.content == "task data"
        assert result.scope == "task"
        assert result.size == 9

    @pytest.mark.asyncio
    async def test_auto_prefers_run(self, vfs):
        await vfs.write("config.json", "global", "global")
        await vfs.write("config.json", "task", "task")
        await vfs.write("config.json", "run", "run")

        result = await vfs.read("config.json")

        assert result.content == "run"
        assert result.scope == "run"

    @pytest.mark.asyncio
    async def test_auto_falls_back_to_global(self, vfs):
        await vfs.write("shared.txt", "from global", "global")

        result = await vfs.read("shared.txt", "auto")

        assert result.content == "from global"
        assert result.scope == "global"

    @pytest.mark.asyncio
    async def test_auto_skips_directory(self, vfs):
        await vfs.mkdir("thing", "run")
        await vfs.write("thing", "file in task", "task")

        result = await vfs.read("thing")

        assert result.scope == "task"

    @pytest.mark.asyncio
    async def test_auto_not_found_lists_every_scope(self, vfs):
        with pytest.raises(VFSNotFoundError) as exc_info:
            await vfs.read("missing.txt")

        error = exc_info.value
        assert set(error.reasons) == {"run", "task", "global"}
        assert "missing.txt" in str(error)

    @pytest.mark.asyncio
    async def test_concrete_scope_not_found(self, vfs):
        await vfs.write("a.txt", "x", "global")

        with pytest.raises(VFSNotFoundError) as exc_info:
            await vfs.read("a.txt", "task")

        assert exc_info.value.scope == "task"

    @pytest.mark.asyncio
    async def test_concrete_scope_directory_fails(self, vfs):
        await vfs.mkdir("folder", "task")

        with pytest.raises(IOFailureError):
            await vfs.read("folder", "task")

    @pytest.mark.asyncio
    async def test_auto_traversal_raised_immediately(self, vfs):
        with pytest.raises(PathTraversalError):
            await vfs.read("../secret")

    @pytest.mark.asyncio
    async def test_read_base64(self, vfs):
        await vfs.write("blob.bin", b"\x00\x01\x02")

        result = await vfs.read("blob.bin", "run", encoding="base64")

        assert base64.b64decode(result.content) == b"\x00\x01\x02"

    @pytest.mark.asyncio
    async def test_undecodable_content_fails(self, vfs):
        await vfs.write("blob.bin", b"\xff\xfe\xfa")

        with pytest.raises(IOFailureError):
            await vfs.read("blob.bin", "run")

    @pytest.mark.asyncio
    async def test_write_read_identity(self, vfs):
        text = "line one\nunicode: é中\n"
        await vfs.write("u.txt", text, "task")

        assert (await vfs.read("u.txt", "task")).content == text


# =============================================================================
# Directory Operations
# =============================================================================

class TestList:
    """Tests for list() and list_recursive()."""

    @pytest.mark.asyncio
    async def test_list_separates_files_and_directories(self, vfs):
        await vfs.write("docs/b.txt", "bb")
        await vfs.write("docs/a.md", "a")
        await vfs.mkdir("docs/sub")

        result = await vfs.list("docs")

        assert [f.name for f in result.files] == ["a.md", "b.txt"]
        assert [d.name for d in result.directories] == ["sub"]
        assert result.files[1].path == "docs/b.txt"
        assert result.files[1].size == 2
        assert result.files[0].extension == "md"

    @pytest.mark.asyncio
    async def test_list_missing_directory_is_empty(self, vfs):
        result = await vfs.list("nowhere", "task")

        assert result.files == []
        assert result.directories == []

    @pytest.mark.asyncio
    async def test_list_file_fails(self, vfs):
        await vfs.write("a.txt", "x")

        with pytest.raises(IOFailureError):
            await vfs.list("a.txt")

    @pytest.mark.asyncio
    async def test_list_root(self, vfs):
        await vfs.write("top.txt", "x", "global")

        result = await vfs.list("/", "global")

        assert [f.path for f in result.files] == ["/top.txt"]

    @pytest.mark.asyncio
    async def test_list_recursive(self, vfs):
        await vfs.write("top.txt", "x")
        await vfs.write("sub/inner.txt", "y")
        await vfs.write("sub/deeper/leaf.txt", "z")

        result = await vfs.list_recursive("/")

        assert result.recursive is True
        assert [d.path for d in result.directories] == ["/sub", "/sub/deeper"]
        assert [f.path for f in result.files] == [
            "/top.txt",
            "/sub",
            "/sub/inner.txt",
            "/sub/deeper",
            "/sub/deeper/leaf.txt",
        ]

    @pytest.mark.asyncio
    async def test_list_recursive_deep_tree(self, vfs, deep_tree):
        deep_tree(vfs.scopes["run"], depth=1100)

        result = await vfs.list_recursive("/")

        assert len(result.directories) == 1100
        assert len(result.files) == 1101
        assert result.files[-1].path.endswith("/d/leaf.txt")

    @pytest.mark.asyncio
    async def test_list_entry_dict_shape(self, vfs):
        await vfs.write("a.txt", "x")
        await vfs.mkdir("d")

        payload = (await vfs.list("/")).to_dict()

        assert set(payload["files"][0]) == {"name", "path", "scope", "size", "modified", "created", "extension"}
        assert "extension" not in payload["directories"][0]


class TestMkdirDelete:
    """Tests for mkdir() and delete()."""

    @pytest.mark.asyncio
    async def test_mkdir_idempotent(self, vfs):
        first = await vfs.mkdir("a/b", "task")
        second = await vfs.mkdir("a/b", "task")

        assert first.already_existed is False
        assert second.already_existed is True
        assert (vfs.scopes["task"] / "a" / "b").is_dir()

    @pytest.mark.asyncio
    async def test_mkdir_over_file_fails(self, vfs):
        await vfs.write("a", "x")

        with pytest.raises(IOFailureError):
            await vfs.mkdir("a")

    @pytest.mark.asyncio
    async def test_delete_file(self, vfs):
        await vfs.write("a.txt", "x")

        result = await vfs.delete("a.txt")

        assert result.was_directory is False
        assert not await vfs.exists("a.txt")

    @pytest.mark.asyncio
    async def test_delete_directory_recursively(self, vfs):
        await vfs.write("d/e/f.txt", "x", "global")

        result = await vfs.delete("d", "global")

        assert result.was_directory is True
        assert await vfs.exists("d/e/f.txt", "global") is False
        assert await vfs.exists("d", "global") is False

    @pytest.mark.asyncio
    async def test_delete_missing(self, vfs):
        with pytest.raises(VFSNotFoundError):
            await vfs.delete("missing.txt")

    @pytest.mark.asyncio
    async def test_delete_scope_root_refused(self, vfs):
        await vfs.write("keep.txt", "x", "task")

        with pytest.raises(IOFailureError):
            await vfs.delete("/", "task")

        assert (vfs.scopes["task"] / "keep.txt").exists()


# =============================================================================
# Metadata
# =============================================================================

class TestMetadata:
    """Tests for exists(), stat() and tree()."""

    @pytest.mark.asyncio
    async def test_exists(self, vfs):
        await vfs.write("a.txt", "x", "task")

        assert await vfs.exists("a.txt", "task") is True
        assert await vfs.exists("a.txt", "run") is False

    @pytest.mark.asyncio
    @pytest.mark.parametrize("path,scope", [
        ("../x", "run"),
        ("", "run"),
        ("a.txt", "bogus"),
    ])
    async def test_exists_never_raises(self, vfs, path, scope):
        assert await vfs.exists(path, scope) is False

    @pytest.mark.asyncio
    async def test_symlink_loop(self, vfs):
        root = vfs.scopes["run"]
        os.symlink(root / "b", root / "a")
        os.symlink(root / "a", root / "b")

        assert await vfs.exists("a/x", "run") is False
        with pytest.raises(VFSError):
            await vfs.write("a/x", "y")

    @pytest.mark.asyncio
    async def test_stat_file(self, vfs):
        await vfs.write("a.txt", "hello")

        result = await vfs.stat("a.txt")

        assert result.size == 5
        assert result.is_file is True
        assert result.is_directory is False
        assert result.modified.endswith("+00:00")

    @pytest.mark.asyncio
    async def test_stat_directory(self, vfs):
        await vfs.mkdir("d")

        result = await vfs.stat("d")

        assert result.is_directory is True
        assert result.is_file is False

    @pytest.mark.asyncio
    async def test_stat_missing(self, vfs):
        with pytest.raises(VFSNotFoundError):
            await vfs.stat("missing")

    @pytest.mark.asyncio
    async def test_tree(self, vfs):
        await vfs.write("a.txt", "abc", "task")

        tree = vfs.tree()

        assert tree["task"]["size"] == 3
        assert tree["run"]["exists"] is True


# =============================================================================
# Events and Audit
# =============================================================================

class TestEvents:
    """Tests for file events emitted by operations."""

    @pytest.mark.asyncio
    async def test_operations_emit_events(self, vfs):
        received = []
        vfs.on(ALL_EVENTS, received.append)

        await vfs.write("a.txt", "hello", "task")
        await vfs.read("a.txt", "task")
        await vfs.mkdir("d")
        await vfs.mkdir("d")
        await vfs.delete("a.txt", "task")

        assert [e.event_type for e in received] == [FILE_WRITE, FILE_READ, FILE_MKDIR, FILE_DELETE]
        write_event = received[0].to_dict()
        assert write_event["path"] == "a.txt"
        assert write_event["scope"] == "task"
        assert write_event["size"] == 5
        assert write_event["fullPath"] == str(vfs.scopes["task"] / "a.txt")

    @pytest.mark.asyncio
    async def test_failed_operation_emits_nothing(self, vfs):
        received = []
        vfs.on(FILE_READ, received.append)

        with pytest.raises(VFSNotFoundError):
            await vfs.read("missing.txt")

        assert received == []

    @pytest.mark.asyncio
    async def test_auto_read_event_names_found_scope(self, vfs):
        received = []
        vfs.on(FILE_READ, received.append)
        await vfs.write("g.txt", "x", "global")

        await vfs.read("g.txt")

        assert received[0].scope == "global"

    @pytest.mark.asyncio
    async def test_off_removes_listener(self, vfs):
        received = []
        vfs.on(FILE_WRITE, received.append)
        vfs.off(FILE_WRITE, received.append)

        await vfs.write("a.txt", "x")

        assert received == []

    @pytest.mark.asyncio
    async def test_audit_log(self, vfs, caplog):
        with caplog.at_level(logging.INFO, logger=AUDIT_LOGGER_NAME):
            await vfs.write("a.txt", "x", "task")

        messages = [r.getMessage() for r in caplog.records if r.name == AUDIT_LOGGER_NAME]
        assert any(m.startswith("SUCCESS - write - task:a.txt [task=t1 run=r1]") for m in messages)

    @pytest.mark.asyncio
    async def test_audit_log_file(self, eco_root, tmp_path):
        log_path = tmp_path / "logs" / "audit.log"
        config = VFSConfig(ecosystem_root=eco_root, task_id="t1", run_id="r1", audit_log_path=log_path)

        with TaskVFS(config) as vfs:
            await vfs.write("a.txt", "x")

        assert "write - run:a.txt" in log_path.read_text()


# =============================================================================
# Export
# =============================================================================

class TestExport:
    """Tests for export_tree()."""

    @pytest.mark.asyncio
    async def test_export_copies_every_scope(self, vfs, tmp_path):
        await vfs.write("r.txt", "run", "run")
        await vfs.write("t/x.txt", "task", "task")
        await vfs.write("g.txt", "global", "global")
        out = tmp_path / "out"

        result = await vfs.export_tree(out)

        base = out / "tasks" / "t1"
        assert result.export_path == base
        assert sorted(result.scopes) == ["global", "run", "task"]
        assert (base / "run" / "r.txt").read_text() == "run"
        assert (base / "task" / "t" / "x.txt").read_text() == "task"
        assert (base / "global" / "g.txt").read_text() == "global"
        assert result.to_dict()["exportPath"] == str(base)

    @pytest.mark.asyncio
    async def test_export_is_additive(self, vfs, tmp_path):
        out = tmp_path / "out"
        stale = out / "tasks" / "t1" / "run" / "old.txt"
        stale.parent.mkdir(parents=True)
        stale.write_text("old")
        await vfs.write("new.txt", "new")

        await vfs.export_tree(out)

        assert stale.read_text() == "old"
        assert (stale.parent / "new.txt").read_text() == "new"
