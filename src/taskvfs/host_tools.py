"""
Host tool registry: the single surface task code reaches the filesystem through.

The execution engine routes every intercepted file-tool call here. Each call
is validated against its tool's parameter model, dispatched to TaskVFS, and
answered with a plain-dict envelope. Nothing raised below this layer escapes
it: failures come back as ``{"success": False, "error", "tool", "params"}``.
"""

import asyncio
import functools
import logging
from dataclasses import dataclass
from difflib import get_close_matches
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Type, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .config import READ_AUTO, VFSConfig
from .exceptions import (
    InvalidParametersError,
    MissingParametersError,
    UnknownToolError,
    VFSError,
    WatchTimeoutError,
)
from .filesystem.operations import TaskVFS

logger = logging.getLogger(__name__)

Envelope = Dict[str, Any]

# Parameters never echoed back verbatim in failure envelopes
REDACTED_PARAMS = ("content",)


# ========== Parameter Models ==========

class ToolParams(BaseModel):
    """Base parameter model; unknown keys are ignored."""
    model_config = ConfigDict(extra="ignore")


class WriteFileParams(ToolParams):
    path: str
    content: Any
    scope: str = "run"
    encoding: Optional[str] = None  # None means the configured default (utf8)
    append: bool = False


class ReadFileParams(ToolParams):
    path: str
    scope: str = READ_AUTO
    encoding: Optional[str] = None


class ListFilesParams(ToolParams):
    path: str = "/"
    scope: str = "run"
    recursive: bool = False


class PathParams(ToolParams):
    path: str
    scope: str = "run"


class WatchFileParams(PathParams):
    timeout: Optional[float] = Field(default=None, gt=0)  # Seconds; None waits indefinitely


class NoParams(ToolParams):
    pass


class ToolCall(BaseModel):
    """A tool name plus its flat parameter mapping."""
    name: str
    params: Dict[str, Any] = Field(default_factory=dict)


@dataclass
class HostTool:
    """Registration record for one host tool."""
    name: str
    handler: Callable[[Any], Awaitable[Envelope]]
    params_model: Type[ToolParams]
    description: str = ""
    fallback: Optional[Callable[[Dict[str, Any]], Envelope]] = None  # Used instead of a failure envelope

    @property
    def required(self) -> List[str]:
        return [name for name, info in self.params_model.model_fields.items() if info.is_required()]

    @property
    def optional(self) -> Dict[str, Any]:
        return {
            name: info.default
            for name, info in self.params_model.model_fields.items()
            if not info.is_required()
        }


def find_similar_tool_names(tool_name: str, available_tools: List[str], cutoff: float = 0.6) -> List[str]:
    """Find similar tool names using fuzzy matching."""
    return get_close_matches(str(tool_name), available_tools, n=3, cutoff=cutoff)


def redact_params(params: Mapping[str, Any]) -> Dict[str, Any]:
    """Echo parameters with bulky or sensitive values summarized."""
    echo: Dict[str, Any] = {}
    for key, value in params.items():
        if key in REDACTED_PARAMS:
            echo[key] = _summarize(value)
        else:
            echo[key] = value
    return echo


def _summarize(value: Any) -> str:
    if isinstance(value, str):
        return f"<str: {len(value)} chars>"
    if isinstance(value, (bytes, bytearray, memoryview)):
        return f"<bytes: {len(value)} bytes>"
    return f"<{type(value).__name__}>"


class HostToolRegistry:
    """
    Maps stable tool names to TaskVFS operations.

    Tools: writeFile, readFile, listFiles, deleteFile, fileExists, fileStat,
    mkdir, watchFile, vfsTree. ``fileExists`` and ``vfsTree`` never return a
    failure envelope.

    Example:
        >>> tools = HostToolRegistry(TaskVFS(config))
        >>> await tools.call("writeFile", {"path": "notes/a.txt", "content": "hello"})
        {'success': True, 'path': 'notes/a.txt', 'scope': 'run', 'size': 5, 'fullPath': '...'}
    """

    def __init__(self, vfs: TaskVFS):
        self.vfs = vfs
        self.config = vfs.config
        self._tools: Dict[str, HostTool] = {}
        self._build_tool_registry()
        logger.info(f"HostToolRegistry initialized with {len(self._tools)} tools")

    @classmethod
    def from_config(cls, config: VFSConfig) -> "HostToolRegistry":
        return cls(TaskVFS(config))

    def _build_tool_registry(self) -> None:
        self._register(HostTool(
            "writeFile", self._write_file, WriteFileParams,
            "Write or append content to a file",
        ))
        self._register(HostTool(
            "readFile", self._read_file, ReadFileParams,
            "Read a file, searching run, task then global when scope is auto",
        ))
        self._register(HostTool(
            "listFiles", self._list_files, ListFilesParams,
            "List files and directories, optionally recursively",
        ))
        self._register(HostTool(
            "deleteFile", self._delete_file, PathParams,
            "Delete a file or a directory tree",
        ))
        self._register(HostTool(
            "fileExists", self._file_exists, PathParams,
            "Check whether a path exists",
            fallback=self._file_exists_fallback,
        ))
        self._register(HostTool(
            "fileStat", self._file_stat, PathParams,
            "Get size, timestamps and type of a path",
        ))
        self._register(HostTool(
            "mkdir", self._mkdir, PathParams,
            "Create a directory and its parents",
        ))
        self._register(HostTool(
            "watchFile", self._watch_file, WatchFileParams,
            "Wait for the next change to a file or directory",
        ))
        self._register(HostTool(
            "vfsTree", self._vfs_tree, NoParams,
            "Describe every scope root",
            fallback=lambda params: {"success": True, "tree": {}},
        ))

    def _register(self, tool: HostTool) -> None:
        self._tools[tool.name] = tool

    # ========== Introspection ==========

    @property
    def tool_names(self) -> List[str]:
        return list(self._tools)

    def required_parameters(self, tool_name: str) -> List[str]:
        return self._get(tool_name).required

    def describe(self) -> List[Dict[str, Any]]:
        """Tool catalogue: name, description, required and optional parameters."""
        return [
            {
                "name": tool.name,
                "description": tool.description,
                "required": tool.required,
                "optional": tool.optional,
            }
            for tool in self._tools.values()
        ]

    def get_tool(self, tool_name: str) -> Callable[[Optional[Mapping[str, Any]]], Awaitable[Envelope]]:
        """Return an async callable taking the tool's parameter mapping."""
        self._get(tool_name)
        return functools.partial(self.call, tool_name)

    def _get(self, tool_name: str) -> HostTool:
        tool = self._tools.get(tool_name) if isinstance(tool_name, str) else None
        if tool is None:
            raise UnknownToolError(tool_name, find_similar_tool_names(tool_name, self.tool_names))
        return tool

    # ========== Dispatch ==========

    async def dispatch(self, tool_call: Union[ToolCall, Mapping[str, Any]]) -> Envelope:
        """Dispatch a ToolCall (or a ``{"name", "params"}`` mapping)."""
        if isinstance(tool_call, ToolCall):
            return await self.call(tool_call.name, tool_call.params)
        try:
            parsed = ToolCall.model_validate(tool_call)
        except ValidationError as e:
            raw = tool_call if isinstance(tool_call, Mapping) else {}
            error = InvalidParametersError(
                str(raw.get("name")),
                [err["msg"] for err in e.errors()],
            )
            return self._failure(raw.get("name"), raw.get("params"), error)
        return await self.call(parsed.name, parsed.params)

    async def call(self, tool_name: str, params: Optional[Mapping[str, Any]] = None) -> Envelope:
        """
        Validate and execute one tool call.

        Args:
            tool_name: Registered tool name
            params: Flat parameter mapping

        Returns:
            Success envelope from the tool, or a failure envelope
        """
        try:
            tool = self._get(tool_name)
        except UnknownToolError as e:
            return self._failure(tool_name, params, e)

        if params is None:
            params = {}
        elif not isinstance(params, Mapping):
            error = InvalidParametersError(
                tool_name,
                [f"parameters must be a mapping, got {type(params).__name__}"],
            )
            if tool.fallback is not None:
                return tool.fallback({})
            return self._failure(tool_name, None, error)
        params = dict(params)
        if self.config.debug:
            logger.info(f"Dispatching {tool_name} with {redact_params(params)}")

        try:
            validated = self._validate(tool, params)
            return await tool.handler(validated)
        except Exception as e:
            if tool.fallback is not None:
                logger.debug(f"{tool_name} fell back after {type(e).__name__}: {e}")
                return tool.fallback(params)
            return self._failure(tool_name, params, e)

    def _validate(self, tool: HostTool, params: Dict[str, Any]) -> ToolParams:
        missing = [name for name in tool.required if params.get(name) is None]
        if missing:
            raise MissingParametersError(tool.name, missing)
        try:
            return tool.params_model.model_validate(params)
        except ValidationError as e:
            details = [
                f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}"
                for err in e.errors()
            ]
            raise InvalidParametersError(tool.name, details) from e

    def _failure(self, tool_name: Optional[str], params: Any, error: Exception) -> Envelope:
        if isinstance(error, VFSError):
            message = error.message
            logger.warning(f"Tool {tool_name} failed: {message}")
        else:
            message = str(error) or type(error).__name__
            logger.error(f"Unexpected error in tool {tool_name}: {message}", exc_info=error)

        envelope: Envelope = {
            "success": False,
            "error": message,
            "tool": tool_name,
            "params": redact_params(params) if isinstance(params, Mapping) else {},
        }
        if self.config.debug:
            envelope["errorType"] = type(error).__name__
            envelope["errorCode"] = getattr(error, "error_code", "UNEXPECTED_ERROR")
        return envelope

    # ========== Tool Handlers ==========

    async def _write_file(self, p: WriteFileParams) -> Envelope:
        result = await self.vfs.write(p.path, p.content, p.scope, encoding=p.encoding, append=p.append)
        return result.to_dict()

    async def _read_file(self, p: ReadFileParams) -> Envelope:
        result = await self.vfs.read(p.path, p.scope, encoding=p.encoding)
        return result.to_dict()

    async def _list_files(self, p: ListFilesParams) -> Envelope:
        if p.recursive:
            result = await self.vfs.list_recursive(p.path, p.scope)
        else:
            result = await self.vfs.list(p.path, p.scope)
        return result.to_dict()

    async def _delete_file(self, p: PathParams) -> Envelope:
        result = await self.vfs.delete(p.path, p.scope)
        return result.to_dict()

    async def _file_exists(self, p: PathParams) -> Envelope:
        exists = await self.vfs.exists(p.path, p.scope)
        return {"success": True, "exists": exists, "path": p.path, "scope": p.scope}

    @staticmethod
    def _file_exists_fallback(params: Dict[str, Any]) -> Envelope:
        return {
            "success": True,
            "exists": False,
            "path": params.get("path"),
            "scope": params.get("scope", "run"),
        }

    async def _file_stat(self, p: PathParams) -> Envelope:
        result = await self.vfs.stat(p.path, p.scope)
        return result.to_dict()

    async def _mkdir(self, p: PathParams) -> Envelope:
        result = await self.vfs.mkdir(p.path, p.scope)
        return result.to_dict()

    async def _watch_file(self, p: WatchFileParams) -> Envelope:
        first_event: asyncio.Future = asyncio.get_running_loop().create_future()

        def on_event(event: Dict[str, Any]) -> None:
            if not first_event.done():
                first_event.set_result(event)

        subscription = await self.vfs.watch(p.path, p.scope, on_event)
        try:
            event = await asyncio.wait_for(first_event, timeout=p.timeout)
        except asyncio.TimeoutError:
            raise WatchTimeoutError(p.path, p.scope, p.timeout) from None
        finally:
            subscription.close()
        return {"success": True, "event": event}

    async def _vfs_tree(self, p: NoParams) -> Envelope:
        return {"success": True, "tree": self.vfs.tree()}


def create_host_tools(
    ecosystem_root: Any,
    task_id: str,
    run_id: str,
    **config_kwargs: Any
) -> HostToolRegistry:
    """
    Create a host tool registry for one task run.

    Example:
        >>> tools = create_host_tools("/srv/eco", "task-1", "run-1")
        >>> await tools.call("readFile", {"path": "config.json"})
    """
    config = VFSConfig(ecosystem_root=ecosystem_root, task_id=task_id, run_id=run_id, **config_kwargs)
    return HostToolRegistry.from_config(config)
