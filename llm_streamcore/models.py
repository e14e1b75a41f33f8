"""
Core data model: messages, tool calls and tool results.
"""
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Optional, Union

JsonValue = Union[None, bool, int, float, str, list, dict]


class Role(str, Enum):
    """Conversation roles."""
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"
    TOOL = "tool"


class ToolMode(str, Enum):
    """How tools are offered to the model for one exchange."""
    NATIVE = "native"
    TEXT_BLOCK = "text_block"
    NONE = "none"


class ToolCallStatus(str, Enum):
    """Lifecycle of a tool call. Transitions only move forward."""
    PENDING = "pending"
    RUNNING = "running"
    SUCCESS = "success"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (ToolCallStatus.SUCCESS, ToolCallStatus.ERROR)


_ALLOWED_TRANSITIONS: dict[ToolCallStatus, frozenset] = {
    ToolCallStatus.PENDING: frozenset({ToolCallStatus.RUNNING}),
    ToolCallStatus.RUNNING: frozenset({ToolCallStatus.SUCCESS, ToolCallStatus.ERROR}),
    ToolCallStatus.SUCCESS: frozenset(),
    ToolCallStatus.ERROR: frozenset(),
}


def _new_id() -> str:
    return uuid.uuid4().hex[:12]


@dataclass
class ToolCall:
    """
    A model-issued request to run a named tool.

    Created by the accumulator on first detection and updated in place
    as it runs. Status changes go through start/succeed/fail only.
    """
    id: str
    name: str
    args: dict[str, Any] = field(default_factory=dict)
    raw_args: Optional[str] = None
    status: ToolCallStatus = ToolCallStatus.PENDING
    result: Any = None
    error: Optional[str] = None
    start_time: Optional[float] = None
    end_time: Optional[float] = None
    provider: Optional[str] = None

    def _move_to(self, status: ToolCallStatus) -> None:
        if status not in _ALLOWED_TRANSITIONS[self.status]:
            raise ValueError(
                f"Tool call {self.id} cannot move from {self.status.value} to {status.value}"
            )
        self.status = status

    def start(self) -> None:
        """Mark the call as running."""
        self._move_to(ToolCallStatus.RUNNING)
        self.start_time = time.time()

    def succeed(self, result: Any) -> None:
        """Record a successful result."""
        self._move_to(ToolCallStatus.SUCCESS)
        self.result = result
        self.end_time = time.time()

    def fail(self, error: str, result: Any = None) -> None:
        """Record a failure."""
        self._move_to(ToolCallStatus.ERROR)
        self.error = error
        self.result = result
        self.end_time = time.time()

    def snapshot(self) -> "ToolCall":
        """Copy of the current state, safe to hand to callbacks."""
        return ToolCall(
            id=self.id,
            name=self.name,
            args=dict(self.args),
            raw_args=self.raw_args,
            status=self.status,
            result=self.result,
            error=self.error,
            start_time=self.start_time,
            end_time=self.end_time,
            provider=self.provider,
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "args": self.args,
            "status": self.status.value,
        }
        if self.raw_args is not None:
            data["rawArgs"] = self.raw_args
        if self.result is not None:
            data["result"] = self.result
        if self.error is not None:
            data["error"] = self.error
        if self.start_time is not None:
            data["startTime"] = self.start_time
        if self.end_time is not None:
            data["endTime"] = self.end_time
        return data


@dataclass
class Message:
    """
    A conversation message.

    Content may only grow through append() while the message is in flight;
    once finalize() is called every field is frozen.
    """
    role: Role
    content: str = ""
    id: str = field(default_factory=_new_id)
    timestamp: float = field(default_factory=time.time)
    tool_calls: Optional[list[ToolCall]] = None
    tool_call_id: Optional[str] = None
    _finalized: bool = field(default=False, repr=False, compare=False)

    def __setattr__(self, name: str, value: Any) -> None:
        if getattr(self, "_finalized", False):
            raise AttributeError(f"Message {self.id} is finalized")
        object.__setattr__(self, name, value)

    @property
    def finalized(self) -> bool:
        return self._finalized

    def append(self, text: str) -> None:
        """Append streamed text to an in-flight message."""
        if self._finalized:
            raise ValueError(f"Cannot append to finalized message {self.id}")
        self.content += text

    def finalize(self) -> None:
        if self.tool_calls is not None:
            object.__setattr__(self, "tool_calls", list(self.tool_calls))
        object.__setattr__(self, "_finalized", True)


@dataclass
class ToolResult:
    """
    Outcome of one tool execution.

    Attributes:
        success: Whether the handler completed without error
        result: Raw handler output, or {"error": message} on failure
        formatted: Bounded text rendering, shown to the user and fed back
            to the model
    """
    success: bool
    result: Any
    formatted: str

    @property
    def error_message(self) -> Optional[str]:
        if self.success:
            return None
        if isinstance(self.result, dict):
            for key in ("error", "message", "output"):
                value = self.result.get(key)
                if value:
                    return value if isinstance(value, str) else str(value)
        return "Unknown error"


@dataclass
class NoteFile:
    """A note document supplied by the host as context or tool workspace."""
    name: str
    content: str = ""
    path: Optional[str] = None
    id: str = field(default_factory=_new_id)
    last_modified: float = field(default_factory=time.time)

    @property
    def display_name(self) -> str:
        return self.name or self.path or ""

    def matches(self, query: str) -> bool:
        """Match by name, name without .md, full path or path suffix."""
        if not query:
            return False
        return (
            self.name == query.replace(".md", "", 1)
            or self.name == query
            or self.path == query
            or bool(self.path and self.path.endswith(query))
        )


ToolEventCallback = Callable[[ToolCall], None]
