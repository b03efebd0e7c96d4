"""
Value types passed between the sandbox components.
ExecutionRecord is frozen: once built it is the terminal state of a process id.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable

LOG_SCHEMA_VERSION = 1


class StreamType(str, Enum):
    STDOUT = "stdout"
    STDERR = "stderr"


@dataclass(frozen=True)
class OutputChunk:
    stream: StreamType
    content: str
    process_id: str


ChunkSink = Callable[[OutputChunk], Any]


@dataclass
class ExecutionOptions:
    """Per-call options. None means "use the sandbox default"."""
    timeout_ms: int | None = None
    working_directory: str | None = None
    environment: dict[str, str] = field(default_factory=dict)
    max_output_length: int | None = None
    allow_unsafe: bool = False

    def __post_init__(self) -> None:
        for name in ("timeout_ms", "max_output_length"):
            val = getattr(self, name)
            if val is not None and (isinstance(val, bool) or not isinstance(val, int) or val <= 0):
                raise ValueError(f"{name} must be a positive integer, got {val!r}")
        self.environment = {str(k): str(v) for k, v in (self.environment or {}).items()}


@dataclass
class ExecutionRequest:
    command: str
    args: tuple[str, ...] = ()
    options: ExecutionOptions = field(default_factory=ExecutionOptions)

    def __post_init__(self) -> None:
        if not isinstance(self.command, str) or not self.command.strip():
            raise ValueError("command must be a non-empty string")
        self.args = tuple(str(a) for a in self.args)

    @property
    def command_line(self) -> str:
        return " ".join((self.command, *self.args))


@dataclass(frozen=True)
class ExecutionRecord:
    success: bool
    exit_code: int
    stdout: str
    stderr: str
    execution_time_ms: int
    command: str
    args: tuple[str, ...]
    timestamp: datetime
    killed: bool
    timed_out: bool
    process_id: str = ""
    working_directory: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "exitCode": self.exit_code,
            "stdout": self.stdout,
            "stderr": self.stderr,
            "executionTimeMs": self.execution_time_ms,
            "command": self.command,
            "args": list(self.args),
            "timestamp": self.timestamp.isoformat(),
            "killed": self.killed,
            "timedOut": self.timed_out,
            "processId": self.process_id,
        }


@dataclass(frozen=True)
class ExecutionLogEntry:
    """Persisted projection of an ExecutionRecord: output lengths, not output."""
    timestamp: datetime
    command: str
    args: tuple[str, ...]
    working_directory: str
    exit_code: int
    execution_time_ms: int
    success: bool
    killed: bool
    timed_out: bool
    output_length: int
    error_length: int
    process_id: str = ""
    schema_version: int = LOG_SCHEMA_VERSION

    @classmethod
    def from_record(cls, record: ExecutionRecord) -> "ExecutionLogEntry":
        return cls(
            timestamp=record.timestamp,
            command=record.command,
            args=record.args,
            working_directory=record.working_directory,
            exit_code=record.exit_code,
            execution_time_ms=record.execution_time_ms,
            success=record.success,
            killed=record.killed,
            timed_out=record.timed_out,
            output_length=len(record.stdout),
            error_length=len(record.stderr),
            process_id=record.process_id,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "schemaVersion": self.schema_version,
            "timestamp": self.timestamp.isoformat(),
            "processId": self.process_id,
            "command": self.command,
            "args": list(self.args),
            "workingDirectory": self.working_directory,
            "exitCode": self.exit_code,
            "executionTimeMs": self.execution_time_ms,
            "success": self.success,
            "killed": self.killed,
            "timedOut": self.timed_out,
            "outputLength": self.output_length,
            "errorLength": self.error_length,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ExecutionLogEntry":
        """Raises KeyError/TypeError/ValueError on a malformed line."""
        ts = datetime.fromisoformat(data["timestamp"].replace("Z", "+00:00"))
        if ts.tzinfo is None:
            ts = ts.replace(tzinfo=timezone.utc)
        return cls(
            timestamp=ts,
            command=str(data["command"]),
            args=_args_tuple(data["args"]),
            working_directory=str(data["workingDirectory"]),
            exit_code=int(data["exitCode"]),
            execution_time_ms=int(data["executionTimeMs"]),
            success=bool(data["success"]),
            killed=bool(data["killed"]),
            timed_out=bool(data["timedOut"]),
            output_length=int(data["outputLength"]),
            error_length=int(data["errorLength"]),
            process_id=str(data.get("processId", "")),
            schema_version=int(data.get("schemaVersion", LOG_SCHEMA_VERSION)),
        )


@dataclass(frozen=True)
class SupervisorStatus:
    active: int
    limit: int
    process_ids: list[str]


def _args_tuple(raw: Any) -> tuple[str, ...]:
    if not isinstance(raw, list):
        raise TypeError(f"args must be a list, got {type(raw).__name__}")
    return tuple(str(a) for a in raw)
