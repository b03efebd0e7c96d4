"""
Sandbox: the public surface of the execution engine.

Composes the validator, supervisor, collector and execution log around one
SandboxConfig. Construct one per application and pass it to whoever needs
it. The facade itself never touches the OS except through its components.

Admission failures and spawn failures raise (PolicyViolationError,
ConcurrencyLimitError, SpawnError). A process that ran is always reported
as an ExecutionRecord, including non-zero exits, kills and timeouts, so the
calling agent can inspect the output of a failed run.
"""
from __future__ import annotations

import asyncio
import sys
import uuid
from pathlib import Path
from typing import Any

from secbox.config import SandboxConfig
from secbox.core.errors import SecurityError
from secbox.core.execution_log import ExecutionLogger
from secbox.core.models import (
    ChunkSink,
    ExecutionLogEntry,
    ExecutionOptions,
    ExecutionRecord,
    ExecutionRequest,
    OutputChunk,
)
from secbox.core.supervisor import KILL_GRACE_SECONDS, ProcessSupervisor, new_process_id
from secbox.utils.logger import get_logger, set_level

log = get_logger(__name__)

# language -> (interpreter argv prefix, file extension)
CODE_RUNNERS: dict[str, tuple[tuple[str, ...], str]] = {
    "python": ((sys.executable,), "py"),
    "py": ((sys.executable,), "py"),
    "javascript": (("node",), "js"),
    "js": (("node",), "js"),
    "typescript": (("npx", "tsx"), "ts"),
    "ts": (("npx", "tsx"), "ts"),
    "bash": (("bash",), "sh"),
    "sh": (("sh",), "sh"),
}


def safe_path(workspace: Path, user_path: str) -> Path:
    """Resolve user_path under workspace; anything that escapes raises SecurityError."""
    root = Path(workspace).resolve()
    resolved = (root / user_path).resolve()
    if resolved != root and root not in resolved.parents:
        raise SecurityError(f"Path escape attempt: {user_path}")
    return resolved


class Sandbox:
    def __init__(
        self,
        config: SandboxConfig | None = None,
        kill_grace_seconds: float = KILL_GRACE_SECONDS,
    ) -> None:
        self.config = config or SandboxConfig()
        self.config.validate()
        self.config.ensure_directories()
        set_level(self.config.log_level)
        self.execution_log = ExecutionLogger(self.config)
        self.supervisor = ProcessSupervisor(
            self.config,
            self.execution_log,
            kill_grace_seconds=kill_grace_seconds,
        )

    # ── Execution ─────────────────────────────────────────────────────────
    async def run_command(
        self,
        command: str,
        args: list[str] | tuple[str, ...] = (),
        on_data: ChunkSink | None = None,
        *,
        timeout_ms: int | None = None,
        working_directory: str | Path | None = None,
        environment: dict[str, str] | None = None,
        max_output_length: int | None = None,
        allow_unsafe: bool = False,
        process_id: str | None = None,
    ) -> ExecutionRecord:
        """
        Run `command` with `args` (no shell) and wait for it to finish.

        on_data receives every OutputChunk as it arrives. Returns the
        ExecutionRecord; raises only for rejected or unstartable requests.
        """
        request = ExecutionRequest(
            command=command,
            args=tuple(args),
            options=ExecutionOptions(
                timeout_ms=timeout_ms,
                working_directory=str(working_directory) if working_directory is not None else None,
                environment=environment or {},
                max_output_length=max_output_length,
                allow_unsafe=allow_unsafe,
            ),
        )
        return await self.supervisor.spawn(request, on_data=on_data, process_id=process_id)

    def stream_command(
        self,
        command: str,
        args: list[str] | tuple[str, ...] = (),
        **options: Any,
    ) -> "ExecutionStream":
        """Start `command` and return a channel of its output chunks. Needs a running loop."""
        process_id = new_process_id()

        def start(sink: ChunkSink) -> "asyncio.Future[ExecutionRecord]":
            return asyncio.ensure_future(
                self.run_command(command, args, sink, process_id=process_id, **options)
            )

        return ExecutionStream(self, process_id, start)

    async def run_code(
        self,
        code: str,
        language: str,
        on_data: ChunkSink | None = None,
        **options: Any,
    ) -> ExecutionRecord:
        """Write `code` to a scratch file in the workspace and run it with the language's interpreter."""
        runner = CODE_RUNNERS.get(language.lower())
        if runner is None:
            raise ValueError(f"Unsupported language: {language}")
        argv, ext = runner

        self.config.workspace.mkdir(parents=True, exist_ok=True)
        script = safe_path(self.config.workspace, f"_sb_run_{uuid.uuid4().hex}.{ext}")
        script.write_text(code, encoding="utf-8")
        try:
            return await self.run_command(argv[0], [*argv[1:], str(script)], on_data, **options)
        finally:
            try:
                script.unlink(missing_ok=True)
            except OSError as exc:
                log.warning("Failed to remove scratch file %s: %s", script, exc)

    # ── Cancellation ──────────────────────────────────────────────────────
    def kill_process(self, process_id: str) -> bool:
        return self.supervisor.kill(process_id)

    def kill_all_processes(self) -> int:
        return self.supervisor.kill_all()

    async def shutdown(self, timeout_s: float | None = None) -> bool:
        """Kill everything and wait for the registry to drain. True if it drained in time."""
        if timeout_s is None:
            timeout_s = self.supervisor.kill_grace_seconds + 2.0
        self.kill_all_processes()
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout_s
        while self.supervisor.status().active:
            if loop.time() >= deadline:
                log.warning("Shutdown: %d process(es) still active", self.supervisor.status().active)
                return False
            await asyncio.sleep(0.05)
        return True

    # ── Introspection / config ────────────────────────────────────────────
    def get_status(self) -> dict[str, Any]:
        st = self.supervisor.status()
        return {
            "activeProcesses": st.active,
            "maxConcurrentProcesses": st.limit,
            "defaultTimeoutMs": self.config.default_timeout_ms,
            "maxOutputLength": self.config.max_output_length,
            "logsDirectory": str(self.config.logs_directory),
            "processIds": st.process_ids,
        }

    def get_execution_logs(self, limit: int = 100) -> list[ExecutionLogEntry]:
        return self.execution_log.query(limit)

    def clear_execution_logs(self) -> None:
        self.execution_log.clear()

    def update_config(self, **changes: Any) -> None:
        applied = self.config.update(**changes)
        if "log_level" in applied:
            set_level(self.config.log_level)
        if applied:
            log.info("Config updated: %s", ", ".join(applied))


class ExecutionStream:
    """
    Async iterator over one execution's OutputChunks, in arrival order.

        stream = sandbox.stream_command("ls", ["-la"])
        async for chunk in stream:
            ...
        record = await stream.result()

    Admission and spawn errors are raised from iteration and from result().
    """

    _DONE = object()

    def __init__(self, sandbox: Sandbox, process_id: str, start) -> None:
        self.sandbox = sandbox
        self.process_id = process_id
        self._queue: asyncio.Queue = asyncio.Queue()
        self._task = start(self._queue.put_nowait)
        self._task.add_done_callback(lambda _: self._queue.put_nowait(self._DONE))
        self._exhausted = False

    def __aiter__(self) -> "ExecutionStream":
        return self

    async def __anext__(self) -> OutputChunk:
        if self._exhausted:
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is self._DONE:
            self._exhausted = True
            if not self._task.cancelled() and self._task.exception() is not None:
                raise self._task.exception()
            raise StopAsyncIteration
        return item

    async def result(self) -> ExecutionRecord:
        return await self._task

    def kill(self) -> bool:
        return self.sandbox.kill_process(self.process_id)
