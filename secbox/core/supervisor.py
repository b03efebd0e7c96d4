"""
ProcessSupervisor: admission, spawn, timeout, kill escalation, finalization.

Admission = policy check + concurrency cap, both before any process exists.
Excess requests are rejected, never queued. The registry is guarded by a
lock and an entry leaves it exactly once, when the process has exited (or
failed to start).

Kill path (shared by kill() and the timeout timer):
  SIGTERM to the process and its descendants -> after the grace period,
  SIGKILL if it is still registered.
Once the main process has exited, kill() and the timeout are no-ops even
while leftover output is still being drained.
"""
from __future__ import annotations

import asyncio
import os
import threading
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Callable

import psutil

from secbox.core.collector import OutputCollector, StreamDecoder
from secbox.core.errors import ConcurrencyLimitError, PolicyViolationError, SpawnError
from secbox.core.models import (
    ChunkSink,
    ExecutionLogEntry,
    ExecutionRecord,
    ExecutionRequest,
    StreamType,
    SupervisorStatus,
)
from secbox.core.validator import Verdict, validate
from secbox.utils.logger import get_logger

if TYPE_CHECKING:
    from secbox.config import SandboxConfig
    from secbox.core.execution_log import ExecutionLogger

KILL_GRACE_SECONDS = 5.0
READ_CHUNK_BYTES = 64 * 1024
DRAIN_TIMEOUT_SECONDS = 2.0

log = get_logger(__name__)

Validator = Callable[[str, tuple, bool], Verdict]


def new_process_id() -> str:
    return f"proc_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


@dataclass
class ProcessHandle:
    """Registry entry. Owned by the supervisor; callers only ever see process_id."""
    process_id: str
    request: ExecutionRequest
    working_directory: str
    collector: OutputCollector
    process: asyncio.subprocess.Process | None = None
    loop: asyncio.AbstractEventLoop | None = None
    started_at: float = field(default_factory=time.monotonic)
    timeout_timer: asyncio.TimerHandle | None = None
    escalation_timer: asyncio.TimerHandle | None = None
    kill_requested: bool = False
    timed_out: bool = False
    exited: bool = False
    finalized: bool = False


class ProcessSupervisor:
    def __init__(
        self,
        config: "SandboxConfig",
        execution_log: "ExecutionLogger",
        validator: Validator = validate,
        kill_grace_seconds: float = KILL_GRACE_SECONDS,
    ) -> None:
        self.config = config
        self.execution_log = execution_log
        self._validator = validator
        self.kill_grace_seconds = kill_grace_seconds
        self._active: dict[str, ProcessHandle] = {}
        self._lock = threading.Lock()

    # ── Admission ─────────────────────────────────────────────────────────
    def _check_policy(self, request: ExecutionRequest) -> None:
        verdict = self._validator(request.command, request.args, request.options.allow_unsafe)
        if not verdict.safe:
            log.warning("Rejected %r (%s): %s", request.command_line, verdict.rule, verdict.reason)
            raise PolicyViolationError(verdict.reason, rule=verdict.rule)

    def _admit(self, handle: ProcessHandle) -> None:
        with self._lock:
            limit = self.config.max_concurrent_processes
            active = len(self._active)
            if active >= limit:
                log.warning("Rejected %r: %d/%d processes active", handle.request.command_line, active, limit)
                raise ConcurrencyLimitError(active, limit)
            if handle.process_id in self._active:
                raise ValueError(f"Duplicate process id: {handle.process_id}")
            self._active[handle.process_id] = handle

    def _release(self, process_id: str) -> None:
        with self._lock:
            self._active.pop(process_id, None)

    # ── Spawn ─────────────────────────────────────────────────────────────
    async def spawn(
        self,
        request: ExecutionRequest,
        on_data: ChunkSink | None = None,
        process_id: str | None = None,
    ) -> ExecutionRecord:
        """
        Run one request to completion.

        Raises PolicyViolationError / ConcurrencyLimitError / SpawnError before
        any process exists. Non-zero exits, kills and timeouts come back as an
        ExecutionRecord.
        """
        self._check_policy(request)

        opts = request.options
        process_id = process_id or new_process_id()
        working_directory = str(opts.working_directory or self.config.workspace)
        handle = ProcessHandle(
            process_id=process_id,
            request=request,
            working_directory=working_directory,
            collector=OutputCollector(
                process_id,
                opts.max_output_length or self.config.max_output_length,
                on_data,
            ),
        )
        self._admit(handle)

        if opts.working_directory is None:
            try:
                self.config.workspace.mkdir(parents=True, exist_ok=True)
            except OSError as exc:
                self._release(process_id)
                raise SpawnError(request.command, exc) from exc

        env = {
            **os.environ,
            **opts.environment,
            "SANDBOX_MODE": "true",
            "SANDBOX_PROCESS_ID": process_id,
        }
        try:
            proc = await asyncio.create_subprocess_exec(
                request.command,
                *request.args,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=working_directory,
                env=env,
            )
        except (OSError, ValueError) as exc:
            self._release(process_id)
            log.warning("Spawn failed for %r: %s", request.command_line, exc)
            raise SpawnError(request.command, exc) from exc
        except asyncio.CancelledError:
            self._release(process_id)
            raise

        timeout_ms = opts.timeout_ms or self.config.default_timeout_ms
        loop = asyncio.get_running_loop()
        handle.process = proc
        handle.loop = loop
        handle.timeout_timer = loop.call_later(timeout_ms / 1000.0, self._on_timeout, handle)
        log.info("Spawned %s PID=%s cmd=%r timeout=%dms", process_id, proc.pid, request.command_line, timeout_ms)

        if handle.kill_requested:
            # kill() arrived between admission and spawn.
            self._terminate(handle)

        supervision = asyncio.ensure_future(self._supervise(handle))
        try:
            return await asyncio.shield(supervision)
        except asyncio.CancelledError:
            # Caller gave up: kill through the normal path, let supervision finish and log.
            self.kill(process_id)
            raise

    async def _supervise(self, handle: ProcessHandle) -> ExecutionRecord:
        proc = handle.process
        readers = [
            asyncio.ensure_future(self._pump(proc.stdout, StreamType.STDOUT, handle.collector)),
            asyncio.ensure_future(self._pump(proc.stderr, StreamType.STDERR, handle.collector)),
        ]
        returncode = await proc.wait()
        with self._lock:
            handle.exited = True
        if handle.timeout_timer is not None:
            handle.timeout_timer.cancel()
        _, pending = await asyncio.wait(readers, timeout=DRAIN_TIMEOUT_SECONDS)
        for task in pending:
            task.cancel()
        if pending:
            log.warning("%s: output still open after exit, stopped reading", handle.process_id)
        return self._finalize(handle, returncode)

    @staticmethod
    async def _pump(stream: asyncio.StreamReader, kind: StreamType, collector: OutputCollector) -> None:
        decoder = StreamDecoder()
        while True:
            data = await stream.read(READ_CHUNK_BYTES)
            if not data:
                collector.feed(kind, decoder.flush())
                return
            collector.feed(kind, decoder.decode(data))

    def _finalize(self, handle: ProcessHandle, returncode: int) -> ExecutionRecord:
        with self._lock:
            handle.finalized = True
        for timer in (handle.timeout_timer, handle.escalation_timer):
            if timer is not None:
                timer.cancel()
        handle.collector.close()
        self._release(handle.process_id)

        signalled = returncode < 0
        exit_code = -1 if signalled else returncode
        killed = handle.kill_requested or signalled
        request = handle.request
        record = ExecutionRecord(
            success=exit_code == 0 and not killed and not handle.timed_out,
            exit_code=exit_code,
            stdout=handle.collector.stdout,
            stderr=handle.collector.stderr,
            execution_time_ms=int((time.monotonic() - handle.started_at) * 1000),
            command=request.command,
            args=request.args,
            timestamp=datetime.now(timezone.utc),
            killed=killed,
            timed_out=handle.timed_out,
            process_id=handle.process_id,
            working_directory=handle.working_directory,
        )
        log.info(
            "Finished %s exit=%d killed=%s timed_out=%s %dms",
            handle.process_id, record.exit_code, record.killed, record.timed_out, record.execution_time_ms,
        )
        self.execution_log.append(ExecutionLogEntry.from_record(record))
        return record

    # ── Timeout / kill ────────────────────────────────────────────────────
    def _on_timeout(self, handle: ProcessHandle) -> None:
        with self._lock:
            if handle.exited or handle.finalized:
                return
            handle.timed_out = True
            first = not handle.kill_requested
            handle.kill_requested = True
        log.warning("%s timed out after %dms", handle.process_id,
                    handle.request.options.timeout_ms or self.config.default_timeout_ms)
        if first:
            self._terminate(handle)

    def kill(self, process_id: str) -> bool:
        """Graceful signal now, forced signal after the grace period. False if nothing to kill."""
        with self._lock:
            handle = self._active.get(process_id)
            if handle is None or handle.exited or handle.finalized or handle.kill_requested:
                return False
            handle.kill_requested = True
            spawned = handle.process is not None
        if spawned:
            self._terminate(handle)
        return True

    def kill_all(self) -> int:
        with self._lock:
            ids = list(self._active)
        return sum(1 for pid in ids if self.kill(pid))

    def _terminate(self, handle: ProcessHandle) -> None:
        log.info("Terminating %s PID=%s", handle.process_id, handle.process.pid)
        _signal_tree(handle.process, force=False)
        handle.escalation_timer = handle.loop.call_later(
            self.kill_grace_seconds, self._force_kill, handle
        )

    def _force_kill(self, handle: ProcessHandle) -> None:
        with self._lock:
            still_running = not handle.exited and handle.process_id in self._active
        if not still_running:
            return
        log.warning("%s ignored SIGTERM for %.1fs, sending SIGKILL", handle.process_id, self.kill_grace_seconds)
        _signal_tree(handle.process, force=True)

    # ── Status ────────────────────────────────────────────────────────────
    def status(self) -> SupervisorStatus:
        with self._lock:
            ids = list(self._active)
        return SupervisorStatus(active=len(ids), limit=self.config.max_concurrent_processes, process_ids=ids)

    def is_active(self, process_id: str) -> bool:
        with self._lock:
            return process_id in self._active


def _signal_tree(proc: asyncio.subprocess.Process, force: bool) -> None:
    """Signal the process and its descendants; processes that already exited are skipped."""
    if proc.returncode is not None:
        return
    try:
        children = psutil.Process(proc.pid).children(recursive=True)
    except (psutil.NoSuchProcess, psutil.AccessDenied):
        children = []
    for child in children:
        try:
            if force:
                child.kill()
            else:
                child.terminate()
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            pass
    try:
        if force:
            proc.kill()
        else:
            proc.terminate()
    except ProcessLookupError:
        pass
