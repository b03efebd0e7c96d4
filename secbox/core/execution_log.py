"""
Append-only execution log: {logs_directory}/execution.log, one JSON object per line.

Write failures are logged and swallowed so a broken log never fails a command.
Reads skip malformed lines and return newest first.
"""
from __future__ import annotations

import json
import threading
from pathlib import Path
from typing import TYPE_CHECKING

from secbox.core.models import ExecutionLogEntry
from secbox.utils.logger import get_logger

if TYPE_CHECKING:
    from secbox.config import SandboxConfig

log = get_logger(__name__)


class ExecutionLogger:
    def __init__(self, config: "SandboxConfig") -> None:
        # Holds the live config object: logs_directory is re-read on every call.
        self.config = config
        self._lock = threading.Lock()
        self.skipped_lines = 0

    @property
    def path(self) -> Path:
        return self.config.execution_log_path

    def append(self, entry: ExecutionLogEntry) -> bool:
        line = json.dumps(entry.to_dict(), ensure_ascii=False) + "\n"
        path = self.path
        try:
            with self._lock:
                path.parent.mkdir(parents=True, exist_ok=True)
                with path.open("a", encoding="utf-8") as f:
                    f.write(line)
        except OSError as exc:
            log.warning("Failed to write execution log %s: %s", path, exc)
            return False
        return True

    def query(self, limit: int = 100) -> list[ExecutionLogEntry]:
        """Most recent first, at most `limit` entries."""
        path = self.path
        if limit <= 0 or not path.exists():
            self.skipped_lines = 0
            return []
        try:
            with self._lock:
                content = path.read_text(encoding="utf-8", errors="replace")
        except OSError as exc:
            log.warning("Failed to read execution log %s: %s", path, exc)
            return []

        entries: list[ExecutionLogEntry] = []
        skipped = 0
        for line in content.splitlines():
            if not line.strip():
                continue
            try:
                data = json.loads(line)
                if not isinstance(data, dict):
                    raise TypeError("log line is not an object")
                entries.append(ExecutionLogEntry.from_dict(data))
            except (ValueError, KeyError, TypeError, AttributeError):
                skipped += 1

        self.skipped_lines = skipped
        if skipped:
            log.warning("Skipped %d malformed line(s) in %s", skipped, path)

        entries.sort(key=lambda e: e.timestamp, reverse=True)
        return entries[:limit]

    def clear(self) -> None:
        path = self.path
        try:
            with self._lock:
                path.unlink(missing_ok=True)
        except OSError as exc:
            log.warning("Failed to clear execution log %s: %s", path, exc)
