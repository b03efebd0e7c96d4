"""
Terminal output for the CLI.
  - Command output is relayed untouched: stdout chunks to stdout, stderr chunks to stderr
  - Footer (exit code, time, flags) in dim brackets on stderr
  - Errors get an [Error] prefix in red if the terminal supports ANSI
"""
from __future__ import annotations

import json
import sys
from typing import Any

from secbox.core.models import ExecutionRecord, OutputChunk, StreamType

_ANSI = sys.stderr.isatty()

_RESET  = "\033[0m"  if _ANSI else ""
_DIM    = "\033[2m"  if _ANSI else ""
_RED    = "\033[31m" if _ANSI else ""
_BOLD   = "\033[1m"  if _ANSI else ""


def print_chunk(chunk: OutputChunk) -> None:
    out = sys.stdout if chunk.stream is StreamType.STDOUT else sys.stderr
    out.write(chunk.content)
    out.flush()


def print_footer(record: ExecutionRecord) -> None:
    footer = f"exit {record.exit_code} | {record.execution_time_ms}ms | {record.process_id}"
    if record.timed_out:
        footer += " | timed out"
    elif record.killed:
        footer += " | killed"
    print(f"{_DIM}[{footer}]{_RESET}", file=sys.stderr)


def print_error(message: str) -> None:
    print(f"{_RED}[Error]{_RESET} {message}", file=sys.stderr)


def print_status(status: dict[str, Any]) -> None:
    print(f"\n{_BOLD}Sandbox Status{_RESET}")
    print("=" * 40)
    print(f"  Active:      {status['activeProcesses']} / {status['maxConcurrentProcesses']}")
    print(f"  Timeout:     {status['defaultTimeoutMs']}ms")
    print(f"  Output cap:  {status['maxOutputLength']} chars")
    print(f"  Logs:        {status['logsDirectory']}")
    for pid in status["processIds"]:
        print(f"    {pid}")
    print()


def print_json(data: Any) -> None:
    print(json.dumps(data, indent=2, ensure_ascii=False))
