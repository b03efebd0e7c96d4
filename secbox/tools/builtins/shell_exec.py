"""Run one command through the sandbox. The string is split with shlex, never handed to a shell."""
from __future__ import annotations

import shlex

from secbox.core.errors import SecurityError
from secbox.sandbox import safe_path
from secbox.tools.registry import Tool, error_result

MAX_TIMEOUT_MS = 300_000


class ShellExecTool(Tool):
    name = "shell_exec"
    description = (
        "Execute a command inside the sandbox workspace. No shell: pipes, "
        "redirects and && are passed through as plain arguments."
    )
    parameters = {
        "type": "object",
        "properties": {
            "command": {"type": "string", "description": "Command line to run"},
            "cwd": {
                "type": "string",
                "description": "Working directory inside the sandbox workspace (default: the workspace)",
            },
            "timeout_ms": {"type": "integer", "description": "Timeout in milliseconds (max 300000)"},
        },
        "required": ["command"],
    }

    async def execute(self, command: str, cwd: str | None = None,
                      timeout_ms: int | None = None, **_) -> dict:
        try:
            argv = shlex.split(command)
        except ValueError as e:
            return {"error": f"Invalid command: {e}", "kind": "invalid_request"}
        if not argv:
            return {"error": "Empty command", "kind": "invalid_request"}
        if timeout_ms is not None:
            timeout_ms = min(int(timeout_ms), MAX_TIMEOUT_MS)
        if cwd is not None:
            try:
                cwd = str(safe_path(self.sandbox.config.workspace, cwd))
            except SecurityError as e:
                return error_result(e)

        record = await self.sandbox.run_command(
            argv[0], argv[1:], timeout_ms=timeout_ms, working_directory=cwd,
        )
        return record.to_dict()
