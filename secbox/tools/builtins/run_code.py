"""
RunCodeTool: execute a code snippet in the sandbox workspace.
The snippet goes to a scratch file that is removed afterwards.
"""
from __future__ import annotations

from typing import Any

from secbox.sandbox import CODE_RUNNERS
from secbox.tools.registry import Tool

DEFAULT_TIMEOUT_MS = 10_000
MAX_TIMEOUT_MS = 30_000


class RunCodeTool(Tool):
    name = "run_code"
    description = (
        "Execute a code snippet in the sandbox workspace. "
        "Returns stdout, stderr and exitCode. "
        "Timeout default 10s, max 30s."
    )
    parameters = {
        "type": "object",
        "properties": {
            "code": {
                "type": "string",
                "description": "Source code to execute",
            },
            "language": {
                "type": "string",
                "enum": sorted(CODE_RUNNERS),
                "description": "Language of the snippet",
                "default": "python",
            },
            "timeout_ms": {
                "type": "integer",
                "description": "Max execution milliseconds (default 10000, max 30000)",
                "default": DEFAULT_TIMEOUT_MS,
            },
        },
        "required": ["code"],
    }

    async def execute(self, code: str, language: str = "python",
                      timeout_ms: int = DEFAULT_TIMEOUT_MS, **_: Any) -> dict:
        timeout_ms = min(int(timeout_ms), MAX_TIMEOUT_MS)
        record = await self.sandbox.run_code(code, language, timeout_ms=timeout_ms)
        return record.to_dict()
