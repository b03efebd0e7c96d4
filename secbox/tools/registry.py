"""
Tool ABC + ToolRegistry + JSON schema generation.
The call contract upstream agents use to reach the sandbox: every tool
returns a dict and never raises.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Callable

from secbox.core.errors import (
    ConcurrencyLimitError,
    PolicyViolationError,
    SandboxError,
    SecurityError,
    SpawnError,
)

if TYPE_CHECKING:
    from secbox.sandbox import Sandbox

AuditFn = Callable[[str, str, dict, str, str], None]


class Tool(ABC):
    """Base class for sandbox-backed tools."""
    name: str = ""
    description: str = ""
    # JSON Schema for parameters
    parameters: dict = {}

    def __init__(self, sandbox: "Sandbox") -> None:
        self.sandbox = sandbox

    @abstractmethod
    async def execute(self, **kwargs: Any) -> dict:
        """Execute the tool. Returns the record dict or {"error": ..., "kind": ...}."""

    def to_schema(self) -> dict:
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }


def error_result(exc: Exception) -> dict:
    """Map a sandbox exception to the dict an agent sees."""
    if isinstance(exc, PolicyViolationError):
        return {"error": str(exc), "kind": "policy_violation", "rule": exc.rule}
    if isinstance(exc, ConcurrencyLimitError):
        return {"error": str(exc), "kind": "concurrency_limit", "limit": exc.limit}
    if isinstance(exc, SpawnError):
        return {"error": str(exc), "kind": "spawn_failure"}
    if isinstance(exc, SecurityError):
        return {"error": str(exc), "kind": "path_escape"}
    if isinstance(exc, SandboxError):
        return {"error": str(exc), "kind": "sandbox_error"}
    if isinstance(exc, OSError):
        return {"error": str(exc), "kind": "os_error"}
    return {"error": str(exc), "kind": "invalid_request"}


class ToolRegistry:
    def __init__(self) -> None:
        self._tools: dict[str, Tool] = {}

    def register(self, tool: Tool) -> None:
        self._tools[tool.name] = tool

    def get(self, name: str) -> Tool | None:
        return self._tools.get(name)

    def all_names(self) -> list[str]:
        return list(self._tools.keys())

    def schemas_for(self, allowed: list[str]) -> list[dict]:
        """Return OpenAI-format tool schemas filtered by allowed list."""
        return [
            t.to_schema()
            for name, t in self._tools.items()
            if name in allowed
        ]

    async def execute(self, name: str, kwargs: dict, caller: str,
                      allowed: list[str], audit_fn: AuditFn | None = None) -> dict:
        """Validate permission, log audit, execute."""
        if name not in allowed:
            if audit_fn:
                audit_fn(caller, name, kwargs, "denied", "not in allowed list")
            return {"error": f"Tool '{name}' not permitted for '{caller}'", "kind": "not_permitted"}

        tool = self._tools.get(name)
        if not tool:
            return {"error": f"Tool '{name}' not found", "kind": "not_found"}

        if audit_fn:
            audit_fn(caller, name, kwargs, "allowed", "")

        try:
            return await tool.execute(**kwargs)
        except (SandboxError, OSError, ValueError, TypeError) as exc:
            if audit_fn:
                audit_fn(caller, name, kwargs, "error", str(exc))
            return error_result(exc)


def build_registry(sandbox: "Sandbox") -> ToolRegistry:
    from secbox.tools.builtins.run_code import RunCodeTool
    from secbox.tools.builtins.shell_exec import ShellExecTool

    reg = ToolRegistry()
    for tool in [ShellExecTool(sandbox), RunCodeTool(sandbox)]:
        reg.register(tool)
    return reg
