"""
Errors surfaced to the caller before any process exists.
Non-zero exits and timeouts are not errors: they live in ExecutionRecord.
"""
from __future__ import annotations


class SandboxError(Exception):
    """Base class for admission and spawn failures."""


class PolicyViolationError(SandboxError):
    """The command validator rejected the request."""

    def __init__(self, reason: str, rule: str = "") -> None:
        super().__init__(reason)
        self.reason = reason
        self.rule = rule


class ConcurrencyLimitError(SandboxError):
    """Admission denied: the active-process cap is saturated. Never queued."""

    def __init__(self, active: int, limit: int) -> None:
        super().__init__(f"Maximum concurrent processes reached ({active}/{limit})")
        self.active = active
        self.limit = limit


class SpawnError(SandboxError):
    """The OS could not start the process (missing binary, permission denied, bad cwd)."""

    def __init__(self, command: str, cause: BaseException) -> None:
        super().__init__(f"Failed to start '{command}': {cause}")
        self.command = command
        self.cause = cause


class SecurityError(SandboxError):
    """A path resolved outside the sandbox workspace."""
