"""
SandboxConfig: YAML + environment loader for the execution sandbox.
Env overrides always win. Partial updates go through update().
"""
from __future__ import annotations

import logging
import os
import tempfile
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any

import yaml

DEFAULT_CONFIG_NAME = "secbox.yaml"
EXECUTION_LOG_NAME = "execution.log"

_INT_FIELDS = ("max_concurrent_processes", "default_timeout_ms", "max_output_length")
_PATH_FIELDS = ("logs_directory", "workspace")

# Transport payloads use the camelCase contract names.
_ALIASES = {
    "maxConcurrentProcesses": "max_concurrent_processes",
    "defaultTimeoutMs": "default_timeout_ms",
    "maxOutputLength": "max_output_length",
    "logsDirectory": "logs_directory",
    "logLevel": "log_level",
}

_ENV_MAP = {
    "SECBOX_MAX_CONCURRENT_PROCESSES": "max_concurrent_processes",
    "SECBOX_DEFAULT_TIMEOUT_MS": "default_timeout_ms",
    "SECBOX_MAX_OUTPUT_LENGTH": "max_output_length",
    "SECBOX_LOGS_DIR": "logs_directory",
    "SECBOX_WORKSPACE": "workspace",
    "SECBOX_LOG_LEVEL": "log_level",
}


def _default_workspace() -> Path:
    return Path(tempfile.gettempdir()) / "secbox" / "workspace"


@dataclass
class SandboxConfig:
    # Limits
    max_concurrent_processes: int = 10
    default_timeout_ms: int = 60_000
    max_output_length: int = 100_000  # characters per stream

    # Paths
    logs_directory: Path = field(default_factory=lambda: Path.cwd() / "logs")
    workspace: Path = field(default_factory=_default_workspace)

    # System
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        self.logs_directory = Path(self.logs_directory)
        self.workspace = Path(self.workspace)

    @property
    def execution_log_path(self) -> Path:
        return self.logs_directory / EXECUTION_LOG_NAME

    @classmethod
    def load(cls, yaml_path: str | Path | None = None) -> "SandboxConfig":
        """Load config from YAML file + environment variable overrides."""
        cfg = cls()

        if yaml_path is None:
            yaml_path = os.environ.get("SECBOX_CONFIG") or Path.cwd() / DEFAULT_CONFIG_NAME
        yaml_path = Path(yaml_path)
        if yaml_path.exists():
            with yaml_path.open(encoding="utf-8") as f:
                data: dict[str, Any] = yaml.safe_load(f) or {}
            cfg._apply_mapping(data)

        cfg._apply_env()
        cfg.validate()
        return cfg

    def _apply_mapping(self, data: dict[str, Any]) -> None:
        names = {f.name for f in fields(self)}
        for key, val in data.items():
            key = _ALIASES.get(key, key)
            if key in names:
                setattr(self, key, _coerce(key, val))

    def _apply_env(self) -> None:
        for env_key, attr in _ENV_MAP.items():
            val = os.environ.get(env_key, "")
            if not val:
                continue
            setattr(self, attr, _coerce(attr, val))

    def validate(self) -> None:
        for name in _INT_FIELDS:
            val = getattr(self, name)
            if isinstance(val, bool) or not isinstance(val, int) or val <= 0:
                raise ValueError(f"{name} must be a positive integer, got {val!r}")
        if not isinstance(logging.getLevelName(str(self.log_level).upper()), int):
            raise ValueError(f"Unknown log level: {self.log_level!r}")

    def update(self, **changes: Any) -> list[str]:
        """
        Apply a partial update. Only the named fields change; the candidate
        is validated first so a bad update leaves this config untouched.
        Returns the (snake_case) names that were applied.
        """
        names = {f.name for f in fields(self)}
        normalized: dict[str, Any] = {}
        for key, val in changes.items():
            attr = _ALIASES.get(key, key)
            if attr not in names:
                raise ValueError(f"Unknown config field: {key}")
            if val is None:
                continue
            normalized[attr] = _coerce(attr, val)

        candidate = replace(self, **normalized)
        candidate.validate()
        for attr, val in normalized.items():
            setattr(self, attr, getattr(candidate, attr))

        if "logs_directory" in normalized:
            self.ensure_directories()
        return list(normalized)

    def ensure_directories(self) -> None:
        for d in (self.logs_directory, self.workspace):
            d.mkdir(parents=True, exist_ok=True)

    def to_dict(self) -> dict[str, Any]:
        return {
            "maxConcurrentProcesses": self.max_concurrent_processes,
            "defaultTimeoutMs": self.default_timeout_ms,
            "maxOutputLength": self.max_output_length,
            "logsDirectory": str(self.logs_directory),
            "workspace": str(self.workspace),
            "logLevel": self.log_level,
        }


def _coerce(attr: str, val: Any) -> Any:
    if attr in _INT_FIELDS and isinstance(val, str):
        try:
            return int(val)
        except ValueError:
            raise ValueError(f"{attr} must be an integer, got {val!r}") from None
    if attr in _PATH_FIELDS:
        return Path(val).expanduser()
    return val
