"""Shared fixtures: every test gets its own logs directory and workspace."""
import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from secbox.config import SandboxConfig  # noqa: E402
from secbox.sandbox import Sandbox  # noqa: E402

PY = sys.executable
GRACE = 0.5


@pytest.fixture
def config(tmp_path):
    return SandboxConfig(
        logs_directory=tmp_path / "logs",
        workspace=tmp_path / "workspace",
        default_timeout_ms=10_000,
    )


@pytest.fixture
def sandbox(config):
    return Sandbox(config, kill_grace_seconds=GRACE)
