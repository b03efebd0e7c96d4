"""Tests for SandboxConfig: defaults, YAML + env loading, partial updates."""
from pathlib import Path

import pytest

from secbox.config import SandboxConfig


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for key in (
        "SECBOX_CONFIG", "SECBOX_MAX_CONCURRENT_PROCESSES", "SECBOX_DEFAULT_TIMEOUT_MS",
        "SECBOX_MAX_OUTPUT_LENGTH", "SECBOX_LOGS_DIR", "SECBOX_WORKSPACE", "SECBOX_LOG_LEVEL",
    ):
        monkeypatch.delenv(key, raising=False)


class TestDefaults:
    def test_documented_defaults(self):
        cfg = SandboxConfig()
        assert cfg.max_concurrent_processes == 10
        assert cfg.default_timeout_ms == 60_000
        assert cfg.max_output_length == 100_000
        assert cfg.execution_log_path.name == "execution.log"
        cfg.validate()


class TestLoad:
    def test_yaml_and_env(self, tmp_path, monkeypatch):
        cfg_file = tmp_path / "secbox.yaml"
        cfg_file.write_text(
            "maxConcurrentProcesses: 3\n"
            "default_timeout_ms: 1500\n"
            f"logs_directory: {tmp_path / 'logs'}\n"
            "unknown_key: ignored\n",
            encoding="utf-8",
        )
        monkeypatch.setenv("SECBOX_MAX_OUTPUT_LENGTH", "2048")
        monkeypatch.setenv("SECBOX_DEFAULT_TIMEOUT_MS", "2500")

        cfg = SandboxConfig.load(cfg_file)
        assert cfg.max_concurrent_processes == 3
        assert cfg.default_timeout_ms == 2500  # env wins
        assert cfg.max_output_length == 2048
        assert cfg.logs_directory == tmp_path / "logs"

    def test_missing_file_uses_defaults(self, tmp_path):
        cfg = SandboxConfig.load(tmp_path / "nope.yaml")
        assert cfg.max_concurrent_processes == 10

    def test_bad_env_value(self, tmp_path, monkeypatch):
        monkeypatch.setenv("SECBOX_MAX_CONCURRENT_PROCESSES", "many")
        with pytest.raises(ValueError):
            SandboxConfig.load(tmp_path / "nope.yaml")


class TestUpdate:
    def test_partial_update_only_touches_named_fields(self, tmp_path):
        cfg = SandboxConfig(logs_directory=tmp_path / "logs", workspace=tmp_path / "ws")
        applied = cfg.update(max_concurrent_processes=4)
        assert applied == ["max_concurrent_processes"]
        assert cfg.max_concurrent_processes == 4
        assert cfg.default_timeout_ms == 60_000

    def test_camel_case_names(self, tmp_path):
        cfg = SandboxConfig(logs_directory=tmp_path / "logs", workspace=tmp_path / "ws")
        cfg.update(defaultTimeoutMs=750, maxOutputLength=12)
        assert cfg.default_timeout_ms == 750
        assert cfg.max_output_length == 12

    def test_invalid_update_leaves_config_untouched(self, tmp_path):
        cfg = SandboxConfig(logs_directory=tmp_path / "logs", workspace=tmp_path / "ws")
        with pytest.raises(ValueError):
            cfg.update(max_concurrent_processes=5, default_timeout_ms=0)
        assert cfg.max_concurrent_processes == 10
        assert cfg.default_timeout_ms == 60_000

    def test_unknown_field(self, tmp_path):
        cfg = SandboxConfig(logs_directory=tmp_path / "logs", workspace=tmp_path / "ws")
        with pytest.raises(ValueError, match="Unknown config field"):
            cfg.update(colour="blue")

    def test_logs_directory_change_creates_it(self, tmp_path):
        cfg = SandboxConfig(logs_directory=tmp_path / "logs", workspace=tmp_path / "ws")
        cfg.update(logsDirectory=str(tmp_path / "new" / "logs"))
        assert isinstance(cfg.logs_directory, Path)
        assert (tmp_path / "new" / "logs").is_dir()

    def test_bad_log_level(self):
        with pytest.raises(ValueError, match="log level"):
            SandboxConfig(log_level="CHATTY").validate()
