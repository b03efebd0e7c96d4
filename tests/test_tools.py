"""Tests for secbox.tools: ToolRegistry + sandbox-backed builtin tools."""
from unittest.mock import patch

import pytest

from secbox.tools.builtins.run_code import RunCodeTool
from secbox.tools.builtins.shell_exec import ShellExecTool
from secbox.tools.registry import ToolRegistry, build_registry


# ── ToolRegistry ─────────────────────────────────────────────────────────────

class TestToolRegistry:
    def test_register_and_get(self, sandbox):
        reg = ToolRegistry()
        tool = ShellExecTool(sandbox)
        reg.register(tool)
        assert reg.get("shell_exec") is tool

    def test_build_registry_names(self, sandbox):
        reg = build_registry(sandbox)
        assert set(reg.all_names()) == {"shell_exec", "run_code"}

    def test_schemas_for_filtered(self, sandbox):
        reg = build_registry(sandbox)
        schemas = reg.schemas_for(["shell_exec"])
        assert len(schemas) == 1
        assert schemas[0]["function"]["name"] == "shell_exec"
        assert "command" in schemas[0]["function"]["parameters"]["properties"]

    def test_schemas_for_empty_allowed(self, sandbox):
        assert build_registry(sandbox).schemas_for([]) == []

    @pytest.mark.asyncio
    async def test_execute_allowed_with_audit(self, sandbox):
        audit = []
        reg = build_registry(sandbox)
        result = await reg.execute(
            "shell_exec", {"command": "echo hi"}, "coder", ["shell_exec"],
            audit_fn=lambda *a: audit.append(a),
        )
        assert result["exitCode"] == 0
        assert result["stdout"] == "hi\n"
        assert audit[0][3] == "allowed"

    @pytest.mark.asyncio
    async def test_execute_denied(self, sandbox):
        audit = []
        reg = build_registry(sandbox)
        result = await reg.execute(
            "shell_exec", {"command": "echo hi"}, "reviewer", ["run_code"],
            audit_fn=lambda *a: audit.append(a),
        )
        assert result["kind"] == "not_permitted"
        assert audit[0][3] == "denied"

    @pytest.mark.asyncio
    async def test_execute_tool_not_found(self, sandbox):
        result = await build_registry(sandbox).execute("nonexistent", {}, "agent", ["nonexistent"])
        assert "not found" in result["error"]

    @pytest.mark.asyncio
    async def test_sandbox_errors_become_dicts(self, sandbox):
        audit = []
        result = await build_registry(sandbox).execute(
            "shell_exec", {"command": "sudo reboot"}, "agent", ["shell_exec"],
            audit_fn=lambda *a: audit.append(a),
        )
        assert result["kind"] == "policy_violation"
        assert result["rule"] == "denylist"
        assert audit[-1][3] == "error"

    @pytest.mark.asyncio
    async def test_os_errors_become_dicts(self, sandbox, config, tmp_path):
        blocker = tmp_path / "not-a-dir"
        blocker.write_text("file", encoding="utf-8")
        config.workspace = blocker
        result = await build_registry(sandbox).execute(
            "run_code", {"code": "print(1)"}, "agent", ["run_code"],
        )
        assert result["kind"] == "os_error"
        assert result["error"]


# ── ShellExecTool ────────────────────────────────────────────────────────────

class TestShellExecTool:
    @pytest.mark.asyncio
    async def test_no_shell_interpretation(self, sandbox):
        result = await ShellExecTool(sandbox).execute(command="echo 'a b' '&&' c")
        assert result["stdout"] == "a b && c\n"

    @pytest.mark.asyncio
    async def test_nonzero_exit_is_returned(self, sandbox):
        result = await ShellExecTool(sandbox).execute(command="ls does-not-exist")
        assert result["success"] is False
        assert result["exitCode"] != 0
        assert result["stderr"]

    @pytest.mark.asyncio
    async def test_cwd_resolved_inside_workspace(self, sandbox, config):
        (config.workspace / "sub").mkdir(parents=True)
        result = await ShellExecTool(sandbox).execute(command="pwd", cwd="sub")
        assert result["stdout"].strip() == str((config.workspace / "sub").resolve())

    @pytest.mark.asyncio
    @pytest.mark.parametrize("cwd", ["/", "..", "sub/../../.."])
    async def test_cwd_outside_workspace_rejected(self, sandbox, cwd):
        with patch("secbox.core.supervisor.asyncio.create_subprocess_exec") as spawn:
            result = await ShellExecTool(sandbox).execute(command="pwd", cwd=cwd)
        spawn.assert_not_called()
        assert result["kind"] == "path_escape"

    @pytest.mark.asyncio
    async def test_invalid_quoting(self, sandbox):
        result = await ShellExecTool(sandbox).execute(command="echo 'unterminated")
        assert "Invalid command" in result["error"]

    @pytest.mark.asyncio
    async def test_empty_command(self, sandbox):
        result = await ShellExecTool(sandbox).execute(command="   ")
        assert result["kind"] == "invalid_request"


# ── RunCodeTool ──────────────────────────────────────────────────────────────

class TestRunCodeTool:
    def test_schema_lists_languages(self, sandbox):
        schema = RunCodeTool(sandbox).to_schema()
        assert "python" in schema["function"]["parameters"]["properties"]["language"]["enum"]

    @pytest.mark.asyncio
    async def test_runs_python(self, sandbox):
        result = await RunCodeTool(sandbox).execute(code="print('hi from code')")
        assert result["success"] is True
        assert result["stdout"] == "hi from code\n"

    @pytest.mark.asyncio
    async def test_timeout_capped(self, sandbox):
        result = await RunCodeTool(sandbox).execute(
            code="import time; time.sleep(5)", timeout_ms=200,
        )
        assert result["timedOut"] is True
