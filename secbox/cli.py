"""
CLI entry point: secbox run | code | status | logs | clear-logs | config
argparse-based.
"""
from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path


def _build_sandbox(args):
    from secbox.config import SandboxConfig
    from secbox.sandbox import Sandbox
    from secbox.utils.logger import attach_file_handler, get_logger
    sandbox = Sandbox(SandboxConfig.load(args.config))
    # Spawn/kill/finish lines also go to a rotating file beside execution.log.
    attach_file_handler(get_logger("secbox.core.supervisor"), sandbox.config.logs_directory)
    return sandbox


def _parse_env(pairs: list[str]) -> dict[str, str]:
    env: dict[str, str] = {}
    for pair in pairs or []:
        key, sep, val = pair.partition("=")
        if not sep or not key:
            raise ValueError(f"--env expects KEY=VALUE, got {pair!r}")
        env[key] = val
    return env


def _exec_options(args) -> dict:
    return {
        "timeout_ms": args.timeout_ms,
        "working_directory": args.cwd,
        "environment": _parse_env(args.env),
        "max_output_length": args.max_output,
        "allow_unsafe": args.allow_unsafe,
    }


def cmd_run(args) -> int:
    from secbox.utils.output import print_chunk, print_footer
    sandbox = _build_sandbox(args)
    record = asyncio.run(
        sandbox.run_command(args.cmd, args.args, print_chunk, **_exec_options(args))
    )
    print_footer(record)
    return record.exit_code if record.exit_code >= 0 else 1


def cmd_code(args) -> int:
    from secbox.utils.output import print_chunk, print_footer
    if args.file == "-":
        code = sys.stdin.read()
    else:
        code = Path(args.file).read_text(encoding="utf-8")
    sandbox = _build_sandbox(args)
    record = asyncio.run(
        sandbox.run_code(code, args.language, print_chunk, **_exec_options(args))
    )
    print_footer(record)
    return record.exit_code if record.exit_code >= 0 else 1


def cmd_status(args) -> int:
    from secbox.utils.output import print_status
    print_status(_build_sandbox(args).get_status())
    return 0


def cmd_logs(args) -> int:
    from secbox.utils.output import print_json
    sandbox = _build_sandbox(args)
    print_json([e.to_dict() for e in sandbox.get_execution_logs(args.limit)])
    return 0


def cmd_clear_logs(args) -> int:
    _build_sandbox(args).clear_execution_logs()
    print("Execution log cleared.")
    return 0


def cmd_config(args) -> int:
    from secbox.config import SandboxConfig
    from secbox.utils.output import print_json
    print_json(SandboxConfig.load(args.config).to_dict())
    return 0


def _add_exec_flags(p: argparse.ArgumentParser) -> None:
    p.add_argument("--timeout-ms", type=int, default=None, help="Timeout in milliseconds")
    p.add_argument("--cwd", default=None, help="Working directory (default: sandbox workspace)")
    p.add_argument("--env", action="append", default=[], metavar="KEY=VALUE",
                   help="Environment override (repeatable)")
    p.add_argument("--max-output", type=int, default=None, help="Per-stream output cap in characters")
    p.add_argument("--allow-unsafe", action="store_true", help="Skip the command policy check")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="secbox",
        description="Policy-checked, resource-bounded command execution",
    )
    parser.add_argument("--config", default=None, help="Path to secbox.yaml")
    sub = parser.add_subparsers(dest="command")

    p_run = sub.add_parser("run", help="Run a command in the sandbox")
    p_run.add_argument("cmd", help="Executable")
    p_run.add_argument("args", nargs=argparse.REMAINDER, help="Arguments")
    _add_exec_flags(p_run)

    p_code = sub.add_parser("code", help="Run a code file (or - for stdin)")
    p_code.add_argument("language", help="python | javascript | typescript | bash | sh")
    p_code.add_argument("file", help="Source file, or - to read stdin")
    _add_exec_flags(p_code)

    sub.add_parser("status", help="Show sandbox status")

    p_logs = sub.add_parser("logs", help="Show recent executions, newest first")
    p_logs.add_argument("--limit", "-n", type=int, default=100)

    sub.add_parser("clear-logs", help="Delete the execution log")
    sub.add_parser("config", help="Show the effective configuration")
    return parser


def main(argv: list[str] | None = None) -> None:
    from secbox.core.errors import SandboxError
    from secbox.utils.output import print_error

    parser = build_parser()
    args = parser.parse_args(argv)

    dispatch = {
        "run":        cmd_run,
        "code":       cmd_code,
        "status":     cmd_status,
        "logs":       cmd_logs,
        "clear-logs": cmd_clear_logs,
        "config":     cmd_config,
    }

    if args.command not in dispatch:
        parser.print_help()
        sys.exit(2)

    try:
        code = dispatch[args.command](args)
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        sys.exit(130)
    except (SandboxError, ValueError, OSError) as exc:
        print_error(str(exc))
        sys.exit(1)
    sys.exit(code)


if __name__ == "__main__":
    main()
