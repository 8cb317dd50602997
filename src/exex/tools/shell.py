"""
Command execution tool for EXEX.

This module provides the exec operation:
- exec: Run a command and capture its output

Security Note:
    Policy enforcement happens BEFORE this tool executes.
    By the time execute() is called, the command identifier has passed
    the whitelist/blacklist, the full command line has passed the
    destructive-substring check, and cwd (if any) has passed the path rules.

    Two invocation forms:
    - With args: [command, *args] is executed directly, no shell involved
    - Without args: the command line is handed to the platform shell
      ("sh -c" / "cmd /C") as a single argument, for clients that send
      whole command lines

    Additional protections:
    - Timeout enforcement to prevent runaway processes
    - Output size limits to prevent memory exhaustion
"""

import logging
import os
import subprocess
from typing import Any

from exex.tools.base import (
    Tool,
    ToolContext,
    ToolOutput,
    optional_string_list,
    require_string,
)

logger = logging.getLogger(__name__)

TRUNCATION_MARKER = "\n... [truncated, exceeded {limit} bytes]"


def build_argv(command: str, args: list[str] | None) -> list[str]:
    """
    Build the argument vector for a request.

    Examples:
        build_argv("git", ["status"])  -> ["git", "status"]
        build_argv("echo hi", None)    -> ["sh", "-c", "echo hi"]  (POSIX)
    """
    if args is not None:
        return [command, *args]
    if os.name == "nt":
        return ["cmd", "/C", command]
    return ["sh", "-c", command]


def _decode_capped(raw: bytes | None, limit: int) -> str:
    data = raw or b""
    if len(data) > limit:
        marker = TRUNCATION_MARKER.format(limit=limit).encode()
        data = data[: max(limit - len(marker), 0)] + marker
    return data.decode("utf-8", errors="replace")


class ExecTool(Tool):
    """
    Execute a command.

    Arguments:
        command (str): Executable, or a whole command line when args is absent
        args (list): Arguments passed to the executable (optional)
        cwd (str): Working directory for the command (optional)

    Returns:
        On success (the process ran): {"success", "stdout", "stderr", "exit_code"}
            success is True only for exit code 0; exit_code is None when the
            process was killed by a signal or timed out
        On failure (the process could not be started): error message, with
            metadata spawn_failed=True

    Example:
        args = {"command": "echo", "args": ["hello"]}
        output = tool.execute(args, context)
        if output.success:
            print(output.data["stdout"])  # "hello\\n"
    """

    @property
    def name(self) -> str:
        return "exec"

    @property
    def description(self) -> str:
        return "Execute a command and capture its output"

    def validate_args(self, args: dict[str, Any]) -> list[str]:
        errors: list[str] = []
        require_string(args, "command", errors)
        optional_string_list(args, "args", errors)
        if args.get("cwd") is not None:
            require_string(args, "cwd", errors)
        return errors

    def execute(self, args: dict[str, Any], context: ToolContext) -> ToolOutput:
        errors = self.validate_args(args)
        if errors:
            return ToolOutput.fail(f"Invalid arguments: {'; '.join(errors)}")

        argv = build_argv(args["command"], args.get("args"))
        cwd = args.get("cwd")
        cwd_path = str(context.resolve(cwd)) if cwd is not None else context.working_dir
        timeout_seconds = context.exec_config.timeout_seconds
        max_output_bytes = context.exec_config.max_output_bytes

        logger.info("Executing command: %r in %s", argv, cwd_path or os.getcwd())

        try:
            result = subprocess.run(
                argv,
                cwd=cwd_path,
                stdin=subprocess.DEVNULL,
                capture_output=True,
                timeout=timeout_seconds,
                shell=False,
            )
        except subprocess.TimeoutExpired as e:
            logger.warning("Command timed out after %ss: %r", timeout_seconds, argv)
            stderr = _decode_capped(e.stderr, max_output_bytes)
            stderr += f"\nCommand timed out after {timeout_seconds} seconds"
            return ToolOutput.ok(
                {
                    "success": False,
                    "stdout": _decode_capped(e.stdout, max_output_bytes),
                    "stderr": stderr,
                    "exit_code": None,
                },
                argv=argv,
                timed_out=True,
            )
        except OSError as e:
            logger.error("IO error executing command: %s", e)
            return ToolOutput.fail(
                f"IO error executing command: {e}",
                argv=argv,
                spawn_failed=True,
                error_type=type(e).__name__,
            )

        exit_code = result.returncode if result.returncode >= 0 else None
        logger.info("Command executed with exit code: %s", exit_code)
        return ToolOutput.ok(
            {
                "success": result.returncode == 0,
                "stdout": _decode_capped(result.stdout, max_output_bytes),
                "stderr": _decode_capped(result.stderr, max_output_bytes),
                "exit_code": exit_code,
            },
            argv=argv,
            stdout_size=len(result.stdout),
            stderr_size=len(result.stderr),
        )


def register_shell_tools(registry=None) -> None:
    """Register the exec tool (in the default registry unless given)."""
    from exex.tools.registry import default_registry

    target = registry if registry is not None else default_registry
    target.register(ExecTool())
