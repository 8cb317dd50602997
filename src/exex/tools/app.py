"""
Application launch tool for EXEX.

- app.open: Start a program in the background and return its PID

The launched process is detached: it gets its own session (process group
on Windows), its standard streams point at the null device, and the
daemon never waits for it.
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


def _detach_kwargs() -> dict[str, Any]:
    if os.name == "nt":
        return {
            "creationflags": subprocess.DETACHED_PROCESS
            | subprocess.CREATE_NEW_PROCESS_GROUP,
        }
    return {"start_new_session": True}


class AppOpenTool(Tool):
    """
    Launch an application.

    Arguments:
        application (str): Path or name of the executable (required)
        args (list): Arguments for the application (optional)
        cwd (str): Working directory (optional)

    Returns:
        On success: {"pid": <process id>}
        On failure: Error message describing why the launch failed
    """

    @property
    def name(self) -> str:
        return "app.open"

    @property
    def description(self) -> str:
        return "Launch an application in the background"

    def validate_args(self, args: dict[str, Any]) -> list[str]:
        errors: list[str] = []
        require_string(args, "application", errors)
        optional_string_list(args, "args", errors)
        if args.get("cwd") is not None:
            require_string(args, "cwd", errors)
        return errors

    def execute(self, args: dict[str, Any], context: ToolContext) -> ToolOutput:
        errors = self.validate_args(args)
        if errors:
            return ToolOutput.fail(f"Invalid arguments: {'; '.join(errors)}")

        application = args["application"]
        argv = [application, *(args.get("args") or [])]
        cwd = args.get("cwd")
        cwd_path = str(context.resolve(cwd)) if cwd is not None else context.working_dir
        logger.info("Opening application: %s", application)

        try:
            process = subprocess.Popen(
                argv,
                cwd=cwd_path,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                close_fds=True,
                **_detach_kwargs(),
            )
        except OSError as e:
            logger.error("Failed to launch application %s: %s", application, e)
            return ToolOutput.fail(f"Failed to launch application: {e}", argv=argv)

        logger.info("Successfully launched application: %s (PID: %d)", application, process.pid)
        return ToolOutput.ok({"pid": process.pid}, argv=argv)


def register_app_tools(registry=None) -> None:
    """Register the app.open tool (in the default registry unless given)."""
    from exex.tools.registry import default_registry

    target = registry if registry is not None else default_registry
    target.register(AppOpenTool())
