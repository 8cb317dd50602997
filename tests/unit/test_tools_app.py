"""Unit tests for the app.open tool."""

import os
import subprocess
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from exex.tools import ToolContext
from exex.tools.app import AppOpenTool


@pytest.fixture
def context(temp_dir: Path) -> ToolContext:
    return ToolContext(working_dir=str(temp_dir))


class TestAppOpenTool:
    """Tests for launching applications."""

    def test_launch_returns_pid(self, context: ToolContext, temp_dir: Path) -> None:
        with patch("exex.tools.app.subprocess.Popen", return_value=MagicMock(pid=4242)) as popen:
            output = AppOpenTool().execute(
                {"application": "/usr/bin/editor", "args": ["notes.txt"]},
                context,
            )

        assert output.success is True
        assert output.data == {"pid": 4242}
        argv = popen.call_args.args[0]
        kwargs = popen.call_args.kwargs
        assert argv == ["/usr/bin/editor", "notes.txt"]
        assert kwargs["cwd"] == str(temp_dir)
        assert kwargs["stdin"] is subprocess.DEVNULL
        assert kwargs["stdout"] is subprocess.DEVNULL
        assert kwargs["stderr"] is subprocess.DEVNULL

    @pytest.mark.skipif(os.name == "nt", reason="POSIX session handling")
    def test_launch_detaches(self, context: ToolContext) -> None:
        with patch("exex.tools.app.subprocess.Popen", return_value=MagicMock(pid=1)) as popen:
            AppOpenTool().execute({"application": "xdg-open"}, context)
        assert popen.call_args.kwargs["start_new_session"] is True

    def test_relative_cwd(self, context: ToolContext, temp_dir: Path) -> None:
        with patch("exex.tools.app.subprocess.Popen", return_value=MagicMock(pid=1)) as popen:
            AppOpenTool().execute({"application": "editor", "cwd": "docs"}, context)
        assert popen.call_args.kwargs["cwd"] == str(temp_dir / "docs")

    def test_launch_failure(self, context: ToolContext) -> None:
        with patch(
            "exex.tools.app.subprocess.Popen",
            side_effect=FileNotFoundError(2, "No such file or directory"),
        ):
            output = AppOpenTool().execute({"application": "/nope/app"}, context)
        assert output.success is False
        assert output.error.startswith("Failed to launch application: ")

    @pytest.mark.skipif(os.name == "nt", reason="uses POSIX utilities")
    def test_real_launch(self, context: ToolContext) -> None:
        output = AppOpenTool().execute({"application": "true"}, context)
        assert output.success is True
        assert output.data["pid"] > 0

    def test_missing_application(self, context: ToolContext) -> None:
        output = AppOpenTool().execute({"application": ""}, context)
        assert output.success is False
        assert "'application' cannot be empty" in output.error
