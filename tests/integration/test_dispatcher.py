"""
Integration tests for the dispatcher.

These tests drive real tools through the real policy engine and record
into an in-memory audit database.
"""

from pathlib import Path
from typing import Any

import pytest

from exex.dispatcher import Dispatcher
from exex.policy import PolicyEngine
from exex.schema import OperationStatus
from exex.store import AuditDB
from exex.tools import Tool, ToolContext, ToolOutput, ToolRegistry, register_builtin_tools


class RecordingTool(Tool):
    """Stand-in for fs.read that remembers whether it ran."""

    def __init__(self, output: ToolOutput | None = None, error: Exception | None = None) -> None:
        self.calls: list[dict[str, Any]] = []
        self._output = output or ToolOutput.ok({"content": "stub"})
        self._error = error

    @property
    def name(self) -> str:
        return "fs.read"

    def execute(self, args: dict[str, Any], context: ToolContext) -> ToolOutput:
        self.calls.append(args)
        if self._error is not None:
            raise self._error
        return self._output


@pytest.fixture
def audit():
    with AuditDB(":memory:") as db:
        yield db


@pytest.fixture
def dispatcher(engine: PolicyEngine, audit: AuditDB, sandbox: Path) -> Dispatcher:
    return Dispatcher(
        engine,
        registry=register_builtin_tools(ToolRegistry()),
        audit=audit,
        working_dir=str(sandbox / "work"),
    )


def stub_dispatcher(engine: PolicyEngine, tool: Tool) -> Dispatcher:
    registry = ToolRegistry()
    registry.register(tool)
    return Dispatcher(engine, registry=registry)


class TestDispatchFlow:
    """Tests for the evaluate, execute, record flow."""

    def test_allowed_read(self, dispatcher: Dispatcher, sandbox: Path) -> None:
        result = dispatcher.dispatch("fs.read", {"path": str(sandbox / "work" / "notes.txt")})
        assert result.status == OperationStatus.SUCCESS
        assert result.success is True
        assert result.output == {"content": "notes"}
        assert result.policy_decision.rule_matched == "default_allow"
        assert result.duration_ms >= 0

    def test_relative_path_uses_working_dir(self, dispatcher: Dispatcher) -> None:
        result = dispatcher.dispatch("fs.read", {"path": "notes.txt"})
        assert result.output == {"content": "notes"}

    def test_denied_request_never_runs(self, engine: PolicyEngine, sandbox: Path) -> None:
        tool = RecordingTool()
        result = stub_dispatcher(engine, tool).dispatch(
            "fs.read",
            {"path": str(sandbox / "secret" / "key.txt")},
        )
        assert result.status == OperationStatus.DENIED
        assert result.allowed is False
        assert result.output is None
        assert tool.calls == []

    def test_unknown_operation_denied(self, dispatcher: Dispatcher) -> None:
        result = dispatcher.dispatch("fs.chmod", {"path": "notes.txt"})
        assert result.status == OperationStatus.DENIED
        assert result.policy_decision.rule_matched == "unknown_operation"

    def test_allowed_operation_without_tool(self, engine: PolicyEngine, sandbox: Path) -> None:
        dispatcher = Dispatcher(engine, registry=ToolRegistry())
        result = dispatcher.dispatch("fs.read", {"path": str(sandbox / "work" / "notes.txt")})
        assert result.status == OperationStatus.ERROR
        assert result.error == "Operation not found: fs.read"

    def test_tool_failure_is_error(self, dispatcher: Dispatcher, sandbox: Path) -> None:
        result = dispatcher.dispatch("fs.read", {"path": str(sandbox / "work" / "absent.txt")})
        assert result.status == OperationStatus.ERROR
        assert result.allowed is True
        assert result.error.startswith("Failed to read file: ")

    def test_tool_exception_is_error(self, engine: PolicyEngine, sandbox: Path) -> None:
        tool = RecordingTool(error=RuntimeError("boom"))
        result = stub_dispatcher(engine, tool).dispatch(
            "fs.read",
            {"path": str(sandbox / "work" / "notes.txt")},
        )
        assert result.status == OperationStatus.ERROR
        assert result.error == "Operation failed: boom"

    def test_tool_metadata_is_passed_on(self, engine: PolicyEngine, sandbox: Path) -> None:
        tool = RecordingTool(output=ToolOutput.fail("nope", spawn_failed=True))
        result = stub_dispatcher(engine, tool).dispatch(
            "fs.read",
            {"path": str(sandbox / "work" / "notes.txt")},
        )
        assert result.metadata == {"spawn_failed": True}

    def test_write_then_read(self, dispatcher: Dispatcher, sandbox: Path) -> None:
        target = str(sandbox / "work" / "new.txt")
        assert dispatcher.dispatch("fs.write", {"path": target, "content": "x\r\n"}).success
        assert dispatcher.dispatch("fs.read", {"path": target}).output == {"content": "x\n"}

    def test_rename_into_denied_directory(self, dispatcher: Dispatcher, sandbox: Path) -> None:
        result = dispatcher.dispatch(
            "fs.rename",
            {
                "from_path": str(sandbox / "work" / "notes.txt"),
                "to_path": str(sandbox / "secret" / "notes.txt"),
            },
        )
        assert result.status == OperationStatus.DENIED
        assert (sandbox / "work" / "notes.txt").exists()


class TestDispatchAudit:
    """Tests for audit trail recording."""

    def test_every_outcome_recorded(
        self,
        dispatcher: Dispatcher,
        audit: AuditDB,
        sandbox: Path,
    ) -> None:
        dispatcher.dispatch("fs.read", {"path": "notes.txt"})
        dispatcher.dispatch("fs.read", {"path": "absent.txt"})
        dispatcher.dispatch("fs.read", {"path": str(sandbox / "secret" / "key.txt")})
        assert audit.count_by_status() == {"success": 1, "error": 1, "denied": 1}

    def test_event_fields(self, dispatcher: Dispatcher, audit: AuditDB, sandbox: Path) -> None:
        target = str(sandbox / "secret" / "key.txt")
        result = dispatcher.dispatch("fs.write", {"path": target, "content": "pwned"})

        event = audit.get_event(result.event_id)
        assert event.operation == "fs.write"
        assert event.status == OperationStatus.DENIED
        assert event.target == target
        assert event.rule == f"disallowed_paths[{sandbox / 'secret'}]"
        assert event.args["content"] == "<5 chars>"

    def test_rename_target_is_source(self, dispatcher: Dispatcher, audit: AuditDB) -> None:
        result = dispatcher.dispatch("fs.rename", {"from_path": "notes.txt", "to_path": "n2.txt"})
        assert audit.get_event(result.event_id).target == "notes.txt"

    def test_no_audit_db(self, engine: PolicyEngine, sandbox: Path) -> None:
        dispatcher = Dispatcher(engine)
        result = dispatcher.dispatch("fs.read", {"path": str(sandbox / "work" / "notes.txt")})
        assert result.success is True
        assert result.event_id is None
