"""
Request dispatcher for EXEX.

The dispatcher is the single path from a request to the operating system.
It coordinates between:
- Policy Engine: Decides if the request is allowed
- Tools: Execute the actual operations
- Audit DB: Records every request and its outcome

Dispatch Flow:
    1. Evaluate the policy for the operation and its arguments
    2. If denied: record the denial and return without touching the OS
    3. If allowed: look up the tool and execute it
    4. Record the result (success or error) and return it

Design Principles:
    - Fail-closed: Nothing runs without an ALLOW decision
    - Full audit: Every request is recorded when an audit DB is attached
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any

from exex.errors import OperationNotFoundError
from exex.policy import PolicyEngine
from exex.schema import ExecConfig, OperationStatus, PolicyDecision
from exex.store import AuditDB
from exex.tools import ToolContext, default_registry
from exex.tools.registry import ToolRegistry

logger = logging.getLogger(__name__)

# Argument holding the primary target of each operation
TARGET_ARGS = {
    "exec": "command",
    "fs.read": "path",
    "fs.write": "path",
    "fs.scan": "path",
    "fs.delete": "path",
    "fs.create": "path",
    "fs.rename": "from_path",
    "app.open": "application",
}


@dataclass
class DispatchResult:
    """
    Result of dispatching a single request.

    Attributes:
        operation: Name of the operation
        args: Arguments of the request
        status: Outcome status
        output: Response fields produced by the tool if it ran successfully
        error: Error message if the operation failed
        policy_decision: The policy decision made
        duration_ms: Handling time in milliseconds
        metadata: Tool metadata (e.g. spawn_failed for exec)
        event_id: Audit event ID, if an audit DB is attached
    """

    operation: str
    args: dict[str, Any]
    status: OperationStatus
    output: Any = None
    error: str | None = None
    policy_decision: PolicyDecision = field(
        default_factory=lambda: PolicyDecision.deny("not evaluated")
    )
    duration_ms: float = 0.0
    metadata: dict[str, Any] = field(default_factory=dict)
    event_id: str | None = None

    @property
    def allowed(self) -> bool:
        return self.status != OperationStatus.DENIED

    @property
    def success(self) -> bool:
        return self.status == OperationStatus.SUCCESS


class Dispatcher:
    """
    Routes requests through the policy engine to the tools.

    Usage:
        dispatcher = Dispatcher(PolicyEngine(config.security))
        result = dispatcher.dispatch("fs.read", {"path": "/tmp/notes.txt"})
        if result.status == OperationStatus.DENIED:
            print(result.policy_decision.reason)

    Attributes:
        policy: Policy engine consulted before every operation
        registry: Tool registry for looking up tools
        exec_config: Limits for spawned commands
        audit: Audit database (None = no audit trail)
        working_dir: Base for relative paths (None = process cwd)
    """

    def __init__(
        self,
        policy: PolicyEngine,
        registry: ToolRegistry | None = None,
        exec_config: ExecConfig | None = None,
        audit: AuditDB | None = None,
        working_dir: str | None = None,
    ) -> None:
        self.policy = policy
        self.registry = registry or default_registry
        self.exec_config = exec_config or ExecConfig()
        self.audit = audit
        self.working_dir = working_dir

    def dispatch(self, operation: str, args: dict[str, Any]) -> DispatchResult:
        """
        Handle one request.

        Args:
            operation: Operation name (e.g., "fs.read")
            args: Request arguments

        Returns:
            DispatchResult with the outcome

        Raises:
            StorageError: If the audit trail cannot be written
        """
        start = time.perf_counter()

        decision = self.policy.evaluate(operation, args, self.working_dir)
        if not decision.allowed:
            logger.warning("%s denied: %s", operation, decision.reason)
            return self._finish(
                operation,
                args,
                start,
                status=OperationStatus.DENIED,
                policy_decision=decision,
            )

        try:
            tool = self.registry.get(operation)
        except OperationNotFoundError as e:
            logger.error("No tool registered for %s", operation)
            return self._finish(
                operation,
                args,
                start,
                status=OperationStatus.ERROR,
                error=e.message,
                policy_decision=decision,
            )

        context = ToolContext(
            policy=self.policy,
            working_dir=self.working_dir,
            exec_config=self.exec_config,
        )

        try:
            output = tool.execute(args, context)
        except Exception as e:
            logger.exception("Unexpected error in %s", operation)
            return self._finish(
                operation,
                args,
                start,
                status=OperationStatus.ERROR,
                error=f"Operation failed: {e}",
                policy_decision=decision,
            )

        if output.success:
            return self._finish(
                operation,
                args,
                start,
                status=OperationStatus.SUCCESS,
                output=output.data,
                policy_decision=decision,
                metadata=output.metadata,
            )

        return self._finish(
            operation,
            args,
            start,
            status=OperationStatus.ERROR,
            error=output.error,
            policy_decision=decision,
            metadata=output.metadata,
        )

    def _finish(
        self,
        operation: str,
        args: dict[str, Any],
        start: float,
        **fields: Any,
    ) -> DispatchResult:
        duration_ms = (time.perf_counter() - start) * 1000
        result = DispatchResult(
            operation=operation,
            args=args,
            duration_ms=duration_ms,
            **fields,
        )

        if self.audit is not None:
            target = args.get(TARGET_ARGS.get(operation, ""))
            result.event_id = self.audit.record_event(
                operation=operation,
                args=args,
                status=result.status,
                reason=result.policy_decision.reason,
                rule=result.policy_decision.rule_matched,
                error=result.error,
                duration_ms=duration_ms,
                target=target if isinstance(target, str) else None,
            )

        return result
