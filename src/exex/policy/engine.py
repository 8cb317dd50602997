"""
Policy Engine for EXEX.

The Policy Engine is the security boundary of EXEX. Every request must
pass through the policy engine before the daemon touches the OS.

Design Principles:
    - Fail-closed on uncertainty: a path that cannot be resolved is denied
    - Default-permissive on unmatched paths (configurable via default_allow)
    - Predictable: Same inputs always produce same decisions
    - Auditable: All decisions include clear reasons

Path precedence (first match wins):
    1. Path under an allowed_paths prefix  -> ALLOW (overrides deny)
    2. Path under a disallowed_paths prefix -> DENY
    3. Otherwise                            -> default_allow

Command precedence:
    1. Identifier blacklisted                      -> DENY
    2. Whitelist non-empty and identifier absent   -> DENY
    3. Command line contains a destructive pattern -> DENY
    4. Otherwise                                   -> ALLOW

Security Note:
    This module is security-critical. Decision functions never raise;
    every failure path resolves to a PolicyDecision.
"""

import logging
from pathlib import Path
from typing import Any

from exex.errors import PathResolutionError, PathResolutionTimeoutError
from exex.policy.resolver import PathResolver
from exex.policy.rules import RuleStore, command_identifier
from exex.policy.sanitize import sanitize_content
from exex.schema import Config, PolicyDecision, SecurityConfig

logger = logging.getLogger(__name__)


class PolicyEngine:
    """
    Central policy evaluator for EXEX.

    Usage:
        engine = PolicyEngine(config.security)
        decision = engine.evaluate("fs.read", {"path": "/tmp/notes.txt"})
        if decision.allowed:
            # proceed with the operation
        else:
            # reject with decision.reason

    Attributes:
        security: The security configuration the rules were built from
        rules: Normalized, immutable rule store
        resolver: Path canonicalizer with timeout
    """

    def __init__(
        self,
        security: SecurityConfig,
        resolver: PathResolver | None = None,
    ) -> None:
        self.security = security
        self.rules = RuleStore.from_config(security)
        self.resolver = resolver or PathResolver(
            timeout_seconds=security.resolve_timeout_seconds,
        )

    @classmethod
    def from_config(cls, config: Config) -> "PolicyEngine":
        """Create an engine from a full daemon configuration."""
        return cls(config.security)

    def close(self) -> None:
        """Release the resolver's worker pool."""
        self.resolver.close()

    def __enter__(self) -> "PolicyEngine":
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    def evaluate(
        self,
        operation: str,
        args: dict[str, Any],
        working_dir: str | None = None,
    ) -> PolicyDecision:
        """
        Evaluate a request against the policy.

        Dispatches to the checks each operation needs. Unknown operations
        are denied.

        Args:
            operation: The operation being requested (e.g., "fs.read")
            args: The request arguments
            working_dir: Base for relative paths (default: process cwd)

        Returns:
            PolicyDecision indicating allow/deny with reason
        """
        if operation == "exec":
            return self._evaluate_exec(args, working_dir)
        if operation == "fs.read":
            return self._evaluate_fs_read(args, working_dir)
        if operation in ("fs.write", "fs.create"):
            return self._evaluate_fs_write(args, working_dir)
        if operation == "fs.scan":
            return self._evaluate_path_arg(args, "path", working_dir)
        if operation == "fs.delete":
            return self._evaluate_fs_delete(args, working_dir)
        if operation == "fs.rename":
            return self._evaluate_fs_rename(args, working_dir)
        if operation == "app.open":
            return self._evaluate_app_open(args, working_dir)

        return PolicyDecision.deny(
            f"Unknown operation: {operation}",
            rule="unknown_operation",
        )

    # =========================================================================
    # Path Decisions
    # =========================================================================

    def path_decision(
        self,
        raw_path: str,
        working_dir: str | None = None,
    ) -> PolicyDecision:
        """
        Decide whether a path may be touched.

        The path is canonicalized first. If neither the path nor its
        parent can be canonicalized (or canonicalization times out), the
        path is denied.
        """
        if not isinstance(raw_path, str) or not raw_path.strip():
            return PolicyDecision.deny("No path provided", rule="missing_argument")

        try:
            resolved = self.resolver.resolve(raw_path, working_dir)
        except PathResolutionTimeoutError:
            logger.warning("Access DENIED: %s (resolution timed out)", raw_path)
            return PolicyDecision.deny(
                f"Path resolution timed out: {raw_path}",
                rule="resolve_timeout",
            )
        except PathResolutionError as e:
            logger.warning("Access DENIED: %s cannot be resolved: %s", raw_path, e.underlying_error)
            return PolicyDecision.deny(
                f"Path cannot be resolved: {raw_path}",
                rule="unresolvable_path",
            )

        return self.decide_resolved(resolved.path)

    def decide_resolved(self, path: Path) -> PolicyDecision:
        """Apply allow/deny precedence to an already canonical path."""
        allowed_rule = self.rules.match_allowed(path)
        if allowed_rule is not None:
            logger.debug("Access EXPLICITLY ALLOWED: %s matches %s", path, allowed_rule)
            return PolicyDecision.allow(
                f"Path allowed by explicit rule: {allowed_rule}",
                rule=f"allowed_paths[{allowed_rule}]",
            )

        denied_rule = self.rules.match_disallowed(path)
        if denied_rule is not None:
            logger.warning("Access DENIED: %s is under %s", path, denied_rule)
            return PolicyDecision.deny(
                f"Path matches deny rule: {denied_rule}",
                rule=f"disallowed_paths[{denied_rule}]",
            )

        if self.rules.default_allow:
            logger.debug("Access ALLOWED (default): %s", path)
            return PolicyDecision.allow(
                "Path not in any restriction list",
                rule="default_allow",
            )

        logger.warning("Access DENIED (default): %s", path)
        return PolicyDecision.deny(
            f"Path not in allowlist: {path}",
            rule="default_deny",
        )

    def is_path_allowed(self, path: str, working_dir: str | None = None) -> bool:
        """Boolean form of path_decision."""
        return self.path_decision(path, working_dir).allowed

    # =========================================================================
    # Command Decisions
    # =========================================================================

    def command_decision(
        self,
        raw_command: str,
        args: list[str] | None = None,
    ) -> PolicyDecision:
        """
        Decide whether a command may run.

        Combines the whitelist/blacklist check on the command identifier
        with the destructive-substring check on the full command line.
        """
        list_decision = self._check_command_lists(raw_command)
        if not list_decision.allowed:
            return list_decision

        full_command = " ".join([raw_command, *(str(a) for a in args or [])])
        substring = self._find_dangerous_substring(full_command)
        if substring is not None:
            logger.warning("Command %r contains destructive pattern %r", full_command, substring)
            return PolicyDecision.deny(
                f"Command contains destructive pattern: {substring}",
                rule=f"dangerous_substrings[{substring}]",
            )

        return list_decision

    def is_command_allowed(self, command: str) -> bool:
        """Whitelist/blacklist check only."""
        return self._check_command_lists(command).allowed

    def is_command_safe(self, command: str) -> bool:
        """Destructive-substring check only."""
        return self._find_dangerous_substring(command) is None

    def _check_command_lists(self, raw_command: str) -> PolicyDecision:
        if not isinstance(raw_command, str) or not raw_command.strip():
            return PolicyDecision.deny("No command provided", rule="missing_argument")

        identifier = command_identifier(raw_command.split()[0])
        logger.debug("Checking command %r (identifier %r)", raw_command, identifier)
        if not identifier:
            return PolicyDecision.deny(
                f"Cannot determine command name: {raw_command}",
                rule="invalid_command",
            )

        if identifier in self.rules.command_blacklist:
            logger.warning("Command '%s' is blacklisted", identifier)
            return PolicyDecision.deny(
                f"Command is blacklisted: {identifier}",
                rule=f"command_blacklist[{identifier}]",
            )

        if self.rules.command_whitelist:
            if identifier not in self.rules.command_whitelist:
                logger.warning("Command '%s' not in whitelist", identifier)
                return PolicyDecision.deny(
                    f"Command not in whitelist: {identifier}",
                    rule="command_whitelist",
                )
            return PolicyDecision.allow(
                f"Command whitelisted: {identifier}",
                rule=f"command_whitelist[{identifier}]",
            )

        return PolicyDecision.allow(
            f"No whitelist configured, command allowed: {identifier}",
            rule="command_whitelist=[]",
        )

    def _find_dangerous_substring(self, command: str) -> str | None:
        lowered = command.lower()
        for substring in self.rules.dangerous_substrings:
            if substring in lowered:
                return substring
        return None

    # =========================================================================
    # Size and Content
    # =========================================================================

    def is_file_size_allowed(self, size_bytes: int) -> bool:
        """Whether a file or payload of this size is within the limit."""
        return size_bytes <= self.rules.max_file_size_bytes

    def size_decision(self, size_bytes: int) -> PolicyDecision:
        if self.is_file_size_allowed(size_bytes):
            return PolicyDecision.allow("Size within limit", rule="max_file_size_mb")
        return PolicyDecision.deny(
            f"Size {size_bytes} exceeds limit {self.rules.max_file_size_bytes}",
            rule="max_file_size_mb",
        )

    @staticmethod
    def sanitize_content(content: str) -> str:
        """See exex.policy.sanitize.sanitize_content."""
        return sanitize_content(content)

    # =========================================================================
    # Per-operation Evaluation
    # =========================================================================

    def _evaluate_path_arg(
        self,
        args: dict[str, Any],
        key: str,
        working_dir: str | None,
        label: str | None = None,
    ) -> PolicyDecision:
        decision = self.path_decision(args.get(key), working_dir)
        if label and not decision.allowed:
            return PolicyDecision.deny(
                f"{label}: {decision.reason}",
                rule=decision.rule_matched,
            )
        return decision

    def _evaluate_exec(
        self,
        args: dict[str, Any],
        working_dir: str | None,
    ) -> PolicyDecision:
        decision = self.command_decision(args.get("command"), args.get("args"))
        if not decision.allowed:
            return decision

        if args.get("cwd") is not None:
            cwd_decision = self._evaluate_path_arg(args, "cwd", working_dir, "Working directory")
            if not cwd_decision.allowed:
                return cwd_decision

        return decision

    def _evaluate_fs_read(
        self,
        args: dict[str, Any],
        working_dir: str | None,
    ) -> PolicyDecision:
        decision = self.path_decision(args.get("path"), working_dir)
        if not decision.allowed:
            return decision

        try:
            resolved = self.resolver.resolve(args["path"], working_dir)
            if resolved.exists and resolved.path.is_file():
                size_decision = self.size_decision(resolved.path.stat().st_size)
                if not size_decision.allowed:
                    return size_decision
        except (PathResolutionError, OSError) as e:
            # The read itself reports the failure.
            logger.debug("Skipping size check for %s: %s", args["path"], e)

        return decision

    def _evaluate_fs_write(
        self,
        args: dict[str, Any],
        working_dir: str | None,
    ) -> PolicyDecision:
        decision = self.path_decision(args.get("path"), working_dir)
        if not decision.allowed:
            return decision

        content = args.get("content")
        if isinstance(content, str):
            size_decision = self.size_decision(len(content.encode("utf-8")))
            if not size_decision.allowed:
                return size_decision

        return decision

    def _subtree_decision(
        self,
        raw_path: str,
        working_dir: str | None,
        decision: PolicyDecision,
        label: str | None = None,
    ) -> PolicyDecision:
        """
        Deny an operation on a whole tree when a deny rule lies inside it.

        Moving or removing a directory acts on everything below it, so an
        allowed parent must not carry a denied subtree with it.
        """
        prefix = f"{label}: " if label else ""
        try:
            resolved = self.resolver.resolve(raw_path, working_dir)
        except PathResolutionError:
            return PolicyDecision.deny(
                f"{prefix}Path cannot be resolved: {raw_path}",
                rule="unresolvable_path",
            )

        nested = self.rules.denied_descendants(resolved.path)
        if nested:
            logger.warning("Access DENIED: %s contains denied path %s", resolved.path, nested[0])
            return PolicyDecision.deny(
                f"{prefix}Path contains a denied path: {nested[0]}",
                rule=f"disallowed_paths[{nested[0]}]",
            )
        return decision

    def _evaluate_fs_delete(
        self,
        args: dict[str, Any],
        working_dir: str | None,
    ) -> PolicyDecision:
        decision = self.path_decision(args.get("path"), working_dir)
        if not decision.allowed or not args.get("recursive"):
            return decision
        return self._subtree_decision(args["path"], working_dir, decision)

    def _evaluate_fs_rename(
        self,
        args: dict[str, Any],
        working_dir: str | None,
    ) -> PolicyDecision:
        source = self._evaluate_path_arg(args, "from_path", working_dir, "Source path")
        if not source.allowed:
            return source
        source = self._subtree_decision(args["from_path"], working_dir, source, "Source path")
        if not source.allowed:
            return source
        return self._evaluate_path_arg(args, "to_path", working_dir, "Destination path")

    def _evaluate_app_open(
        self,
        args: dict[str, Any],
        working_dir: str | None,
    ) -> PolicyDecision:
        application = args.get("application")
        decision = self._evaluate_path_arg(args, "application", working_dir, "Application")
        if not decision.allowed:
            return decision

        if not self.is_command_safe(application):
            substring = self._find_dangerous_substring(application)
            return PolicyDecision.deny(
                f"Application deemed unsafe: {application}",
                rule=f"dangerous_substrings[{substring}]",
            )

        if args.get("cwd") is not None:
            cwd_decision = self._evaluate_path_arg(args, "cwd", working_dir, "Working directory")
            if not cwd_decision.allowed:
                return cwd_decision

        return decision
