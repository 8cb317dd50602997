"""
Policy Engine module for EXEX.

This module implements the security model: every path and command a client
asks about is checked against the configured rules before the daemon
touches the operating system.

Key concepts:
    - RuleStore: Normalized, immutable path prefixes and command identifiers
    - PathResolver: Canonicalizes paths (with a timeout) before comparison
    - PolicyDecision: The result of evaluating a request (ALLOW/DENY + reason)
    - PolicyEngine: Central evaluator combining the two

The policy engine must be:
    - Fail-closed on paths it cannot resolve
    - Predictable: Same inputs always produce same decisions
    - Auditable: All decisions are logged with reasons
"""

from exex.policy.engine import PolicyEngine
from exex.policy.resolver import PathResolver, ResolvedPath, canonicalize
from exex.policy.rules import RuleStore, command_identifier, normalize_path_rule
from exex.policy.sanitize import sanitize_content

__all__ = [
    "PathResolver",
    "PolicyEngine",
    "ResolvedPath",
    "RuleStore",
    "canonicalize",
    "command_identifier",
    "normalize_path_rule",
    "sanitize_content",
]
