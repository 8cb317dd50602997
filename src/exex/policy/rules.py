"""
Rule store for the EXEX policy engine.

The rule store holds the normalized path prefixes and command identifiers
the engine compares requests against. It is built once from the security
configuration at startup and never mutated afterwards, so it can be read
from any number of request threads without locking.
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path, PurePosixPath

from exex.schema import SecurityConfig

logger = logging.getLogger(__name__)

GLOB_CHARS = ("*", "?", "[")


def normalize_separators(raw: str) -> str:
    """Rewrite path separators to the host convention."""
    if os.name == "nt":
        return raw.replace("/", "\\")
    return raw.replace("\\", "/")


def command_identifier(token: str) -> str:
    """
    Reduce an executable reference to its comparable identity.

    Directory components (either separator) and the last extension are
    stripped and the result is lower-cased.

    Examples:
        "/usr/bin/git"            -> "git"
        "C:\\Windows\\cmd.exe"    -> "cmd"
        "Echo"                    -> "echo"
    """
    name = token.strip().replace("\\", "/").rstrip("/")
    stem = PurePosixPath(name).stem if name else ""
    return stem.lower()


def normalize_path_rule(pattern: str) -> Path:
    """
    Turn a configured path pattern into a comparison prefix.

    Existing paths are canonicalized (symlinks and ".." resolved). Paths
    that do not exist yet are kept in their separator-normalized literal
    form so that rules still apply once they are created.
    """
    normalized = normalize_separators(pattern.strip())
    path = Path(normalized)
    try:
        canonical = path.resolve(strict=True)
    except (OSError, RuntimeError, ValueError) as e:
        logger.debug("Could not canonicalize rule %r: %s, using as-is", pattern, e)
        canonical = path
    else:
        logger.debug("Rule %r canonicalized to %s", pattern, canonical)

    if any(ch in pattern for ch in GLOB_CHARS):
        logger.warning(
            "Path rule %r contains glob characters; rules are literal prefixes "
            "and wildcards are not expanded",
            pattern,
        )
    return Path(os.path.normcase(str(canonical)))


@dataclass(frozen=True)
class RuleStore:
    """
    Immutable collection of normalized policy rules.

    Attributes:
        allowed_paths: Prefixes that override the deny list
        disallowed_paths: Prefixes that are denied
        command_whitelist: Identifiers allowed to run (empty = no whitelist)
        command_blacklist: Identifiers never allowed to run
        dangerous_substrings: Lower-cased destructive substrings
        max_file_size_bytes: Size limit for reads and writes
        default_allow: Verdict for paths matching neither list
    """

    allowed_paths: frozenset[Path]
    disallowed_paths: frozenset[Path]
    command_whitelist: frozenset[str]
    command_blacklist: frozenset[str]
    dangerous_substrings: tuple[str, ...]
    max_file_size_bytes: int
    default_allow: bool = True

    @classmethod
    def from_config(cls, security: SecurityConfig) -> "RuleStore":
        """
        Build the rule store from the security configuration.

        Construction never fails: a pattern that cannot be canonicalized is
        retained literally.
        """
        allowed = frozenset(normalize_path_rule(p) for p in security.allowed_paths)
        disallowed = frozenset(normalize_path_rule(p) for p in security.disallowed_paths)

        whitelist = frozenset(
            ident for ident in map(command_identifier, security.command_whitelist) if ident
        )
        blacklist = frozenset(
            ident
            for ident in map(command_identifier, security.command_blacklist or [])
            if ident
        )
        substrings = tuple(s.lower() for s in security.dangerous_substrings if s.strip())

        return cls(
            allowed_paths=allowed,
            disallowed_paths=disallowed,
            command_whitelist=whitelist,
            command_blacklist=blacklist,
            dangerous_substrings=substrings,
            max_file_size_bytes=security.max_file_size_bytes,
            default_allow=security.default_allow,
        )

    def match_allowed(self, path: Path) -> Path | None:
        """Return the allow rule covering path, if any."""
        return _first_prefix(path, self.allowed_paths)

    def match_disallowed(self, path: Path) -> Path | None:
        """Return the deny rule covering path, if any."""
        return _first_prefix(path, self.disallowed_paths)

    def denied_descendants(self, path: Path) -> list[Path]:
        """
        Return the deny rules that lie inside the tree rooted at path.

        A deny rule that an allow rule covers is left out, since everything
        under it is allowed back.
        """
        root = Path(os.path.normcase(str(path)))
        return [
            rule
            for rule in sorted(self.disallowed_paths, key=str)
            if rule.is_relative_to(root) and self.match_allowed(rule) is None
        ]


def _first_prefix(path: Path, rules: frozenset[Path]) -> Path | None:
    # Component-wise: /tmpfoo is not under /tmp.
    candidate = Path(os.path.normcase(str(path)))
    for rule in sorted(rules, key=str):
        if candidate == rule or candidate.is_relative_to(rule):
            return rule
    return None
