"""
Path resolver for the EXEX policy engine.

Turns a caller-supplied path string into the canonical absolute form the
rule store compares against.

Algorithm:
    1. Join relative paths onto the working directory
    2. Canonicalize the exact path (symlinks, "." and ".." resolved)
    3. If that fails and the leaf is a dangling symlink, use its target
    4. Otherwise canonicalize the parent and re-append the leaf name
       (the common case: a file about to be created)
    5. If the parent fails too, resolution fails

Canonicalization touches the filesystem and can block on a stalled mount,
so it runs on a small worker pool and is bounded by a timeout. A timeout
is a resolution failure like any other.
"""

import logging
import os
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass
from pathlib import Path

from exex.errors import PathResolutionError, PathResolutionTimeoutError
from exex.policy.rules import normalize_separators

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResolvedPath:
    """
    A canonicalized path.

    Attributes:
        raw: The path string as supplied by the caller
        path: Canonical absolute path
        exists: False when only the parent could be canonicalized
    """

    raw: str
    path: Path
    exists: bool = True

    def __str__(self) -> str:
        return str(self.path)


def canonicalize(raw_path: str, working_dir: str | None = None) -> ResolvedPath:
    """
    Canonicalize a path without a timeout.

    Raises:
        PathResolutionError: If neither the path nor its parent resolves
    """
    if "\0" in raw_path:
        raise PathResolutionError(path=raw_path, underlying_error="embedded null byte")

    try:
        path = Path(normalize_separators(raw_path))
        if not path.is_absolute():
            path = Path(working_dir or os.getcwd()) / path
    except (OSError, ValueError) as e:
        raise PathResolutionError(path=raw_path, underlying_error=str(e)) from e

    try:
        return ResolvedPath(raw=raw_path, path=path.resolve(strict=True))
    except (OSError, RuntimeError, ValueError) as e:
        logger.debug("Failed to canonicalize %s: %s", path, e)
        leaf_error = e

    # A dangling symlink exists; writes through it land on its target.
    try:
        target = path.resolve(strict=False) if path.is_symlink() else None
    except (OSError, RuntimeError, ValueError) as e:
        raise PathResolutionError(path=raw_path, underlying_error=str(e)) from e
    if target is not None:
        logger.debug("Dangling symlink %s judged by its target %s", raw_path, target)
        return ResolvedPath(raw=raw_path, path=target, exists=False)

    parent = path.parent
    if parent == path or not path.name:
        raise PathResolutionError(path=raw_path, underlying_error=str(leaf_error))

    try:
        canonical_parent = parent.resolve(strict=True)
    except (OSError, RuntimeError, ValueError) as e:
        logger.debug("Path and parent of %s cannot be canonicalized", raw_path)
        raise PathResolutionError(path=raw_path, underlying_error=str(e)) from e

    return ResolvedPath(raw=raw_path, path=canonical_parent / path.name, exists=False)


class PathResolver:
    """
    Canonicalizes paths on a worker pool with a timeout.

    Usage:
        resolver = PathResolver(timeout_seconds=5.0)
        resolved = resolver.resolve("./notes.txt", working_dir="/home/me")
        resolver.close()

    A timeout of 0 resolves inline on the calling thread.
    """

    def __init__(self, timeout_seconds: float = 5.0, max_workers: int = 4) -> None:
        self.timeout_seconds = timeout_seconds
        self._executor: ThreadPoolExecutor | None = None
        if timeout_seconds > 0:
            self._executor = ThreadPoolExecutor(
                max_workers=max_workers,
                thread_name_prefix="exex-resolve",
            )

    def resolve(self, raw_path: str, working_dir: str | None = None) -> ResolvedPath:
        """
        Resolve a path for policy comparison.

        Raises:
            PathResolutionError: If the path cannot be canonicalized
            PathResolutionTimeoutError: If canonicalization takes too long
        """
        if self._executor is None:
            return canonicalize(raw_path, working_dir)

        future = self._executor.submit(canonicalize, raw_path, working_dir)
        try:
            return future.result(timeout=self.timeout_seconds)
        except FutureTimeoutError:
            future.cancel()
            logger.warning(
                "Resolving %s timed out after %ss", raw_path, self.timeout_seconds
            )
            raise PathResolutionTimeoutError(
                path=raw_path,
                timeout_seconds=self.timeout_seconds,
                underlying_error="timeout",
            ) from None

    def close(self) -> None:
        """Release the worker pool."""
        if self._executor is not None:
            self._executor.shutdown(wait=False, cancel_futures=True)
            self._executor = None

    def __enter__(self) -> "PathResolver":
        return self

    def __exit__(self, *args: object) -> None:
        self.close()
