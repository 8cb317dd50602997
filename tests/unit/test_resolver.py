"""
Unit tests for the path resolver.

Tests cover:
- Canonicalization of existing paths
- Parent fallback for paths that do not exist yet
- Relative paths joined onto the working directory
- Failures (missing parent, NUL byte)
- The resolution timeout
"""

import os
import threading
from pathlib import Path
from unittest.mock import patch

import pytest

from exex.errors import PathResolutionError, PathResolutionTimeoutError
from exex.policy import resolver as resolver_module
from exex.policy.resolver import PathResolver, ResolvedPath, canonicalize


class TestCanonicalize:
    """Tests for canonicalize()."""

    def test_existing_file(self, temp_dir: Path) -> None:
        target = temp_dir / "a.txt"
        target.write_text("x")
        resolved = canonicalize(str(target))
        assert resolved == ResolvedPath(raw=str(target), path=target, exists=True)

    def test_dot_dot_is_collapsed(self, temp_dir: Path) -> None:
        (temp_dir / "a").mkdir()
        (temp_dir / "b").mkdir()
        resolved = canonicalize(str(temp_dir / "a" / ".." / "b"))
        assert resolved.path == temp_dir / "b"

    def test_missing_leaf_uses_parent(self, temp_dir: Path) -> None:
        resolved = canonicalize(str(temp_dir / "new-file.txt"))
        assert resolved.path == temp_dir / "new-file.txt"
        assert resolved.exists is False

    def test_relative_path_uses_working_dir(self, temp_dir: Path) -> None:
        (temp_dir / "rel.txt").write_text("x")
        resolved = canonicalize("rel.txt", working_dir=str(temp_dir))
        assert resolved.path == temp_dir / "rel.txt"
        assert resolved.raw == "rel.txt"

    def test_missing_parent_fails(self, temp_dir: Path) -> None:
        with pytest.raises(PathResolutionError) as exc_info:
            canonicalize(str(temp_dir / "no" / "such" / "file.txt"))
        assert exc_info.value.path.endswith("file.txt")

    def test_nul_byte_fails(self, temp_dir: Path) -> None:
        with pytest.raises(PathResolutionError) as exc_info:
            canonicalize(f"{temp_dir}/a\0b")
        assert "null byte" in exc_info.value.underlying_error

    @pytest.mark.skipif(os.name == "nt", reason="symlinks need privileges on Windows")
    def test_symlink_is_followed(self, temp_dir: Path) -> None:
        real = temp_dir / "real.txt"
        real.write_text("x")
        link = temp_dir / "link.txt"
        link.symlink_to(real)
        assert canonicalize(str(link)).path == real

    @pytest.mark.skipif(os.name == "nt", reason="symlinks need privileges on Windows")
    def test_file_under_symlinked_directory(self, temp_dir: Path) -> None:
        real = temp_dir / "real"
        real.mkdir()
        (temp_dir / "alias").symlink_to(real)
        resolved = canonicalize(str(temp_dir / "alias" / "new.txt"))
        assert resolved.path == real / "new.txt"

    @pytest.mark.skipif(os.name == "nt", reason="symlinks need privileges on Windows")
    def test_dangling_symlink_uses_target(self, temp_dir: Path) -> None:
        (temp_dir / "real").mkdir()
        link = temp_dir / "link.txt"
        link.symlink_to(temp_dir / "real" / "later.txt")
        resolved = canonicalize(str(link))
        assert resolved.path == temp_dir / "real" / "later.txt"
        assert resolved.exists is False

    def test_str_is_canonical_path(self, temp_dir: Path) -> None:
        assert str(canonicalize(str(temp_dir))) == str(temp_dir)


class TestPathResolver:
    """Tests for the timeout-bounded resolver."""

    def test_inline_resolution(self, temp_dir: Path) -> None:
        resolver = PathResolver(timeout_seconds=0)
        assert resolver.resolve(str(temp_dir)).path == temp_dir
        resolver.close()

    def test_pooled_resolution(self, temp_dir: Path) -> None:
        with PathResolver(timeout_seconds=5.0) as resolver:
            assert resolver.resolve("x.txt", working_dir=str(temp_dir)).path == temp_dir / "x.txt"

    def test_pooled_failure_propagates(self, temp_dir: Path) -> None:
        with PathResolver(timeout_seconds=5.0) as resolver:
            with pytest.raises(PathResolutionError):
                resolver.resolve(str(temp_dir / "missing" / "x.txt"))

    def test_timeout(self, temp_dir: Path) -> None:
        release = threading.Event()

        def slow_canonicalize(raw_path: str, working_dir: str | None = None) -> ResolvedPath:
            release.wait(5)
            return ResolvedPath(raw=raw_path, path=Path(raw_path))

        resolver = PathResolver(timeout_seconds=0.05)
        try:
            with patch.object(resolver_module, "canonicalize", slow_canonicalize):
                with pytest.raises(PathResolutionTimeoutError) as exc_info:
                    resolver.resolve(str(temp_dir))
        finally:
            release.set()
            resolver.close()

        assert exc_info.value.timeout_seconds == 0.05
        assert isinstance(exc_info.value, PathResolutionError)

    def test_close_is_idempotent(self) -> None:
        resolver = PathResolver(timeout_seconds=1.0)
        resolver.close()
        resolver.close()
