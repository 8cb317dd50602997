"""
Pytest configuration and fixtures for EXEX tests.

This module provides shared fixtures used across unit, integration,
and security tests.

Most fixtures build a sandbox inside a temporary directory:

    <temp_dir>/
        secret/          denied
            public/      allowed back
        work/            neither (default_allow applies)
"""

import tempfile
from pathlib import Path
from typing import Generator

import pytest

from exex.policy import PolicyEngine
from exex.schema import Config, SecurityConfig

# Kept short so randomly named temp directories never trip them
TEST_DANGEROUS_SUBSTRINGS = ["rm -rf", "shutdown", "mkfs"]


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        # macOS hands out /var/... which is a symlink into /private
        yield Path(tmpdir).resolve()


@pytest.fixture
def sandbox(temp_dir: Path) -> Path:
    """Create the secret/public/work layout."""
    (temp_dir / "secret" / "public").mkdir(parents=True)
    (temp_dir / "work").mkdir()
    (temp_dir / "secret" / "key.txt").write_text("hunter2")
    (temp_dir / "secret" / "public" / "readme.txt").write_text("hello")
    (temp_dir / "work" / "notes.txt").write_text("notes")
    return temp_dir


@pytest.fixture
def security(sandbox: Path) -> SecurityConfig:
    """Security rules for the sandbox."""
    return SecurityConfig(
        disallowed_paths=[str(sandbox / "secret")],
        allowed_paths=[str(sandbox / "secret" / "public")],
        dangerous_substrings=TEST_DANGEROUS_SUBSTRINGS,
        resolve_timeout_seconds=0,
    )


@pytest.fixture
def config(security: SecurityConfig, temp_dir: Path) -> Config:
    """Full configuration around the sandbox rules."""
    return Config.model_validate({
        "security": security.model_dump(),
        "logging": {"audit_file": str(temp_dir / "exex.log")},
    })


@pytest.fixture
def engine(security: SecurityConfig) -> Generator[PolicyEngine, None, None]:
    """Policy engine for the sandbox."""
    with PolicyEngine(security) as policy_engine:
        yield policy_engine
