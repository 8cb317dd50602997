"""
Unit tests for configuration bootstrap.

Tests cover:
- Per-OS config locations
- Platform defaults
- Validation rules
- Strict reading (read_config) and lenient loading (load_config)
"""

import json
import logging
from pathlib import Path

import pytest

from exex import config as config_module
from exex.config import (
    CONFIG_FILENAME,
    get_config_dir,
    get_config_path,
    get_default_config,
    load_config,
    read_config,
    validate_config,
    write_config,
)
from exex.errors import ConfigParseError, ConfigValidationError
from exex.schema import Config, SecurityConfig


@pytest.fixture
def linux(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(config_module, "_platform", lambda: "linux")


def valid_config(**security: object) -> Config:
    security.setdefault("disallowed_paths", ["/etc/", "/usr/bin/", "/root/"])
    return Config(security=SecurityConfig(**security))


# =============================================================================
# Locations
# =============================================================================


class TestConfigLocation:
    """Tests for where the configuration file lives."""

    def test_xdg_config_home(
        self,
        linux: None,
        monkeypatch: pytest.MonkeyPatch,
        temp_dir: Path,
    ) -> None:
        monkeypatch.setenv("XDG_CONFIG_HOME", str(temp_dir))
        assert get_config_dir() == temp_dir / "exex"
        assert get_config_path() == temp_dir / "exex" / CONFIG_FILENAME

    def test_linux_fallback(self, linux: None, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("XDG_CONFIG_HOME", raising=False)
        assert get_config_dir() == Path.home() / ".config" / "exex"

    def test_windows(self, monkeypatch: pytest.MonkeyPatch, temp_dir: Path) -> None:
        monkeypatch.setattr(config_module, "_platform", lambda: "windows")
        monkeypatch.setenv("LOCALAPPDATA", str(temp_dir))
        assert get_config_dir() == temp_dir / "EXEX"

    def test_macos(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(config_module, "_platform", lambda: "macos")
        assert get_config_dir() == Path.home() / "Library" / "Application Support" / "EXEX"


# =============================================================================
# Defaults
# =============================================================================


class TestDefaultConfig:
    """Tests for the platform defaults."""

    def test_linux_defaults(self, linux: None) -> None:
        security = get_default_config().security
        assert "/etc/" in security.disallowed_paths
        assert "/root/" in security.disallowed_paths
        assert "/tmp/" in security.allowed_paths
        assert f"{Path.home().as_posix()}/Projects/" in security.allowed_paths

    def test_windows_defaults(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(config_module, "_platform", lambda: "windows")
        security = get_default_config().security
        assert "C:/Windows/" in security.disallowed_paths
        assert "C:/Windows/Temp/" in security.allowed_paths

    def test_macos_defaults(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(config_module, "_platform", lambda: "macos")
        security = get_default_config().security
        assert "/System/" in security.disallowed_paths
        assert "/private/" in security.disallowed_paths

    def test_defaults_contain_no_globs(self, linux: None) -> None:
        security = get_default_config().security
        for entry in security.disallowed_paths + security.allowed_paths:
            assert "*" not in entry

    def test_defaults_are_valid(self, linux: None) -> None:
        validate_config(get_default_config())


# =============================================================================
# Validation
# =============================================================================


class TestValidateConfig:
    """Tests for validate_config()."""

    def test_valid(self, linux: None) -> None:
        validate_config(valid_config())

    def test_empty_version(self) -> None:
        config = Config(version=" ", security=SecurityConfig(disallowed_paths=["/etc/"]))
        with pytest.raises(ConfigValidationError) as exc_info:
            validate_config(config)
        assert exc_info.value.field_name == "version"

    def test_no_disallowed_paths(self) -> None:
        with pytest.raises(ConfigValidationError) as exc_info:
            validate_config(Config())
        assert exc_info.value.field_name == "security.disallowed_paths"

    @pytest.mark.parametrize(
        "field_name",
        ["disallowed_paths", "allowed_paths", "command_whitelist", "command_blacklist"],
    )
    def test_blank_entries(self, field_name: str) -> None:
        security = {"disallowed_paths": ["/etc/"], field_name: ["ok", "  "]}
        with pytest.raises(ConfigValidationError) as exc_info:
            validate_config(Config(security=SecurityConfig(**security)))
        assert exc_info.value.field_name == f"security.{field_name}"

    def test_zero_size_limit(self) -> None:
        with pytest.raises(ConfigValidationError) as exc_info:
            validate_config(valid_config(max_file_size_mb=0))
        assert exc_info.value.suggestion is not None

    def test_missing_critical_path_warns(
        self,
        linux: None,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        with caplog.at_level(logging.WARNING, logger="exex.config"):
            validate_config(Config(security=SecurityConfig(disallowed_paths=["/boot/"])))
        assert "Critical path /etc/ is not in disallowed paths" in caplog.text


# =============================================================================
# Reading and Loading
# =============================================================================


class TestReadConfig:
    """Tests for strict reading."""

    def test_read_valid(self, linux: None, temp_dir: Path) -> None:
        path = temp_dir / CONFIG_FILENAME
        write_config(valid_config(command_whitelist=["git"]), path)
        assert read_config(path).security.command_whitelist == ["git"]

    def test_write_creates_parents(self, temp_dir: Path) -> None:
        path = temp_dir / "a" / "b" / CONFIG_FILENAME
        write_config(valid_config(), path)
        assert json.loads(path.read_text())["security"]["disallowed_paths"][0] == "/etc/"

    def test_read_yaml(self, linux: None, temp_dir: Path) -> None:
        path = temp_dir / "exex.yaml"
        path.write_text("security:\n  disallowed_paths:\n    - /etc/\n")
        assert read_config(path).security.disallowed_paths == ["/etc/"]

    def test_read_legacy(self, linux: None, temp_dir: Path) -> None:
        path = temp_dir / CONFIG_FILENAME
        path.write_text(json.dumps({
            "version": "1.0",
            "created": "2024-05-01T00:00:00Z",
            "disallowed_paths": ["/etc/"],
            "allowed_paths": ["/tmp/"],
        }))
        assert read_config(path).security.allowed_paths == ["/tmp/"]

    def test_missing_file(self, temp_dir: Path) -> None:
        with pytest.raises(ConfigParseError):
            read_config(temp_dir / "absent.json")

    def test_malformed_json(self, temp_dir: Path) -> None:
        path = temp_dir / CONFIG_FILENAME
        path.write_text("{ this is not json")
        with pytest.raises(ConfigParseError) as exc_info:
            read_config(path)
        assert exc_info.value.config_path == str(path)

    def test_malformed_yaml(self, temp_dir: Path) -> None:
        path = temp_dir / "exex.yml"
        path.write_text("security: [unclosed\n")
        with pytest.raises(ConfigParseError):
            read_config(path)

    def test_schema_mismatch(self, temp_dir: Path) -> None:
        path = temp_dir / CONFIG_FILENAME
        path.write_text(json.dumps({"security": {"disallowed_paths": "/etc/"}}))
        with pytest.raises(ConfigValidationError) as exc_info:
            read_config(path)
        assert "security.disallowed_paths" in exc_info.value.field_name

    def test_semantically_invalid(self, temp_dir: Path) -> None:
        path = temp_dir / CONFIG_FILENAME
        path.write_text(json.dumps({"version": "1.0", "security": {"disallowed_paths": []}}))
        with pytest.raises(ConfigValidationError):
            read_config(path)


class TestLoadConfig:
    """Tests for lenient loading."""

    def test_missing_file_written_with_defaults(self, linux: None, temp_dir: Path) -> None:
        path = temp_dir / "exex" / CONFIG_FILENAME
        config = load_config(path)
        assert config == get_default_config()
        assert path.exists()
        assert read_config(path) == config

    def test_existing_file_loaded(self, linux: None, temp_dir: Path) -> None:
        path = temp_dir / CONFIG_FILENAME
        write_config(valid_config(default_allow=False), path)
        assert load_config(path).security.default_allow is False

    def test_invalid_file_falls_back_to_defaults(
        self,
        linux: None,
        temp_dir: Path,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        path = temp_dir / CONFIG_FILENAME
        path.write_text("not json at all")
        with caplog.at_level(logging.ERROR, logger="exex.config"):
            config = load_config(path)
        assert config == get_default_config()
        assert path.read_text() == "not json at all"
        assert "Existing configuration is invalid" in caplog.text

    def test_unwritable_location_uses_defaults(self, linux: None, temp_dir: Path) -> None:
        blocker = temp_dir / "blocker"
        blocker.write_text("a file, not a directory")
        config = load_config(blocker / CONFIG_FILENAME)
        assert config == get_default_config()

    def test_default_location(
        self,
        linux: None,
        monkeypatch: pytest.MonkeyPatch,
        temp_dir: Path,
    ) -> None:
        monkeypatch.setenv("XDG_CONFIG_HOME", str(temp_dir))
        load_config()
        assert (temp_dir / "exex" / CONFIG_FILENAME).exists()
