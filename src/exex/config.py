"""
Configuration bootstrap for EXEX.

Locates the per-user configuration file, writes the platform defaults on
first start, and validates what it loads.

Loading never terminates the daemon: a missing file is created with
defaults, and a file that cannot be read, parsed or validated is ignored
in favour of the defaults (with an error logged so the operator can fix
or delete it).

Config file locations:
    Windows: %LOCALAPPDATA%\\EXEX\\exex.config.json
    macOS:   ~/Library/Application Support/EXEX/exex.config.json
    Other:   $XDG_CONFIG_HOME/exex/exex.config.json (~/.config/exex/...)
"""

import json
import logging
import os
import sys
from pathlib import Path

import yaml
from pydantic import ValidationError

from exex.errors import ConfigParseError, ConfigValidationError
from exex.schema import Config, SecurityConfig, load_config_file

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "exex.config.json"


def _platform() -> str:
    if sys.platform.startswith("win"):
        return "windows"
    if sys.platform == "darwin":
        return "macos"
    return "linux"


def get_config_dir() -> Path:
    """Return the per-OS directory holding the configuration file."""
    platform = _platform()
    if platform == "windows":
        base = os.environ.get("LOCALAPPDATA") or str(Path.home() / "AppData" / "Local")
        return Path(base) / "EXEX"
    if platform == "macos":
        return Path.home() / "Library" / "Application Support" / "EXEX"
    base = os.environ.get("XDG_CONFIG_HOME") or str(Path.home() / ".config")
    return Path(base) / "exex"


def get_config_path() -> Path:
    """Return the full path of the configuration file."""
    return get_config_dir() / CONFIG_FILENAME


def critical_paths() -> list[str]:
    """Paths whose absence from the deny list is worth a warning."""
    platform = _platform()
    if platform == "windows":
        return ["C:/Windows/", "C:/Program Files/"]
    if platform == "macos":
        return ["/System/", "/Library/"]
    return ["/etc/", "/usr/bin/", "/root/"]


def get_default_config() -> Config:
    """
    Build the default configuration for this platform.

    System locations are denied. Temporary directories and the usual
    per-user working folders of the current user are allowed back.
    """
    home = Path.home().as_posix().rstrip("/")
    platform = _platform()

    if platform == "windows":
        disallowed = [
            "C:/Windows/",
            "C:/Program Files/",
            "C:/Program Files (x86)/",
            "C:/Windows/System32/",
            f"{home}/AppData/Roaming/",
            "C:/ProgramData/",
            "C:/System Volume Information/",
            "C:/$Recycle.Bin/",
        ]
        allowed = [
            "C:/Windows/Temp/",
            f"{home}/AppData/Local/EXEX/",
            f"{home}/Projects/",
            "C:/temp/",
            "C:/tmp/",
        ]
    elif platform == "macos":
        disallowed = [
            "/System/",
            "/Library/",
            "/Applications/",
            "/usr/",
            "/private/",
            "/etc/",
            "/boot/",
            "/sys/",
            "/proc/",
            "/dev/",
            "/root/",
            "/bin/",
            "/sbin/",
            "/var/log/",
        ]
        # /tmp and /var/tmp are symlinks into /private on macOS; the rule
        # store canonicalizes them so these still override the /private/ deny.
        allowed = [
            "/tmp/",
            "/var/tmp/",
            f"{home}/Projects/",
            f"{home}/Documents/",
            f"{home}/Downloads/",
            f"{home}/Desktop/",
        ]
    else:
        disallowed = [
            "/etc/",
            "/boot/",
            "/sys/",
            "/proc/",
            "/dev/",
            "/root/",
            "/usr/bin/",
            "/usr/sbin/",
            "/sbin/",
            "/bin/",
            "/var/log/",
            "/lib/",
            "/lib64/",
        ]
        allowed = [
            "/tmp/",
            "/var/tmp/",
            f"{home}/Projects/",
            f"{home}/Documents/",
            f"{home}/Downloads/",
            f"{home}/Desktop/",
        ]

    return Config(
        security=SecurityConfig(
            allowed_paths=allowed,
            disallowed_paths=disallowed,
        ),
    )


def validate_config(config: Config, config_path: str | None = None) -> None:
    """
    Check a configuration for values the schema alone cannot catch.

    Raises:
        ConfigValidationError: If the configuration is unusable
    """
    security = config.security

    if not config.version.strip():
        raise ConfigValidationError(
            message="Configuration must have a version field",
            field_name="version",
            config_path=config_path,
        )

    if not security.disallowed_paths:
        raise ConfigValidationError(
            message="Configuration must have at least one disallowed path",
            field_name="security.disallowed_paths",
            config_path=config_path,
        )

    for field_name in (
        "disallowed_paths",
        "allowed_paths",
        "command_whitelist",
        "command_blacklist",
    ):
        for entry in getattr(security, field_name) or []:
            if not entry.strip():
                raise ConfigValidationError(
                    message=f"Entries of {field_name} cannot be empty",
                    field_name=f"security.{field_name}",
                    config_path=config_path,
                )

    if security.max_file_size_mb <= 0:
        raise ConfigValidationError(
            message="max_file_size_mb must be positive",
            field_name="security.max_file_size_mb",
            suggestion="Set security.max_file_size_mb to at least 1",
            config_path=config_path,
        )

    for critical in critical_paths():
        if not any(critical in p for p in security.disallowed_paths):
            logger.warning("Critical path %s is not in disallowed paths", critical)

    logger.info("Configuration validation successful:")
    logger.info("  Version: %s", config.version)
    logger.info("  Disallowed paths: %d", len(security.disallowed_paths))
    logger.info("  Allowed paths: %d", len(security.allowed_paths))


def read_config(path: Path) -> Config:
    """
    Read and validate a configuration file.

    Raises:
        ConfigParseError: If the file cannot be read or decoded
        ConfigValidationError: If the content does not describe a usable config
    """
    try:
        config = load_config_file(path)
    except (OSError, UnicodeDecodeError, json.JSONDecodeError, yaml.YAMLError) as e:
        raise ConfigParseError(underlying_error=str(e), config_path=str(path)) from e
    except ValidationError as e:
        raise ConfigValidationError(
            message=f"Configuration does not match the schema: {e.error_count()} error(s)",
            field_name=", ".join(".".join(str(p) for p in err["loc"]) for err in e.errors()),
            config_path=str(path),
        ) from e

    validate_config(config, config_path=str(path))
    return config


def write_config(config: Config, path: Path) -> None:
    """Write a configuration as pretty-printed JSON, creating parent dirs."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(config.model_dump_json(indent=2) + "\n", encoding="utf-8")


def load_config(path: Path | str | None = None) -> Config:
    """
    Load the daemon configuration. Never raises.

    Args:
        path: Configuration file (default: the per-OS location)

    Returns:
        The loaded configuration, or the defaults if it is missing or invalid
    """
    config_path = Path(path) if path is not None else get_config_path()
    logger.info("Config file location: %s", config_path)

    if not config_path.exists():
        logger.info("Config file doesn't exist, creating with defaults")
        default_config = get_default_config()
        try:
            write_config(default_config, config_path)
        except OSError as e:
            logger.error("Failed to write new config file: %s", e)
            logger.warning("Continuing with default configuration in memory")
        else:
            logger.info("Created new config file: %s", config_path)
        return default_config

    try:
        config = read_config(config_path)
    except (ConfigParseError, ConfigValidationError) as e:
        logger.error("Existing configuration is invalid: %s", e.message)
        logger.warning(
            "Using default configuration. Delete %s to recreate it with defaults.",
            config_path,
        )
        return get_default_config()

    logger.info("Successfully loaded and validated existing configuration")
    return config
