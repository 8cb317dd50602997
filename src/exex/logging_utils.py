"""Logging setup for the EXEX daemon and CLI."""

import logging
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler

DEFAULT_AUDIT_FILE = "exex-audit.log"

LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "warn": logging.WARNING,
    "error": logging.ERROR,
}


def parse_level(level: str | int) -> int:
    """Map a level name such as "info" to its logging constant."""
    if isinstance(level, int):
        return level
    try:
        return LEVELS[level.strip().lower()]
    except KeyError:
        msg = f"Unknown log level: {level!r} (expected one of {', '.join(LEVELS)})"
        raise ValueError(msg) from None


def configure_logging(
    level: str | int = "info",
    audit_file: str | None = DEFAULT_AUDIT_FILE,
    console: bool = True,
) -> str | None:
    """
    Configure the "exex" logger hierarchy.

    Records go to a Rich console handler (stderr) and to the audit file.
    If the audit file cannot be opened, a file of the same name in the
    current directory is used instead.

    Calling this more than once only updates the level.

    Returns the path of the audit file actually in use.
    """
    logger = logging.getLogger("exex")
    logger.setLevel(parse_level(level))

    if getattr(logger, "_exex_configured", False):
        return getattr(logger, "_exex_audit_file", None)

    installed: list[logging.Handler] = []
    chosen_path: str | None = None
    if audit_file:
        fmt = logging.Formatter(
            fmt="%(asctime)s %(levelname)s %(name)s: %(message)s",
            datefmt="%Y-%m-%dT%H:%M:%S%z",
        )
        try:
            Path(audit_file).parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(audit_file, encoding="utf-8")
            chosen_path = audit_file
        except OSError:
            fallback = str(Path.cwd() / Path(audit_file).name)
            file_handler = logging.FileHandler(fallback, encoding="utf-8")
            chosen_path = fallback
        file_handler.setFormatter(fmt)
        logger.addHandler(file_handler)
        installed.append(file_handler)

    if console:
        rich_handler = RichHandler(
            console=Console(stderr=True),
            show_path=False,
            rich_tracebacks=True,
        )
        rich_handler.setFormatter(logging.Formatter("%(message)s"))
        logger.addHandler(rich_handler)
        installed.append(rich_handler)

    setattr(logger, "_exex_configured", True)
    setattr(logger, "_exex_audit_file", chosen_path)
    setattr(logger, "_exex_handlers", installed)

    logger.info("Logging initialized (requested=%s, actual=%s)", audit_file, chosen_path)
    return chosen_path


def reset_logging() -> None:
    """Remove the handlers installed by configure_logging and reset the level."""
    logger = logging.getLogger("exex")
    for handler in getattr(logger, "_exex_handlers", []):
        logger.removeHandler(handler)
        handler.close()
    logger.setLevel(logging.NOTSET)
    setattr(logger, "_exex_configured", False)
    setattr(logger, "_exex_audit_file", None)
    setattr(logger, "_exex_handlers", [])
