"""
EXEX - Local execution daemon guarded by an access-control policy engine.

EXEX exposes command execution, filesystem operations and application
launch over HTTP to callers on the same machine. Every request passes
through the policy engine before the daemon touches the operating system.

It provides:
- Allow/deny path rules with symlink-aware canonicalization
- Command whitelist/blacklist with a destructive-command heuristic
- A FastAPI server, a Typer CLI and an httpx client
- An SQLite audit trail of every dispatched request

Example usage:
    $ exex serve
    $ exex check-path /etc/passwd
    $ exex check-command "git status"
"""

import logging

__version__ = "0.1.0"
__author__ = "EXEX Contributors"

__all__ = [
    "__version__",
    "__author__",
]

logging.getLogger(__name__).addHandler(logging.NullHandler())
