"""
Storage module for EXEX.

SQLite-based audit trail of every request the daemon handled, including
the ones the policy engine denied.

Design principles:
    - Append-only: Historical data is never modified
    - Integrity: Input hashes enable verification
    - Self-contained: Single .db file
"""

from exex.store.db import AuditDB, compute_hash, generate_id, redact_args

__all__ = [
    "AuditDB",
    "compute_hash",
    "generate_id",
    "redact_args",
]
