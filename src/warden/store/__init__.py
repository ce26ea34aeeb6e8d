"""
Storage module for Warden.

This module provides SQLite-based persistence for the audit trail. The
AuditLogger keeps entries in memory; an AuditDB attached as its sink
makes them durable, and the CLI reads them back for queries and export.

Design principles:
    - Append-only: Entries are never modified
    - Self-contained: Single .db file contains the whole trail
"""

from warden.store.db import AuditDB

__all__ = [
    "AuditDB",
]
