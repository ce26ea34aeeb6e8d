"""
Audit module for Warden.

This module records every permission decision that must be audited and
answers questions about them.

Components:
    - AuditLogger: Append-only in-memory log with query, stats, timeline, export
    - AuditDispatcher: Background, retrying forwarder to a durable sink
    - AuditSink: Protocol implemented by durable stores (e.g. AuditDB)

Audit persistence is best effort: a failed or slow sink is reported to
operators but never changes or delays a permission decision.
"""

from warden.audit.dispatcher import AuditDispatcher, AuditSink
from warden.audit.logger import AuditLogger

__all__ = [
    "AuditDispatcher",
    "AuditLogger",
    "AuditSink",
]
