"""
Append-only audit log for Warden.

Every denied check, and every allowed check when audit_all is on, ends
up here as an immutable AuditEntry. The log answers filtered queries,
aggregates counts, groups entries into time buckets and exports them.

Ordering:
    - query() and its helpers return most-recent-first; entries with the
      same timestamp come back latest-written first
    - export() writes oldest-first so a dump reads chronologically

Entries are never changed or removed by the engine itself. purge() is an
administrative operation for retention and is never called on the check
path.
"""

import json
import logging
import math
import threading
import uuid
from collections import Counter
from datetime import UTC, datetime, timedelta
from typing import Any, Iterable

from warden.audit.dispatcher import AuditDispatcher, AuditSink
from warden.errors import ConfigurationError
from warden.schema import (
    ActorType,
    AuditConfig,
    AuditEntry,
    AuditQuery,
    AuditResult,
    AuditStats,
    ExportFormat,
    TimelineBucket,
)

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 100

# Upper bound on buckets a single timeline may produce
MAX_TIMELINE_BUCKETS = 10_000


def generate_entry_id() -> str:
    """Generate a unique audit entry id."""
    return uuid.uuid4().hex


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC so they compare with stored timestamps."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


class AuditLogger:
    """
    In-memory append-only audit log with optional durable forwarding.

    Usage:
        audit = AuditLogger()
        audit.log("u1", ActorType.USER, "read", "doc:42", AuditResult.SUCCESS)
        audit.query(actor_id="u1")
        audit.get_timeline(bucket_minutes=15)
        audit.export()

    With a sink, each entry is also handed to a background dispatcher;
    sink failures are reported through logging and never reach the caller.

    Attributes:
        config: Audit settings
        dispatcher: Background writer, present when a sink is configured
    """

    def __init__(
        self,
        sink: AuditSink | None = None,
        config: AuditConfig | None = None,
    ) -> None:
        self.config = config or AuditConfig()
        self._entries: list[AuditEntry] = []
        self._lock = threading.RLock()
        self.dispatcher: AuditDispatcher | None = None
        if sink is not None and self.config.enabled_sink:
            self.dispatcher = AuditDispatcher(sink, self.config)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    # =========================================================================
    # Writing
    # =========================================================================

    def log(
        self,
        actor_id: str,
        actor_type: ActorType | str,
        action: str,
        resource: str,
        result: AuditResult | str,
        details: dict[str, Any] | None = None,
        tenant_id: str | None = None,
    ) -> AuditEntry:
        """
        Append an entry to the log.

        Args:
            actor_id: Acting entity
            actor_type: Kind of acting entity
            action: Action attempted
            resource: Resource involved
            result: success, denied or error
            details: Extra details (reason, matched policy, context)
            tenant_id: Tenant the entry belongs to

        Returns:
            The stored AuditEntry
        """
        entry = AuditEntry(
            id=generate_entry_id(),
            tenant_id=tenant_id,
            actor_id=actor_id,
            actor_type=ActorType(actor_type),
            action=getattr(action, "value", action),
            resource=resource,
            result=AuditResult(result),
            details=dict(details or {}),
            timestamp=datetime.now(UTC),
        )

        with self._lock:
            self._entries.append(entry)

        if self.dispatcher is not None:
            self.dispatcher.submit(entry)

        return entry

    def restore(self, entries: Iterable[AuditEntry]) -> int:
        """
        Load previously persisted entries without forwarding them again.

        Returns:
            Number of entries loaded
        """
        loaded = list(entries)
        with self._lock:
            self._entries.extend(loaded)
        logger.debug("Restored %d audit entries", len(loaded))
        return len(loaded)

    def purge(self, before: datetime) -> int:
        """
        Remove entries older than a cutoff. Administrative use only.

        Args:
            before: Entries with an earlier timestamp are removed

        Returns:
            Number of entries removed
        """
        cutoff = as_utc(before)
        with self._lock:
            kept = [entry for entry in self._entries if entry.timestamp >= cutoff]
            removed = len(self._entries) - len(kept)
            self._entries = kept
        logger.info("Purged %d audit entries older than %s", removed, cutoff.isoformat())
        return removed

    def flush(self, timeout: float | None = None) -> bool:
        """Wait for pending sink writes. True if nothing is left pending."""
        if self.dispatcher is None:
            return True
        return self.dispatcher.flush(timeout)

    def close(self) -> None:
        """Drain and stop the dispatcher, if any."""
        if self.dispatcher is not None:
            self.dispatcher.close()

    # =========================================================================
    # Queries
    # =========================================================================

    def query(self, query: AuditQuery | None = None, **filters: Any) -> list[AuditEntry]:
        """
        Return entries matching a filter, most recent first.

        Args:
            query: An AuditQuery; keyword filters override its fields
            **filters: AuditQuery fields (tenant_id, actor_id, result, limit, ...)

        Returns:
            Matching entries after offset and limit are applied
        """
        if query is None:
            query = AuditQuery(**filters)
        elif filters:
            query = AuditQuery.model_validate({**query.model_dump(), **filters})

        matched = self._select(query)
        start = query.offset
        end = None if query.limit is None else start + query.limit
        return matched[start:end]

    def get_recent(self, limit: int = DEFAULT_LIMIT) -> list[AuditEntry]:
        """Most recent entries."""
        return self.query(limit=limit)

    def get_by_actor(self, actor_id: str, limit: int = DEFAULT_LIMIT) -> list[AuditEntry]:
        """Most recent entries for one actor."""
        return self.query(actor_id=actor_id, limit=limit)

    def get_denied(self, limit: int = DEFAULT_LIMIT) -> list[AuditEntry]:
        """Most recent denied entries."""
        return self.query(result=AuditResult.DENIED, limit=limit)

    def _snapshot(self) -> list[AuditEntry]:
        with self._lock:
            return list(self._entries)

    def _select(self, query: AuditQuery) -> list[AuditEntry]:
        """Filter and order entries, ignoring offset and limit."""
        from_date = as_utc(query.from_date) if query.from_date else None
        to_date = as_utc(query.to_date) if query.to_date else None

        selected = []
        for entry in reversed(self._snapshot()):
            if query.tenant_id is not None and entry.tenant_id != query.tenant_id:
                continue
            if query.actor_id is not None and entry.actor_id != query.actor_id:
                continue
            if query.actor_type is not None and entry.actor_type != query.actor_type:
                continue
            if query.action is not None and entry.action != query.action:
                continue
            if query.resource is not None and entry.resource != query.resource:
                continue
            if query.result is not None and entry.result != query.result:
                continue
            if from_date is not None and entry.timestamp < from_date:
                continue
            if to_date is not None and entry.timestamp > to_date:
                continue
            selected.append(entry)

        # Stable sort keeps latest-written first among equal timestamps
        return sorted(selected, key=lambda e: e.timestamp, reverse=True)

    # =========================================================================
    # Aggregation
    # =========================================================================

    def get_stats(self, tenant_id: str | None = None) -> AuditStats:
        """
        Aggregate counts over the log.

        Args:
            tenant_id: Restrict to one tenant (None counts everything)

        Returns:
            AuditStats with per-result, per-actor and per-action counts
        """
        entries = self._snapshot()
        if tenant_id is not None:
            entries = [e for e in entries if e.tenant_id == tenant_id]

        by_result = Counter(e.result.value for e in entries)
        total = len(entries)

        return AuditStats(
            total=total,
            by_result=dict(by_result),
            by_actor_type=dict(Counter(e.actor_type.value for e in entries)),
            by_action=dict(Counter(e.action for e in entries)),
            by_actor=dict(Counter(e.actor_id for e in entries)),
            by_tenant=dict(Counter(e.tenant_id for e in entries if e.tenant_id is not None)),
            denial_rate=by_result.get(AuditResult.DENIED.value, 0) / total if total else 0.0,
        )

    def get_timeline(
        self,
        *,
        tenant_id: str | None = None,
        actor_id: str | None = None,
        bucket_minutes: int = 60,
        from_date: datetime | None = None,
        to_date: datetime | None = None,
    ) -> list[TimelineBucket]:
        """
        Count entries per fixed-size time window.

        Buckets are aligned to the Unix epoch, returned oldest first, and
        zero-filled between the first and last occupied bucket.

        Args:
            tenant_id: Restrict to one tenant
            actor_id: Restrict to one actor
            bucket_minutes: Window size in minutes (>= 1)
            from_date: Inclusive lower bound
            to_date: Inclusive upper bound

        Returns:
            Ordered list of TimelineBucket

        Raises:
            ConfigurationError: If bucket_minutes is less than 1, or the
                range would need more than MAX_TIMELINE_BUCKETS buckets
        """
        if bucket_minutes < 1:
            raise ConfigurationError(
                message=f"bucket_minutes must be at least 1, got {bucket_minutes}",
                field_name="bucket_minutes",
                value=bucket_minutes,
            )

        entries = self._select(
            AuditQuery(
                tenant_id=tenant_id,
                actor_id=actor_id,
                from_date=from_date,
                to_date=to_date,
            )
        )
        if not entries:
            return []

        size = bucket_minutes * 60
        counts: dict[int, Counter[str]] = {}
        for entry in entries:
            start = math.floor(entry.timestamp.timestamp() / size) * size
            counts.setdefault(start, Counter())[entry.result.value] += 1

        first, last = min(counts), max(counts)
        needed = (last - first) // size + 1
        if needed > MAX_TIMELINE_BUCKETS:
            raise ConfigurationError(
                message=(
                    f"Timeline would span {needed} buckets of {bucket_minutes} minute(s), "
                    f"more than {MAX_TIMELINE_BUCKETS}"
                ),
                field_name="bucket_minutes",
                value=bucket_minutes,
                suggestion="Use a larger bucket_minutes or narrow from_date/to_date",
            )

        buckets = []
        for start in range(first, last + size, size):
            counter = counts.get(start, Counter())
            begin = datetime.fromtimestamp(start, UTC)
            buckets.append(
                TimelineBucket(
                    start=begin,
                    end=begin + timedelta(seconds=size),
                    total=sum(counter.values()),
                    success=counter[AuditResult.SUCCESS.value],
                    denied=counter[AuditResult.DENIED.value],
                    error=counter[AuditResult.ERROR.value],
                )
            )
        return buckets

    # =========================================================================
    # Export
    # =========================================================================

    def export(
        self,
        query: AuditQuery | None = None,
        fmt: ExportFormat | str = ExportFormat.JSONL,
    ) -> str:
        """
        Serialize matching entries, oldest first.

        Args:
            query: Optional filter (offset and limit apply to the
                most-recent-first ordering, as in query())
            fmt: "jsonl" (one JSON object per line) or "json" (array)

        Returns:
            The serialized entries
        """
        entries = list(reversed(self.query(query)))
        fmt = ExportFormat(fmt)

        if fmt == ExportFormat.JSON:
            return json.dumps(
                [entry.model_dump(mode="json") for entry in entries],
                indent=2,
            )

        if not entries:
            return ""
        return "\n".join(entry.model_dump_json() for entry in entries) + "\n"
