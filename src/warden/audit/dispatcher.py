"""
Background forwarding of audit entries to a durable sink.

Permission checks must never wait on, or fail because of, audit
persistence. The dispatcher takes entries off the caller's thread and
writes them from a single worker thread, retrying failed writes before
giving up and reporting the failure to operators through logging.
"""

import logging
import queue
import threading
import time
from typing import Protocol, runtime_checkable

from warden.errors import AuditWriteError
from warden.schema import AuditConfig, AuditEntry

logger = logging.getLogger(__name__)

_STOP = object()


@runtime_checkable
class AuditSink(Protocol):
    """Anything that can durably store an audit entry."""

    def write(self, entry: AuditEntry) -> None:
        """Persist one entry. Raise on failure."""
        ...


class AuditDispatcher:
    """
    Writes audit entries to a sink from a background thread.

    Usage:
        dispatcher = AuditDispatcher(AuditDB("audit.db"), AuditConfig())
        dispatcher.submit(entry)   # returns immediately
        dispatcher.flush(timeout=5)
        dispatcher.close()

    Attributes:
        sink: Destination for entries
        config: Retry and queue settings
        written_count: Entries written successfully
        failed_count: Entries abandoned after all retries
        dropped_count: Entries dropped because the queue was full or closed
    """

    def __init__(self, sink: AuditSink, config: AuditConfig | None = None) -> None:
        self.sink = sink
        self.config = config or AuditConfig()
        self.written_count = 0
        self.failed_count = 0
        self.dropped_count = 0
        self._queue: queue.Queue[object] = queue.Queue(maxsize=self.config.queue_size)
        self._closed = False
        # Guards _closed, the enqueue and the counters
        self._state_lock = threading.Lock()
        self._thread = threading.Thread(
            target=self._run,
            name="warden-audit-dispatcher",
            daemon=True,
        )
        self._thread.start()

    @property
    def closed(self) -> bool:
        return self._closed

    def submit(self, entry: AuditEntry) -> bool:
        """
        Queue an entry for writing.

        Returns:
            True if queued, False if it was dropped
        """
        with self._state_lock:
            closed = self._closed
            if not closed:
                try:
                    self._queue.put_nowait(entry)
                    return True
                except queue.Full:
                    pass
            self.dropped_count += 1

        if closed:
            logger.warning("Audit dispatcher is closed; dropping entry %s", entry.id)
        else:
            logger.warning(
                "Audit queue full (%d pending); dropping entry %s",
                self.config.queue_size,
                entry.id,
            )
        return False

    def flush(self, timeout: float | None = None) -> bool:
        """
        Wait until every queued entry has been handled.

        Args:
            timeout: Maximum seconds to wait (None waits forever)

        Returns:
            True if the queue drained before the timeout
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        with self._queue.all_tasks_done:
            while self._queue.unfinished_tasks:
                if deadline is None:
                    self._queue.all_tasks_done.wait()
                    continue
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    return False
                self._queue.all_tasks_done.wait(remaining)
        return True

    def close(self, timeout: float | None = 5.0) -> None:
        """Drain pending entries and stop the worker thread."""
        with self._state_lock:
            if self._closed:
                return
            self._closed = True
        if not self.flush(timeout):
            logger.warning(
                "Audit dispatcher closed with %d entries still pending",
                self._queue.unfinished_tasks,
            )
        try:
            self._queue.put(_STOP, timeout=timeout)
        except queue.Full:
            return
        self._thread.join(timeout)

    def _run(self) -> None:
        while True:
            item = self._queue.get()
            try:
                if item is _STOP:
                    return
                self._write(item)  # type: ignore[arg-type]
            finally:
                self._queue.task_done()

    def _write(self, entry: AuditEntry) -> None:
        attempts = self.config.max_retries + 1
        last_error: Exception | None = None

        for attempt in range(1, attempts + 1):
            try:
                self.sink.write(entry)
                with self._state_lock:
                    self.written_count += 1
                return
            except Exception as e:
                last_error = e
                if attempt < attempts:
                    logger.debug(
                        "Audit write for %s failed (attempt %d/%d): %s",
                        entry.id,
                        attempt,
                        attempts,
                        e,
                    )
                    time.sleep(self.config.retry_delay_seconds * attempt)

        with self._state_lock:
            self.failed_count += 1
        error = AuditWriteError(
            entry_id=entry.id,
            underlying_error=str(last_error),
            attempts=attempts,
        )
        logger.error("%s", error, extra={"audit_error": error.to_dict()})
