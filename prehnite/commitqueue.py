"""Group commit for append-only logs.

Writers hand records to a :class:`CommitQueue` and block until the record is
durable. Each append is a cheap enqueue under a short-held lock. The first
writer to find nobody flushing becomes the *leader*. It drains every pending
record, releases the lock, and writes and syncs the whole batch in one call.
Writers arriving while the leader does I/O park on a condition. When they
wake, each checks whether the leader's batch covered its record.

Records become visible through ``on_durable`` only after ``write_batch`` has
returned, so a reader can never observe a record that is not yet on disk.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Any, Callable, Iterator, List, Sequence

WriteBatch = Callable[[Sequence[Any]], None]
OnDurable = Callable[[Sequence[Any]], None]


class CommitQueue:
    """Leader/follower group commit over a batch writer.

    ``write_batch(records)`` must make ``records`` durable (write and sync)
    or raise. ``on_durable(records)`` publishes a batch once it is durable.
    It is called while the queue's internal lock is held and must not call
    back into the queue.
    """

    def __init__(self, write_batch: WriteBatch, on_durable: OnDurable) -> None:
        self._write_batch = write_batch
        self._on_durable = on_durable
        self._lock = threading.Lock()
        self._flush_done = threading.Condition(self._lock)
        self._pending: List[Any] = []
        self._next_lsn = 0
        self._durable_lsn = 0
        self._flushing = False

    def append(self, record: Any) -> None:
        """Enqueue ``record`` and return once it is durable.

        An exception from ``write_batch`` is raised to the leader that ran
        it. Its batch is not published.
        """
        with self._lock:
            self._next_lsn += 1
            lsn = self._next_lsn
            self._pending.append(record)
        self._flush_until(lsn)

    def _flush_until(self, target_lsn: int) -> None:
        with self._lock:
            while True:
                if self._durable_lsn >= target_lsn:
                    return
                if self._flushing:
                    self._flush_done.wait()
                    continue
                # Become the leader for everything queued so far.
                self._flushing = True
                batch, self._pending = self._pending, []
                snapshot_lsn = self._next_lsn
                break

        error: BaseException | None = None
        try:
            if batch:
                self._write_batch(batch)
        except BaseException as exc:  # noqa: BLE001 - re-raised below
            error = exc

        with self._lock:
            if error is None:
                if batch:
                    self._on_durable(batch)
                self._durable_lsn = snapshot_lsn
            self._flushing = False
            self._flush_done.notify_all()

        if error is not None:
            raise error

    @contextmanager
    def exclusive(self) -> Iterator[None]:
        """Hold the flush slot: no batch is written while inside.

        Waits for any in-flight flush to finish first. Appends made meanwhile
        are queued and flushed by the next leader once the slot is released.
        """
        with self._lock:
            while self._flushing:
                self._flush_done.wait()
            self._flushing = True
        try:
            yield
        finally:
            with self._lock:
                self._flushing = False
                self._flush_done.notify_all()