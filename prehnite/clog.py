"""The commit log: a per-database, append-only file of transaction outcomes.

Every transaction ID resolves to committed or rolled back, and the commit
log is the durable record of which. The file lives beside the database as
``<db>-clog``. It is read whole into memory on open, so lookups are
dictionary hits.

Appends go through a :class:`~prehnite.commitqueue.CommitQueue`. Concurrent
writers share one write-and-sync per batch, and a record becomes visible only
after its batch is on disk.

:meth:`Clog.truncate_below` rewrites the file without the records under a
floor and raises the header's ``min_tx_id`` to it. Afterwards any
``tx_id < min_tx_id`` reads as committed. The caller must make sure every
rolled-back row below the floor has been reclaimed first. The rewrite goes
through a ``.tmp`` file that is renamed over the log. A ``.tmp`` left behind
by a crash is deleted on the next open.
"""

from __future__ import annotations

import os
import threading
from pathlib import Path
from typing import BinaryIO, Dict, Optional, Sequence, Tuple

from prehnite.clogformat import (
    HEADER_SIZE,
    PathLike,
    Status,
    clog_path,
    clog_tmp_path,
    decode_records,
    encode_records,
    read_header,
    write_header,
)
from prehnite.commitqueue import CommitQueue

Record = Tuple[int, Status]


def _sync(file: BinaryIO) -> None:
    file.flush()
    os.fsync(file.fileno())


def _open_existing(path: Path) -> BinaryIO:
    file = open(path, "r+b")
    file.seek(0, os.SEEK_END)
    return file


class Clog:
    """A commit-log file and its in-memory mirror.

    One instance is meant to be shared by every thread that works on the
    same database file.
    """

    def __init__(self, path: Path, file: BinaryIO, records: Dict[int, Status], min_tx_id: int) -> None:
        self._path = path
        self._file: Optional[BinaryIO] = file
        self._file_lock = threading.Lock()
        self._state_lock = threading.Lock()
        self._map = records
        self._min_tx_id = min_tx_id
        self._queue = CommitQueue(self._write_batch, self._publish)

    @classmethod
    def open(cls, db_path: PathLike) -> "Clog":
        """Open or create the commit log for the database at ``db_path``."""
        path = clog_path(db_path)
        try:
            os.remove(clog_tmp_path(path))
        except FileNotFoundError:
            pass

        fd = os.open(path, os.O_RDWR | os.O_CREAT | getattr(os, "O_BINARY", 0), 0o644)
        file = os.fdopen(fd, "r+b")
        try:
            if os.fstat(file.fileno()).st_size == 0:
                write_header(file, 0)
                _sync(file)
                min_tx_id = 0
            else:
                min_tx_id = read_header(file)
            file.seek(HEADER_SIZE)
            records = dict(decode_records(file.read()))
            file.seek(0, os.SEEK_END)
        except BaseException:
            file.close()
            raise
        return cls(path, file, records, min_tx_id)

    # -- durability plumbing -------------------------------------------------

    def _write_batch(self, batch: Sequence[Record]) -> None:
        data = encode_records(batch)
        with self._file_lock:
            if self._file is None:
                raise ValueError("the commit log is closed")
            self._file.write(data)
            _sync(self._file)

    def _publish(self, batch: Sequence[Record]) -> None:
        with self._state_lock:
            self._map.update(batch)

    # -- lookups ---------------------------------------------------------------

    def status(self, tx_id: int) -> Optional[Status]:
        """The recorded outcome of ``tx_id``, or ``None`` if it has none yet.

        IDs below the truncation floor answer :attr:`Status.COMMITTED`.
        """
        with self._state_lock:
            if tx_id < self._min_tx_id:
                return Status.COMMITTED
            return self._map.get(tx_id)

    def status_or_rolled_back(self, tx_id: int, oldest_active: int) -> Optional[Status]:
        """Like :meth:`status`, but an unrecorded ID below ``oldest_active``
        counts as rolled back (a writer that crashed mid-flight)."""
        with self._state_lock:
            if tx_id < self._min_tx_id:
                return Status.COMMITTED
            status = self._map.get(tx_id)
        if status is None and tx_id < oldest_active:
            return Status.ROLLED_BACK
        return status

    def is_committed(self, tx_id: int) -> bool:
        """Whether ``tx_id`` is recorded as committed."""
        return self.status(tx_id) is Status.COMMITTED

    def is_rolled_back(self, tx_id: int) -> bool:
        """Whether ``tx_id`` is recorded as rolled back."""
        return self.status(tx_id) is Status.ROLLED_BACK

    def __len__(self) -> int:
        with self._state_lock:
            return len(self._map)

    def min_tx_id(self) -> int:
        """The current truncation floor."""
        with self._state_lock:
            return self._min_tx_id

    # -- appends ---------------------------------------------------------------

    def record_commit(self, tx_id: int) -> None:
        """Record ``tx_id`` as committed; durable when this returns."""
        self._queue.append((tx_id, Status.COMMITTED))

    def record_rollback(self, tx_id: int) -> None:
        """Record ``tx_id`` as rolled back; durable when this returns."""
        self._queue.append((tx_id, Status.ROLLED_BACK))

    # -- truncation ------------------------------------------------------------

    def truncate_below(self, floor: int) -> None:
        """Drop every record with ``tx_id < floor`` from file and memory.

        A floor at or below the current one does nothing.
        """
        if floor == 0:
            return
        with self._queue.exclusive():
            with self._state_lock:
                if floor <= self._min_tx_id:
                    return
                kept = [(tx_id, st) for tx_id, st in self._map.items() if tx_id >= floor]

            tmp_path = clog_tmp_path(self._path)
            try:
                with open(tmp_path, "w+b") as tmp:
                    write_header(tmp, floor)
                    tmp.write(encode_records(kept))
                    _sync(tmp)
            except BaseException:
                try:
                    os.remove(tmp_path)
                except OSError:
                    pass
                raise

            with self._file_lock:
                if self._file is not None:
                    self._file.close()
                    self._file = None
                try:
                    os.replace(tmp_path, self._path)
                    self._file = _open_existing(self._path)
                except BaseException:
                    # Keep the log usable whichever side of the rename failed.
                    try:
                        self._file = _open_existing(self._path)
                    except OSError:
                        pass
                    raise

            with self._state_lock:
                self._map = {tx_id: st for tx_id, st in self._map.items() if tx_id >= floor}
                self._min_tx_id = floor

    # -- lifetime --------------------------------------------------------------

    def close(self) -> None:
        """Close the file. Later appends raise :class:`ValueError`."""
        with self._queue.exclusive():
            with self._file_lock:
                if self._file is not None:
                    self._file.close()
                    self._file = None

    def __enter__(self) -> "Clog":
        return self

    def __exit__(self, *args) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"Clog({len(self)} records)"