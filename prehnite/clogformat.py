"""On-disk format of the commit log.

A commit-log file starts with a 16-byte header: the 8-byte magic
``PREHCLG1`` followed by the little-endian ``min_tx_id`` (the truncation
floor). After the header come fixed-size 9-byte records, each an 8-byte
little-endian transaction ID and a 1-byte status tag.
"""

from __future__ import annotations

import enum
import os
import struct
from pathlib import Path
from typing import BinaryIO, Iterable, Iterator, Tuple, Union

CLOG_MAGIC = b"PREHCLG1"
"""The magic bytes at the start of every commit-log file."""

HEADER_SIZE = 16
"""Size of the header: magic plus ``min_tx_id``."""

RECORD_SIZE = 9
"""Size of one record: 8 bytes of TX ID and 1 status byte."""

_HEADER = struct.Struct("<8sQ")
_RECORD = struct.Struct("<QB")

PathLike = Union[str, "os.PathLike[str]"]


class Status(enum.Enum):
    """The outcome a transaction resolved to; the value is its on-disk tag."""

    COMMITTED = 1
    ROLLED_BACK = 2


class CorruptionError(Exception):
    """The commit-log file does not hold what the format requires."""


def clog_path(db_path: PathLike) -> Path:
    """The path of the commit log beside the database file."""
    return Path(os.fspath(db_path) + "-clog")


def clog_tmp_path(clog: PathLike) -> Path:
    """The scratch file a truncation writes before renaming it into place."""
    return Path(os.fspath(clog) + ".tmp")


def write_header(file: BinaryIO, min_tx_id: int) -> None:
    """Write the header at offset 0. Syncing is left to the caller."""
    try:
        header = _HEADER.pack(CLOG_MAGIC, min_tx_id)
    except struct.error as exc:
        raise ValueError(f"min_tx_id {min_tx_id} does not fit in 64 bits") from exc
    file.seek(0)
    file.write(header)


def read_header(file: BinaryIO) -> int:
    """Read and check the header at offset 0; return its ``min_tx_id``."""
    file.seek(0)
    header = file.read(HEADER_SIZE)
    if len(header) < HEADER_SIZE:
        raise CorruptionError(
            f"clog file is too short to hold the header "
            f"({len(header)} of {HEADER_SIZE} bytes); "
            "clog files without a header are not supported"
        )
    magic, min_tx_id = _HEADER.unpack(header)
    if magic != CLOG_MAGIC:
        raise CorruptionError(
            "clog file lacks the expected magic; "
            "clog files without a header are not supported"
        )
    return min_tx_id


def encode_records(records: Iterable[Tuple[int, Status]]) -> bytes:
    """Encode ``(tx_id, status)`` pairs into one contiguous buffer."""
    parts = []
    for tx_id, status in records:
        try:
            parts.append(_RECORD.pack(tx_id, Status(status).value))
        except struct.error as exc:
            raise ValueError(f"tx_id {tx_id} does not fit in 64 bits") from exc
    return b"".join(parts)


def decode_records(data: bytes) -> Iterator[Tuple[int, Status]]:
    """Yield ``(tx_id, status)`` for every whole record in ``data``.

    A trailing partial record is ignored, as a torn final append would be.
    An unknown status tag raises :class:`CorruptionError`.
    """
    whole = len(data) - len(data) % RECORD_SIZE
    for tx_id, tag in _RECORD.iter_unpack(memoryview(data)[:whole]):
        try:
            status = Status(tag)
        except ValueError:
            raise CorruptionError(f"unknown clog status tag {tag}") from None
        yield tx_id, status