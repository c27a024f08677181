# prehnite

This package provides two parts of an MVCC storage engine. It is plain Python
with no third-party dependencies.

- **Columnar batches** (`prehnite.batch`). A `ColumnBatch` holds rows in
  struct-of-arrays layout. Each `Column` is a typed value list with a packed
  `NullMask` beside it. A batch may carry a selection vector, so a filter can
  drop or reorder rows without copying any column data.
- **The commit log** (`prehnite.clog`, `prehnite.clogformat`,
  `prehnite.commitqueue`). A `Clog` is an append-only file of transaction
  outcomes. It sits next to a database file as `<db>-clog`. Every append is
  synced to disk before it returns. Concurrent appenders share one
  write-and-sync per batch through a `CommitQueue`. `truncate_below` shrinks
  the file.

## Installation

```
pip install .
```

To run the tests:

```
pip install .[test]
pytest
```

## Columnar batches

```python
from prehnite.batch import ColumnBatch, ColumnType

batch = ColumnBatch.with_types([ColumnType.INT, ColumnType.TEXT])
batch.push_row([1, "a"])
batch.push_row([None, "b"])          # None is NULL and fits any column
assert batch.row_at(1) == [None, "b"]
assert list(batch.rows()) == [[1, "a"], [None, "b"]]

batch.selection = [1, 0]             # logical row k -> physical row selection[k]
batch.n_rows = 2
assert batch.physical_for(0) == 1
```

Values are plain Python objects: `None`, `int`, `float`, `str` and `bool`.

Type rules for `push_row`:

- An `int` pushed into a `REAL` column is widened to a `float`.
- A value of any other wrong type raises `ColumnTypeError`, and the batch is
  left unchanged.
- A row of the wrong length raises `ValueError`.
- Pushing onto a batch that has a selection vector raises `ValueError`.

`NullMask` packs one validity bit per row into 64-bit words. It offers
`with_capacity`, `all_valid`, `push`, `is_valid`, `len()` and iteration.

## The commit log

```python
from prehnite.clog import Clog
from prehnite.clogformat import Status

with Clog.open("data.db") as clog:       # creates data.db-clog
    clog.record_commit(1)
    clog.record_rollback(2)
    assert clog.status(1) is Status.COMMITTED
    assert clog.status(3) is None        # not recorded (yet)

    # No record and below the watermark counts as rolled back.
    assert clog.status_or_rolled_back(3, 6) is Status.ROLLED_BACK

    clog.truncate_below(2)               # drop records with tx_id < 2
    assert clog.min_tx_id() == 2
    assert clog.status(1) is Status.COMMITTED   # below the floor: committed by convention
```

Behaviour on open and close:

- `Clog.open` reads every record into memory.
- Closing the log, explicitly or by leaving the `with` block, makes any later
  append raise `ValueError`.

`truncate_below` rules:

- A floor of 0, or a floor at or below the current one, does nothing.
- Call `truncate_below(floor)` only when no live snapshot can ask about a
  transaction id below `floor`.
- Call it only after every rolled-back row below `floor` has been physically
  reclaimed. After truncation, such ids read as committed.

### File format

`prehnite.clogformat` holds the format helpers: `write_header`,
`read_header`, `encode_records`, `decode_records`, `clog_path` and
`clog_tmp_path`.

- **Header.** The file begins with 16 bytes: the magic `PREHCLG1` followed by
  the little-endian `min_tx_id`.
- **Records.** After the header come 9-byte records. Each is an 8-byte
  little-endian transaction id and then a status byte (`1` committed, `2`
  rolled back).
- **Errors.** A file that is too short for the header raises `CorruptionError`.
  So does a file with the wrong magic, or one with an unknown status byte.
- **Truncation.** It writes the new image to `<clog>.tmp`, syncs it and
  renames it over the log. If a `.tmp` file is left behind, the next
  `Clog.open` deletes it.

### Group commit

`CommitQueue(write_batch, on_durable)` is the group-commit mechanism behind
`Clog`, and it can be used on its own.

- `append(record)` enqueues a record and blocks until a leader has passed it
  to `write_batch`.
- `on_durable` is then called with the batch. A failed write raises in the
  leader, and its batch is not published.
- `exclusive()` is a context manager. It holds the flush slot so that no batch
  is written while inside it.

## What this package does not do

This is not a database. There is no SQL parser, planner or executor, and no
table or index storage. There is no network server or client, and no command
to run. The commit log only records transaction outcomes. The batches only
hold rows in memory.