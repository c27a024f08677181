"""Columnar batches: the unit a vectorised operator passes around.

A :class:`ColumnBatch` holds up to :data:`BATCH_SIZE` rows laid out column by
column. Each :class:`Column` is a typed value list plus a :class:`NullMask`
with one bit per row: ``1`` means the slot holds a real value, ``0`` means
``NULL``. A null slot holds the column type's zero value and is never read.

Values are plain Python objects: ``None`` for NULL, ``int``, ``float``,
``str`` and ``bool``.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional, Sequence

BATCH_SIZE = 1024
"""The number of rows in one full batch."""

_WORD_BITS = 64
_WORD_MASK = (1 << _WORD_BITS) - 1


class ColumnType(enum.Enum):
    """The data type of one column."""

    INT = "INT"
    REAL = "REAL"
    TEXT = "TEXT"
    BOOL = "BOOL"

    def __str__(self) -> str:
        return self.value

    @property
    def zero(self) -> Any:
        """The placeholder stored in a null slot of this type."""
        return _ZEROS[self]


_ZEROS = {
    ColumnType.INT: 0,
    ColumnType.REAL: 0.0,
    ColumnType.TEXT: "",
    ColumnType.BOOL: False,
}


class ColumnTypeError(TypeError):
    """A value's type does not fit the column it is pushed into."""


def _type_name(value: Any) -> str:
    if value is None:
        return "NULL"
    if isinstance(value, bool):
        return "BOOL"
    if isinstance(value, int):
        return "INT"
    if isinstance(value, float):
        return "REAL"
    if isinstance(value, str):
        return "TEXT"
    return type(value).__name__


def _coerce(ty: ColumnType, value: Any) -> Any:
    """Return ``value`` as stored in a column of ``ty``, or raise."""
    if ty is ColumnType.INT:
        if isinstance(value, int) and not isinstance(value, bool):
            return value
    elif ty is ColumnType.REAL:
        if isinstance(value, float):
            return value
        # Integers widen into REAL.
        if isinstance(value, int) and not isinstance(value, bool):
            return float(value)
    elif ty is ColumnType.TEXT:
        if isinstance(value, str):
            return value
    elif ty is ColumnType.BOOL:
        if isinstance(value, bool):
            return value
    raise ColumnTypeError(
        f"value of type {_type_name(value)} does not fit a {ty} column"
    )


class NullMask:
    """One validity bit per row, packed into 64-bit words."""

    __slots__ = ("_bits", "_n_rows")

    def __init__(self) -> None:
        self._bits: list[int] = []
        self._n_rows = 0

    @classmethod
    def with_capacity(cls, cap: int) -> "NullMask":
        """An empty mask meant to hold about ``cap`` rows."""
        if cap < 0:
            raise ValueError("capacity must not be negative")
        return cls()

    @classmethod
    def all_valid(cls, n_rows: int) -> "NullMask":
        """A mask of ``n_rows`` bits, every row valid."""
        if n_rows < 0:
            raise ValueError("row count must not be negative")
        mask = cls()
        full, trailing = divmod(n_rows, _WORD_BITS)
        mask._bits = [_WORD_MASK] * full
        if trailing:
            mask._bits.append((1 << trailing) - 1)
        mask._n_rows = n_rows
        return mask

    def push(self, valid: bool) -> None:
        """Append one bit to the end of the mask."""
        word, bit = divmod(self._n_rows, _WORD_BITS)
        if word >= len(self._bits):
            self._bits.append(0)
        if valid:
            self._bits[word] |= 1 << bit
        self._n_rows += 1

    def is_valid(self, i: int) -> bool:
        """True if row ``i`` holds a value, False if it is NULL."""
        if not 0 <= i < self._n_rows:
            raise IndexError(f"row {i} out of range for a mask of {self._n_rows}")
        word, bit = divmod(i, _WORD_BITS)
        return bool((self._bits[word] >> bit) & 1)

    def __len__(self) -> int:
        return self._n_rows

    def __iter__(self):
        return (self.is_valid(i) for i in range(self._n_rows))

    def __repr__(self) -> str:
        return f"NullMask(n_rows={self._n_rows})"


@dataclass
class Column:
    """One typed column: a value list plus a null mask."""

    type: ColumnType
    values: list = field(default_factory=list)
    nulls: NullMask = field(default_factory=NullMask)

    @classmethod
    def empty(cls, ty: ColumnType) -> "Column":
        """An empty column of type ``ty``."""
        return cls(ty, [], NullMask.with_capacity(BATCH_SIZE))

    def __len__(self) -> int:
        return len(self.nulls)

    def push_value(self, value: Any) -> None:
        """Append one value; ``None`` fits any column type."""
        if value is None:
            self.values.append(self.type.zero)
            self.nulls.push(False)
            return
        self.values.append(_coerce(self.type, value))
        self.nulls.push(True)

    def value_at(self, i: int) -> Any:
        """The value at row ``i``, or ``None`` if the row is NULL."""
        return self.values[i] if self.nulls.is_valid(i) else None


@dataclass
class ColumnBatch:
    """A chunk of rows stored column by column.

    When ``selection`` is set, logical row ``k`` lives at physical row
    ``selection[k]`` of every column and ``n_rows == len(selection)``.
    """

    columns: list[Column] = field(default_factory=list)
    n_rows: int = 0
    selection: Optional[list[int]] = None

    @classmethod
    def with_types(cls, types: Iterable[ColumnType]) -> "ColumnBatch":
        """An empty, materialised batch with one column per type."""
        return cls([Column.empty(ty) for ty in types], 0, None)

    def push_row(self, row: Sequence[Any]) -> None:
        """Append one row of values, one per column."""
        if self.selection is not None:
            raise ValueError("cannot push a row onto a batch with a selection vector")
        if len(row) != len(self.columns):
            raise ValueError(
                f"batch row has {len(row)} value(s) but the batch has "
                f"{len(self.columns)} column(s)"
            )
        # Validate every value first so a bad row leaves the batch untouched.
        for column, value in zip(self.columns, row):
            if value is not None:
                _coerce(column.type, value)
        for column, value in zip(self.columns, row):
            column.push_value(value)
        self.n_rows += 1

    def physical_for(self, logical: int) -> int:
        """Map a logical row index to its physical column row."""
        if not 0 <= logical < self.n_rows:
            raise IndexError(f"row {logical} out of range for a batch of {self.n_rows}")
        if self.selection is None:
            return logical
        return self.selection[logical]

    def row_at(self, i: int) -> list[Any]:
        """The values of logical row ``i``."""
        physical = self.physical_for(i)
        return [column.value_at(physical) for column in self.columns]

    def rows(self):
        """Yield every logical row in order."""
        return (self.row_at(i) for i in range(self.n_rows))

    def is_empty(self) -> bool:
        """True if the batch has no rows."""
        return self.n_rows == 0