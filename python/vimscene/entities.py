# python/vimscene/entities.py
# Entity tables: doubly nested BFast containers of typed columns
# Exists to expose relational BIM attribute data as zero-copy numpy columns
# RELEVANT FILES: python/vimscene/bfast.py, python/vimscene/vim.py, tests/test_entities.py
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterator, Mapping, Optional, Tuple, Union

import numpy as np

from .bfast import BFast, parse_bfast
from .errors import MalformedContainer, UnknownColumnType

logger = logging.getLogger(__name__)

NUMERIC = "numeric"
INDEX = "index"
STRING = "string"
PROPERTIES = "properties"

_COLUMN_DTYPES: Dict[str, str] = {
    NUMERIC: "<f8",
    INDEX: "<i4",
    STRING: "<i4",
}


@dataclass(frozen=True)
class PropertiesBlob:
    """Opaque ``properties`` column kept as raw bytes."""
    data: np.ndarray = field(repr=False)

    @property
    def nbytes(self) -> int:
        return int(self.data.size)

    def tobytes(self) -> bytes:
        return self.data.tobytes()


Column = Union[np.ndarray, PropertiesBlob]


def split_column_name(name: str) -> Tuple[str, str]:
    """Split ``type:column`` at the first colon."""
    column_type, _, column_name = name.partition(":")
    return column_type, column_name


def _typed_view(buffer: np.ndarray, dtype: str, label: str) -> np.ndarray:
    itemsize = np.dtype(dtype).itemsize
    if buffer.size % itemsize != 0:
        raise MalformedContainer(
            f"Column '{label}' has {buffer.size} bytes, not a multiple of {itemsize}"
        )
    return np.frombuffer(buffer, dtype=dtype)


class EntityTable(Mapping[str, Column]):
    """Columns of one entity table, keyed by column name."""

    def __init__(self, name: str, columns: Dict[str, Column], column_types: Dict[str, str]):
        self.name = name
        self._columns = columns
        self._column_types = column_types

    def __getitem__(self, key: str) -> Column:
        return self._columns[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._columns)

    def __len__(self) -> int:
        return len(self._columns)

    def __repr__(self) -> str:
        return f"EntityTable({self.name!r}, columns={list(self._columns)})"

    def column_type(self, column: str) -> Optional[str]:
        return self._column_types.get(column)

    def value(self, column: str, row: int) -> Optional[float]:
        """Return ``column[row]`` or None when the column or row is absent."""
        data = self._columns.get(column)
        if data is None or isinstance(data, PropertiesBlob):
            return None
        if row < 0 or row >= data.shape[0]:
            return None
        return data[row].item()

    @property
    def row_count(self) -> int:
        """Longest array column length (column lengths are not enforced)."""
        lengths = [c.shape[0] for c in self._columns.values() if isinstance(c, np.ndarray)]
        return max(lengths) if lengths else 0


def construct_entity_table(bfast: BFast, name: str = "") -> EntityTable:
    """Interpret each buffer of ``bfast`` as a ``type:column`` typed column."""
    columns: Dict[str, Column] = {}
    column_types: Dict[str, str] = {}
    for full_name, buffer in zip(bfast.names, bfast.buffers):
        column_type, column_name = split_column_name(full_name)
        if column_type == PROPERTIES:
            key = column_name or PROPERTIES
            columns[key] = PropertiesBlob(buffer)
        elif column_type in _COLUMN_DTYPES:
            key = column_name
            columns[key] = _typed_view(buffer, _COLUMN_DTYPES[column_type], f"{name}/{full_name}")
        else:
            raise UnknownColumnType(column_type, full_name)
        column_types[key] = column_type
    return EntityTable(name, columns, column_types)


def table_name_from(name: str) -> str:
    """Strip an optional ``table:`` style prefix."""
    head, sep, tail = name.partition(":")
    return tail if sep else head


def construct_entity_tables(bfast: BFast) -> Dict[str, EntityTable]:
    """Decode the ``entities`` container: each buffer is itself a BFast table."""
    result: Dict[str, EntityTable] = {}
    for current, buffer in zip(bfast.names, bfast.buffers):
        table_name = table_name_from(current)
        logger.debug("Constructing entity table %s which is %d bytes", current, buffer.size)
        result[table_name] = construct_entity_table(parse_bfast(buffer), table_name)
    return result
