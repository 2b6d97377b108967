"""Relational catalog source.

The index builder only needs a handful of capabilities from the catalog
database: the highest id of a table, range-scoped reads, one unscoped
streaming read and the DDL to materialize a temporary table. They are
described by ``CatalogSource``; ``SqliteCatalogSource`` implements them on
top of ``sqlite3``. Every driver failure is re-raised as ``SourceError``.
"""

from __future__ import annotations

from collections.abc import Iterator, Sequence
import logging
from pathlib import Path
import re
import sqlite3
from typing import Any, Protocol

from catalog_search.indexing.chunks import IdRange
from catalog_search.indexing.pragmas import apply_source_pragmas


logger = logging.getLogger(__name__)

_IDENTIFIER = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")


class SourceError(RuntimeError):
    """Connectivity or SQL failure while reading the catalog."""


class SourceDataError(ValueError):
    """A row violates an integrity assumption (e.g. a mandatory column is NULL)."""


class CatalogSource(Protocol):
    """Capabilities of the relational catalog used by the index builder."""

    def max_id(self, table: str) -> int: ...

    def fetch_range(self, sql: str, id_range: IdRange) -> list[Any]: ...

    def stream(self, sql: str, params: Sequence[Any] = ()) -> Iterator[Any]: ...

    def execute(self, sql: str) -> None: ...

    def close(self) -> None: ...


class SqliteCatalogSource:
    """``CatalogSource`` backed by a SQLite database file.

    Rows are returned as ``sqlite3.Row`` so callers can address columns by
    name. Range queries take exactly two ``?`` placeholders which are bound to
    the first and last id of the range.
    """

    def __init__(self, path: str | Path, *, read_only: bool = True) -> None:
        self.path = Path(path)
        if not self.path.exists():
            raise SourceError(f"Catalog database {self.path} does not exist")
        try:
            self._conn = sqlite3.connect(str(self.path))
            self._conn.row_factory = sqlite3.Row
            apply_source_pragmas(self._conn, query_only=read_only)
        except sqlite3.Error as exc:
            raise SourceError(f"Could not open catalog database {self.path}: {exc}") from exc
        self._closed = False
        logger.debug("Opened catalog source %s (read_only=%s)", self.path, read_only)

    def max_id(self, table: str) -> int:
        """Return ``MAX(id)`` of ``table``, or -1 when the table is empty."""
        if not _IDENTIFIER.fullmatch(table):
            raise ValueError(f"Invalid table name {table!r}")
        row = self._run(f"SELECT MAX(id) FROM {table}").fetchone()
        if row is None or row[0] is None:
            return -1
        return int(row[0])

    def count_up_to(self, table: str, max_id: int) -> int:
        if not _IDENTIFIER.fullmatch(table):
            raise ValueError(f"Invalid table name {table!r}")
        row = self._run(f"SELECT count(*) FROM {table} WHERE id <= ?", (max_id,)).fetchone()
        return int(row[0]) if row is not None else 0

    def fetch_range(self, sql: str, id_range: IdRange) -> list[sqlite3.Row]:
        return self._run(sql, (id_range.low, id_range.last)).fetchall()

    def stream(self, sql: str, params: Sequence[Any] = ()) -> Iterator[sqlite3.Row]:
        cursor = self._run(sql, params)
        try:
            while True:
                try:
                    batch = cursor.fetchmany(1000)
                except sqlite3.Error as exc:
                    raise SourceError(f"Catalog query failed while streaming: {exc}") from exc
                if not batch:
                    return
                yield from batch
        finally:
            cursor.close()

    def execute(self, sql: str) -> None:
        self._run(sql)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._conn.close()

    def __enter__(self) -> SqliteCatalogSource:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _run(self, sql: str, params: Sequence[Any] = ()) -> sqlite3.Cursor:
        if self._closed:
            raise SourceError(f"Catalog source {self.path} is closed")
        try:
            return self._conn.execute(sql, tuple(params))
        except sqlite3.Error as exc:
            raise SourceError(f"Catalog query failed: {exc}") from exc
