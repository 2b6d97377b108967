"""Resolution of the expensive transitive join (release -> ... -> PUID).

``JoinResolver`` is a tagged variant: its ``kind`` selects one of three
behaviours with the same contract.

``none``
    Run the join once per chunk, scoped to the chunk's id range.
``temptable``
    Materialize the join into an indexed temporary table before the first
    chunk, then read that table per chunk. The table is dropped on close.
``map``
    Stream the whole join once before the first chunk and keep every root's
    values as one encoded string in memory; chunks need no further queries.

Every variant returns each root's values ordered by value, so the documents
built from them are identical whichever variant is selected.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from enum import Enum
import logging
import re
import time
from typing import Any

from catalog_search.config import ConfigurationError
from catalog_search.indexing.chunks import IdRange
from catalog_search.indexing.loader import RelationTimings, group_rows
from catalog_search.indexing.source import CatalogSource


logger = logging.getLogger(__name__)

_IDENTIFIER = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")

# Separator between cached values. Values are escaped so they may contain it.
VALUE_SEPARATOR = "\0"
_ESCAPE = "\\"


class JoinStrategyError(RuntimeError):
    """A join resolver was used out of order or misconfigured."""


class JoinStrategyKind(str, Enum):
    NONE = "none"
    TEMP_TABLE = "temptable"
    WHOLE_INDEX_CACHE = "map"

    @classmethod
    def from_name(cls, name: str) -> JoinStrategyKind:
        normalized = (name or "").strip().lower()
        for kind in cls:
            if kind.value == normalized:
                return kind
        raise ConfigurationError(f"Unknown join strategy {name!r}; expected one of {[k.value for k in cls]}")


@dataclass(frozen=True)
class TransitiveJoin:
    """SQL pieces describing the join from a root id to its values.

    Args:
        name: Relation name used for timings and logs (e.g. ``"puids"``)
        root_expr: Expression selecting the root id (``m.release``)
        value_expr: Expression selecting the value (``p.puid``)
        from_clause: ``FROM ... JOIN ...`` body without a WHERE clause
        temp_table: Name of the temporary table used by ``temptable``
    """

    name: str
    root_expr: str
    value_expr: str
    from_clause: str
    temp_table: str

    def __post_init__(self) -> None:
        if not _IDENTIFIER.fullmatch(self.temp_table):
            raise ConfigurationError(f"Invalid temporary table name {self.temp_table!r}")

    @property
    def _select(self) -> str:
        return f"SELECT {self.root_expr} AS root_id, {self.value_expr} AS value {self.from_clause}"

    @property
    def full_sql(self) -> str:
        return f"{self._select} WHERE {self.root_expr} IS NOT NULL ORDER BY root_id, value"

    @property
    def range_sql(self) -> str:
        return f"{self._select} WHERE {self.root_expr} BETWEEN ? AND ? ORDER BY root_id, value"

    @property
    def create_temp_sql(self) -> str:
        return f"CREATE TEMP TABLE {self.temp_table} AS {self._select} WHERE {self.root_expr} IS NOT NULL"

    @property
    def index_temp_sql(self) -> str:
        return f"CREATE INDEX {self.temp_table}_idx_root ON {self.temp_table} (root_id)"

    @property
    def temp_range_sql(self) -> str:
        return (
            f"SELECT root_id, value FROM {self.temp_table} "
            "WHERE root_id BETWEEN ? AND ? ORDER BY root_id, value"
        )

    @property
    def drop_temp_sql(self) -> str:
        return f"DROP TABLE IF EXISTS {self.temp_table}"


def encode_values(values: Iterable[str]) -> str:
    """Join values with ``VALUE_SEPARATOR``, escaping separator and escape characters.

    An empty iterable encodes to ``""``, which is distinct from a single
    empty value (``"\\0"``) because every value is terminated, not separated.
    """
    parts = []
    for value in values:
        escaped = value.replace(_ESCAPE, _ESCAPE + _ESCAPE).replace(VALUE_SEPARATOR, _ESCAPE + "0")
        parts.append(escaped + VALUE_SEPARATOR)
    return "".join(parts)


def decode_values(encoded: str) -> list[str]:
    """Inverse of ``encode_values``."""
    values: list[str] = []
    current: list[str] = []
    index = 0
    while index < len(encoded):
        char = encoded[index]
        if char == _ESCAPE:
            if index + 1 >= len(encoded):
                raise ValueError("Encoded value ends with a dangling escape")
            following = encoded[index + 1]
            if following == "0":
                current.append(VALUE_SEPARATOR)
            elif following == _ESCAPE:
                current.append(_ESCAPE)
            else:
                raise ValueError(f"Unknown escape sequence {_ESCAPE}{following}")
            index += 2
            continue
        if char == VALUE_SEPARATOR:
            values.append("".join(current))
            current = []
        else:
            current.append(char)
        index += 1
    if current:
        raise ValueError("Encoded value is missing its final separator")
    return values


class JoinResolver:
    """Resolve ``root id -> [values]`` for one index run.

    Lifecycle: ``prepare()`` once, then ``load_chunk(range)`` and
    ``resolve(root_id)`` for each chunk in order, then ``close()``.
    ``resolve`` only answers for ids inside the most recently loaded chunk.
    """

    def __init__(
        self,
        kind: JoinStrategyKind,
        join: TransitiveJoin,
        source: CatalogSource,
        *,
        timings: RelationTimings | None = None,
    ) -> None:
        if not isinstance(kind, JoinStrategyKind):
            raise JoinStrategyError(f"Unsupported join strategy {kind!r}")
        self.kind = kind
        self.join = join
        self.source = source
        self.timings = timings or RelationTimings(join.name)
        self._prepared = False
        self._closed = False
        self._temp_created = False
        self._cache: dict[int, str] = {}
        self._chunk: dict[int, list[Any]] = {}
        self._range: IdRange | None = None

    @property
    def prepared(self) -> bool:
        return self._prepared

    @property
    def cached_roots(self) -> int:
        return len(self._cache)

    def prepare(self) -> None:
        if self._closed:
            raise JoinStrategyError("Join resolver has been closed")
        if self._prepared:
            raise JoinStrategyError(f"Join resolver '{self.kind.value}' is already prepared")
        start = time.perf_counter()
        _PREPARE[self.kind](self)
        self._prepared = True
        logger.info(
            "Prepared %s join using '%s' strategy in %.2f seconds",
            self.join.name,
            self.kind.value,
            time.perf_counter() - start,
        )

    def load_chunk(self, id_range: IdRange) -> None:
        self._require_prepared()
        self._range = id_range
        _LOAD_CHUNK[self.kind](self, id_range)

    def resolve(self, root_id: int) -> list[str]:
        self._require_prepared()
        if self._range is None or root_id not in self._range:
            raise JoinStrategyError(f"Root id {root_id} is outside the loaded chunk {self._range}")
        return _RESOLVE[self.kind](self, root_id)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._cache = {}
        self._chunk = {}
        if self._temp_created:
            self.source.execute(self.join.drop_temp_sql)
            self._temp_created = False
            logger.debug("Dropped temporary table %s", self.join.temp_table)

    def __enter__(self) -> JoinResolver:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _require_prepared(self) -> None:
        if self._closed:
            raise JoinStrategyError("Join resolver has been closed")
        if not self._prepared:
            raise JoinStrategyError("Join resolver used before prepare()")

    def _load_rows(self, sql: str, id_range: IdRange) -> None:
        with self.timings.measure(self.join.name):
            rows = self.source.fetch_range(sql, id_range)
        self._chunk = {
            root_id: [values[0] for values in tuples if values[0] is not None]
            for root_id, tuples in group_rows(rows).items()
        }


def _prepare_none(resolver: JoinResolver) -> None:
    return None


def _prepare_temp_table(resolver: JoinResolver) -> None:
    join = resolver.join
    resolver.source.execute(join.drop_temp_sql)
    resolver.source.execute(join.create_temp_sql)
    resolver._temp_created = True
    resolver.source.execute(join.index_temp_sql)


def _prepare_cache(resolver: JoinResolver) -> None:
    cache: dict[int, str] = {}
    current_root: int | None = None
    current_values: list[str] = []
    rows = 0
    with resolver.timings.measure(resolver.join.name):
        for row in resolver.source.stream(resolver.join.full_sql):
            root_id = int(row[0])
            if current_root is not None and root_id != current_root:
                cache[current_root] = encode_values(current_values)
                current_values = []
            current_root = root_id
            if row[1] is not None:
                current_values.append(str(row[1]))
            rows += 1
        if current_root is not None:
            cache[current_root] = encode_values(current_values)
    resolver._cache = cache
    logger.info("Cached %d %s values for %d roots", rows, resolver.join.name, len(cache))


def _load_none(resolver: JoinResolver, id_range: IdRange) -> None:
    resolver._load_rows(resolver.join.range_sql, id_range)


def _load_temp_table(resolver: JoinResolver, id_range: IdRange) -> None:
    resolver._load_rows(resolver.join.temp_range_sql, id_range)


def _load_cache(resolver: JoinResolver, id_range: IdRange) -> None:
    return None


def _resolve_chunk(resolver: JoinResolver, root_id: int) -> list[str]:
    return [str(value) for value in resolver._chunk.get(root_id, [])]


def _resolve_cache(resolver: JoinResolver, root_id: int) -> list[str]:
    encoded = resolver._cache.get(root_id)
    if encoded is None:
        return []
    return decode_values(encoded)


_PREPARE: dict[JoinStrategyKind, Callable[[JoinResolver], None]] = {
    JoinStrategyKind.NONE: _prepare_none,
    JoinStrategyKind.TEMP_TABLE: _prepare_temp_table,
    JoinStrategyKind.WHOLE_INDEX_CACHE: _prepare_cache,
}

_LOAD_CHUNK: dict[JoinStrategyKind, Callable[[JoinResolver, IdRange], None]] = {
    JoinStrategyKind.NONE: _load_none,
    JoinStrategyKind.TEMP_TABLE: _load_temp_table,
    JoinStrategyKind.WHOLE_INDEX_CACHE: _load_cache,
}

_RESOLVE: dict[JoinStrategyKind, Callable[[JoinResolver, int], list[str]]] = {
    JoinStrategyKind.NONE: _resolve_chunk,
    JoinStrategyKind.TEMP_TABLE: _resolve_chunk,
    JoinStrategyKind.WHOLE_INDEX_CACHE: _resolve_cache,
}


def resolve_all(resolver: JoinResolver, id_ranges: Sequence[IdRange]) -> dict[int, list[str]]:
    """Resolve every root with at least one value across ``id_ranges``."""
    resolved: dict[int, list[str]] = {}
    for id_range in id_ranges:
        resolver.load_chunk(id_range)
        for root_id in range(id_range.low, id_range.high):
            values = resolver.resolve(root_id)
            if values:
                resolved[root_id] = values
    return resolved
