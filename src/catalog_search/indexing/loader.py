"""Per-chunk loading of child relations into root-id keyed collections."""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass
import logging
import time
from typing import Any

from catalog_search.indexing.chunks import IdRange
from catalog_search.indexing.source import CatalogSource
from catalog_search.observability.metrics import RELATION_QUERY_LATENCY


logger = logging.getLogger(__name__)

# root id -> child tuples in query order
ChildCollection = dict[int, list[tuple[Any, ...]]]


@dataclass(frozen=True)
class ChildRelation:
    """A range-scoped query whose first column is the root id.

    The remaining columns form the child tuple. ``sql`` must contain the two
    ``BETWEEN ? AND ?`` placeholders of the chunk range and an ``ORDER BY``
    that starts with the root id, followed by whatever makes the order of a
    root's tuples meaningful (e.g. credit position).
    """

    name: str
    sql: str


def group_rows(rows: Iterable[Sequence[Any]]) -> ChildCollection:
    """Fold rows into ``root id -> [tuple of remaining columns]``.

    Roots without rows never appear as keys.
    """
    grouped: ChildCollection = {}
    for row in rows:
        grouped.setdefault(int(row[0]), []).append(tuple(row[1:]))
    return grouped


class RelationTimings:
    """Accumulates time spent per relation over a whole run."""

    def __init__(self, index_name: str) -> None:
        self.index_name = index_name
        self._seconds: dict[str, float] = {}

    @contextmanager
    def measure(self, relation: str) -> Iterator[None]:
        start = time.perf_counter()
        try:
            yield
        finally:
            elapsed = time.perf_counter() - start
            self._seconds[relation] = self._seconds.get(relation, 0.0) + elapsed
            RELATION_QUERY_LATENCY.labels(index=self.index_name, relation=relation).observe(elapsed)

    def as_dict(self) -> dict[str, float]:
        return dict(self._seconds)

    def log_summary(self) -> None:
        for relation, seconds in self._seconds.items():
            logger.info("%s %s queries took %.2f seconds", self.index_name, relation, seconds)


class ChildCollectionLoader:
    """Loads every configured child relation for one chunk.

    A fresh mapping is built per call and nothing is retained between
    chunks.
    """

    def __init__(
        self,
        source: CatalogSource,
        relations: Sequence[ChildRelation],
        timings: RelationTimings,
    ) -> None:
        names = [relation.name for relation in relations]
        if len(set(names)) != len(names):
            raise ValueError(f"Duplicate child relation names: {names}")
        self.source = source
        self.relations = tuple(relations)
        self.timings = timings

    def load(self, id_range: IdRange) -> dict[str, ChildCollection]:
        collections: dict[str, ChildCollection] = {}
        for relation in self.relations:
            with self.timings.measure(relation.name):
                rows = self.source.fetch_range(relation.sql, id_range)
            collections[relation.name] = group_rows(rows)
            logger.debug(
                "Loaded %d %s rows for %d roots in %s",
                len(rows),
                relation.name,
                len(collections[relation.name]),
                id_range,
            )
        return collections
