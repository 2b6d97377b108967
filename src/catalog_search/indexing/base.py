"""Base class for indexes built from the relational catalog."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Mapping
import logging
from typing import Any, ClassVar

from catalog_search.indexing.chunks import IdRange
from catalog_search.indexing.join_strategy import JoinResolver, JoinStrategyKind, TransitiveJoin
from catalog_search.indexing.loader import ChildCollection, ChildCollectionLoader, ChildRelation, RelationTimings
from catalog_search.indexing.source import CatalogSource, SourceDataError
from catalog_search.search.document import Document
from catalog_search.search.schema import Schema
from catalog_search.search.storage import IndexWriter


logger = logging.getLogger(__name__)


def require(row: Mapping[str, Any], column: str, *, index: str) -> Any:
    """Return a mandatory column, raising ``SourceDataError`` when it is NULL or empty."""
    value = row[column]
    if value is None or (isinstance(value, str) and not value.strip()):
        row_id = row["id"] if "id" in row.keys() else "?"
        raise SourceDataError(f"{index} row {row_id} has no value for mandatory column '{column}'")
    return value


class DatabaseIndex(ABC):
    """One index whose documents are assembled from a root table and its relations.

    Subclasses declare the root table, the root query, the child relations,
    an optional expensive ``TransitiveJoin`` and how a document is built from
    one root row. The run lifecycle is ``init()``, ``index_chunk()`` for each
    id range in order, then ``destroy()``.
    """

    name: ClassVar[str]
    root_table: ClassVar[str]

    def __init__(self, source: CatalogSource, *, join_strategy: JoinStrategyKind = JoinStrategyKind.NONE) -> None:
        self.source = source
        self.join_strategy = join_strategy
        self.timings = RelationTimings(self.name)
        self._loader = ChildCollectionLoader(source, self.relations(), self.timings)
        self._resolver: JoinResolver | None = None

    @classmethod
    @abstractmethod
    def schema(cls) -> Schema:
        """Return the schema of the documents this index produces."""

    @abstractmethod
    def root_sql(self) -> str:
        """Range-scoped query returning one row per root entity."""

    def relations(self) -> list[ChildRelation]:
        return []

    def transitive_join(self) -> TransitiveJoin | None:
        return None

    @abstractmethod
    def document_from_row(
        self,
        row: Mapping[str, Any],
        children: Mapping[str, ChildCollection],
        resolved: list[str],
    ) -> Document:
        """Assemble the document for one root row."""

    def get_max_id(self) -> int:
        return self.source.max_id(self.root_table)

    def init(self) -> None:
        """Prepare per-run state before the first chunk."""
        join = self.transitive_join()
        if join is None:
            return
        self._resolver = JoinResolver(self.join_strategy, join, self.source, timings=self.timings)
        self._resolver.prepare()

    def index_chunk(self, writer: IndexWriter, id_range: IdRange) -> int:
        """Load, assemble and write every root in ``id_range``; returns documents written.

        All relations are fully loaded before any document is assembled.
        """
        children = self._loader.load(id_range)
        if self._resolver is not None:
            self._resolver.load_chunk(id_range)

        with self.timings.measure(self.root_table):
            rows = self.source.fetch_range(self.root_sql(), id_range)

        written = 0
        for row in rows:
            resolved = self._resolver.resolve(int(row["id"])) if self._resolver is not None else []
            document = self.document_from_row(row, children, resolved)
            writer.add_document(document.render())
            written += 1
        return written

    def destroy(self) -> None:
        """Release per-run state and log accumulated relation timings."""
        if self._resolver is not None:
            self._resolver.close()
            self._resolver = None
        self.timings.log_summary()
