"""Execute queries against a committed index segment."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
import heapq
import logging
from pathlib import Path

from catalog_search.search.query import Query, SearchContext
from catalog_search.search.storage import IndexSegment, JsonSegmentStore, StorageError


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SearchResult:
    """A matching document with its relevance score."""

    doc_id: str
    score: float
    document: dict[str, list[str]]

    def get(self, name: str) -> str | None:
        values = self.document.get(name)
        return values[0] if values else None


@dataclass(frozen=True)
class SearchResults:
    """One page of ranked results plus the total number of hits."""

    total_hits: int
    results: list[SearchResult] = field(default_factory=list)
    offset: int = 0
    last_updated: datetime | None = None

    @property
    def max_score(self) -> float:
        return self.results[0].score if self.results else 0.0

    def __len__(self) -> int:
        return len(self.results)

    def __iter__(self):
        return iter(self.results)


class IndexSearcher:
    """Read-only view over one immutable segment.

    A searcher never changes after construction, so any number of queries
    may run against it concurrently.
    """

    def __init__(self, segment: IndexSegment) -> None:
        self.segment = segment
        self._context = SearchContext(segment)
        self._ordinals = segment.doc_ordinals()

    @classmethod
    def open(cls, directory: str | Path) -> IndexSearcher:
        """Open the latest committed segment stored in ``directory``."""
        path = Path(directory)
        if not path.is_dir():
            raise StorageError(f"Index directory {path} does not exist")
        segment = JsonSegmentStore(path).latest()
        if segment is None:
            raise StorageError(f"No committed segment found in {path}")
        logger.debug("Opened segment %s (%d documents) from %s", segment.segment_id, segment.doc_count, path)
        return cls(segment)

    @property
    def doc_count(self) -> int:
        return self.segment.doc_count

    @property
    def last_updated(self) -> datetime:
        return self.segment.created_at

    def search(self, query: Query, offset: int = 0, limit: int = 25) -> SearchResults:
        """Rank documents matching ``query`` and return the requested page.

        Documents are ordered by descending score; equal scores keep the order
        in which documents were added to the index.
        """
        if offset < 0:
            raise ValueError(f"offset must be >= 0, got {offset}")
        if limit < 0:
            raise ValueError(f"limit must be >= 0, got {limit}")

        scores = query.score(self._context)
        wanted = offset + limit
        ranked = heapq.nsmallest(
            wanted,
            scores.items(),
            key=lambda item: (-item[1], self._ordinals.get(item[0], 0)),
        )
        page = [
            SearchResult(doc_id=doc_id, score=score, document=self.segment.stored_fields.get(doc_id, {}))
            for doc_id, score in ranked[offset:wanted]
        ]
        return SearchResults(
            total_hits=len(scores),
            results=page,
            offset=offset,
            last_updated=self.last_updated,
        )

    def get_document(self, doc_id: str) -> dict[str, list[str]] | None:
        return self.segment.get_document(doc_id)
