"""Index build orchestration.

``IndexBuilder`` runs one index at a time: size the id space, prepare the
join strategy, process every chunk in order, then commit. It is the only
layer that decides to abort a run; any failure discards the uncommitted
documents and surfaces as ``IndexBuildError``.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
from pathlib import Path
import time

from catalog_search.config import Settings
from catalog_search.indexing.artist_index import ArtistIndex
from catalog_search.indexing.base import DatabaseIndex
from catalog_search.indexing.chunks import chunk_count, iter_chunks
from catalog_search.indexing.join_strategy import JoinStrategyKind
from catalog_search.indexing.release_index import ReleaseIndex
from catalog_search.indexing.source import CatalogSource, SqliteCatalogSource
from catalog_search.observability.context import bound_context
from catalog_search.observability.metrics import CHUNK_LATENCY, DOCUMENTS_INDEXED, INDEX_DOC_COUNT, track_latency
from catalog_search.observability.tracing import create_span
from catalog_search.search.storage import IndexWriter


logger = logging.getLogger(__name__)

INDEX_CLASSES: dict[str, type[DatabaseIndex]] = {
    ReleaseIndex.name: ReleaseIndex,
    ArtistIndex.name: ArtistIndex,
}


class IndexBuildError(RuntimeError):
    """An index run failed; nothing from the run was committed."""

    def __init__(self, index_name: str, message: str) -> None:
        super().__init__(f"Building the {index_name} index failed: {message}")
        self.index_name = index_name


@dataclass(frozen=True)
class IndexBuildResult:
    """Outcome of one index run."""

    index_name: str
    documents_indexed: int
    max_id: int
    chunks: int
    join_strategy: str
    segment_id: str | None
    directory: Path
    elapsed_seconds: float
    relation_seconds: dict[str, float]


class IndexBuilder:
    """Builds the configured indexes from the catalog database."""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self.join_strategy = settings.join_strategy_kind()

    def build_all(self, source: CatalogSource | None = None) -> list[IndexBuildResult]:
        """Build every configured index, in configuration order, over one source connection."""
        if source is not None:
            return [self.build(name, source) for name in self.settings.get_index_names()]
        with self.open_source() as owned:
            return [self.build(name, owned) for name in self.settings.get_index_names()]

    def open_source(self) -> SqliteCatalogSource:
        if self.settings.database_path is None:
            raise IndexBuildError("catalog", "no database_path configured")
        # temporary tables cannot be created on a query-only connection
        read_only = self.join_strategy is not JoinStrategyKind.TEMP_TABLE
        return SqliteCatalogSource(self.settings.database_path, read_only=read_only)

    def build(self, index_name: str, source: CatalogSource) -> IndexBuildResult:
        index_class = INDEX_CLASSES.get(index_name)
        if index_class is None:
            raise IndexBuildError(index_name, f"unknown index; available: {sorted(INDEX_CLASSES)}")

        directory = self.settings.index_directory(index_name)
        with bound_context(index=index_name), create_span(
            "index.build",
            attributes={"index.name": index_name, "index.join_strategy": self.join_strategy.value},
        ):
            index = index_class(source, join_strategy=self.join_strategy)
            writer = IndexWriter(directory, index_class.schema())
            try:
                return self._run(index, writer, directory)
            except Exception as exc:
                writer.abort()
                logger.exception("Aborted %s index build", index_name)
                raise IndexBuildError(index_name, str(exc)) from exc
            finally:
                index.destroy()

    def _run(self, index: DatabaseIndex, writer: IndexWriter, directory: Path) -> IndexBuildResult:
        start = time.perf_counter()
        max_id = self.settings.effective_max_id(index.get_max_id())
        chunk_size = self.settings.ids_per_chunk
        total_chunks = chunk_count(max_id, chunk_size)
        logger.info(
            "Building %s index: max id %d, %d chunks of %d ids, join strategy '%s'",
            index.name,
            max_id,
            total_chunks,
            chunk_size,
            self.join_strategy.value,
        )

        index.init()
        documents = 0
        for id_range in iter_chunks(max_id, chunk_size):
            pct = 100 * id_range.high // (max_id + 1)
            logger.info("Indexing %d...%d / %d (%d%%)", id_range.low, id_range.last, max_id, pct)
            with create_span("index.chunk", attributes={"chunk.low": id_range.low, "chunk.high": id_range.high}):
                with track_latency(CHUNK_LATENCY, index=index.name):
                    written = index.index_chunk(writer, id_range)
            DOCUMENTS_INDEXED.labels(index=index.name).inc(written)
            documents += written
            logger.debug("Chunk %s produced %d documents", id_range, written)

        segment = writer.commit()
        INDEX_DOC_COUNT.labels(index=index.name).set(segment.doc_count)
        elapsed = time.perf_counter() - start
        logger.info("Built %s index with %d documents in %.2f seconds", index.name, documents, elapsed)
        return IndexBuildResult(
            index_name=index.name,
            documents_indexed=documents,
            max_id=max_id,
            chunks=total_chunks,
            join_strategy=self.join_strategy.value,
            segment_id=segment.segment_id,
            directory=directory,
            elapsed_seconds=elapsed,
            relation_seconds=index.timings.as_dict(),
        )
