"""Search servers: one per resource, standard and dismax flavours.

A ``SearcherManager`` owns the current ``IndexSearcher`` of an index
directory and swaps it when a newer segment is committed. Queries always
run against the snapshot acquired at their start, so a rebuild never
affects a query in flight.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
import logging
from pathlib import Path
import threading

from catalog_search.config import ConfigurationError, Settings
from catalog_search.observability.metrics import QUERY_ERRORS, SEARCH_LATENCY, track_latency
from catalog_search.search.dismax import AliasField, DismaxAlias, DismaxQueryBuilder
from catalog_search.search.query import Query
from catalog_search.search.query_parser import QueryParseError, QueryParser
from catalog_search.search.searcher import IndexSearcher, SearchResults
from catalog_search.search.storage import JsonSegmentStore


logger = logging.getLogger(__name__)


class ResourceType(str, Enum):
    """Searchable resources, named as in the web service URL scheme."""

    ARTIST = "artist"
    RELEASE = "release"

    @classmethod
    def get_value(cls, name: str) -> ResourceType | None:
        for candidate in cls:
            if candidate.value == name:
                return candidate
        return None


@dataclass(frozen=True)
class ResourceConfig:
    default_field: str
    dismax_fields: dict[str, AliasField]


RESOURCE_CONFIGS: dict[ResourceType, ResourceConfig] = {
    ResourceType.RELEASE: ResourceConfig(
        default_field="release",
        dismax_fields={
            "release_accent": AliasField(phrase=False, boost=1.6),
            "release": AliasField(phrase=True, boost=1.4),
            "artist": AliasField(phrase=True, boost=1.0),
            "artistname": AliasField(phrase=True, boost=1.0),
            "label": AliasField(phrase=False, boost=0.8),
        },
    ),
    ResourceType.ARTIST: ResourceConfig(
        default_field="artist",
        dismax_fields={
            "artist_accent": AliasField(phrase=False, boost=1.6),
            "artist": AliasField(phrase=True, boost=1.4),
            "sortname": AliasField(phrase=True, boost=1.2),
            "alias": AliasField(phrase=True, boost=1.0),
        },
    ),
}


class SearcherManager:
    """Hands out the latest committed searcher for one index directory."""

    def __init__(self, directory: str | Path) -> None:
        self.directory = Path(directory)
        self._lock = threading.Lock()
        self._searcher = IndexSearcher.open(self.directory)

    def acquire(self) -> IndexSearcher:
        return self._searcher

    def maybe_refresh(self) -> bool:
        """Reopen the index if a newer segment was committed. Returns True on swap."""
        latest_id = JsonSegmentStore(self.directory).latest_segment_id()
        with self._lock:
            if latest_id is None or latest_id == self._searcher.segment.segment_id:
                return False
            self._searcher = IndexSearcher.open(self.directory)
        logger.info("Reopened %s at segment %s", self.directory, latest_id)
        return True


class SearchServer:
    """Standard (Lucene syntax) search over one resource."""

    def __init__(
        self,
        resource: ResourceType,
        searcher_manager: SearcherManager,
        default_field: str,
        *,
        default_limit: int = 25,
        max_limit: int = 100,
    ) -> None:
        self.resource = resource
        self.searcher_manager = searcher_manager
        self.default_field = default_field
        self.default_limit = default_limit
        self.max_limit = max_limit

    @property
    def last_updated(self) -> datetime:
        return self.searcher_manager.acquire().last_updated

    def parse(self, text: str, searcher: IndexSearcher) -> Query:
        return QueryParser(self.default_field, searcher.segment.schema).parse(text)

    def search(self, text: str, offset: int = 0, limit: int | None = None) -> SearchResults:
        return self.execute(text, offset, limit, mode="standard", parse=self.parse)

    def execute(
        self,
        text: str,
        offset: int,
        limit: int | None,
        *,
        mode: str,
        parse: Callable[[str, IndexSearcher], Query],
    ) -> SearchResults:
        """Parse ``text`` with ``parse`` and run it against the current snapshot."""
        searcher = self.searcher_manager.acquire()
        resolved_limit = self.default_limit if limit is None else max(0, min(limit, self.max_limit))
        try:
            with track_latency(SEARCH_LATENCY, resource=self.resource.value, mode=mode):
                query = parse(text, searcher)
                results = searcher.search(query, offset=offset, limit=resolved_limit)
        except QueryParseError as exc:
            QUERY_ERRORS.labels(resource=self.resource.value, error_type="parse").inc()
            logger.info("Rejected %s query %r: %s", mode, text, exc)
            raise
        logger.debug(
            "%s %s query %r matched %d documents",
            self.resource.value,
            mode,
            text,
            results.total_hits,
        )
        return results


class DismaxSearchServer:
    """Dismax search sharing the searcher snapshot of a ``SearchServer``."""

    def __init__(self, search_server: SearchServer, alias: DismaxAlias) -> None:
        self.search_server = search_server
        self.alias = alias

    @property
    def resource(self) -> ResourceType:
        return self.search_server.resource

    @property
    def last_updated(self) -> datetime:
        return self.search_server.last_updated

    def parse(self, text: str, searcher: IndexSearcher) -> Query:
        return DismaxQueryBuilder(self.alias, searcher.segment.schema).build(text)

    def search(self, text: str, offset: int = 0, limit: int | None = None) -> SearchResults:
        return self.search_server.execute(text, offset, limit, mode="dismax", parse=self.parse)


def create_search_server(
    resource: ResourceType, settings: Settings, *, dismax: bool = False
) -> SearchServer | DismaxSearchServer:
    """Open the committed index for ``resource`` and wrap it in a server."""
    config = RESOURCE_CONFIGS.get(resource)
    if config is None:
        raise ConfigurationError(f"No search configuration for resource '{resource.value}'")
    server = SearchServer(
        resource,
        SearcherManager(settings.index_directory(resource.value)),
        config.default_field,
        default_limit=settings.default_limit,
        max_limit=settings.max_limit,
    )
    if not dismax:
        return server
    return DismaxSearchServer(server, DismaxAlias(config.dismax_fields, tie=settings.dismax_tie))
