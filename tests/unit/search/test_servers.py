"""Tests for search servers and resource configuration."""

from prometheus_client import REGISTRY
import pytest

from catalog_search.indexing.builder import IndexBuilder
from catalog_search.search.query_parser import QueryParseError
from catalog_search.search.servers import (
    RESOURCE_CONFIGS,
    DismaxSearchServer,
    ResourceType,
    SearcherManager,
    SearchServer,
    create_search_server,
)
from catalog_search.search.storage import StorageError


pytestmark = pytest.mark.unit


@pytest.fixture
def settings(settings_factory):
    built = settings_factory(indexes="release")
    IndexBuilder(built).build_all()
    return built


def test_resource_lookup_by_name():
    assert ResourceType.get_value("release") is ResourceType.RELEASE
    assert ResourceType.get_value("recording") is None


def test_alias_tables_match_resource_defaults():
    release = RESOURCE_CONFIGS[ResourceType.RELEASE].dismax_fields
    assert release["release_accent"].boost == 1.6
    assert release["release"].phrase is True
    assert release["label"].phrase is False
    assert RESOURCE_CONFIGS[ResourceType.ARTIST].default_field == "artist"


def test_dismax_server_shares_the_standard_snapshot(settings):
    server = create_search_server(ResourceType.RELEASE, settings, dismax=True)

    assert isinstance(server, DismaxSearchServer)
    assert isinstance(server.search_server, SearchServer)
    assert server.resource is ResourceType.RELEASE
    assert server.last_updated == server.search_server.last_updated
    assert server.alias.tie == settings.dismax_tie


def test_standard_and_dismax_searches_return_the_same_shape(settings):
    standard = create_search_server(ResourceType.RELEASE, settings).search("debut")
    dismax = create_search_server(ResourceType.RELEASE, settings, dismax=True).search("debut")

    assert [hit.doc_id for hit in standard] == [hit.doc_id for hit in dismax] == ["r-debut"]
    assert standard.last_updated == dismax.last_updated


def test_limit_is_clamped_to_max_limit(settings_factory):
    built = settings_factory(indexes="release", default_limit=1, max_limit=2)
    IndexBuilder(built).build_all()
    server = create_search_server(ResourceType.RELEASE, built)

    assert len(server.search("type:album")) == 1
    assert len(server.search("type:album OR type:single", limit=50)) == 2


def test_parse_errors_are_counted_and_reraised(settings):
    server = create_search_server(ResourceType.RELEASE, settings, dismax=True)
    labels = {"resource": "release", "error_type": "parse"}
    before = REGISTRY.get_sample_value("catalog_query_errors_total", labels) or 0.0

    with pytest.raises(QueryParseError):
        server.search('"unbalanced')

    assert REGISTRY.get_sample_value("catalog_query_errors_total", labels) == before + 1


def test_missing_index_cannot_be_served(settings_factory):
    settings = settings_factory()

    with pytest.raises(StorageError):
        create_search_server(ResourceType.ARTIST, settings)


def test_searcher_manager_picks_up_new_commits(settings):
    manager = SearcherManager(settings.index_directory("release"))
    first = manager.acquire()
    assert manager.maybe_refresh() is False

    IndexBuilder(settings).build_all()

    assert manager.maybe_refresh() is True
    assert manager.acquire() is not first
