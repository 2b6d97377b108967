"""Tests for per-chunk child relation loading."""

import pytest

from catalog_search.indexing.chunks import IdRange
from catalog_search.indexing.loader import ChildCollectionLoader, ChildRelation, RelationTimings, group_rows
from catalog_search.indexing.release_index import LABEL_INFOS, ReleaseIndex
from catalog_search.indexing.source import SourceError, SqliteCatalogSource


pytestmark = pytest.mark.unit


def test_group_rows_keeps_row_order_per_root():
    rows = [(1, "a", 1), (1, "b", 2), (3, "c", 3)]

    grouped = group_rows(rows)

    assert grouped == {1: [("a", 1), ("b", 2)], 3: [("c", 3)]}


def test_group_rows_omits_roots_without_rows():
    assert 2 not in group_rows([(1, "a"), (3, "b")])
    assert group_rows([]) == {}


def test_loader_groups_labels_in_catalog_order(catalog_db):
    with SqliteCatalogSource(catalog_db) as source:
        loader = ChildCollectionLoader(source, ReleaseIndex(source).relations(), RelationTimings("release"))
        collections = loader.load(IdRange(0, 6))

    labels = collections[LABEL_INFOS]
    assert labels[1] == [("l-internal", "Internal", "CatA"), ("l-ffrr", "FFRR", "CatB")]
    assert labels[2] == [(None, None, "TPLP")]
    assert 5 not in labels


def test_loader_scopes_rows_to_the_chunk(catalog_db):
    with SqliteCatalogSource(catalog_db) as source:
        loader = ChildCollectionLoader(source, ReleaseIndex(source).relations(), RelationTimings("release"))
        collections = loader.load(IdRange(2, 4))

    assert set(collections[LABEL_INFOS]) == {2}


def test_loader_rejects_duplicate_relation_names(catalog_db):
    relation = ChildRelation("labels", "SELECT 1 WHERE ? <= ?")
    with SqliteCatalogSource(catalog_db) as source, pytest.raises(ValueError, match="Duplicate"):
        ChildCollectionLoader(source, [relation, relation], RelationTimings("release"))


def test_loader_propagates_source_errors(catalog_db):
    relation = ChildRelation("broken", "SELECT release FROM missing_table WHERE release BETWEEN ? AND ?")
    with SqliteCatalogSource(catalog_db) as source:
        loader = ChildCollectionLoader(source, [relation], RelationTimings("release"))
        with pytest.raises(SourceError, match="missing_table"):
            loader.load(IdRange(0, 10))


def test_relation_timings_accumulate_per_relation():
    timings = RelationTimings("release")

    with timings.measure("labels"):
        pass
    with timings.measure("labels"):
        pass
    with timings.measure("mediums"):
        pass

    assert set(timings.as_dict()) == {"labels", "mediums"}
    assert all(seconds >= 0 for seconds in timings.as_dict().values())
