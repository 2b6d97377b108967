"""Tests for the SQLite catalog source."""

import pytest

from catalog_search.indexing.chunks import IdRange
from catalog_search.indexing.source import SourceError, SqliteCatalogSource


pytestmark = pytest.mark.unit


def test_missing_database_is_a_source_error(tmp_path):
    with pytest.raises(SourceError, match="does not exist"):
        SqliteCatalogSource(tmp_path / "absent.sqlite")


def test_max_id_and_range_reads(catalog_db):
    with SqliteCatalogSource(catalog_db) as source:
        assert source.max_id("release") == 5
        assert source.count_up_to("release", 2) == 2
        rows = source.fetch_range("SELECT id, gid FROM release WHERE id BETWEEN ? AND ? ORDER BY id", IdRange(0, 5))

    assert [(row["id"], row["gid"]) for row in rows] == [(1, "r-brown"), (2, "r-debut")]


def test_max_id_of_empty_table_is_negative(catalog_db):
    with SqliteCatalogSource(catalog_db, read_only=False) as source:
        source.execute("CREATE TEMP TABLE empty_root (id INTEGER PRIMARY KEY)")
        assert source.max_id("empty_root") == -1


def test_max_id_rejects_unsafe_table_names(catalog_db):
    with SqliteCatalogSource(catalog_db) as source, pytest.raises(ValueError, match="Invalid table name"):
        source.max_id("release; DROP TABLE release")


def test_read_only_source_refuses_writes(catalog_db):
    with SqliteCatalogSource(catalog_db) as source, pytest.raises(SourceError):
        source.execute("DELETE FROM release")


def test_sql_errors_are_wrapped(catalog_db):
    with SqliteCatalogSource(catalog_db) as source, pytest.raises(SourceError, match="no such table"):
        source.fetch_range("SELECT * FROM nothing WHERE id BETWEEN ? AND ?", IdRange(0, 1))


def test_closed_source_raises(catalog_db):
    source = SqliteCatalogSource(catalog_db)
    source.close()

    with pytest.raises(SourceError, match="closed"):
        source.max_id("release")
