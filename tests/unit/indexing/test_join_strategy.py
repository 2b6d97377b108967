"""Contract suite shared by every join resolution strategy."""

import sqlite3

import pytest

from catalog_search.config import ConfigurationError
from catalog_search.indexing.chunks import IdRange, iter_chunks
from catalog_search.indexing.join_strategy import (
    JoinResolver,
    JoinStrategyError,
    JoinStrategyKind,
    TransitiveJoin,
    decode_values,
    encode_values,
    resolve_all,
)
from catalog_search.indexing.release_index import PUID_JOIN
from catalog_search.indexing.source import SqliteCatalogSource


pytestmark = pytest.mark.unit

ALL_KINDS = list(JoinStrategyKind)


@pytest.fixture
def source(catalog_db):
    # temp tables need a writable connection
    with SqliteCatalogSource(catalog_db, read_only=False) as catalog_source:
        yield catalog_source


@pytest.mark.parametrize("kind", ALL_KINDS, ids=lambda kind: kind.value)
@pytest.mark.parametrize("chunk_size", [1, 2, 10])
def test_every_strategy_resolves_the_same_values(source, release_puids, kind, chunk_size):
    with JoinResolver(kind, PUID_JOIN, source) as resolver:
        resolver.prepare()
        resolved = resolve_all(resolver, list(iter_chunks(source.max_id("release"), chunk_size)))

    assert resolved == release_puids


@pytest.mark.parametrize("kind", ALL_KINDS, ids=lambda kind: kind.value)
def test_root_without_values_resolves_to_empty_list(source, kind):
    with JoinResolver(kind, PUID_JOIN, source) as resolver:
        resolver.prepare()
        resolver.load_chunk(IdRange(4, 6))
        assert resolver.resolve(5) == []


@pytest.mark.parametrize("kind", ALL_KINDS, ids=lambda kind: kind.value)
def test_resolve_before_prepare_fails(source, kind):
    resolver = JoinResolver(kind, PUID_JOIN, source)

    with pytest.raises(JoinStrategyError, match="before prepare"):
        resolver.resolve(1)


@pytest.mark.parametrize("kind", ALL_KINDS, ids=lambda kind: kind.value)
def test_resolve_outside_loaded_chunk_fails(source, kind):
    with JoinResolver(kind, PUID_JOIN, source) as resolver:
        resolver.prepare()
        resolver.load_chunk(IdRange(0, 2))
        with pytest.raises(JoinStrategyError, match="outside the loaded chunk"):
            resolver.resolve(2)


@pytest.mark.parametrize("kind", ALL_KINDS, ids=lambda kind: kind.value)
def test_prepare_twice_and_use_after_close_fail(source, kind):
    resolver = JoinResolver(kind, PUID_JOIN, source)
    resolver.prepare()
    with pytest.raises(JoinStrategyError, match="already prepared"):
        resolver.prepare()

    resolver.close()
    resolver.close()
    with pytest.raises(JoinStrategyError, match="closed"):
        resolver.load_chunk(IdRange(0, 2))


def test_temp_table_is_dropped_on_close(source):
    resolver = JoinResolver(JoinStrategyKind.TEMP_TABLE, PUID_JOIN, source)
    resolver.prepare()
    assert list(source.stream(f"SELECT count(*) FROM {PUID_JOIN.temp_table}"))[0][0] == 4

    resolver.close()

    rows = list(source.stream("SELECT name FROM sqlite_temp_master WHERE name = ?", (PUID_JOIN.temp_table,)))
    assert rows == []


def test_map_strategy_issues_no_queries_per_chunk(source):
    resolver = JoinResolver(JoinStrategyKind.WHOLE_INDEX_CACHE, PUID_JOIN, source)
    resolver.prepare()
    assert resolver.cached_roots == 2
    source.close()

    resolver.load_chunk(IdRange(0, 2))
    assert resolver.resolve(1) == ["p-aaa", "p-bbb", "p-ccc"]


def test_values_containing_the_separator_survive_the_map_cache(tmp_path):
    path = tmp_path / "tricky.sqlite"
    conn = sqlite3.connect(path)
    conn.execute("CREATE TABLE owner_value (owner INTEGER, value TEXT)")
    conn.executemany(
        "INSERT INTO owner_value VALUES (?, ?)",
        [(1, "a\0b"), (1, "c\\0"), (1, ""), (2, "\\")],
    )
    conn.commit()
    conn.close()
    join = TransitiveJoin(
        name="values",
        root_expr="ov.owner",
        value_expr="ov.value",
        from_clause="FROM owner_value ov",
        temp_table="tmp_owner_value",
    )

    results = {}
    with SqliteCatalogSource(path, read_only=False) as tricky:
        for kind in ALL_KINDS:
            with JoinResolver(kind, join, tricky) as resolver:
                resolver.prepare()
                results[kind] = resolve_all(resolver, [IdRange(0, 3)])

    expected = {1: ["", "a\0b", "c\\0"], 2: ["\\"]}
    assert all(result == expected for result in results.values())


def test_null_values_are_skipped(tmp_path):
    path = tmp_path / "nulls.sqlite"
    conn = sqlite3.connect(path)
    conn.execute("CREATE TABLE owner_value (owner INTEGER, value TEXT)")
    conn.executemany("INSERT INTO owner_value VALUES (?, ?)", [(1, None), (1, "x")])
    conn.commit()
    conn.close()
    join = TransitiveJoin("values", "ov.owner", "ov.value", "FROM owner_value ov", "tmp_owner_value")

    with SqliteCatalogSource(path, read_only=False) as nulls:
        for kind in ALL_KINDS:
            with JoinResolver(kind, join, nulls) as resolver:
                resolver.prepare()
                resolver.load_chunk(IdRange(0, 2))
                assert resolver.resolve(1) == ["x"]


@pytest.mark.parametrize("kind", ALL_KINDS, ids=lambda kind: kind.value)
def test_rows_without_a_root_id_are_ignored(tmp_path, kind):
    path = tmp_path / "orphans.sqlite"
    conn = sqlite3.connect(path)
    conn.execute("CREATE TABLE owner_value (owner INTEGER, value TEXT)")
    conn.executemany("INSERT INTO owner_value VALUES (?, ?)", [(None, "orphan"), (1, "x")])
    conn.commit()
    conn.close()
    join = TransitiveJoin("values", "ov.owner", "ov.value", "FROM owner_value ov", "tmp_owner_value")

    with SqliteCatalogSource(path, read_only=False) as orphans:
        with JoinResolver(kind, join, orphans) as resolver:
            resolver.prepare()
            assert resolve_all(resolver, [IdRange(0, 2)]) == {1: ["x"]}


@pytest.mark.parametrize(
    "values",
    [[], [""], ["plain"], ["a\0b", "c"], ["back\\slash", "\\0", "\0\\"], ["ünïcode", "日本"]],
)
def test_encode_decode_round_trip(values):
    assert decode_values(encode_values(values)) == values


def test_empty_list_and_single_empty_value_encode_differently():
    assert encode_values([]) == ""
    assert encode_values([""]) == "\0"


@pytest.mark.parametrize("encoded", ["abc", "a\\", "a\\x\0"])
def test_decode_rejects_malformed_input(encoded):
    with pytest.raises(ValueError):
        decode_values(encoded)


def test_strategy_names_map_to_kinds():
    assert JoinStrategyKind.from_name("none") is JoinStrategyKind.NONE
    assert JoinStrategyKind.from_name(" TempTable ") is JoinStrategyKind.TEMP_TABLE
    assert JoinStrategyKind.from_name("map") is JoinStrategyKind.WHOLE_INDEX_CACHE
    with pytest.raises(ConfigurationError, match="Unknown join strategy"):
        JoinStrategyKind.from_name("hash")


def test_resolver_rejects_unknown_kind(source):
    with pytest.raises(JoinStrategyError, match="Unsupported"):
        JoinResolver("map", PUID_JOIN, source)


def test_transitive_join_validates_temp_table_name():
    with pytest.raises(ConfigurationError, match="temporary table"):
        TransitiveJoin("x", "a.id", "a.v", "FROM a", "bad name; DROP")
