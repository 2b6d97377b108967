"""Tests for the catalog-index and catalog-search entry points."""

import logging

import orjson
import pytest

from catalog_search.cli import EXIT_FAILURE, EXIT_QUERY_ERROR, index_main, search_main


pytestmark = pytest.mark.unit


@pytest.fixture
def cli_env(settings_factory, catalog_db, tmp_path):
    settings_factory()
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield {"db": str(catalog_db), "indexes_dir": str(tmp_path / "cli-indexes")}
    root.handlers[:] = handlers
    root.setLevel(level)


def _build(cli_env, *extra):
    return index_main(["--db", cli_env["db"], "--indexes-dir", cli_env["indexes_dir"], "--chunk-size", "2", *extra])


def test_index_then_search_prints_json_lines(cli_env, capsys):
    assert _build(cli_env, "--join-strategy", "temptable") == 0
    summary = capsys.readouterr().out
    assert "release" in summary
    assert "indexed 3 docs" in summary

    code = search_main(["release", "brown", "--dismax", "--indexes-dir", cli_env["indexes_dir"]])

    lines = [orjson.loads(line) for line in capsys.readouterr().out.strip().splitlines()]
    assert code == 0
    assert lines[0]["rank"] == 1
    assert lines[0]["id"] == "r-brown"
    assert lines[0]["fields"]["catno"] == ["CatA", "CatB"]
    assert lines[-1]["total_hits"] == 1


def test_search_parse_error_exits_with_query_error(cli_env, capsys):
    assert _build(cli_env, "--indexes", "release") == 0

    code = search_main(["release", 'release:"open', "--indexes-dir", cli_env["indexes_dir"]])

    assert code == EXIT_QUERY_ERROR
    assert "Invalid query" in capsys.readouterr().err


def test_invalid_configuration_exits_with_failure(cli_env, capsys):
    code = _build(cli_env, "--indexes", "label")

    assert code == EXIT_FAILURE
    assert "Invalid configuration" in capsys.readouterr().err


def test_missing_database_exits_with_failure(cli_env, tmp_path, capsys):
    code = index_main(["--db", str(tmp_path / "missing.sqlite"), "--indexes-dir", cli_env["indexes_dir"]])

    assert code == EXIT_FAILURE
    assert "Index build failed" in capsys.readouterr().err


def test_search_without_index_exits_with_failure(cli_env, capsys):
    code = search_main(["artist", "orbital", "--indexes-dir", cli_env["indexes_dir"]])

    assert code == EXIT_FAILURE
    assert "Search failed" in capsys.readouterr().err


@pytest.mark.parametrize("option", ["--offset", "--limit"])
def test_negative_paging_is_rejected_by_the_parser(cli_env, capsys, option):
    with pytest.raises(SystemExit) as exc_info:
        search_main(["release", "brown", option, "-1", "--indexes-dir", cli_env["indexes_dir"]])

    assert exc_info.value.code == 2
    assert "must be >= 0" in capsys.readouterr().err
