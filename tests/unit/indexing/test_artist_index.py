"""Tests for artist document assembly."""

import pytest

from catalog_search.indexing.artist_index import ALIASES, ArtistIndex, artist_type_name
from catalog_search.indexing.source import SqliteCatalogSource


pytestmark = pytest.mark.unit


def _row(**overrides):
    row = {
        "id": 3,
        "gid": "a-3",
        "name": "Sigur Rós",
        "sort_name": "Sigur Rós",
        "type": 2,
        "begin_date": "1994-08-00",
        "end_date": "2020-00-00",
        "comment": None,
    }
    row.update(overrides)
    return row


@pytest.fixture
def index(catalog_db):
    with SqliteCatalogSource(catalog_db) as source:
        yield ArtistIndex(source)


@pytest.mark.parametrize(("code", "name"), [(0, "Unknown"), (1, "Person"), (2, "Group"), (9, "Unknown"), (None, "Unknown")])
def test_artist_type_names(code, name):
    assert artist_type_name(code) == name


def test_artist_document_fields(index):
    children = {ALIASES: {3: [("Sigur Ros",), ("Sigurros",)]}}

    fields = index.document_from_row(_row(), children, []).render()

    assert fields["arid"] == ["a-3"]
    assert fields["artist"] == ["Sigur Rós"]
    assert fields["artist_accent"] == ["Sigur Rós"]
    assert fields["type"] == ["Group"]
    assert fields["begin"] == ["1994-08"]
    assert fields["end"] == ["2020"]
    assert fields["alias"] == ["Sigur Ros", "Sigurros"]
    assert "comment" not in fields


def test_artist_without_aliases_has_no_alias_field(index):
    fields = index.document_from_row(_row(end_date=None), {ALIASES: {}}, []).render()

    assert "alias" not in fields
    assert "end" not in fields
