"""Tests for schema definitions."""

import pytest

from catalog_search.indexing.artist_index import ArtistIndex
from catalog_search.indexing.release_index import ReleaseIndex
from catalog_search.search.schema import KeywordField, NumericField, Schema, StoredField, TextField
from catalog_search.search.servers import RESOURCE_CONFIGS, ResourceType


pytestmark = pytest.mark.unit


def test_schema_round_trips_through_dict():
    schema = ReleaseIndex.schema()

    restored = Schema.from_dict(schema.to_dict())

    assert restored.to_dict() == schema.to_dict()
    assert restored.unique_field == "reid"
    assert restored["release_accent"].analyzer_key == "accent"
    assert restored["status"].analyzer_key == "keyword-lower"


def test_schema_rejects_duplicate_fields():
    with pytest.raises(ValueError, match="more than once"):
        Schema(fields=[TextField("name"), KeywordField("name")], unique_field="name")


def test_schema_requires_unique_field():
    with pytest.raises(ValueError, match="Unique field"):
        Schema(fields=[TextField("name")], unique_field="id")


def test_analyzer_for_unknown_field_falls_back_to_standard():
    schema = Schema(fields=[KeywordField("id")])

    assert [token.text for token in schema.analyzer_for("missing")("Hello World")] == ["hello", "world"]
    assert [token.text for token in schema.analyzer_for("id")("AbC")] == ["AbC"]


def test_stored_field_is_never_indexed():
    stored = StoredField("raw")

    assert stored.indexed is False
    assert NumericField("tracks").analyzer_key == "keyword"


@pytest.mark.parametrize("index_class", [ReleaseIndex, ArtistIndex])
def test_index_schemas_contain_their_dismax_fields(index_class):
    schema = index_class.schema()
    config = RESOURCE_CONFIGS[ResourceType(index_class.name)]

    assert config.default_field in schema
    assert all(name in schema for name in config.dismax_fields)
