"""Tests for documents and aligned field groups."""

import pytest

from catalog_search.search.document import MISSING_VALUE, Document


pytestmark = pytest.mark.unit


def test_group_records_render_as_aligned_repeated_fields():
    doc = Document()
    doc.add_group_record(("laid", "label", "catno"), ("L1", "One", "CatA"))
    doc.add_group_record(("laid", "label", "catno"), ("L2", None, ""))

    rendered = doc.render()

    assert rendered == {"laid": ["L1", "L2"], "label": ["One", MISSING_VALUE], "catno": ["CatA", MISSING_VALUE]}


def test_group_record_must_match_group_width():
    doc = Document()

    with pytest.raises(ValueError, match="does not match"):
        doc.add_group_record(("a", "b"), ("only one",))


def test_group_fields_cannot_also_be_written_as_scalars():
    doc = Document()
    doc.add_field("label", "Loose")

    with pytest.raises(ValueError, match="already written"):
        doc.add_group_record(("laid", "label"), ("L1", "One"))


def test_scalars_cannot_be_added_to_grouped_fields():
    doc = Document()
    doc.add_group_record(("laid", "label"), ("l1", "L1"))

    with pytest.raises(ValueError, match="group of parallel fields"):
        doc.add_field("label", "extra")

    assert doc.render() == {"laid": ["l1"], "label": ["L1"]}


def test_optional_fields_are_omitted_when_empty():
    doc = Document()
    doc.add_non_empty_field("barcode", None)
    doc.add_non_empty_field("comment", "")
    doc.add_values("alias", ["A", None, "", "B"])

    assert doc.render() == {"alias": ["A", "B"]}


def test_mandatory_field_rejects_empty_value():
    with pytest.raises(ValueError, match="requires a value"):
        Document().add_field("reid", "")


def test_rendered_document_is_sealed():
    doc = Document()
    doc.add_numeric_field("tracks", 12)
    doc.render()

    with pytest.raises(RuntimeError, match="already been rendered"):
        doc.add_field("tracks", 13)


def test_get_values_reads_scalars_and_groups():
    doc = Document()
    doc.add_field("release", "Halcyon")
    doc.add_group_record(("format", "tracksmedium"), ("CD", 4))

    assert doc.get_value("release") == "Halcyon"
    assert doc.get_values("tracksmedium") == ["4"]
    assert doc.get_value("missing") is None
    assert len(doc.groups) == 1
