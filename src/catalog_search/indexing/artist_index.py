"""Artist index."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from catalog_search.indexing.base import DatabaseIndex, require
from catalog_search.indexing.dates import normalize_date
from catalog_search.indexing.loader import ChildCollection, ChildRelation
from catalog_search.search.document import Document
from catalog_search.search.schema import KeywordField, NumericField, Schema, TextField


ALIASES = "aliases"

ARTIST_TYPES = {0: "Unknown", 1: "Person", 2: "Group"}

_ALIASES_SQL = """
    SELECT aa.artist, an.name
    FROM artist_alias aa
    JOIN artist_name an ON aa.name = an.id
    WHERE aa.artist BETWEEN ? AND ?
    ORDER BY aa.artist, aa.id
"""

_ARTISTS_SQL = """
    SELECT a.id, a.gid, an.name, sn.name AS sort_name, a.type,
           a.begin_date, a.end_date, a.comment
    FROM artist a
    JOIN artist_name an ON a.name = an.id
    LEFT JOIN artist_name sn ON a.sort_name = sn.id
    WHERE a.id BETWEEN ? AND ?
    ORDER BY a.id
"""


def artist_type_name(code: int | None) -> str:
    if code is None:
        return ARTIST_TYPES[0]
    return ARTIST_TYPES.get(int(code), ARTIST_TYPES[0])


class ArtistIndex(DatabaseIndex):
    name = "artist"
    root_table = "artist"

    @classmethod
    def schema(cls) -> Schema:
        return Schema(
            name=cls.name,
            unique_field="arid",
            fields=[
                NumericField("id"),
                KeywordField("arid", lowercase=True),
                TextField("artist"),
                TextField("artist_accent", analyzer_name="accent"),
                TextField("sortname"),
                KeywordField("type", lowercase=True),
                KeywordField("begin"),
                KeywordField("end"),
                TextField("comment"),
                TextField("alias"),
            ],
        )

    def root_sql(self) -> str:
        return _ARTISTS_SQL

    def relations(self) -> list[ChildRelation]:
        return [ChildRelation(ALIASES, _ALIASES_SQL)]

    def document_from_row(
        self,
        row: Mapping[str, Any],
        children: Mapping[str, ChildCollection],
        resolved: list[str],
    ) -> Document:
        artist_id = int(require(row, "id", index=self.name))
        doc = Document()
        doc.add_numeric_field("id", artist_id)
        doc.add_field("arid", require(row, "gid", index=self.name))
        name = require(row, "name", index=self.name)
        doc.add_field("artist", name)
        doc.add_field("artist_accent", name)
        doc.add_non_empty_field("sortname", row["sort_name"])
        doc.add_field("type", artist_type_name(row["type"]))
        doc.add_non_empty_field("begin", normalize_date(row["begin_date"]))
        doc.add_non_empty_field("end", normalize_date(row["end_date"]))
        doc.add_non_empty_field("comment", row["comment"])

        for (alias,) in children.get(ALIASES, {}).get(artist_id, []):
            doc.add_non_empty_field("alias", alias)
        return doc
