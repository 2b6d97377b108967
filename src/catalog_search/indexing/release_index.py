"""Release index: one document per release with labels, mediums, credits and PUIDs."""

from __future__ import annotations

from collections.abc import Mapping
import logging
from typing import Any

from catalog_search.indexing.artist_credit import ArtistCreditFields, add_artist_credit_fields, build_artist_credits
from catalog_search.indexing.base import DatabaseIndex, require
from catalog_search.indexing.dates import format_date
from catalog_search.indexing.join_strategy import TransitiveJoin
from catalog_search.indexing.loader import ChildCollection, ChildRelation
from catalog_search.search.document import Document
from catalog_search.search.schema import KeywordField, NumericField, Schema, TextField


logger = logging.getLogger(__name__)

LABEL_INFOS = "labelinfos"
MEDIUMS = "mediums"
ARTIST_CREDITS = "artistcredits"

LABEL_FIELDS = ("laid", "label", "catno")
MEDIUM_FIELDS = ("format", "tracksmedium", "discidsmedium")

RELEASE_CREDIT_FIELDS = ArtistCreditFields(
    full_credit="artist",
    artist_id="arid",
    artist_name="artistname",
    sort_name="sortname",
    credit_name="creditname",
)

PUID_JOIN = TransitiveJoin(
    name="puids",
    root_expr="m.release",
    value_expr="p.puid",
    from_clause=(
        "FROM medium m "
        "JOIN track t ON t.tracklist = m.tracklist "
        "JOIN recording_puid rp ON rp.recording = t.recording "
        "JOIN puid p ON rp.puid = p.id"
    ),
    temp_table="tmp_release_puid",
)

_LABEL_INFOS_SQL = """
    SELECT rl.release, l.gid, ln.name, rl.catalog_number
    FROM release_label rl
    LEFT JOIN label l ON rl.label = l.id
    LEFT JOIN label_name ln ON l.name = ln.id
    WHERE rl.release BETWEEN ? AND ?
    ORDER BY rl.release, rl.id
"""

_MEDIUMS_SQL = """
    SELECT m.release, mf.name AS format, tr.track_count, count(mc.id) AS discid_count
    FROM medium m
    LEFT JOIN medium_format mf ON m.format = mf.id
    LEFT JOIN tracklist tr ON m.tracklist = tr.id
    LEFT JOIN medium_cdtoc mc ON mc.medium = m.id
    WHERE m.release BETWEEN ? AND ?
    GROUP BY m.release, m.id, mf.name, tr.track_count
    ORDER BY m.release, m.position
"""

_ARTIST_CREDITS_SQL = """
    SELECT r.id, acn.position, acn.join_phrase, a.gid, a.comment,
           an.name AS artist_name, an2.name AS credit_name, an3.name AS sort_name
    FROM release r
    JOIN artist_credit_name acn ON r.artist_credit = acn.artist_credit
    JOIN artist a ON acn.artist = a.id
    JOIN artist_name an ON a.name = an.id
    JOIN artist_name an2 ON acn.name = an2.id
    JOIN artist_name an3 ON a.sort_name = an3.id
    WHERE r.id BETWEEN ? AND ?
    ORDER BY r.id, acn.position
"""

_RELEASES_SQL = """
    SELECT rl.id, rl.gid, rn.name, rl.barcode, lower(c.iso_code) AS country,
           rl.date_year, rl.date_month, rl.date_day, rgt.name AS type,
           rm.amazon_asin, lang.iso_code_3t AS language, s.iso_code AS script,
           rs.name AS status, rl.comment
    FROM release rl
    JOIN release_name rn ON rl.name = rn.id
    LEFT JOIN release_meta rm ON rl.id = rm.id
    LEFT JOIN release_group rg ON rl.release_group = rg.id
    LEFT JOIN release_group_type rgt ON rg.type = rgt.id
    LEFT JOIN country c ON rl.country = c.id
    LEFT JOIN release_status rs ON rl.status = rs.id
    LEFT JOIN language lang ON rl.language = lang.id
    LEFT JOIN script s ON rl.script = s.id
    WHERE rl.id BETWEEN ? AND ?
    ORDER BY rl.id
"""


class ReleaseIndex(DatabaseIndex):
    name = "release"
    root_table = "release"

    @classmethod
    def schema(cls) -> Schema:
        return Schema(
            name=cls.name,
            unique_field="reid",
            fields=[
                NumericField("id"),
                KeywordField("reid", lowercase=True),
                TextField("release"),
                TextField("release_accent", analyzer_name="accent"),
                TextField("comment"),
                KeywordField("type", lowercase=True),
                KeywordField("status", lowercase=True),
                KeywordField("country", lowercase=True),
                KeywordField("date"),
                KeywordField("barcode"),
                KeywordField("asin", lowercase=True),
                KeywordField("lang", lowercase=True),
                KeywordField("script", lowercase=True),
                KeywordField("laid", lowercase=True),
                TextField("label"),
                KeywordField("catno", lowercase=True),
                KeywordField("format", lowercase=True),
                NumericField("tracksmedium"),
                NumericField("discidsmedium"),
                NumericField("mediums"),
                NumericField("tracks"),
                NumericField("discids"),
                KeywordField("puid", lowercase=True),
                TextField("artist"),
                TextField("artistname"),
                TextField("creditname"),
                KeywordField("arid", lowercase=True),
                TextField("sortname"),
            ],
        )

    def root_sql(self) -> str:
        return _RELEASES_SQL

    def relations(self) -> list[ChildRelation]:
        return [
            ChildRelation(LABEL_INFOS, _LABEL_INFOS_SQL),
            ChildRelation(MEDIUMS, _MEDIUMS_SQL),
            ChildRelation(ARTIST_CREDITS, _ARTIST_CREDITS_SQL),
        ]

    def transitive_join(self) -> TransitiveJoin:
        return PUID_JOIN

    def document_from_row(
        self,
        row: Mapping[str, Any],
        children: Mapping[str, ChildCollection],
        resolved: list[str],
    ) -> Document:
        release_id = int(require(row, "id", index=self.name))
        doc = Document()
        doc.add_numeric_field("id", release_id)
        doc.add_field("reid", require(row, "gid", index=self.name))
        name = require(row, "name", index=self.name)
        doc.add_field("release", name)
        doc.add_field("release_accent", name)

        doc.add_non_empty_field("type", row["type"])
        doc.add_non_empty_field("status", row["status"])
        doc.add_non_empty_field("country", row["country"])
        doc.add_non_empty_field("date", format_date(row["date_year"], row["date_month"], row["date_day"]))
        doc.add_non_empty_field("barcode", row["barcode"])
        doc.add_non_empty_field("asin", row["amazon_asin"])
        doc.add_non_empty_field("lang", row["language"])
        doc.add_non_empty_field("script", row["script"])
        doc.add_non_empty_field("comment", row["comment"])

        for label_gid, label_name, catalog_number in children.get(LABEL_INFOS, {}).get(release_id, []):
            doc.add_group_record(LABEL_FIELDS, (label_gid, label_name, catalog_number))

        add_medium_fields(doc, children.get(MEDIUMS, {}).get(release_id, []))

        doc.add_values("puid", resolved)

        credits = build_artist_credits({release_id: children.get(ARTIST_CREDITS, {}).get(release_id, [])})
        add_artist_credit_fields(doc, credits.get(release_id), RELEASE_CREDIT_FIELDS)
        return doc


def add_medium_fields(doc: Document, mediums: list[tuple[Any, ...]]) -> None:
    """Write per-medium groups and the medium, track and disc id totals.

    Totals are only written for releases that have at least one medium.
    """
    if not mediums:
        return
    tracks = 0
    discids = 0
    for medium_format, track_count, discid_count in mediums:
        doc.add_group_record(MEDIUM_FIELDS, (medium_format, track_count, discid_count))
        tracks += int(track_count or 0)
        discids += int(discid_count or 0)
    doc.add_numeric_field("mediums", len(mediums))
    doc.add_numeric_field("tracks", tracks)
    doc.add_numeric_field("discids", discids)
