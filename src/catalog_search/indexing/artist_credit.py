"""Artist credits: the ordered list of artists a release is credited to."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

from catalog_search.search.document import Document


@dataclass(frozen=True)
class ArtistCreditName:
    """One position in an artist credit."""

    artist_gid: str
    name: str
    sort_name: str | None = None
    credit_name: str | None = None
    join_phrase: str | None = None
    comment: str | None = None

    @property
    def display_name(self) -> str:
        return self.credit_name or self.name


@dataclass(frozen=True)
class ArtistCredit:
    names: tuple[ArtistCreditName, ...] = field(default_factory=tuple)

    @property
    def full_credit(self) -> str:
        """Credit as printed on the release, e.g. ``"Orbital & Kirsty Hawkshaw"``."""
        return "".join(name.display_name + (name.join_phrase or "") for name in self.names)

    def __len__(self) -> int:
        return len(self.names)


@dataclass(frozen=True)
class ArtistCreditFields:
    """Index field names an artist credit is written to."""

    full_credit: str
    artist_id: str
    artist_name: str
    sort_name: str
    credit_name: str


def build_artist_credits(collection: dict[int, list[tuple[Any, ...]]]) -> dict[int, ArtistCredit]:
    """Build credits from loader tuples of ``(position, join_phrase, gid, comment, name, credit_name, sort_name)``.

    Tuples are expected in credit position order.
    """
    credits: dict[int, ArtistCredit] = {}
    for root_id, rows in collection.items():
        credits[root_id] = ArtistCredit(tuple(_credit_name(row) for row in rows))
    return credits


def _credit_name(row: Sequence[Any]) -> ArtistCreditName:
    _position, join_phrase, gid, comment, name, credit_name, sort_name = row
    return ArtistCreditName(
        artist_gid=gid,
        name=name,
        sort_name=sort_name,
        credit_name=credit_name,
        join_phrase=join_phrase,
        comment=comment,
    )


def add_artist_credit_fields(document: Document, credit: ArtistCredit | None, fields: ArtistCreditFields) -> None:
    """Write a credit to ``document``; a missing or empty credit writes nothing.

    The per-artist fields form one aligned group so the i-th artist id, name,
    sort name and credit name all describe the same credited artist.
    """
    if credit is None or not credit.names:
        return
    document.add_non_empty_field(fields.full_credit, credit.full_credit)
    group = (fields.artist_id, fields.artist_name, fields.sort_name, fields.credit_name)
    for name in credit.names:
        document.add_group_record(group, (name.artist_gid, name.name, name.sort_name, name.display_name))
