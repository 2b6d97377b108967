"""Shared test fixtures: a small relational catalog in a temporary SQLite file."""

import os
from pathlib import Path
import sqlite3

import pytest

from catalog_search.config import Settings, load_settings


CATALOG_SCHEMA = """
CREATE TABLE artist_name (id INTEGER PRIMARY KEY, name TEXT NOT NULL);
CREATE TABLE artist (
    id INTEGER PRIMARY KEY, gid TEXT, name INTEGER, sort_name INTEGER, type INTEGER,
    begin_date TEXT, end_date TEXT, comment TEXT
);
CREATE TABLE artist_alias (id INTEGER PRIMARY KEY, artist INTEGER, name INTEGER);
CREATE TABLE artist_credit (id INTEGER PRIMARY KEY);
CREATE TABLE artist_credit_name (
    artist_credit INTEGER, position INTEGER, artist INTEGER, name INTEGER, join_phrase TEXT
);
CREATE TABLE release_name (id INTEGER PRIMARY KEY, name TEXT NOT NULL);
CREATE TABLE release_group_type (id INTEGER PRIMARY KEY, name TEXT);
CREATE TABLE release_group (id INTEGER PRIMARY KEY, type INTEGER);
CREATE TABLE release_status (id INTEGER PRIMARY KEY, name TEXT);
CREATE TABLE country (id INTEGER PRIMARY KEY, iso_code TEXT);
CREATE TABLE language (id INTEGER PRIMARY KEY, iso_code_3t TEXT);
CREATE TABLE script (id INTEGER PRIMARY KEY, iso_code TEXT);
CREATE TABLE release (
    id INTEGER PRIMARY KEY, gid TEXT, name INTEGER, artist_credit INTEGER, release_group INTEGER,
    status INTEGER, country INTEGER, date_year INTEGER, date_month INTEGER, date_day INTEGER,
    barcode TEXT, language INTEGER, script INTEGER, comment TEXT
);
CREATE TABLE release_meta (id INTEGER PRIMARY KEY, amazon_asin TEXT);
CREATE TABLE label_name (id INTEGER PRIMARY KEY, name TEXT);
CREATE TABLE label (id INTEGER PRIMARY KEY, gid TEXT, name INTEGER);
CREATE TABLE release_label (id INTEGER PRIMARY KEY, release INTEGER, label INTEGER, catalog_number TEXT);
CREATE TABLE medium_format (id INTEGER PRIMARY KEY, name TEXT);
CREATE TABLE tracklist (id INTEGER PRIMARY KEY, track_count INTEGER);
CREATE TABLE medium (id INTEGER PRIMARY KEY, release INTEGER, position INTEGER, tracklist INTEGER, format INTEGER);
CREATE TABLE medium_cdtoc (id INTEGER PRIMARY KEY, medium INTEGER);
CREATE TABLE track (id INTEGER PRIMARY KEY, tracklist INTEGER, recording INTEGER);
CREATE TABLE puid (id INTEGER PRIMARY KEY, puid TEXT);
CREATE TABLE recording_puid (id INTEGER PRIMARY KEY, recording INTEGER, puid INTEGER);
"""

CATALOG_ROWS = """
INSERT INTO artist_name VALUES
    (1, 'Orbital'), (2, 'Kirsty Hawkshaw'), (3, 'Hawkshaw, Kirsty'), (4, 'Björk'),
    (5, 'Bjork Gudmundsdottir'), (6, 'Kirsty');
INSERT INTO artist VALUES
    (1, 'a-orbital', 1, 1, 2, '1989-00-00', NULL, 'UK electronic duo'),
    (2, 'a-kirsty', 2, 3, 1, '1968-01-00', NULL, NULL),
    (4, 'a-bjork', 4, 4, 9, '1965-11-21', NULL, NULL);
INSERT INTO artist_alias VALUES (1, 4, 5), (2, 4, 4);
INSERT INTO artist_credit VALUES (1), (2);
INSERT INTO artist_credit_name VALUES (1, 1, 2, 6, ''), (1, 0, 1, 1, ' & '), (2, 0, 4, 4, NULL);

INSERT INTO release_name VALUES (1, 'Brown Album'), (2, 'Debut'), (3, 'Halcyon');
INSERT INTO release_group_type VALUES (1, 'Album'), (2, 'Single');
INSERT INTO release_group VALUES (1, 1), (2, 1), (3, 2);
INSERT INTO release_status VALUES (1, 'Official');
INSERT INTO country VALUES (1, 'GB'), (2, 'IS');
INSERT INTO language VALUES (1, 'eng');
INSERT INTO script VALUES (1, 'Latn');
INSERT INTO release VALUES
    (1, 'r-brown', 1, 1, 1, 1, 1, 1993, 5, 20, '5012345678900', 1, 1, NULL),
    (2, 'r-debut', 2, 2, 2, 1, 2, 1993, 7, NULL, NULL, 1, 1, 'first solo album'),
    (5, 'r-halcyon', 3, 1, 3, NULL, NULL, NULL, NULL, NULL, '', NULL, NULL, NULL);
INSERT INTO release_meta VALUES (1, 'B000002LXX'), (2, NULL), (5, NULL);

INSERT INTO label_name VALUES (1, 'Internal'), (2, 'FFRR');
INSERT INTO label VALUES (1, 'l-internal', 1), (2, 'l-ffrr', 2);
INSERT INTO release_label VALUES (1, 1, 1, 'CatA'), (2, 1, 2, 'CatB'), (3, 2, NULL, 'TPLP');

INSERT INTO medium_format VALUES (1, 'CD'), (2, 'Vinyl');
INSERT INTO tracklist VALUES (1, 4), (2, 8), (3, 11);
INSERT INTO medium VALUES (1, 1, 1, 1, 1), (2, 1, 2, 2, 2), (3, 2, 1, 3, 1);
INSERT INTO medium_cdtoc VALUES (1, 1), (2, 1), (3, 3);

INSERT INTO track VALUES (1, 1, 1), (2, 1, 2), (3, 2, 3), (4, 3, 4);
INSERT INTO puid VALUES (1, 'p-ccc'), (2, 'p-aaa'), (3, 'p-bbb'), (4, 'p-ddd');
INSERT INTO recording_puid VALUES (1, 1, 1), (2, 2, 2), (3, 3, 3), (4, 4, 4);
"""

# Expected PUIDs per release, ordered by value.
RELEASE_PUIDS = {1: ["p-aaa", "p-bbb", "p-ccc"], 2: ["p-ddd"]}


@pytest.fixture
def catalog_db(tmp_path: Path) -> Path:
    """SQLite catalog with three releases (ids 1, 2, 5) and three artists (ids 1, 2, 4)."""
    path = tmp_path / "catalog.sqlite"
    conn = sqlite3.connect(path)
    try:
        conn.executescript(CATALOG_SCHEMA)
        conn.executescript(CATALOG_ROWS)
        conn.commit()
    finally:
        conn.close()
    return path


@pytest.fixture
def release_puids() -> dict[int, list[str]]:
    return {release_id: list(values) for release_id, values in RELEASE_PUIDS.items()}


@pytest.fixture
def settings_factory(tmp_path: Path, catalog_db: Path, monkeypatch: pytest.MonkeyPatch):
    """Build ``Settings`` pointing at the test catalog, isolated from the environment."""
    for key in list(os.environ):
        if key.startswith("CATALOG_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.chdir(tmp_path)

    def _factory(**overrides: object) -> Settings:
        values: dict[str, object] = {
            "database_path": catalog_db,
            "indexes_dir": tmp_path / "indexes",
            "ids_per_chunk": 2,
            "log_json": False,
        }
        values.update(overrides)
        return load_settings(**values)

    return _factory
