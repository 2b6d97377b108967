"""Postings storage for the catalog search stack.

The module provides:

* ``SegmentWriter`` - accepts schema-aware, multi-valued documents and produces
  immutable ``IndexSegment`` instances with postings and field length metadata.
* ``IndexSegment`` - exposes helpers for retrieving postings and stored fields,
  and serialization for persistence to JSON.
* ``JsonSegmentStore`` - persists segments as minified JSON with a manifest that
  tracks the latest committed segment.
* ``IndexWriter`` - the append-only build handle used by the index builder. Nothing
  it receives is visible to searchers until ``commit()`` succeeds.
"""

from __future__ import annotations

from array import array
from collections import defaultdict
from collections.abc import Mapping, MutableMapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone
import logging
from pathlib import Path
from typing import Any, cast
from uuid import uuid4

import orjson

from catalog_search.search.analyzers import Token
from catalog_search.search.schema import Schema, SchemaField


logger = logging.getLogger(__name__)

# Gap left between the values of a multi-valued field so phrases never match
# across two values (e.g. the end of one label name and the start of the next).
POSITION_INCREMENT_GAP = 100


class StorageError(ValueError):
    """Raised when invalid documents or operations are encountered."""


def _load_json_payload(path: Path) -> dict[str, Any]:
    return cast("dict[str, Any]", orjson.loads(path.read_bytes()))


def _normalize_values(value: Any) -> list[str]:
    """Flatten a field value into the ordered list of non-empty strings."""
    if value is None:
        return []
    if isinstance(value, str):
        return [value] if value != "" else []
    if isinstance(value, Sequence):
        return [str(item) for item in value if item is not None and str(item) != ""]
    return [str(value)]


@dataclass(frozen=True, slots=True)
class Posting:
    """Postings entry for a term within a field of one document.

    Frequency is derived from ``len(positions)``.
    """

    doc_id: str
    positions: array

    @property
    def frequency(self) -> int:
        return len(self.positions)

    def to_dict(self) -> dict[str, Any]:
        return {"d": self.doc_id, "p": list(self.positions)}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Posting:
        return cls(
            doc_id=str(data["d"]),
            positions=array("I", (int(pos) for pos in data.get("p", []))),
        )


@dataclass(frozen=True, slots=True)
class IndexSegment:
    """Immutable representation of a search segment.

    ``stored_fields`` keeps documents in insertion order; searchers use that
    order to break score ties.
    """

    schema: Schema
    postings: dict[str, dict[str, list[Posting]]]
    stored_fields: dict[str, dict[str, list[str]]]
    field_lengths: dict[str, dict[str, int]]
    segment_id: str = field(default_factory=lambda: uuid4().hex)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def doc_count(self) -> int:
        return len(self.stored_fields)

    def get_document(self, doc_id: str) -> dict[str, list[str]] | None:
        return self.stored_fields.get(doc_id)

    def get_postings(self, field_name: str, term: str) -> list[Posting]:
        """Return postings for a specific term in a field."""
        return self.postings.get(field_name, {}).get(term, [])

    def doc_ordinals(self) -> dict[str, int]:
        return {doc_id: ordinal for ordinal, doc_id in enumerate(self.stored_fields)}

    def to_dict(self) -> dict[str, Any]:
        """Serialize with minimal keys: s=schema, p=postings, d=docs, l=lengths, i=id, c=created."""
        return {
            "s": self.schema.to_dict(),
            "p": {
                field_name: {term: [posting.to_dict() for posting in postings] for term, postings in terms.items()}
                for field_name, terms in self.postings.items()
            },
            "d": self.stored_fields,
            "l": self.field_lengths,
            "i": self.segment_id,
            "c": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> IndexSegment:
        schema = Schema.from_dict(data["s"])

        postings: dict[str, dict[str, list[Posting]]] = {}
        for field_name, terms in data.get("p", {}).items():
            postings[field_name] = {
                term: [Posting.from_dict(entry) for entry in entries] for term, entries in terms.items()
            }

        stored_fields = {
            doc_id: {name: list(values) for name, values in fields.items()}
            for doc_id, fields in data.get("d", {}).items()
        }
        field_lengths = {name: dict(lengths) for name, lengths in data.get("l", {}).items()}

        created_raw = data.get("c")
        created = datetime.fromisoformat(created_raw) if isinstance(created_raw, str) else datetime.now(timezone.utc)

        return cls(
            schema=schema,
            postings=postings,
            stored_fields=stored_fields,
            field_lengths=field_lengths,
            segment_id=str(data.get("i") or uuid4().hex),
            created_at=created,
        )


class SegmentWriter:
    """Builds index segments from schema-aware documents."""

    def __init__(self, schema: Schema, *, segment_id: str | None = None) -> None:
        self.schema = schema
        self.segment_id = segment_id or uuid4().hex
        self.created_at = datetime.now(timezone.utc)
        self._postings: MutableMapping[str, MutableMapping[str, MutableMapping[str, list[int]]]] = defaultdict(
            lambda: defaultdict(lambda: defaultdict(list))
        )
        self._field_lengths: MutableMapping[str, MutableMapping[str, int]] = defaultdict(dict)
        self._stored_fields: dict[str, dict[str, list[str]]] = {}

    @property
    def doc_count(self) -> int:
        return len(self._stored_fields)

    def add_document(self, document: Mapping[str, Any]) -> str:
        """Analyze and buffer one document, returning its unique key.

        Values may be a single string or a sequence of strings; ``None`` and
        empty values are dropped.
        """
        unknown = [name for name in document if name not in self.schema]
        if unknown:
            msg = f"Document has fields not in schema '{self.schema.name}': {sorted(unknown)}"
            raise StorageError(msg)

        doc_key = self._normalize_unique(document)
        if doc_key in self._stored_fields:
            msg = f"Duplicate document for unique field '{self.schema.unique_field}': {doc_key}"
            raise StorageError(msg)

        stored: dict[str, list[str]] = {}
        for schema_field in self.schema.fields:
            values = _normalize_values(document.get(schema_field.name))
            if not values:
                continue
            if schema_field.stored:
                stored[schema_field.name] = values
            if not schema_field.indexed:
                continue
            tokens = self._analyze_values(schema_field, values)
            if not tokens:
                continue
            self._field_lengths[schema_field.name][doc_key] = len(tokens)
            for token in tokens:
                self._postings[schema_field.name][token.text][doc_key].append(token.position)

        self._stored_fields[doc_key] = stored
        return doc_key

    def build(self) -> IndexSegment:
        postings: dict[str, dict[str, list[Posting]]] = {}
        for field_name, terms in self._postings.items():
            postings[field_name] = {
                term: [Posting(doc_id=doc_id, positions=array("I", positions)) for doc_id, positions in doc_map.items()]
                for term, doc_map in terms.items()
            }

        return IndexSegment(
            schema=self.schema,
            postings=postings,
            stored_fields=dict(self._stored_fields),
            field_lengths={name: dict(lengths) for name, lengths in self._field_lengths.items()},
            segment_id=self.segment_id,
            created_at=self.created_at,
        )

    def _normalize_unique(self, document: Mapping[str, Any]) -> str:
        values = _normalize_values(document.get(self.schema.unique_field))
        if not values:
            msg = f"Document missing unique field '{self.schema.unique_field}'"
            raise StorageError(msg)
        if len(values) > 1:
            msg = f"Unique field '{self.schema.unique_field}' must have exactly one value, got {len(values)}"
            raise StorageError(msg)
        return values[0]

    def _analyze_values(self, schema_field: SchemaField, values: list[str]) -> list[Token]:
        analyzer = self.schema.analyzer_for(schema_field.name)
        tokens: list[Token] = []
        base = 0
        for value in values:
            analyzed = analyzer(value)
            if not analyzed:
                continue
            for token in analyzed:
                token.position += base
                tokens.append(token)
            base = tokens[-1].position + POSITION_INCREMENT_GAP
        return tokens


class JsonSegmentStore:
    """Persist segments as minified JSON payloads with a lightweight manifest."""

    MANIFEST_FILENAME = "manifest.json"
    SEGMENT_SUFFIX = ".json"
    MAX_SEGMENTS = 4

    def __init__(self, directory: str | Path) -> None:
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)
        self._manifest_path = self.directory / self.MANIFEST_FILENAME

    def save(self, segment: IndexSegment) -> Path:
        """Write the segment to disk and point the manifest at it."""

        if not segment.segment_id:
            raise StorageError("Segment ID is required for persistence")

        segment_path = self._segment_path(segment.segment_id)
        self._atomic_write_json(segment_path, segment.to_dict())

        manifest = self._load_manifest()
        segments = [entry for entry in manifest.get("segments", []) if entry.get("segment_id") != segment.segment_id]
        segments.append(
            {
                "segment_id": segment.segment_id,
                "created_at": segment.created_at.isoformat(),
                "doc_count": segment.doc_count,
            }
        )
        manifest["segments"] = segments
        manifest["latest_segment_id"] = segment.segment_id
        self._prune_old_segments(manifest)
        manifest["updated_at"] = datetime.now(timezone.utc).isoformat()
        self._atomic_write_json(self._manifest_path, manifest)
        return segment_path

    def load(self, segment_id: str) -> IndexSegment | None:
        """Load a segment by ID if it exists on disk."""

        segment_path = self._segment_path(segment_id)
        if not segment_path.exists():
            return None
        return IndexSegment.from_dict(_load_json_payload(segment_path))

    def latest(self) -> IndexSegment | None:
        """Return the latest segment recorded in the manifest."""

        latest_id = self.latest_segment_id()
        if not latest_id:
            return None
        return self.load(latest_id)

    def latest_segment_id(self) -> str | None:
        latest_id = self._load_manifest().get("latest_segment_id")
        return str(latest_id) if latest_id else None

    def list_segments(self) -> list[dict[str, Any]]:
        """Return all segment entries from the manifest."""
        return list(self._load_manifest().get("segments", []))

    def prune_to_segment_ids(self, keep_segment_ids: Sequence[str]) -> None:
        """Delete manifest entries and files not present in ``keep_segment_ids``."""

        keep_ordered = [segment_id for segment_id in keep_segment_ids if segment_id]
        if not keep_ordered:
            return

        manifest = self._load_manifest()
        segments = manifest.get("segments", [])
        kept = [entry for entry in segments if entry.get("segment_id") in keep_ordered]
        removed = [entry for entry in segments if entry.get("segment_id") not in keep_ordered]
        if not removed:
            return

        for entry in removed:
            self._delete_segment_file(str(entry.get("segment_id", "")))

        manifest["segments"] = kept
        if kept:
            manifest["latest_segment_id"] = kept[-1].get("segment_id")
        else:
            manifest.pop("latest_segment_id", None)
        manifest["updated_at"] = datetime.now(timezone.utc).isoformat()
        self._atomic_write_json(self._manifest_path, manifest)

    def _segment_path(self, segment_id: str) -> Path:
        return self.directory / f"{segment_id}{self.SEGMENT_SUFFIX}"

    def _load_manifest(self) -> dict[str, Any]:
        if not self._manifest_path.exists():
            return {"segments": []}
        return _load_json_payload(self._manifest_path)

    def _prune_old_segments(self, manifest: dict[str, Any]) -> None:
        segments = manifest.get("segments", [])
        if len(segments) <= self.MAX_SEGMENTS:
            return

        excess = segments[: -self.MAX_SEGMENTS]
        manifest["segments"] = segments[-self.MAX_SEGMENTS :]
        for entry in excess:
            self._delete_segment_file(str(entry.get("segment_id", "")))

    def _delete_segment_file(self, segment_id: str) -> None:
        if not segment_id:
            return
        path = self._segment_path(segment_id)
        if not path.exists():
            return
        try:
            path.unlink()
        except OSError:
            logger.warning("Failed to remove old segment %s", path)

    def _atomic_write_json(self, path: Path, payload: Any) -> None:
        tmp_path = path.with_name(path.name + ".tmp")
        tmp_path.write_bytes(orjson.dumps(payload))
        tmp_path.replace(path)


class IndexWriter:
    """Append-only writer for one index directory.

    Documents are buffered in a ``SegmentWriter``. ``commit()`` finalizes the
    buffered documents into one segment, persists it and drops every older
    segment, so a committed index always consists of exactly one segment.
    ``abort()`` discards the buffer and leaves the previously committed
    segment, if any, untouched.
    """

    def __init__(self, directory: str | Path, schema: Schema) -> None:
        self.directory = Path(directory)
        self.schema = schema
        self._store = JsonSegmentStore(self.directory)
        self._writer: SegmentWriter | None = SegmentWriter(schema)

    @property
    def doc_count(self) -> int:
        return self._require_open().doc_count

    @property
    def closed(self) -> bool:
        return self._writer is None

    def add_document(self, document: Mapping[str, Any]) -> str:
        return self._require_open().add_document(document)

    def commit(self) -> IndexSegment:
        writer = self._require_open()
        segment = writer.build()
        try:
            self._store.save(segment)
            self._store.prune_to_segment_ids([segment.segment_id])
        except OSError as exc:
            msg = f"Failed to persist segment {segment.segment_id} to {self.directory}: {exc}"
            raise StorageError(msg) from exc
        finally:
            self._writer = None
        logger.info(
            "Committed segment %s with %d documents to %s",
            segment.segment_id,
            segment.doc_count,
            self.directory,
        )
        return segment

    def abort(self) -> None:
        if self._writer is None:
            return
        logger.warning("Discarding %d uncommitted documents for %s", self._writer.doc_count, self.directory)
        self._writer = None

    def _require_open(self) -> SegmentWriter:
        if self._writer is None:
            raise StorageError(f"IndexWriter for {self.directory} is closed")
        return self._writer
