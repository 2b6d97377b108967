"""
Schema definition for search indexing.

Defines field types and schema structure for catalog documents:
- TextField: Analyzed text fields (names, titles, credits)
- KeywordField: Exact match fields (identifiers, codes, types)
- NumericField: Integer fields (counts, surrogate ids)
- StoredField: Fields stored but not indexed

Every field is multi-valued; a document may carry any number of values
for a field and the index keeps them in the order they were written.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from catalog_search.search.analyzers import Analyzer, get_analyzer


class FieldType(str, Enum):
    """Types of fields supported in the schema."""

    TEXT = "text"
    KEYWORD = "keyword"
    NUMERIC = "numeric"
    STORED = "stored"


@dataclass(frozen=True)
class SchemaField(ABC):
    """Base class for all schema fields."""

    name: str
    stored: bool = True
    indexed: bool = True

    @property
    @abstractmethod
    def field_type(self) -> FieldType:
        """Return the field type."""

    @property
    def analyzer_key(self) -> str:
        return "keyword"

    def to_dict(self) -> dict[str, Any]:
        """Serialize field definition to dict."""
        return {
            "name": self.name,
            "type": self.field_type.value,
            "stored": self.stored,
            "indexed": self.indexed,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SchemaField:
        """Deserialize field definition from dict."""
        field_type = FieldType(data["type"])
        common = {
            "name": data["name"],
            "stored": data.get("stored", True),
            "indexed": data.get("indexed", True),
        }

        if field_type == FieldType.TEXT:
            return TextField(**common, analyzer_name=data.get("analyzer_name"))
        if field_type == FieldType.KEYWORD:
            return KeywordField(**common, lowercase=data.get("lowercase", False))
        if field_type == FieldType.NUMERIC:
            return NumericField(**common)
        if field_type == FieldType.STORED:
            return StoredField(name=data["name"])
        msg = f"Unknown field type: {field_type}"
        raise ValueError(msg)


@dataclass(frozen=True)
class TextField(SchemaField):
    """
    Analyzed text field for full-text search.

    Args:
        name: Field name (e.g., "release", "artist")
        stored: Store raw value for retrieval (default: True)
        indexed: Index for searching (default: True)
        analyzer_name: Name of analyzer to use (default: None = standard)
    """

    analyzer_name: str | None = None

    @property
    def field_type(self) -> FieldType:
        return FieldType.TEXT

    @property
    def analyzer_key(self) -> str:
        return self.analyzer_name or "standard"

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        if self.analyzer_name:
            data["analyzer_name"] = self.analyzer_name
        return data


@dataclass(frozen=True)
class KeywordField(SchemaField):
    """
    Exact-match keyword field.

    Keyword fields are indexed as one term per value. Use for identifiers
    (MBIDs, PUIDs), codes and enumerations. With ``lowercase`` set, both
    indexed values and query terms are lowercased, which suits enumerations
    such as release status or type.
    """

    lowercase: bool = False

    @property
    def field_type(self) -> FieldType:
        return FieldType.KEYWORD

    @property
    def analyzer_key(self) -> str:
        return "keyword-lower" if self.lowercase else "keyword"

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["lowercase"] = self.lowercase
        return data


@dataclass(frozen=True)
class NumericField(SchemaField):
    """Integer field for counts and surrogate identifiers."""

    @property
    def field_type(self) -> FieldType:
        return FieldType.NUMERIC


@dataclass(frozen=True)
class StoredField(SchemaField):
    """Stored-only field (not indexed)."""

    stored: bool = field(default=True, init=False)
    indexed: bool = field(default=False, init=False)

    @property
    def field_type(self) -> FieldType:
        return FieldType.STORED


@dataclass
class Schema:
    """
    Schema definition for a search index.

    Example:
        schema = Schema(
            fields=[
                KeywordField("reid"),
                TextField("release"),
                KeywordField("status", lowercase=True),
                NumericField("tracks"),
            ],
            unique_field="reid",
        )
    """

    fields: list[SchemaField]
    unique_field: str = "id"
    name: str = "default"

    def __post_init__(self) -> None:
        """Validate schema after initialization."""
        self._field_map: dict[str, SchemaField] = {f.name: f for f in self.fields}
        self._analyzers: dict[str, Analyzer] = {}

        if len(self._field_map) != len(self.fields):
            msg = f"Schema '{self.name}' declares a field more than once"
            raise ValueError(msg)

        if self.unique_field not in self._field_map:
            msg = f"Unique field '{self.unique_field}' not found in schema"
            raise ValueError(msg)

    def __getitem__(self, name: str) -> SchemaField:
        """Get field by name."""
        return self._field_map[name]

    def __contains__(self, name: str) -> bool:
        """Check if field exists."""
        return name in self._field_map

    def __iter__(self):
        """Iterate over fields."""
        return iter(self.fields)

    def __len__(self) -> int:
        """Return number of fields."""
        return len(self.fields)

    @property
    def text_fields(self) -> list[TextField]:
        """Return all text fields."""
        return [f for f in self.fields if isinstance(f, TextField)]

    def analyzer_for(self, field_name: str) -> Analyzer:
        """Return the analyzer used for ``field_name``.

        Unknown fields fall back to the standard analyzer so that queries
        against them parse and simply match nothing.
        """
        schema_field = self._field_map.get(field_name)
        key = schema_field.analyzer_key if schema_field is not None else "standard"
        analyzer = self._analyzers.get(key)
        if analyzer is None:
            analyzer = get_analyzer(key)
            self._analyzers[key] = analyzer
        return analyzer

    def to_dict(self) -> dict[str, Any]:
        """Serialize schema to dict."""
        return {
            "name": self.name,
            "unique_field": self.unique_field,
            "fields": [f.to_dict() for f in self.fields],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Schema:
        """Deserialize schema from dict."""
        fields = [SchemaField.from_dict(f) for f in data["fields"]]
        return cls(
            fields=fields,
            unique_field=data.get("unique_field", "id"),
            name=data.get("name", "default"),
        )
