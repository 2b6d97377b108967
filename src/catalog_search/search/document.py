"""Flat, multi-valued documents handed to the storage engine.

Scalar fields are written directly. Facets whose values must stay aligned
across several fields (label id, label name and catalog number of one label
assignment) are recorded as ``FieldGroup`` records and only expanded into
repeated fields by ``Document.render()``, so the i-th value of every field in
a group always comes from the same record.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import Any


# Written in place of a missing value inside a group to keep fields aligned.
MISSING_VALUE = "-"


@dataclass
class FieldGroup:
    """Records that render into parallel repeated fields."""

    fields: tuple[str, ...]
    records: list[tuple[str, ...]] = field(default_factory=list)

    def add(self, values: Sequence[Any]) -> None:
        if len(values) != len(self.fields):
            msg = f"Record {tuple(values)!r} does not match group fields {self.fields}"
            raise ValueError(msg)
        self.records.append(tuple(_group_value(value) for value in values))

    def column(self, name: str) -> list[str]:
        index = self.fields.index(name)
        return [record[index] for record in self.records]


def _group_value(value: Any) -> str:
    if value is None:
        return MISSING_VALUE
    text = str(value)
    return text if text else MISSING_VALUE


class Document:
    """A document under construction for one root entity.

    Once ``render()`` has been called the document is sealed and further
    writes raise ``RuntimeError``.
    """

    def __init__(self) -> None:
        self._fields: dict[str, list[str]] = {}
        self._groups: dict[tuple[str, ...], FieldGroup] = {}
        self._sealed = False

    def add_field(self, name: str, value: Any) -> None:
        """Append a value, which must not be empty."""
        self._check_open()
        if value is None or str(value) == "":
            msg = f"Field '{name}' requires a value"
            raise ValueError(msg)
        if self._field_in_group(name):
            msg = f"Field '{name}' is already written by a group of parallel fields"
            raise ValueError(msg)
        self._fields.setdefault(name, []).append(str(value))

    def add_non_empty_field(self, name: str, value: Any) -> None:
        """Append a value only if it is neither None nor empty."""
        if value is None or str(value) == "":
            return
        self.add_field(name, value)

    def add_numeric_field(self, name: str, value: int) -> None:
        self.add_field(name, int(value))

    def add_values(self, name: str, values: Iterable[Any]) -> None:
        for value in values:
            self.add_non_empty_field(name, value)

    def add_group_record(self, fields: Sequence[str], values: Sequence[Any]) -> None:
        """Append one record to the group of parallel ``fields``.

        Missing values become ``MISSING_VALUE`` so every field of the group
        receives exactly one occurrence per record.
        """
        self._check_open()
        key = tuple(fields)
        group = self._groups.get(key)
        if group is None:
            overlap = [name for name in key if name in self._fields or self._field_in_group(name)]
            if overlap:
                msg = f"Fields {overlap} are already written outside group {key}"
                raise ValueError(msg)
            group = FieldGroup(key)
            self._groups[key] = group
        group.add(values)

    def get_values(self, name: str) -> list[str]:
        values = list(self._fields.get(name, []))
        for group in self._groups.values():
            if name in group.fields:
                values.extend(group.column(name))
        return values

    def get_value(self, name: str) -> str | None:
        values = self.get_values(name)
        return values[0] if values else None

    @property
    def groups(self) -> list[FieldGroup]:
        return list(self._groups.values())

    def render(self) -> dict[str, list[str]]:
        """Return ``field -> values`` with groups expanded, and seal the document."""
        self._sealed = True
        rendered = {name: list(values) for name, values in self._fields.items()}
        for group in self._groups.values():
            for name in group.fields:
                rendered[name] = group.column(name)
        return rendered

    def _field_in_group(self, name: str) -> bool:
        return any(name in group.fields for group in self._groups.values())

    def _check_open(self) -> None:
        if self._sealed:
            raise RuntimeError("Document has already been rendered")

    def __repr__(self) -> str:
        return f"Document(fields={sorted(self._fields)}, groups={list(self._groups)})"
