"""Per-entity static definitions: field types, relations, allow-lists.

Built once at startup from each entity's definition and passed into the
engine, so coercion never needs runtime schema reflection.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class FieldType(str, Enum):
    NUMBER = "Number"
    BOOLEAN = "Boolean"
    DATE = "Date"
    IDENTIFIER = "Identifier"
    STRING = "String"


class FieldSchema(Mapping[str, FieldType]):
    """Immutable mapping of field path -> semantic type."""

    __slots__ = ("_types",)

    def __init__(self, types: Mapping[str, FieldType | str] | None = None) -> None:
        self._types: dict[str, FieldType] = {
            path: FieldType(kind) for path, kind in (types or {}).items()
        }

    @classmethod
    def from_pairs(cls, pairs: Iterable[tuple[str, FieldType | str]]) -> FieldSchema:
        return cls(dict(pairs))

    def type_of(self, path: str) -> FieldType | None:
        return self._types.get(path)

    def __getitem__(self, path: str) -> FieldType:
        return self._types[path]

    def __iter__(self) -> Iterator[str]:
        return iter(self._types)

    def __len__(self) -> int:
        return len(self._types)

    def __repr__(self) -> str:
        return f"FieldSchema({self._types!r})"


@dataclass(frozen=True)
class RelationSpec:
    """
    One relation a client may ask to expand (``populate=customer``).

    Attributes:
        path: Name used in the ``populate`` parameter and as output field.
        collection: Target collection/table.
        local_field: Field on the listed entity holding the reference(s).
        foreign_field: Field on the target matched against ``local_field``.
        fields: Target fields to select; ``None`` means the target default.
        match: Extra filter the caller applies to the target.
        many: ``local_field`` holds a list of references.
        target_schema: Field schema of the target; decides whether the
            tenant constraint is re-applied to the target.
    """

    path: str
    collection: str
    local_field: str | None = None
    foreign_field: str = "_id"
    fields: tuple[str, ...] | None = None
    match: Mapping[str, Any] = field(default_factory=dict)
    many: bool = False
    target_schema: FieldSchema | None = None

    @property
    def source_field(self) -> str:
        return self.local_field or self.path


@dataclass(frozen=True)
class EntityDefinition:
    """Everything the engine needs to know about one listable entity."""

    name: str
    collection: str
    schema: FieldSchema = field(default_factory=FieldSchema)
    id_field: str = "_id"
    soft_delete_field: str | None = None
    text_index: bool = False
    search_fields: tuple[str, ...] = ()
    allowed_fields: tuple[str, ...] = ()
    allowed_sort_fields: tuple[str, ...] = ()
    default_sort: str | None = None
    relations: Mapping[str, RelationSpec] = field(default_factory=dict)
