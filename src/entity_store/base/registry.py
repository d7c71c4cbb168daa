# src/entity_store/base/registry.py
"""
Per entity type metadata: declared fields with their semantic types, the
subset persisted on save, the field -> column rename map and the group-by
list.

Descriptors are built the first time a type is used and memoized. A broken
declaration raises on first use and the same error is raised again on every
later lookup, since it can only be fixed by changing the code.
"""

import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Type, Union

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator, model_validator

from .conversion import SemanticType
from .query import analyze_condition_key
from .validation_exceptions import (
    EntityConfigurationError,
    IdentifierWriteError,
    UnknownFieldError,
)

log = logging.getLogger(__name__)

FieldDeclaration = Union[str, Tuple[str, Union[SemanticType, str]]]


class FieldSpec(BaseModel):
    """A declared field and its semantic type."""

    model_config = ConfigDict(frozen=True)

    name: str
    semantic_type: SemanticType = SemanticType.STRING

    @field_validator("name")
    @classmethod
    def validate_name(cls, value: str) -> str:
        if not value or not value.strip():
            raise EntityConfigurationError("Field names must be non-empty strings")
        return value

    @field_validator("semantic_type", mode="before")
    @classmethod
    def parse_semantic_type(cls, value: Any) -> SemanticType:
        return SemanticType.parse(value)


class EntityTypeDescriptor(BaseModel):
    """Validated metadata of one entity type."""

    model_config = ConfigDict(frozen=True)

    entity_name: str
    table_name: str
    id_column: str = "id"
    fields: Dict[str, FieldSpec]
    column_rename: Dict[str, str] = {}
    save_fields: List[str]
    group_by: List[str] = []

    @model_validator(mode="after")
    def check_references(self) -> "EntityTypeDescriptor":
        owner = self.entity_name
        if not self.table_name:
            raise EntityConfigurationError(f"{owner} does not declare a table_name")
        if self.id_column in self.fields:
            raise EntityConfigurationError(
                f"{owner} declares a field named like its id column '{self.id_column}'"
            )
        for name, column in self.column_rename.items():
            if name not in self.fields:
                raise UnknownFieldError(
                    f"Unknown field {name} in {owner}.column_rename, with name in the DB {column}"
                )
        for name in self.save_fields:
            if name not in self.fields:
                raise UnknownFieldError(f"Unknown field {name} in {owner}.save_fields")
        for name in self.group_by:
            if name not in self.fields:
                raise UnknownFieldError(f"Unknown field {name} in {owner}.group_by")
        return self

    def has_fields(self, *names: str) -> bool:
        """True when every name is a declared field or the id column."""
        return all(name == self.id_column or name in self.fields for name in names)

    def check_fields(self, *names: str) -> None:
        for name in names:
            if not self.has_fields(name):
                raise UnknownFieldError(f"Field {name} not found in {self.entity_name}")

    def semantic_type_of(self, name: str) -> SemanticType:
        self.check_fields(name)
        if name == self.id_column:
            # Ids go through unchanged
            return SemanticType.STRING
        return self.fields[name].semantic_type

    def column_for(self, name: str) -> str:
        """Storage column of a field (the id column maps to itself)."""
        self.check_fields(name)
        return self.column_rename.get(name, name)

    def select_fields(self) -> List[Union[str, Tuple[str, str]]]:
        """Selection list for reads: everything, plus renamed columns aliased back to their field names."""
        if not self.column_rename:
            return []
        return ["*"] + [(column, name) for name, column in self.column_rename.items()]

    def group_by_columns(self) -> List[str]:
        return [self.column_for(name) for name in self.group_by]

    def resolve_save_fields(self, fields: Optional[Union[str, Iterable[str]]] = None) -> List[str]:
        """
        Returns the fields a save persists.

        None means the declared save fields, a string a single field.

        Raises:
            UnknownFieldError: For a field that is not declared.
            IdentifierWriteError: If the id column is listed.
        """
        if fields is None:
            return list(self.save_fields)
        if isinstance(fields, str):
            fields = [fields]
        resolved = list(fields)
        for name in resolved:
            if name == self.id_column:
                raise IdentifierWriteError(
                    f"The id column '{self.id_column}' of {self.entity_name} cannot be saved as a field"
                )
            if name not in self.fields:
                raise UnknownFieldError(f"Field {name} not found in {self.entity_name}")
        return resolved

    def storage_condition(self, condition: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
        """
        Validates the fields of a condition map and rewrites them to their
        storage columns, keeping the sigils of every key.
        """
        mapped: Dict[str, Any] = {}
        for raw_key, value in (condition or {}).items():
            key = analyze_condition_key(raw_key)
            column = self.column_for(key.field)
            mapped[key.with_field(column)] = value
        return mapped


def _parse_field_list(owner: str, declared: Any) -> Dict[str, FieldSpec]:
    if isinstance(declared, Mapping):
        entries: Iterable[Any] = declared.items()
    else:
        entries = declared or ()

    fields: Dict[str, FieldSpec] = {}
    for entry in entries:
        if isinstance(entry, str):
            spec = FieldSpec(name=entry)
        elif isinstance(entry, (tuple, list)) and len(entry) == 2:
            spec = FieldSpec(name=entry[0], semantic_type=entry[1])
        else:
            raise EntityConfigurationError(f"Invalid field declaration in {owner}: {entry!r}")
        if spec.name in fields:
            raise EntityConfigurationError(f"Field {spec.name} is declared twice in {owner}")
        fields[spec.name] = spec
    return fields


def build_descriptor(entity_cls: Type[Any]) -> EntityTypeDescriptor:
    """Reads the declaration attributes of an entity class into a validated descriptor."""
    owner = entity_cls.__name__
    try:
        fields = _parse_field_list(owner, getattr(entity_cls, "field_list", ()))

        save_fields = getattr(entity_cls, "save_fields", None)
        if save_fields is None:
            save_fields = list(fields)
        elif isinstance(save_fields, str):
            save_fields = [save_fields]

        return EntityTypeDescriptor(
            entity_name=owner,
            table_name=getattr(entity_cls, "table_name", None) or "",
            id_column=getattr(entity_cls, "id_column", "id") or "id",
            fields=fields,
            column_rename=dict(getattr(entity_cls, "column_rename", None) or {}),
            save_fields=list(save_fields),
            group_by=list(getattr(entity_cls, "group_by", None) or ()),
        )
    except ValidationError as e:
        raise EntityConfigurationError(f"Invalid declaration of {owner}: {e}") from e


class EntityRegistry:
    """Memo table of entity descriptors keyed by entity class."""

    def __init__(self):
        self._entries: Dict[type, Union[EntityTypeDescriptor, Exception]] = {}

    def describe(self, entity_cls: Type[Any]) -> EntityTypeDescriptor:
        """
        Returns the descriptor of an entity class, building it on first use.

        Raises:
            EntityConfigurationError: (or a subclass) if the declaration is
                invalid. The error is memoized too.
        """
        entry = self._entries.get(entity_cls)
        if entry is None:
            try:
                entry = build_descriptor(entity_cls)
                log.debug(f"Registered entity type {entity_cls.__name__} on table '{entry.table_name}'")
            except EntityConfigurationError as e:
                log.error(f"Invalid declaration of entity type {entity_cls.__name__}: {e}")
                entry = e
            self._entries[entity_cls] = entry
        if isinstance(entry, Exception):
            raise entry
        return entry

    def forget(self, entity_cls: Optional[Type[Any]] = None) -> None:
        """Drops the memoized entry of one class (or of every class)."""
        if entity_cls is None:
            self._entries.clear()
        else:
            self._entries.pop(entity_cls, None)

    def __contains__(self, entity_cls: Type[Any]) -> bool:
        return entity_cls in self._entries


default_registry = EntityRegistry()
