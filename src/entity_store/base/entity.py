# src/entity_store/base/entity.py

from typing import Any, ClassVar, Dict, Iterable, Mapping, Optional, Sequence, Union

from .registry import EntityRegistry, EntityTypeDescriptor, FieldDeclaration, default_registry
from .validation_exceptions import IdentifierWriteError, UnknownFieldError


class Entity:
    """
    Base class of every storable record.

    Subclasses describe their storage with class attributes::

        class User(Entity):
            table_name = "users"
            field_list = ["name", ("age", "int"), ("active", "bool"), ("created", "timestamp")]
            column_rename = {"name": "full_name"}
            save_fields = ["name", "age", "active"]

    Only the repository assigns ids. Field values are read and written with
    ``get_field``/``set_field``; they are never exposed as attributes.
    """

    table_name: ClassVar[Optional[str]] = None
    id_column: ClassVar[str] = "id"
    field_list: ClassVar[Union[Sequence[FieldDeclaration], Mapping[str, str]]] = ()
    column_rename: ClassVar[Mapping[str, str]] = {}
    save_fields: ClassVar[Optional[Sequence[str]]] = None
    group_by: ClassVar[Sequence[str]] = ()

    def __init__(self, values: Optional[Mapping[str, Any]] = None):
        self._id: Any = None
        self._values: Dict[str, Any] = {name: None for name in self.descriptor().fields}
        if values:
            self.set_fields(values)

    @classmethod
    def descriptor(cls, registry: Optional[EntityRegistry] = None) -> EntityTypeDescriptor:
        return (registry or default_registry).describe(cls)

    # --- Identifier ---

    @property
    def id(self) -> Any:
        return self._id

    def _assign_id(self, value: Any) -> None:
        self._id = value

    @classmethod
    def generate_id(cls, values: Mapping[str, Any]) -> Any:
        """
        Identifier for a new record built from its creation values.

        None (the default) lets the store generate it (e.g. AUTOINCREMENT).
        """
        return None

    # --- Storage hooks ---

    @classmethod
    def process_value_from_storage(cls, field: str, value: Any, entity: "Entity") -> Any:
        """Adjusts a converted value before it is set on an entity being loaded."""
        return value

    @classmethod
    def process_value_to_storage(cls, field: str, value: Any, entity: Optional["Entity"]) -> Any:
        """Adjusts a value before it is converted and written (``entity`` is None on creation)."""
        return value

    # --- Field access ---

    @classmethod
    def has_fields(cls, *names: str) -> bool:
        return cls.descriptor().has_fields(*names)

    def get_field(self, name: str) -> Any:
        descriptor = self.descriptor()
        if name == descriptor.id_column:
            return self._id
        if name not in self._values:
            raise UnknownFieldError(f"Field {name} not found in {type(self).__name__}")
        return self._values[name]

    def get_fields(self, names: Optional[Iterable[str]] = None) -> Dict[str, Any]:
        if names is None:
            return dict(self._values)
        return {name: self.get_field(name) for name in names}

    def _check_writable(self, name: str) -> None:
        descriptor = self.descriptor()
        if name == descriptor.id_column:
            raise IdentifierWriteError(f"Cannot set the id of a {type(self).__name__}")
        if name not in self._values:
            raise UnknownFieldError(f"Field {name} not found in {type(self).__name__}")

    def set_field(self, name: str, value: Any) -> None:
        self._check_writable(name)
        self._values[name] = value

    def set_fields(self, values: Mapping[str, Any]) -> None:
        """Sets several fields; nothing is set if any of them cannot be written."""
        for name in values:
            self._check_writable(name)
        self._values.update(values)

    def to_dict(self) -> Dict[str, Any]:
        """Plain snapshot of the id and every field value."""
        snapshot = {self.descriptor().id_column: self._id}
        snapshot.update(self._values)
        return snapshot

    def __eq__(self, other: object) -> bool:
        if type(other) is not type(self):
            return NotImplemented
        return self._id == other._id and self._values == other._values

    __hash__ = None

    def __repr__(self) -> str:
        values = ", ".join(f"{k}={v!r}" for k, v in self._values.items())
        return f"{type(self).__name__}(id={self._id!r}, {values})" if values else f"{type(self).__name__}(id={self._id!r})"
