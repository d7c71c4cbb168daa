# src/entity_store/base/repository.py

import logging
from logging import LoggerAdapter
from typing import Any, Dict, Generic, List, Mapping, Optional, Type, TypeVar, Union

from .conversion import SemanticType, from_storage, to_storage
from .database import Database
from .entity import Entity
from .exceptions import ObjectNotFoundException
from .query import QueryOptions, analyze_condition_key
from .registry import EntityRegistry, EntityTypeDescriptor
from .validation_exceptions import (
    ConversionError,
    EntityConfigurationError,
    IdentifierWriteError,
    MissingIdentifierError,
)

E = TypeVar("E", bound=Entity)

SearchOptions = Optional[Union[QueryOptions, Mapping[str, Any]]]


# --- Delete Policies ---
class HardDeletePolicy:
    """Deleting an entity removes its row."""

    def validate(self, descriptor: EntityTypeDescriptor) -> None:
        pass

    def delete(self, repository: "EntityRepository", entity: Entity, logger: LoggerAdapter) -> int:
        return repository._delete_row(entity, logger)

    def __repr__(self) -> str:
        return "HardDeletePolicy()"


class ActiveFlagPolicy:
    """
    Deleting an entity clears a boolean flag instead of removing its row.

    Searches through ``search_active`` only return rows whose flag is set.
    """

    def __init__(self, field: str = "active"):
        self.field = field

    def validate(self, descriptor: EntityTypeDescriptor) -> None:
        spec = descriptor.fields.get(self.field)
        if spec is None:
            raise EntityConfigurationError(
                f"{descriptor.entity_name} must declare the '{self.field}' field to use {self!r}"
            )
        if spec.semantic_type is not SemanticType.BOOL:
            raise EntityConfigurationError(
                f"Field '{self.field}' of {descriptor.entity_name} must be declared as bool "
                f"(declared as {spec.semantic_type.value})"
            )

    def is_active(self, entity: Entity) -> bool:
        return entity.get_field(self.field) is True

    def _require_id(self, entity: Entity, action: str) -> None:
        if entity.id is None:
            raise MissingIdentifierError(f"Cannot {action} a {type(entity).__name__} without id")

    def delete(self, repository: "EntityRepository", entity: Entity, logger: LoggerAdapter) -> int:
        self._require_id(entity, "delete")
        if entity.get_field(self.field) is True:
            return repository.update_fields(entity, {self.field: False}, logger)
        logger.debug(f"{type(entity).__name__} id={entity.id!r} is not active; nothing to delete.")
        return 0

    def activate(self, repository: "EntityRepository", entity: Entity, logger: LoggerAdapter) -> int:
        self._require_id(entity, "activate")
        if entity.get_field(self.field) is False:
            return repository.update_fields(entity, {self.field: True}, logger)
        logger.debug(f"{type(entity).__name__} id={entity.id!r} is already active or unset; nothing to do.")
        return 0

    def active_condition(self, condition: Mapping[str, Any]) -> Dict[str, Any]:
        """Adds ``{field: True}`` unless the condition already constrains the flag."""
        result = dict(condition)
        if not any(analyze_condition_key(key).field == self.field for key in result):
            result[self.field] = True
        return result

    def __repr__(self) -> str:
        return f"ActiveFlagPolicy(field={self.field!r})"


DeletePolicy = Union[HardDeletePolicy, ActiveFlagPolicy]


class EntityRepository(Generic[E]):
    """
    CRUD and read views for one entity type over a store handle.

    Reads never raise store errors: a failed query is logged and reads as
    no rows. Writes (create, save, update_fields, delete) raise
    ``StoreOperationException``. Declaration and call site mistakes raise a
    ``MappingError`` subclass.
    """

    def __init__(
        self,
        database: Database,
        entity_type: Type[E],
        delete_policy: Optional[DeletePolicy] = None,
        allow_explicit_ids: bool = False,
        registry: Optional[EntityRegistry] = None,
    ):
        """
        Args:
            database: Store handle used for every statement.
            entity_type: The Entity subclass this repository maps.
            delete_policy: HardDeletePolicy (default) or ActiveFlagPolicy.
            allow_explicit_ids: Accept ids returned by ``entity_type.generate_id``
                instead of letting the store generate them.
            registry: Registry that describes ``entity_type`` (the default one if None).
        """
        if not isinstance(database, Database):
            raise TypeError("database must be an instance of entity_store Database")
        if not (isinstance(entity_type, type) and issubclass(entity_type, Entity)):
            raise TypeError("entity_type must be a subclass of entity_store Entity")

        self._db = database
        self._entity_type = entity_type
        self._descriptor = entity_type.descriptor(registry)
        self._delete_policy = delete_policy if delete_policy is not None else HardDeletePolicy()
        self._delete_policy.validate(self._descriptor)
        self._allow_explicit_ids = allow_explicit_ids

        self._logger = logging.getLogger(
            f"{__name__}.{self.__class__.__name__}[{entity_type.__name__}]"
        )
        self._logger.info(
            f"Repository instance created for {entity_type.__name__} using table "
            f"'{self._descriptor.table_name}' (ID column: '{self._descriptor.id_column}', "
            f"delete policy: {self._delete_policy!r})."
        )

    @property
    def entity_type(self) -> Type[E]:
        return self._entity_type

    @property
    def descriptor(self) -> EntityTypeDescriptor:
        return self._descriptor

    @property
    def database(self) -> Database:
        return self._db

    @property
    def delete_policy(self) -> DeletePolicy:
        return self._delete_policy

    # --- Read path ---

    @staticmethod
    def _normalize_options(options: SearchOptions) -> QueryOptions:
        if options is None:
            return QueryOptions()
        if isinstance(options, QueryOptions):
            return options
        if isinstance(options, Mapping):
            return QueryOptions(condition=dict(options))
        raise TypeError(
            f"options must be QueryOptions, a condition mapping or None, got {type(options).__name__}"
        )

    def _row_to_entity(self, row: Mapping[str, Any]) -> E:
        """
        Builds an entity from a row.

        A ``TypeError`` or ``ValueError`` raised by ``process_value_from_storage``
        is reported as a ConversionError, so the row is skipped like one that
        fails conversion. Other hook errors propagate.
        """
        entity = self._entity_type()
        for name, spec in self._descriptor.fields.items():
            value = from_storage(row.get(name), spec.semantic_type, field=name)
            try:
                value = self._entity_type.process_value_from_storage(name, value, entity)
            except (TypeError, ValueError) as e:
                raise ConversionError(
                    f"process_value_from_storage failed for field '{name}': {e}", field=name, value=value
                ) from e
            entity.set_field(name, value)
        # The id goes last, so a failing field never leaves an entity with an id
        entity._assign_id(row.get(self._descriptor.id_column))
        return entity

    def _rows_to_entities(self, rows: List[Mapping[str, Any]], logger: LoggerAdapter) -> List[E]:
        entities = []
        for row in rows:
            try:
                entities.append(self._row_to_entity(row))
            except ConversionError as e:
                logger.warning(
                    f"Skipping {self._entity_type.__name__} row "
                    f"(id={row.get(self._descriptor.id_column)!r}): {e}",
                    exc_info=True,
                )
        return entities

    def search(self, logger: LoggerAdapter, options: SearchOptions = None) -> List[E]:
        """
        Returns the entities matching a condition map.

        Args:
            logger: Logger adapter for recording the operation.
            options: QueryOptions, a plain condition map, or None for every row.

        Returns:
            The matching entities; an empty list when the query fails.

        Raises:
            UnknownFieldError: If the condition references an undeclared field.
            MalformedConditionError: For an unreadable key or connective.
        """
        options = self._normalize_options(options)
        logger.debug(f"Searching {self._entity_type.__name__} with options: {options!r}")

        condition = self._descriptor.storage_condition(options.condition)
        rows = self._db.search(
            self._descriptor.table_name,
            condition,
            fields=self._descriptor.select_fields(),
            compose=options.compose,
            order_by=options.order_by,
            group_by=self._descriptor.group_by_columns(),
            raw_sql=options.sql_suffix(),
        )
        if not rows and self._db.last_error is not None:
            logger.error(f"Search of {self._entity_type.__name__} failed: {self._db.last_error}")
            return []

        entities = self._rows_to_entities(rows, logger)
        logger.debug(f"Search of {self._entity_type.__name__} returned {len(entities)} entities.")
        return entities

    def get(self, id: Any, logger: LoggerAdapter) -> E:
        """
        Retrieves an entity by its id.

        Raises:
            ObjectNotFoundException: If no row has that id.
        """
        logger.debug(f"Getting {self._entity_type.__name__} with id={id!r}")
        results = self.search(logger, {self._descriptor.id_column: id})
        if not results:
            logger.warning(f"{self._entity_type.__name__} with id={id!r} not found.")
            raise ObjectNotFoundException(f"{self._entity_type.__name__} with id '{id}' not found")
        return results[0]

    def count(self, logger: LoggerAdapter, options: SearchOptions = None) -> int:
        """Counts the rows matching the condition (ordering, paging and grouping are ignored)."""
        options = self._normalize_options(options)
        condition = self._descriptor.storage_condition(options.condition)
        id_column = self._descriptor.id_column
        rows = self._db.search(
            self._descriptor.table_name,
            condition,
            fields=[(f"#{id_column}", "count")],
            compose=options.compose,
        )
        if not rows:
            if self._db.last_error is not None:
                logger.error(f"Count of {self._entity_type.__name__} failed: {self._db.last_error}")
            return 0
        total = int(rows[0]["count"])
        logger.debug(f"Counted {total} {self._entity_type.__name__} rows.")
        return total

    # --- Derived read views ---

    def search_one(self, logger: LoggerAdapter, options: SearchOptions = None) -> Optional[E]:
        """Returns the entity if exactly one row matched, None otherwise."""
        results = self.search(logger, options)
        if len(results) != 1:
            logger.debug(f"search_one matched {len(results)} rows; returning None.")
            return None
        return results[0]

    def search_first(self, logger: LoggerAdapter, options: SearchOptions = None) -> Optional[E]:
        """Returns the first matching entity (the query is limited to one row), or None."""
        options = self._normalize_options(options).copy()
        options.limit = 1
        results = self.search(logger, options)
        return results[0] if results else None

    def search_indexed(self, field: str, logger: LoggerAdapter, options: SearchOptions = None) -> Dict[Any, E]:
        """Maps each value of ``field`` to the entity holding it (the last one wins)."""
        self._descriptor.check_fields(field)
        return {entity.get_field(field): entity for entity in self.search(logger, options)}

    def search_aggregated(
        self, field: str, logger: LoggerAdapter, options: SearchOptions = None
    ) -> Dict[Any, List[E]]:
        """Groups the matching entities by the value of ``field``."""
        self._descriptor.check_fields(field)
        groups: Dict[Any, List[E]] = {}
        for entity in self.search(logger, options):
            groups.setdefault(entity.get_field(field), []).append(entity)
        return groups

    def search_field(self, field: str, logger: LoggerAdapter, options: SearchOptions = None) -> List[Any]:
        """The values of one field across the matching entities."""
        self._descriptor.check_fields(field)
        return [entity.get_field(field) for entity in self.search(logger, options)]

    # --- Write path ---

    def _storage_values(self, values: Mapping[str, Any]) -> Dict[str, Any]:
        prepared = {}
        for name, value in values.items():
            spec = self._descriptor.fields[name]
            prepared[self._descriptor.column_for(name)] = to_storage(value, spec.semantic_type, field=name)
        return prepared

    def create(self, values: Mapping[str, Any], logger: LoggerAdapter) -> E:
        """
        Inserts a new row and returns its entity.

        Args:
            values: Field values of the new entity (undeclared fields are errors).
            logger: Logger adapter for recording the operation.

        Returns:
            A new entity carrying the generated id and the given values.

        Raises:
            UnknownFieldError: If a key is not a declared field.
            IdentifierWriteError: If the id column is given as a value.
            EntityConfigurationError: If ``generate_id`` returns an id and the
                repository does not allow explicit ids.
            KeyAlreadyExistsException: If the row violates a unique key.
            StoreOperationException: If the insert fails.
        """
        descriptor = self._descriptor
        if descriptor.id_column in values:
            raise IdentifierWriteError(
                f"The id column '{descriptor.id_column}' cannot be given when creating a "
                f"{self._entity_type.__name__}"
            )
        descriptor.check_fields(*values)

        processed = {
            name: self._entity_type.process_value_to_storage(name, value, None)
            for name, value in values.items()
        }
        prepared = self._storage_values(processed)
        explicit_id = self._entity_type.generate_id(dict(processed))

        logger.debug(f"Creating {self._entity_type.__name__} with values: {prepared!r}")
        if explicit_id is None:
            new_id = self._db.insert(descriptor.table_name, prepared)
        else:
            if not self._allow_explicit_ids:
                raise EntityConfigurationError(
                    f"{self._entity_type.__name__}.generate_id returned an id but the repository "
                    f"does not allow explicit ids"
                )
            prepared[descriptor.id_column] = explicit_id
            self._db.insert(descriptor.table_name, prepared)
            new_id = explicit_id

        entity = self._entity_type()
        entity.set_fields(processed)
        entity._assign_id(new_id)
        logger.info(f"Created {self._entity_type.__name__} with id={new_id!r}.")
        return entity

    def _check_entity(self, entity: Entity) -> None:
        if not isinstance(entity, self._entity_type):
            raise TypeError(
                f"Expected a {self._entity_type.__name__} entity, got {type(entity).__name__}"
            )

    def save(self, entity: E, logger: LoggerAdapter, fields: Optional[Union[str, List[str]]] = None) -> int:
        """
        Writes entity fields to its row.

        Args:
            entity: A persisted entity.
            logger: Logger adapter for recording the operation.
            fields: Fields to write: None for the declared save fields, one
                field name, or a list of them.

        Returns:
            The number of affected rows.

        Raises:
            MissingIdentifierError: If the entity has no id yet.
            UnknownFieldError / IdentifierWriteError: For invalid field names.
            StoreOperationException: If the update fails.
        """
        self._check_entity(entity)
        names = self._descriptor.resolve_save_fields(fields)
        if entity.id is None:
            raise MissingIdentifierError(f"Cannot save a {self._entity_type.__name__} without id")
        if not names:
            logger.warning(f"save of {self._entity_type.__name__} id={entity.id!r} called with no fields.")
            return 0

        processed = {
            name: self._entity_type.process_value_to_storage(name, entity.get_field(name), entity)
            for name in names
        }
        prepared = self._storage_values(processed)
        logger.debug(f"Saving {self._entity_type.__name__} id={entity.id!r} fields: {names}")
        affected = self._db.update(
            self._descriptor.table_name, prepared, {self._descriptor.id_column: entity.id}
        )
        logger.info(f"Saved {self._entity_type.__name__} id={entity.id!r} ({affected} rows affected).")
        return affected

    def update_fields(self, entity: E, values: Mapping[str, Any], logger: LoggerAdapter) -> int:
        """
        Sets the given fields on the entity and saves exactly those fields.

        The entity is left untouched when it has no id yet.
        """
        self._check_entity(entity)
        if entity.id is None:
            raise MissingIdentifierError(f"Cannot save a {self._entity_type.__name__} without id")
        entity.set_fields(values)
        return self.save(entity, logger, list(values))

    def delete(self, entity: E, logger: LoggerAdapter) -> int:
        """
        Deletes the entity according to the repository's delete policy.

        The in-memory entity keeps its id and values.
        """
        self._check_entity(entity)
        return self._delete_policy.delete(self, entity, logger)

    def _delete_row(self, entity: Entity, logger: LoggerAdapter) -> int:
        if entity.id is None:
            raise MissingIdentifierError(f"Cannot delete a {self._entity_type.__name__} without id")
        affected = self._db.delete(self._descriptor.table_name, {self._descriptor.id_column: entity.id})
        logger.info(f"Deleted {self._entity_type.__name__} id={entity.id!r} ({affected} rows affected).")
        return affected

    # --- Active flag views ---

    def _active_policy(self) -> ActiveFlagPolicy:
        if not isinstance(self._delete_policy, ActiveFlagPolicy):
            raise EntityConfigurationError(
                f"Repository of {self._entity_type.__name__} does not use an active flag "
                f"(delete policy: {self._delete_policy!r})"
            )
        return self._delete_policy

    def activate(self, entity: E, logger: LoggerAdapter) -> int:
        """Sets the active flag of a deactivated entity and saves it."""
        self._check_entity(entity)
        return self._active_policy().activate(self, entity, logger)

    def is_active(self, entity: E) -> bool:
        self._check_entity(entity)
        return self._active_policy().is_active(entity)

    def search_active(self, logger: LoggerAdapter, options: SearchOptions = None) -> List[E]:
        """Like ``search``, restricted to active entities unless the condition already constrains the flag."""
        policy = self._active_policy()
        options = self._normalize_options(options).copy()
        options.condition = policy.active_condition(options.condition)
        return self.search(logger, options)
