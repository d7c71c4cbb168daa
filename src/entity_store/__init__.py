# src/entity_store/__init__.py

"""
Entity Store Library Initialization.

This package maps declaratively described entity classes to SQL tables:
condition maps with operator sigils compile into parameterized WHERE
clauses, statements are assembled around them, and rows are converted back
into typed entities.

It initializes a logger with a NullHandler and makes the entity base class,
the repository, the store handle, the drivers, the query tools and the
exceptions available at the top level.
"""

import logging

# --------------------------------------------------------------------------
# Logging Setup
# --------------------------------------------------------------------------
# Library logs are discarded unless the consuming application configures
# logging for the "entity_store" logger.
logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())
logger.propagate = False  # Prevent log messages from propagating to the root logger

# --------------------------------------------------------------------------
# Settings
# --------------------------------------------------------------------------
from .settings import StoreSettings, configure, get_settings, reset_settings

# --------------------------------------------------------------------------
# Exception Exports
# --------------------------------------------------------------------------
from .base.exceptions import (
    KeyAlreadyExistsException,
    ObjectNotFoundException,
    StoreOperationException,
    TransactionStateException,
)
from .base.validation_exceptions import (
    ConversionError,
    EntityConfigurationError,
    IdentifierWriteError,
    MalformedConditionError,
    MappingError,
    MissingIdentifierError,
    UnknownFieldError,
    UnknownSemanticTypeError,
)

# --------------------------------------------------------------------------
# Conversion, Query and Statement Exports
# --------------------------------------------------------------------------
from .base.conversion import BindType, BoundParam, SemanticType, from_storage, to_storage
from .base.query import (
    CompiledCondition,
    ConditionKey,
    QueryBuilder,
    QueryOptions,
    analyze_condition_key,
    compile_where,
)
from .base.statements import (
    CompiledStatement,
    build_delete,
    build_insert,
    build_select,
    build_update,
)

# --------------------------------------------------------------------------
# Entities and Repository Exports
# --------------------------------------------------------------------------
from .base.registry import EntityRegistry, EntityTypeDescriptor, FieldSpec, default_registry
from .base.entity import Entity
from .base.interfaces import Driver, ExecutionResult
from .base.database import Database
from .base.repository import ActiveFlagPolicy, EntityRepository, HardDeletePolicy

# --------------------------------------------------------------------------
# Driver Implementation Exports
# --------------------------------------------------------------------------
from .db_implementations.sqlite_driver import SqliteDriver
from .db_implementations.mysql_driver import MySQLDriver

__all__ = [
    # Settings
    "StoreSettings",
    "configure",
    "get_settings",
    "reset_settings",
    # Exceptions
    "KeyAlreadyExistsException",
    "ObjectNotFoundException",
    "StoreOperationException",
    "TransactionStateException",
    "ConversionError",
    "EntityConfigurationError",
    "IdentifierWriteError",
    "MalformedConditionError",
    "MappingError",
    "MissingIdentifierError",
    "UnknownFieldError",
    "UnknownSemanticTypeError",
    # Conversion
    "BindType",
    "BoundParam",
    "SemanticType",
    "from_storage",
    "to_storage",
    # Query
    "CompiledCondition",
    "ConditionKey",
    "QueryBuilder",
    "QueryOptions",
    "analyze_condition_key",
    "compile_where",
    # Statements
    "CompiledStatement",
    "build_delete",
    "build_insert",
    "build_select",
    "build_update",
    # Entities
    "Entity",
    "EntityRegistry",
    "EntityTypeDescriptor",
    "FieldSpec",
    "default_registry",
    # Store
    "Driver",
    "ExecutionResult",
    "Database",
    "EntityRepository",
    "ActiveFlagPolicy",
    "HardDeletePolicy",
    # Implementations
    "SqliteDriver",
    "MySQLDriver",
    # Logging
    "logger",
]
