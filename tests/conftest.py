# tests/conftest.py
import logging

import pytest

from entity_store import (
    ActiveFlagPolicy,
    Database,
    Entity,
    EntityRepository,
    SqliteDriver,
    configure,
    reset_settings,
)

# --- Schema ---
SQLITE_SCHEMA = """
CREATE TABLE users (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    full_name TEXT,
    age INTEGER,
    score REAL,
    active INTEGER,
    created TEXT,
    profile TEXT,
    email TEXT UNIQUE
);
CREATE TABLE accounts (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    owner TEXT,
    balance REAL,
    active INTEGER DEFAULT 1
);
CREATE TABLE tags (
    id TEXT PRIMARY KEY,
    label TEXT
);
"""


# --- Test Entities ---


class User(Entity):
    """Entity covering every semantic type and a renamed column."""

    table_name = "users"
    field_list = [
        "name",
        ("age", "int"),
        ("score", "float"),
        ("active", "bool"),
        ("created", "timestamp"),
        ("profile", "structured"),
        "email",
    ]
    column_rename = {"name": "full_name"}


class Account(Entity):
    """Entity deleted by clearing its active flag."""

    table_name = "accounts"
    field_list = {"owner": "string", "balance": "float", "active": "bool"}


class Tag(Entity):
    """Entity whose ids are chosen by the application."""

    table_name = "tags"
    field_list = ["label"]

    @classmethod
    def generate_id(cls, values):
        return values["label"].lower()


# --- Logger Fixture ---


@pytest.fixture(scope="session")
def logger():
    """Create a test logger."""
    _logger = logging.getLogger("test_store_logger")
    if not _logger.handlers:
        handler = logging.StreamHandler()
        formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        )
        handler.setFormatter(formatter)
        handler.setLevel(logging.DEBUG)
        _logger.addHandler(handler)
        _logger.setLevel(logging.DEBUG)
        _logger.propagate = False
    return logging.LoggerAdapter(_logger, {})


# --- Settings Fixture ---


@pytest.fixture(autouse=True)
def store_settings():
    """Every test runs with UTC timestamps and statement logging enabled."""
    reset_settings()
    settings = configure(timezone="UTC", log_queries=True)
    yield settings
    reset_settings()


# --- SQLite Fixtures ---


@pytest.fixture(scope="function")
def sqlite_driver():
    """In-memory SQLite driver with the test schema."""
    driver = SqliteDriver(":memory:")
    driver.connection.executescript(SQLITE_SCHEMA)
    yield driver
    driver.close()


@pytest.fixture(scope="function")
def database(sqlite_driver):
    return Database(sqlite_driver)


@pytest.fixture
def user_repository(database) -> EntityRepository:
    return EntityRepository(database, User)


@pytest.fixture
def account_repository(database) -> EntityRepository:
    return EntityRepository(database, Account, delete_policy=ActiveFlagPolicy())


@pytest.fixture
def tag_repository(database) -> EntityRepository:
    return EntityRepository(database, Tag, allow_explicit_ids=True)


@pytest.fixture
def repository_factory(database):
    """Creates repositories for entity types declared by the tests themselves."""

    def _create(entity_cls, **kwargs):
        return EntityRepository(database, entity_cls, **kwargs)

    return _create
