# tests/base/test_database_statements.py

import logging

import pytest

from entity_store import (
    BindType,
    BoundParam,
    Database,
    Driver,
    Entity,
    EntityRepository,
    ExecutionResult,
    StoreOperationException,
    configure,
)


class RecordingDriver(Driver):
    """Driver that records statements and answers with canned results."""

    def __init__(self, rows=None, last_insert_id=7, rowcount=1):
        self.statements = []
        self.calls = []
        self.rows = rows or []
        self.last_insert_id = last_insert_id
        self.rowcount = rowcount
        self.fail_with = None

    def execute(self, sql, params=()):
        self.statements.append((sql, list(params)))
        if self.fail_with is not None:
            raise self.fail_with
        return ExecutionResult(
            rows=list(self.rows) if sql.startswith("SELECT") else [],
            rowcount=self.rowcount,
            last_insert_id=self.last_insert_id,
        )

    def begin(self):
        self.calls.append("begin")

    def commit(self):
        self.calls.append("commit")

    def rollback(self):
        self.calls.append("rollback")

    def close(self):
        self.calls.append("close")


class Person(Entity):
    table_name = "users"
    field_list = ["name", ("age", "int")]


@pytest.fixture
def driver():
    return RecordingDriver()


@pytest.fixture
def person_repository(driver):
    return EntityRepository(Database(driver), Person)


def test_create_then_save_one_field(driver, person_repository, logger):
    person = person_repository.create({"name": "A"}, logger)
    assert person.id == 7
    assert driver.statements[-1] == (
        "INSERT INTO `users` (`name`) VALUES (?)",
        [BoundParam(BindType.STRING, "A")],
    )

    person.set_field("name", "B")
    assert person_repository.save(person, logger, ["name"]) == 1
    sql, params = driver.statements[-1]
    assert sql == "UPDATE `users` SET `name` = ? WHERE (`users`.`id` = ?)"
    assert [p.value for p in params] == ["B", 7]


def test_save_default_fields_writes_nulls_as_literals(driver, person_repository, logger):
    person = person_repository.create({"name": "A", "age": None}, logger)
    assert driver.statements[-1][0] == "INSERT INTO `users` (`name`,`age`) VALUES (?,null)"

    person_repository.save(person, logger)
    sql, params = driver.statements[-1]
    assert sql == "UPDATE `users` SET `name` = ? , `age` = null WHERE (`users`.`id` = ?)"
    assert [p.value for p in params] == ["A", 7]


def test_search_statement(driver, person_repository, logger):
    driver.rows = [{"id": 1, "name": "A", "age": 30}]
    results = person_repository.search(logger, {"name": ["A", "B"], ">age": 18})
    sql, params = driver.statements[-1]
    assert sql == (
        "SELECT * FROM `users` "
        "WHERE (`users`.`name` in (?,?)) AND (`users`.`age` > ?)"
    )
    assert [p.value for p in params] == ["A", "B", 18]
    assert results[0].get_fields() == {"name": "A", "age": 30}
    assert results[0].id == 1


def test_count_statement(driver, person_repository, logger):
    driver.rows = [{"count": 3}]
    assert person_repository.count(logger, {"!name": None}) == 3
    assert driver.statements[-1][0] == (
        "SELECT COUNT(`users`.`id`) AS `count` FROM `users` WHERE (`users`.`name` is NOT NULL)"
    )


def test_delete_statement(driver, person_repository, logger):
    person = person_repository.create({"name": "A"}, logger)
    assert person_repository.delete(person, logger) == 1
    sql, params = driver.statements[-1]
    assert sql == "DELETE FROM `users` WHERE (`users`.`id` = ?)"
    assert [p.value for p in params] == [7]


def test_queries_logged_when_enabled(driver, caplog):
    db = Database(driver)
    configure(log_queries=True)
    with caplog.at_level(logging.DEBUG, logger="entity_store"):
        logging.getLogger("entity_store").propagate = True
        try:
            db.search("users", {"name": "A"})
        finally:
            logging.getLogger("entity_store").propagate = False
    assert any("Executing SQL" in record.getMessage() for record in caplog.records)


def test_queries_not_logged_when_disabled(driver, caplog):
    db = Database(driver)
    configure(log_queries=False)
    with caplog.at_level(logging.DEBUG, logger="entity_store"):
        logging.getLogger("entity_store").propagate = True
        try:
            db.search("users", {"name": "A"})
        finally:
            logging.getLogger("entity_store").propagate = False
    assert not any("Executing SQL" in record.getMessage() for record in caplog.records)


def test_last_error_is_kept_until_next_success(driver):
    db = Database(driver)
    driver.fail_with = StoreOperationException("boom")
    assert db.search("users") == []
    assert str(db.last_error) == "boom"
    assert db.last_error.sql == "SELECT * FROM `users`"

    with pytest.raises(StoreOperationException):
        db.update("users", {"name": "A"}, {"id": 1})

    driver.fail_with = None
    db.search("users")
    assert db.last_error is None


def test_transaction_calls_reach_the_driver(driver):
    db = Database(driver)
    with db.transaction():
        db.insert("users", {"name": "A"})
    assert driver.calls == ["begin", "commit"]
    db.close()
    assert driver.calls[-1] == "close"


def test_database_requires_a_driver():
    with pytest.raises(TypeError):
        Database(object())
