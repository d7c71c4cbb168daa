# tests/database_implementations/test_transactions.py

import pytest

from entity_store import TransactionStateException


def test_rollback_discards_changes(database, user_repository, logger):
    database.begin_transaction()
    assert database.in_transaction
    user_repository.create({"name": "Ann"}, logger)
    assert user_repository.count(logger) == 1
    database.rollback()
    assert not database.in_transaction
    assert user_repository.count(logger) == 0


def test_commit_persists_changes(database, user_repository, logger):
    database.begin_transaction()
    user = user_repository.create({"name": "Ann"}, logger)
    database.commit()
    assert user_repository.get(user.id, logger) == user


def test_transaction_context_commits(database, account_repository, logger):
    with database.transaction():
        account = account_repository.create({"owner": "ann", "active": True}, logger)
        account_repository.delete(account, logger)
    assert not database.in_transaction
    assert account_repository.get(account.id, logger).get_field("active") is False


def test_transaction_context_rolls_back_and_reraises(database, user_repository, logger):
    with pytest.raises(RuntimeError, match="boom"):
        with database.transaction():
            user_repository.create({"name": "Ann"}, logger)
            raise RuntimeError("boom")
    assert not database.in_transaction
    assert user_repository.search(logger) == []


def test_statements_outside_transactions_autocommit(database, user_repository, logger):
    user_repository.create({"name": "Ann"}, logger)
    database.begin_transaction()
    user_repository.create({"name": "Bo"}, logger)
    database.rollback()
    assert [u.get_field("name") for u in user_repository.search(logger)] == ["Ann"]


def test_nested_begin_is_rejected(database):
    database.begin_transaction()
    with pytest.raises(TransactionStateException):
        database.begin_transaction()
    database.rollback()


def test_commit_and_rollback_need_a_transaction(database):
    with pytest.raises(TransactionStateException):
        database.commit()
    with pytest.raises(TransactionStateException):
        database.rollback()


def test_close_rolls_back_open_transaction(sqlite_driver, database, user_repository, logger):
    user_repository.create({"name": "Ann"}, logger)
    database.begin_transaction()
    user_repository.create({"name": "Bo"}, logger)
    database.close()
    assert not database.in_transaction
