# tests/database_implementations/test_derived_views.py

import pytest

from entity_store import QueryOptions, UnknownFieldError


@pytest.fixture
def accounts(account_repository, logger):
    rows = [
        {"owner": "ann", "balance": 10.0, "active": True},
        {"owner": "bo", "balance": 20.0, "active": True},
        {"owner": "ann", "balance": 30.0, "active": False},
        {"owner": "cy", "balance": 20.0, "active": True},
    ]
    return [account_repository.create(values, logger) for values in rows]


def test_search_one_exactly_one(account_repository, accounts, logger):
    found = account_repository.search_one(logger, {"owner": "bo"})
    assert found == accounts[1]


def test_search_one_none_or_many(account_repository, accounts, logger):
    assert account_repository.search_one(logger, {"owner": "nobody"}) is None
    assert account_repository.search_one(logger, {"owner": "ann"}) is None


def test_search_first(account_repository, accounts, logger):
    first = account_repository.search_first(logger, QueryOptions(condition={"owner": "ann"}, order_by="balance DESC"))
    assert first.get_field("balance") == 30.0
    assert account_repository.search_first(logger, {"owner": "nobody"}) is None


def test_search_first_does_not_change_callers_options(account_repository, accounts, logger):
    options = QueryOptions(condition={"owner": "ann"}, order_by="id")
    account_repository.search_first(logger, options)
    assert options.limit is None
    assert len(account_repository.search(logger, options)) == 2


def test_search_first_keeps_raw_suffix(account_repository, accounts, logger):
    options = QueryOptions(order_by="id", raw_sql="-- trailing comment")
    assert account_repository.search_first(logger, options) == accounts[0]


def test_search_indexed_last_wins(account_repository, accounts, logger):
    indexed = account_repository.search_indexed("owner", logger, QueryOptions(order_by="id"))
    assert set(indexed) == {"ann", "bo", "cy"}
    assert indexed["ann"] == accounts[2]


def test_search_indexed_by_id(account_repository, accounts, logger):
    indexed = account_repository.search_indexed("id", logger)
    assert indexed == {account.id: account for account in accounts}


def test_search_aggregated(account_repository, accounts, logger):
    groups = account_repository.search_aggregated("balance", logger, QueryOptions(order_by="id"))
    assert groups == {10.0: [accounts[0]], 20.0: [accounts[1], accounts[3]], 30.0: [accounts[2]]}


def test_search_field(account_repository, accounts, logger):
    owners = account_repository.search_field("owner", logger, QueryOptions(order_by="id"))
    assert owners == ["ann", "bo", "ann", "cy"]
    ids = account_repository.search_field("id", logger, {"owner": "ann"})
    assert sorted(ids) == sorted([accounts[0].id, accounts[2].id])


@pytest.mark.parametrize("view", ["search_indexed", "search_aggregated", "search_field"])
def test_views_reject_unknown_fields(account_repository, view, logger):
    with pytest.raises(UnknownFieldError):
        getattr(account_repository, view)("nickname", logger)
