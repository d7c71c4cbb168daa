# tests/base/statements/test_statements.py

import pytest

from entity_store.base.conversion import BindType, BoundParam
from entity_store.base.statements import (
    build_delete,
    build_insert,
    build_select,
    build_update,
    prepare_markers,
    qualify_fields,
    quote_identifier,
)
from entity_store.base.validation_exceptions import EntityConfigurationError


def test_quote_identifier():
    assert quote_identifier("users") == "`users`"
    assert quote_identifier("a`b") == "`a``b`"


# --- Field qualification ---


def test_qualify_plain_fields():
    assert qualify_fields(["a", "b"], "t") == "`t`.`a`, `t`.`b`"


def test_qualify_wildcard_and_aliases():
    assert qualify_fields(["*", "full_name -> name", ("born", "birthday")], "t") == (
        "`t`.*, `t`.`full_name` AS `name`, `t`.`born` AS `birthday`"
    )


def test_qualify_count():
    assert qualify_fields(["#id"], "t") == "COUNT(`t`.`id`)"
    assert qualify_fields([("#id", "total"), "*"], "t") == "COUNT(`t`.`id`) AS `total`, `t`.*"


def test_qualify_without_alias_for_group_by():
    assert qualify_fields(["a -> b", "#c"], "t", alias=False) == "`t`.`a`, COUNT(`t`.`c`)"


def test_qualify_empty_list_selects_everything():
    assert qualify_fields([], "t") == "`t`.*"
    assert qualify_fields(None) == "*"


def test_qualify_without_table():
    assert qualify_fields(["a -> b"]) == "`a` AS `b`"


# --- SELECT ---


def test_select_without_fields_or_condition():
    statement = build_select("users")
    assert statement.sql == "SELECT * FROM `users`"
    assert statement.params == []


def test_select_with_everything():
    statement = build_select(
        "users",
        {">age": 30, "name": ["Ann", "Bo"]},
        fields=["*", ("full_name", "name")],
        order_by=["age DESC", "id"],
        group_by=["age"],
        raw_sql="LIMIT 5",
    )
    assert statement.sql == (
        "SELECT `users`.*, `users`.`full_name` AS `name` FROM `users` "
        "WHERE (`users`.`age` > ?) AND (`users`.`name` in (?,?)) "
        "GROUP BY `users`.`age` ORDER BY age DESC,id LIMIT 5"
    )
    assert statement.values == [30, "Ann", "Bo"]


def test_select_order_by_literal_and_or_compose():
    statement = build_select("t", {"a": 1, "b": 2}, compose="OR", order_by="a ASC")
    assert statement.sql == "SELECT * FROM `t` WHERE (`t`.`a` = ?) OR (`t`.`b` = ?) ORDER BY a ASC"


# --- INSERT ---


def test_insert_uses_null_literal():
    statement = build_insert("users", {"full_name": "Ann", "age": None, "active": 1})
    assert statement.sql == "INSERT INTO `users` (`full_name`,`age`,`active`) VALUES (?,null,?)"
    assert statement.params == [BoundParam(BindType.STRING, "Ann"), BoundParam(BindType.INTEGER, 1)]
    assert statement.generated_id is None


def test_insert_requires_values():
    with pytest.raises(EntityConfigurationError):
        build_insert("users", {})


# --- UPDATE ---


def test_update_by_id():
    statement = build_update("users", {"name": "Ann"}, {"id": 7})
    assert statement.sql == "UPDATE `users` SET `name` = ? WHERE (`users`.`id` = ?)"
    assert statement.params == [BoundParam(BindType.STRING, "Ann"), BoundParam(BindType.INTEGER, 7)]


def test_update_params_are_values_then_where():
    statement = build_update(
        "t", {"a": 1, "b": None, "c": 2.5}, {"!d": ["x", "y"], ">e": 3}
    )
    assert statement.sql == (
        "UPDATE `t` SET `a` = ? , `b` = null , `c` = ? "
        "WHERE (`t`.`d` not in (?,?)) AND (`t`.`e` > ?)"
    )
    assert statement.values == [1, 2.5, "x", "y", 3]
    assert statement.sql.count("?") == len(statement.params)


def test_update_without_where():
    assert build_update("t", {"a": 1}).sql == "UPDATE `t` SET `a` = ?"


def test_update_requires_values():
    with pytest.raises(EntityConfigurationError):
        build_update("t", {}, {"id": 1})


# --- DELETE ---


def test_delete():
    statement = build_delete("users", {"id": 3})
    assert statement.sql == "DELETE FROM `users` WHERE (`users`.`id` = ?)"
    assert statement.values == [3]


def test_delete_with_or_compose():
    statement = build_delete("t", {"a": 1, "b": None}, compose="OR")
    assert statement.sql == "DELETE FROM `t` WHERE (`t`.`a` = ?) OR (`t`.`b` is NULL)"


def test_prepare_markers():
    columns, markers, params = prepare_markers({"a": "x", "b": None})
    assert columns == ["`a`", "`b`"]
    assert markers == ["?", "null"]
    assert params == [BoundParam(BindType.STRING, "x")]
