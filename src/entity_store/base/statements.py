# src/entity_store/base/statements.py
"""
Assembly of full SELECT / INSERT / UPDATE / DELETE statements.

Every builder returns a CompiledStatement whose ``params`` follow the order
of the ``?`` markers in its SQL. Values given to ``build_insert`` and
``build_update`` are expected in storage form already (see
:mod:`entity_store.base.conversion`); ``None`` values are written as the
literal ``null`` and bind nothing.
"""

from dataclasses import dataclass, field
from typing import Any, List, Mapping, Optional, Sequence, Tuple, Union

from .conversion import BoundParam, to_bind_param
from .query import CompiledCondition, compile_where, quote_identifier
from .validation_exceptions import EntityConfigurationError

__all__ = [
    "CompiledStatement",
    "quote_identifier",
    "qualify_fields",
    "prepare_markers",
    "build_select",
    "build_insert",
    "build_update",
    "build_delete",
]

FieldEntry = Union[str, Tuple[str, str]]


@dataclass
class CompiledStatement:
    """SQL text with its positional parameters (and, after an insert, the generated id)."""

    sql: str
    params: List[BoundParam] = field(default_factory=list)
    generated_id: Any = None

    @property
    def values(self) -> List[Any]:
        return [param.value for param in self.params]


def _split_entry(entry: FieldEntry) -> Tuple[str, str]:
    if isinstance(entry, tuple):
        name, alias = entry
        return name.strip(), alias.strip()
    if "->" in entry:
        name, alias = entry.split("->", 1)
        return name.strip(), alias.strip()
    entry = entry.strip()
    return entry, entry


def qualify_fields(
    fields: Optional[Sequence[FieldEntry]], table: str = "", alias: bool = True
) -> str:
    """
    Qualifies a selection list with the table name.

    Entries are ``"*"``, ``"field"``, ``"#field"`` (``COUNT(field)``),
    ``"field -> alias"`` or ``(field, alias)`` pairs. With ``alias=False``
    (GROUP BY) the aliases are dropped. An empty list selects ``table.*``.
    """
    table_prefix = f"{quote_identifier(table)}." if table else ""
    rendered: List[str] = []
    for entry in fields or []:
        name, renamed = _split_entry(entry)
        count = name.startswith("#")
        if count:
            name = name[1:]
            if renamed.startswith("#"):
                renamed = renamed[1:]
        if not name:
            raise EntityConfigurationError(f"Empty field name in selection entry {entry!r}")

        column = f"{table_prefix}*" if name == "*" else f"{table_prefix}{quote_identifier(name)}"
        if count:
            column = f"COUNT({column})"
        if alias and renamed != name and name != "*":
            column = f"{column} AS {quote_identifier(renamed)}"
        rendered.append(column)

    if not rendered:
        return f"{table_prefix}*"
    return ", ".join(rendered)


def prepare_markers(values: Mapping[str, Any]) -> Tuple[List[str], List[str], List[BoundParam]]:
    """
    Splits a column -> storage value mapping into quoted columns, markers and params.

    A None value is rendered as the literal ``null`` and binds no parameter.
    """
    columns: List[str] = []
    markers: List[str] = []
    params: List[BoundParam] = []
    for column, value in values.items():
        columns.append(quote_identifier(column))
        if value is None:
            markers.append("null")
        else:
            markers.append("?")
            params.append(to_bind_param(value))
    return columns, markers, params


def build_select(
    table: str,
    condition: Optional[Mapping[str, Any]] = None,
    fields: Optional[Sequence[FieldEntry]] = None,
    compose: str = "AND",
    order_by: Optional[Union[str, Sequence[str]]] = None,
    group_by: Optional[Sequence[str]] = None,
    raw_sql: Optional[str] = None,
) -> CompiledStatement:
    """
    Builds a SELECT statement.

    Args:
        table: Table to select from (also qualifies every field).
        condition: Condition map compiled into the WHERE clause.
        fields: Selection list (see :func:`qualify_fields`); empty means ``SELECT *``.
        compose: Connective between the condition entries.
        order_by: Literal ORDER BY clause or a list of them joined with ``,``.
        group_by: Fields to group by (qualified, never aliased).
        raw_sql: Appended verbatim at the end (paging, locking clauses...).
    """
    where = compile_where(condition, table, compose)
    fields_sql = qualify_fields(fields, table) if fields else "*"

    sql = f"SELECT {fields_sql} FROM {quote_identifier(table)}"
    if where:
        sql += f" WHERE {where.sql}"
    if group_by:
        sql += f" GROUP BY {qualify_fields(group_by, table, alias=False)}"
    if order_by:
        if isinstance(order_by, str):
            sql += f" ORDER BY {order_by}"
        else:
            sql += " ORDER BY " + ",".join(order_by)
    if raw_sql:
        sql += f" {raw_sql}"
    return CompiledStatement(sql=sql, params=list(where.params))


def build_insert(table: str, values: Mapping[str, Any]) -> CompiledStatement:
    if not values:
        raise EntityConfigurationError(f"Cannot build an INSERT into '{table}' without values")
    columns, markers, params = prepare_markers(values)
    sql = (
        f"INSERT INTO {quote_identifier(table)} "
        f"({','.join(columns)}) VALUES ({','.join(markers)})"
    )
    return CompiledStatement(sql=sql, params=params)


def build_update(
    table: str, values: Mapping[str, Any], where: Optional[Mapping[str, Any]] = None
) -> CompiledStatement:
    """
    Builds an UPDATE statement. The params are the SET params followed by
    the WHERE params, matching the order of the markers.
    """
    if not values:
        raise EntityConfigurationError(f"Cannot build an UPDATE of '{table}' without values")
    columns, markers, params = prepare_markers(values)
    assignments = " , ".join(f"{column} = {marker}" for column, marker in zip(columns, markers))

    sql = f"UPDATE {quote_identifier(table)} SET {assignments}"
    compiled_where: CompiledCondition = compile_where(where, table, "AND")
    if compiled_where:
        sql += f" WHERE {compiled_where.sql}"
    return CompiledStatement(sql=sql, params=params + list(compiled_where.params))


def build_delete(
    table: str, condition: Optional[Mapping[str, Any]] = None, compose: str = "AND"
) -> CompiledStatement:
    where = compile_where(condition, table, compose)
    sql = f"DELETE FROM {quote_identifier(table)}"
    if where:
        sql += f" WHERE {where.sql}"
    return CompiledStatement(sql=sql, params=list(where.params))
