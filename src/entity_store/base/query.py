# src/entity_store/base/query.py
"""
Condition maps and their compilation into parameterized WHERE clauses.

A condition map goes from *condition keys* to values. A key is a field name
with optional sigils in front of it:

- ``!`` negates the condition;
- ``*`` joins the terms produced by a list value with AND instead of OR;
- ``>=``, ``<=``, ``<>``, ``>``, ``<``, ``=`` pick the comparison operator;
- ``%`` or ``~`` use LIKE, ``i%`` or ``i~`` a case-insensitive LIKE.

Values may be scalars, lists (several terms, or a single ``in (...)`` for
plain equality) or None (``is NULL``). For example::

    {"*>=d1": ["a", "b"]}   ->  (`t`.`d1` >= ? AND `t`.`d1` >= ?)
    {">=d1": ["a", "b"]}    ->  (`t`.`d1` >= ? OR `t`.`d1` >= ?)
    {"d1": ["a", "b"]}      ->  (`t`.`d1` in (?,?))
    {"!d1": None}           ->  (`t`.`d1` is NOT NULL)
"""

import copy
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple, Type, Union

from .conversion import BoundParam, to_bind_param
from .validation_exceptions import MalformedConditionError, UnknownFieldError

# --- Setup Logging ---
log = logging.getLogger(__name__)


# Two-character operators are checked before one-character ones.
# sigil -> (operator, negated operator, case insensitive)
_TWO_CHAR_OPERATORS: Dict[str, Tuple[str, str, bool]] = {
    ">=": (">=", "<", False),
    "<=": ("<=", ">", False),
    "<>": ("<>", "=", False),
    "i%": ("LIKE", "NOT LIKE", True),
    "i~": ("LIKE", "NOT LIKE", True),
}
_ONE_CHAR_OPERATORS: Dict[str, Tuple[str, str, bool]] = {
    ">": (">", "<=", False),
    "<": ("<", ">=", False),
    "=": ("=", "<>", False),
    "%": ("LIKE", "NOT LIKE", False),
    "~": ("LIKE", "NOT LIKE", False),
}

CONNECTIVES = ("AND", "OR")


def quote_identifier(identifier: str) -> str:
    """Quote an identifier with backticks (embedded backticks are doubled)."""
    safe_identifier = identifier.replace("`", "``")
    return f"`{safe_identifier}`"


def normalize_connective(connective: str) -> str:
    value = str(connective).strip().upper()
    if value not in CONNECTIVES:
        raise MalformedConditionError(
            f"Connective must be one of {CONNECTIVES}, got {connective!r}"
        )
    return value


# --- Condition Analyzer ---
@dataclass(frozen=True)
class ConditionKey:
    """A condition key split into its field name and operator description."""

    raw: str
    field: str
    operator: str = "="
    negated_operator: str = "<>"
    negate: bool = False
    join_connective: str = "OR"
    case_insensitive: bool = False

    @property
    def sigils(self) -> str:
        """Everything in the raw key in front of the field name."""
        return self.raw[: len(self.raw) - len(self.field)]

    @property
    def effective_operator(self) -> str:
        return self.negated_operator if self.negate else self.operator

    def with_field(self, field_name: str) -> str:
        """Returns the raw key with the same sigils targeting another field (or column)."""
        return f"{self.sigils}{field_name}"


def analyze_condition_key(raw: str) -> ConditionKey:
    """
    Parses a condition key into a ConditionKey.

    Precedence: a leading ``!``, then a leading ``*``, then the two-character
    operators, then the one-character ones; without an operator the key is a
    plain equality.

    Raises:
        MalformedConditionError: If the key is not a string or names no field.
    """
    if not isinstance(raw, str):
        raise MalformedConditionError(
            f"Condition keys must be strings, got {type(raw).__name__}"
        )
    rest = raw
    negate = False
    join_connective = "OR"

    if rest.startswith("!"):
        negate = True
        rest = rest[1:]
    if rest.startswith("*"):
        join_connective = "AND"
        rest = rest[1:]

    spec = _TWO_CHAR_OPERATORS.get(rest[:2])
    if spec is not None:
        rest = rest[2:]
    else:
        spec = _ONE_CHAR_OPERATORS.get(rest[:1])
        if spec is not None:
            rest = rest[1:]
        else:
            spec = ("=", "<>", False)

    if not rest:
        raise MalformedConditionError(f"Condition key {raw!r} does not name a field")

    operator, negated_operator, case_insensitive = spec
    return ConditionKey(
        raw=raw,
        field=rest,
        operator=operator,
        negated_operator=negated_operator,
        negate=negate,
        join_connective=join_connective,
        case_insensitive=case_insensitive,
    )


# --- Where-Clause Compiler ---
@dataclass(frozen=True)
class CompiledCondition:
    """A WHERE fragment and its positional parameters, in placeholder order."""

    sql: str = ""
    params: List[BoundParam] = field(default_factory=list)

    def __bool__(self) -> bool:
        return bool(self.sql)

    @property
    def values(self) -> List[Any]:
        return [param.value for param in self.params]


def _as_value_list(value: Any) -> List[Any]:
    if isinstance(value, (list, tuple, set, frozenset)):
        return list(value)
    return [value]


def _compile_entry(
    key: ConditionKey, value: Any, table_prefix: str
) -> Tuple[str, List[BoundParam]]:
    column = f"{table_prefix}{quote_identifier(key.field)}"
    null_check = "is NOT NULL" if key.negate else "is NULL"

    if value is None:
        return f"({column} {null_check})", []

    values = _as_value_list(value)
    terms: List[str] = []
    params: List[BoundParam] = []

    non_null = [v for v in values if v is not None]
    if len(non_null) != len(values):
        terms.append(f"{column} {null_check}")

    if key.case_insensitive:
        target = f"LOWER({column})"
        marker = "LOWER(?)"
    else:
        target = column
        marker = "?"

    if len(non_null) > 1 and key.operator == "=":
        markers = ",".join(marker for _ in non_null)
        membership = "not in" if key.negate else "in"
        terms.append(f"{target} {membership} ({markers})")
    else:
        for _ in non_null:
            terms.append(f"{target} {key.effective_operator} {marker}")

    params.extend(to_bind_param(v) for v in non_null)

    if not terms:
        # Empty list: nothing can match it (and everything matches its negation)
        return ("(1 = 1)" if key.negate else "(0 = 1)"), []

    return "(" + f" {key.join_connective} ".join(terms) + ")", params


def compile_where(
    conditions: Optional[Mapping[str, Any]],
    table: str = "",
    compose: str = "AND",
) -> CompiledCondition:
    """
    Compiles a condition map into a parenthesized boolean fragment.

    Args:
        conditions: Condition keys (with sigils) to values, in the order the
            sub-expressions should appear.
        table: Table used to qualify every field (no qualification if empty).
        compose: Connective joining the per-key sub-expressions (AND/OR).

    Returns:
        CompiledCondition whose params follow the left-to-right order of the
        ``?`` markers in its SQL.
    """
    compose = normalize_connective(compose)
    if not conditions:
        return CompiledCondition()

    table_prefix = f"{quote_identifier(table)}." if table else ""
    fragments: List[str] = []
    params: List[BoundParam] = []
    for raw_key, value in conditions.items():
        key = analyze_condition_key(raw_key)
        sql, entry_params = _compile_entry(key, value, table_prefix)
        fragments.append(sql)
        params.extend(entry_params)

    compiled = CompiledCondition(sql=f" {compose} ".join(fragments), params=params)
    log.debug(f"Compiled condition {dict(conditions)!r} -> {compiled.sql!r}")
    return compiled


# --- Query Options ---
@dataclass
class QueryOptions:
    """Options for searching a repository: condition map, ordering and paging."""

    condition: Dict[str, Any] = field(default_factory=dict)
    order_by: Optional[Union[str, List[str]]] = None
    compose: str = "AND"
    limit: Optional[int] = None
    offset: int = 0
    raw_sql: Optional[str] = None

    def __post_init__(self):
        self.compose = normalize_connective(self.compose)
        self.condition = dict(self.condition or {})

    def __repr__(self) -> str:
        parts = [f"condition={self.condition!r}"]
        if self.order_by:
            parts.append(f"order_by={self.order_by!r}")
        if self.compose != "AND":
            parts.append(f"compose={self.compose!r}")
        if self.limit is not None:
            parts.append(f"limit={self.limit!r}")
        if self.offset:
            parts.append(f"offset={self.offset!r}")
        if self.raw_sql:
            parts.append(f"raw_sql={self.raw_sql!r}")
        return f"QueryOptions({', '.join(parts)})"

    def copy(self) -> "QueryOptions":
        """Creates a copy of the QueryOptions (the condition map is copied too)."""
        duplicate = copy.copy(self)
        duplicate.condition = dict(self.condition)
        return duplicate

    def sql_suffix(self) -> Optional[str]:
        """Raw SQL appended after the statement: paging first, then the caller's raw SQL."""
        parts = []
        if self.limit is not None:
            parts.append(f"LIMIT {int(self.limit)}")
            if self.offset:
                parts.append(f"OFFSET {int(self.offset)}")
        if self.raw_sql:
            parts.append(self.raw_sql)
        return " ".join(parts) if parts else None


# --- Query Builder ---
class QueryBuilder:
    """
    Builds QueryOptions using a fluent API, checking every referenced field
    against the entity type's declaration.

        qb = QueryBuilder(User)
        options = qb.where(">=age", 18).where("%name", "A%").order_by("name").limit(10).build()
    """

    def __init__(self, entity_cls: Optional[Type[Any]] = None):
        self._logger = log
        self.entity_cls = entity_cls
        self._descriptor = entity_cls.descriptor() if entity_cls is not None else None
        self._condition: Dict[str, Any] = {}
        self._options: Dict[str, Any] = {
            "order_by": None,
            "compose": "AND",
            "limit": None,
            "offset": 0,
            "raw_sql": None,
        }
        if entity_cls is not None:
            self._logger.debug(f"Initializing QueryBuilder WITH validation for: {entity_cls.__name__}")
        else:
            self._logger.debug("Initializing QueryBuilder WITHOUT field validation.")

    def _check_field(self, name: str) -> None:
        if self._descriptor is not None and not self._descriptor.has_fields(name):
            raise UnknownFieldError(
                f"Field '{name}' is not declared by {self.entity_cls.__name__}"
            )

    def where(self, key: str, value: Any) -> "QueryBuilder":
        """Adds one condition (a key with sigils and its value)."""
        condition_key = analyze_condition_key(key)
        self._check_field(condition_key.field)
        self._condition[key] = value
        self._logger.debug(f"Added condition {key!r} = {value!r}")
        return self

    def where_all(self, conditions: Mapping[str, Any]) -> "QueryBuilder":
        for key, value in conditions.items():
            self.where(key, value)
        return self

    def compose(self, connective: str) -> "QueryBuilder":
        """Sets the connective joining the conditions (AND by default)."""
        self._options["compose"] = normalize_connective(connective)
        return self

    def order_by(self, *clauses: str) -> "QueryBuilder":
        """Sets ORDER BY clauses, e.g. ``order_by("name", "age DESC")``."""
        for clause in clauses:
            if not isinstance(clause, str) or not clause.strip():
                raise MalformedConditionError(f"ORDER BY clauses must be non-empty strings, got {clause!r}")
            self._check_field(clause.split()[0])
        self._options["order_by"] = list(clauses) if clauses else None
        return self

    def limit(self, num: int) -> "QueryBuilder":
        """Sets the query limit."""
        if not isinstance(num, int) or num < 0:
            raise ValueError("Limit must be a non-negative integer.")
        self._options["limit"] = num
        return self

    def offset(self, num: int) -> "QueryBuilder":
        """Sets the query offset (only rendered together with a limit)."""
        if not isinstance(num, int) or num < 0:
            raise ValueError("Offset must be a non-negative integer.")
        self._options["offset"] = num
        return self

    def raw(self, sql: str) -> "QueryBuilder":
        """Appends raw SQL after the statement (e.g. ``FOR UPDATE``)."""
        self._options["raw_sql"] = sql
        return self

    def build(self) -> QueryOptions:
        """Builds the final QueryOptions object."""
        if self._options["offset"] and self._options["limit"] is None:
            raise ValueError("An offset requires a limit.")
        options = QueryOptions(condition=dict(self._condition), **self._options)
        model_name = self.entity_cls.__name__ if self.entity_cls else "Generic"
        self._logger.debug(f"Built query options for {model_name} entity: {options!r}")
        return options
