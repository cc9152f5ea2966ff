"""
Predicate Builder - translate filter maps into structured predicates.

Filter keys may carry a trailing comparison operator:

    {"age >=": 18, "name": "Ada", "retired_at": None}

becomes

    (age >= 18) AND (name = 'Ada') AND (retired_at IS NULL)

Rules:
- A key matching `<field> <op>` yields that field and operator.
  `=>` is accepted as an alias for `>=`.
- Any other key is taken literally as the field name, compared with `=`.
- A None value always means "field is null", whatever operator was given.
- Clauses are ANDed in the order the caller supplied them.
"""

import json
import operator
import re
from enum import Enum
from typing import Any, Iterable, Mapping

from pydantic import BaseModel, ConfigDict
from pydantic_core import to_jsonable_python


FILTER_KEY_PATTERN = re.compile(r"^\s*(\w+)\s*(<=|=>|>=|<|=|>)\s*$")


class ComparisonOperator(str, Enum):
    """Operators a filter clause can use."""
    LT = "<"
    LE = "<="
    EQ = "="
    GE = ">="
    GT = ">"
    IS_NULL = "is null"


OPERATOR_TOKENS: dict[str, ComparisonOperator] = {
    "<": ComparisonOperator.LT,
    "<=": ComparisonOperator.LE,
    "=": ComparisonOperator.EQ,
    "=>": ComparisonOperator.GE,
    ">=": ComparisonOperator.GE,
    ">": ComparisonOperator.GT,
}

_EVALUATORS = {
    ComparisonOperator.LT: operator.lt,
    ComparisonOperator.LE: operator.le,
    ComparisonOperator.EQ: operator.eq,
    ComparisonOperator.GE: operator.ge,
    ComparisonOperator.GT: operator.gt,
}


class Comparison(BaseModel):
    """One atomic clause: field, operator, value."""
    
    model_config = ConfigDict(frozen=True)
    
    field: str
    operator: ComparisonOperator
    value: Any = None
    
    def matches(self, values: Mapping[str, Any]) -> bool:
        """Evaluate against a record's field values."""
        actual = values.get(self.field)
        if self.operator is ComparisonOperator.IS_NULL:
            return actual is None
        if actual is None:
            return False
        try:
            return bool(_EVALUATORS[self.operator](actual, self.value))
        except TypeError:
            # Incomparable types never match
            return False
    
    def to_sql(self, column: str) -> tuple[str, list[Any]]:
        """Render as a SQLite clause over a JSON column."""
        expression = f"json_extract({column}, ?)"
        path = f'$."{self.field}"'
        if self.operator is ComparisonOperator.IS_NULL:
            return f"({expression} IS NULL)", [path]
        return f"({expression} {self.operator.value} ?)", [path, _sql_param(self.value)]
    
    def __str__(self) -> str:
        if self.operator is ComparisonOperator.IS_NULL:
            return f"({self.field} IS NULL)"
        return f"({self.field} {self.operator.value} {self.value!r})"


class Predicate(BaseModel):
    """Comparisons joined with AND, in order."""
    
    model_config = ConfigDict(frozen=True)
    
    comparisons: tuple[Comparison, ...] = ()
    
    @property
    def fields(self) -> list[str]:
        return [c.field for c in self.comparisons]
    
    def matches(self, values: Mapping[str, Any]) -> bool:
        return all(c.matches(values) for c in self.comparisons)
    
    def to_sql(self, column: str = "data") -> tuple[str, list[Any]]:
        clauses: list[str] = []
        params: list[Any] = []
        for comparison in self.comparisons:
            clause, clause_params = comparison.to_sql(column)
            clauses.append(clause)
            params.extend(clause_params)
        return " AND ".join(clauses), params
    
    def __str__(self) -> str:
        return " AND ".join(str(c) for c in self.comparisons)


class SortKey(BaseModel):
    """One sort key. None values sort first when ascending."""
    
    model_config = ConfigDict(frozen=True)
    
    field: str
    ascending: bool = True


def _sql_param(value: Any) -> Any:
    """Convert a filter value to what json_extract yields for it."""
    value = to_jsonable_python(value)
    if isinstance(value, (list, dict)):
        return json.dumps(value, separators=(",", ":"))
    return value


def _pairs(entries: Mapping[str, Any] | Iterable[tuple[str, Any]] | None) -> list[tuple[str, Any]]:
    if not entries:
        return []
    if isinstance(entries, Mapping):
        return list(entries.items())
    return list(entries)


def parse_filter_key(key: str) -> tuple[str, ComparisonOperator]:
    """
    Split a filter key into field name and operator.
    
    Keys that don't match the `<field> <op>` pattern are taken
    literally as field names compared with equality.
    """
    match = FILTER_KEY_PATTERN.match(key)
    if match is None:
        return key, ComparisonOperator.EQ
    return match.group(1), OPERATOR_TOKENS[match.group(2)]


def build_comparison(key: str, value: Any) -> Comparison:
    field, op = parse_filter_key(key)
    if value is None:
        return Comparison(field=field, operator=ComparisonOperator.IS_NULL)
    return Comparison(field=field, operator=op, value=value)


def build_predicate(
    entries: Mapping[str, Any] | Iterable[tuple[str, Any]] | None,
) -> Predicate | None:
    """Build a predicate from filter entries. Returns None when empty."""
    pairs = _pairs(entries)
    if not pairs:
        return None
    return Predicate(comparisons=tuple(build_comparison(k, v) for k, v in pairs))


def build_sort(
    entries: Mapping[str, bool] | Iterable[tuple[str, bool]] | None,
) -> list[SortKey]:
    """Build sort keys from (field, ascending) entries."""
    return [SortKey(field=field, ascending=ascending) for field, ascending in _pairs(entries)]
