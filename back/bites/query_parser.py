"""
Parser for the assistant's small where-clause language.

Clauses look like ``name contains pizza``, ``price_cents >= 500`` or
``status = 'Active'``. Values are coerced to the field's Python type; any
clause that does not parse, names an unknown field or carries a value of
the wrong type is dropped rather than failing the whole query.
"""

import math
import re
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any

OPERATORS = ("contains", "=", "!=", ">", ">=", "<", "<=")
ORDERING_OPERATORS = (">", ">=", "<", "<=")

_CONTAINS_RE = re.compile(r"^\s*([A-Za-z_][A-Za-z0-9_]*)\s+contains\s+(.+?)\s*$", re.IGNORECASE)
_COMPARE_RE = re.compile(r"^\s*([A-Za-z_][A-Za-z0-9_]*)\s*(!=|>=|<=|==|=|>|<)\s*(.+?)\s*$")

_TRUE = {"true", "yes", "1", "y"}
_FALSE = {"false", "no", "0", "n"}


@dataclass(frozen=True)
class Condition:
    field: str
    op: str
    value: Any


def normalize_field(name: str) -> str:
    return name.replace("_", "").lower()


def resolve_field(name: str, field_types: dict[str, type]) -> str | None:
    """Match `itemName`, `item_name` or `ITEM_NAME` to the declared field."""
    wanted = normalize_field(name)
    for field in field_types:
        if normalize_field(field) == wanted:
            return field
    return None


def unquote(raw: str) -> str:
    raw = raw.strip()
    if len(raw) >= 2 and raw[0] == raw[-1] and raw[0] in ("'", '"'):
        return raw[1:-1]
    return raw


def coerce_value(raw: str, field_type: type) -> Any:
    """Convert a clause value to `field_type`; raises ValueError when impossible."""
    if isinstance(field_type, type) and issubclass(field_type, Enum):
        for member in field_type:
            if str(member.value).lower() == raw.lower():
                return member
        raise ValueError(f"{raw!r} is not a valid {field_type.__name__}")
    if field_type is bool:
        lowered = raw.lower()
        if lowered in _TRUE:
            return True
        if lowered in _FALSE:
            return False
        raise ValueError(f"{raw!r} is not a boolean")
    if field_type is int:
        return int(raw)
    if field_type is float:
        value = float(raw)
        if not math.isfinite(value):
            raise ValueError(f"{raw!r} is not a finite number")
        return value
    if field_type is Decimal:
        try:
            value = Decimal(raw)
        except InvalidOperation:
            raise ValueError(f"{raw!r} is not a number")
        if not value.is_finite():
            raise ValueError(f"{raw!r} is not a finite number")
        return value
    if field_type is datetime:
        return datetime.fromisoformat(raw.replace("Z", "+00:00"))
    if field_type is date:
        return date.fromisoformat(raw[:10])
    return raw


def is_text(field_type: type) -> bool:
    return field_type is str


def parse_clause(clause: str, field_types: dict[str, type]) -> Condition | None:
    """Parse one clause. Returns None when it must be dropped."""
    if not isinstance(clause, str) or not clause.strip():
        return None

    m = _CONTAINS_RE.match(clause)
    if m:
        name, op, raw = m.group(1), "contains", m.group(2)
    else:
        m = _COMPARE_RE.match(clause)
        if not m:
            return None
        name, op, raw = m.group(1), m.group(2), m.group(3)
        if op == "==":
            op = "="

    field = resolve_field(name, field_types)
    if field is None:
        return None
    field_type = field_types[field]
    value = unquote(raw)

    if op == "contains":
        if not is_text(field_type) or not value:
            return None
        return Condition(field, op, value)

    if op in ORDERING_OPERATORS and (field_type is bool or issubclass(field_type, Enum)):
        return None

    try:
        coerced = coerce_value(value, field_type)
    except ValueError:
        return None
    return Condition(field, op, coerced)


def parse_where(clauses: Iterable[str] | str | None, field_types: dict[str, type]) -> list[Condition]:
    """Parse a list of clauses (or a single clause string), dropping the bad ones."""
    if clauses is None:
        return []
    if isinstance(clauses, str):
        clauses = [clauses]
    conditions = []
    for clause in clauses:
        condition = parse_clause(clause, field_types)
        if condition is not None:
            conditions.append(condition)
    return conditions
