"""
"Ask the database" assistant.

A question goes through three model calls: pick which data set to read,
plan the fields/filters/limit, and summarize the rows that came back. The
query itself is built here from an allow-list, never from model output.
"""

import json
import logging
import re
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from sqlalchemy import func
from sqlmodel import Session, select

from . import models
from .inventory_models import InventoryItem, Supplier, UnitOfMeasure
from .llm import TextGenerator, extract_json
from .query_parser import Condition, parse_where, resolve_field

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 20
MAX_LIMIT = 100

UNKNOWN_MODEL_MESSAGE = "Sorry, I couldn't understand which data to fetch. Please try a different prompt."


class UnknownModelError(ValueError):
    """The model answered with a data set outside the allow-list."""


@dataclass(frozen=True)
class QueryableModel:
    name: str
    table: type
    fields: dict[str, type]
    description: str
    order_by: str | None = None


QUERYABLE_MODELS: dict[str, QueryableModel] = {
    "staff": QueryableModel(
        name="staff",
        table=models.Staff,
        fields={
            "id": int,
            "name": str,
            "role": str,
            "phone": str,
            "email": str,
            "status": models.StaffStatus,
            "joined_at": date,
        },
        description="Restaurant employees with their role and employment status (Active/Inactive)",
    ),
    "menu": QueryableModel(
        name="menu",
        table=models.MenuItem,
        fields={
            "id": int,
            "item_name": str,
            "price_cents": int,
            "description": str,
            "category": str,
            "is_veg": bool,
            "is_available": bool,
        },
        description="Dishes on the menu, prices in cents",
    ),
    "orders": QueryableModel(
        name="orders",
        table=models.Order,
        fields={
            "id": int,
            "table_number": int,
            "username": str,
            "source": models.OrderSource,
            "status": models.OrderStatus,
            "total_cents": int,
            "created_at": datetime,
        },
        description="Customer orders (table or online) with status and total in cents",
        order_by="created_at",
    ),
    "inventoryitem": QueryableModel(
        name="inventoryitem",
        table=InventoryItem,
        fields={
            "id": int,
            "name": str,
            "category": str,
            "sku": str,
            "unit": UnitOfMeasure,
            "quantity": Decimal,
            "reorder_level": Decimal,
            "max_capacity": Decimal,
        },
        description="Stock of ingredients and supplies; quantity is current stock, reorder_level the alert threshold",
    ),
    "supplier": QueryableModel(
        name="supplier",
        table=Supplier,
        fields={
            "id": int,
            "name": str,
            "contact": str,
            "email": str,
            "phone": str,
        },
        description="Vendors that supply inventory",
    ),
}

MODEL_ALIASES = {
    "order": "orders",
    "order2": "orders",
    "inventory": "inventoryitem",
    "inventoryitems": "inventoryitem",
    "inventory_item": "inventoryitem",
    "suppliers": "supplier",
    "menuitem": "menu",
    "menu_item": "menu",
}


@dataclass
class QueryPlan:
    fields: list[str]
    where: list[str] = field(default_factory=list)
    limit: int = DEFAULT_LIMIT
    conditions: list[Condition] = field(default_factory=list)

    def as_dict(self) -> dict:
        return {"fields": self.fields, "where": self.where, "limit": self.limit}


# ============ PROMPTS ============

def _type_name(field_type: type) -> str:
    if isinstance(field_type, type) and issubclass(field_type, Enum):
        return "one of " + "/".join(str(m.value) for m in field_type)
    return {
        int: "integer",
        float: "number",
        Decimal: "number",
        bool: "boolean",
        str: "text",
        date: "date (YYYY-MM-DD)",
        datetime: "datetime (ISO 8601)",
    }.get(field_type, "text")


def schema_summary() -> str:
    lines = []
    for queryable in QUERYABLE_MODELS.values():
        columns = ", ".join(queryable.fields)
        lines.append(f"- {queryable.name}: {queryable.description}. Fields: {columns}")
    return "\n".join(lines)


def model_selection_prompt(question: str) -> str:
    names = ", ".join(f'"{name}"' for name in QUERYABLE_MODELS)
    return (
        "You are an AI assistant for a restaurant management system.\n"
        "Identify the single database model most relevant to the user's request.\n"
        f"Respond with only the model name in lowercase. The possible model names are: {names}.\n"
        "Do not provide any explanation or other text.\n\n"
        f"Models:\n{schema_summary()}\n\n"
        f'User Prompt: "{question}"\n\n'
        "Model Name:"
    )


def query_plan_prompt(question: str, queryable: QueryableModel) -> str:
    columns = "\n".join(f"- {name}: {_type_name(t)}" for name, t in queryable.fields.items())
    return (
        f'You are planning a read-only query on the "{queryable.name}" data of a restaurant.\n'
        f"Available fields:\n{columns}\n\n"
        "Return ONLY a JSON object with keys:\n"
        '  "fields": list of field names to return,\n'
        '  "where": list of filters written as "<field> contains <value>", "<field> = <value>", '
        '"<field> != <value>", "<field> > <value>", "<field> >= <value>", "<field> < <value>" or "<field> <= <value>",\n'
        f'  "limit": maximum number of rows (1-{MAX_LIMIT}).\n'
        'Example: {"fields": ["name", "role"], "where": ["role contains chef"], "limit": 10}\n\n'
        f'User Prompt: "{question}"'
    )


def summary_prompt(question: str, data: list[dict]) -> str:
    return (
        "You are a helpful AI assistant for a restaurant management system.\n"
        f'A user asked the following question: "{question}"\n\n'
        "I have fetched the following data from the database, which is relevant to their question:\n"
        f"{json.dumps(data, indent=2, default=str)}\n\n"
        "Please provide a concise, human-readable summary of this data in plain text.\n"
        "Do not format it as a table or a list of JSON objects. "
        "Instead, present it as a natural language response. "
        "Amounts ending in _cents are in cents; convert them to currency units.\n\n"
        "Summary:"
    )


# ============ PLANNING ============

def normalize_model_name(answer: str) -> str | None:
    """Map a model reply such as '`Staff`.' or '"order2"' to an allow-listed name."""
    cleaned = re.sub(r"[^a-z0-9_\s]", "", (answer or "").lower()).strip()
    for candidate in (cleaned, cleaned.replace(" ", "")):
        if candidate in QUERYABLE_MODELS:
            return candidate
        if candidate in MODEL_ALIASES:
            return MODEL_ALIASES[candidate]
    return None


def clamp_limit(value: Any) -> int:
    if isinstance(value, bool):
        return DEFAULT_LIMIT
    try:
        limit = int(value)
    except (TypeError, ValueError):
        return DEFAULT_LIMIT
    return max(1, min(MAX_LIMIT, limit))


def build_plan(queryable: QueryableModel, raw: dict | None) -> QueryPlan:
    """Sanitize a model-proposed plan against the allow-list."""
    if not raw:
        return QueryPlan(fields=list(queryable.fields))

    fields = []
    for name in raw.get("fields") or []:
        if not isinstance(name, str):
            continue
        resolved = resolve_field(name, queryable.fields)
        if resolved and resolved not in fields:
            fields.append(resolved)
    if not fields:
        fields = list(queryable.fields)

    where = raw.get("where") or []
    if isinstance(where, str):
        where = [where]
    where = [clause for clause in where if isinstance(clause, str)]
    conditions = parse_where(where, queryable.fields)

    return QueryPlan(
        fields=fields,
        where=[f"{c.field} {c.op} {_render(c.value)}" for c in conditions],
        limit=clamp_limit(raw.get("limit", DEFAULT_LIMIT)),
        conditions=conditions,
    )


def _render(value: Any) -> str:
    if isinstance(value, Enum):
        return str(value.value)
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return str(value)


# ============ DISPATCH ============

def _apply(statement, column, condition: Condition):
    op, value = condition.op, condition.value
    if op == "contains":
        return statement.where(func.lower(column).contains(str(value).lower(), autoescape=True))
    if op == "=":
        return statement.where(column == value)
    if op == "!=":
        return statement.where(column != value)
    if op == ">":
        return statement.where(column > value)
    if op == ">=":
        return statement.where(column >= value)
    if op == "<":
        return statement.where(column < value)
    return statement.where(column <= value)


def to_json_value(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return value


def run_plan(session: Session, queryable: QueryableModel, plan: QueryPlan) -> list[dict]:
    statement = select(queryable.table)
    for condition in plan.conditions:
        statement = _apply(statement, getattr(queryable.table, condition.field), condition)
    if queryable.order_by:
        statement = statement.order_by(getattr(queryable.table, queryable.order_by).desc())
    statement = statement.limit(plan.limit)

    rows = session.exec(statement).all()
    return [
        {name: to_json_value(getattr(row, name)) for name in plan.fields}
        for row in rows
    ]


# ============ PIPELINE ============

def choose_model(llm: TextGenerator, question: str) -> QueryableModel:
    answer = llm.generate(model_selection_prompt(question))
    name = normalize_model_name(answer)
    if name is None:
        logger.info(f"Assistant could not map model answer {answer!r}")
        raise UnknownModelError(UNKNOWN_MODEL_MESSAGE)
    return QUERYABLE_MODELS[name]


def plan_query(llm: TextGenerator, question: str, queryable: QueryableModel) -> QueryPlan:
    reply = llm.generate(query_plan_prompt(question, queryable))
    raw = extract_json(reply)
    if raw is None:
        logger.info(f"Assistant plan for {queryable.name} was not JSON, using defaults")
    return build_plan(queryable, raw)


def answer_question(session: Session, llm: TextGenerator, question: str) -> dict:
    """Run the full pipeline. LLM failures surface as AssistantError."""
    queryable = choose_model(llm, question)
    plan = plan_query(llm, question, queryable)
    data = run_plan(session, queryable, plan)
    logger.info(f"Assistant read {len(data)} {queryable.name} row(s) with {len(plan.conditions)} filter(s)")

    if not data:
        return {
            "message": f"I looked for information about {queryable.name}, but couldn't find any data.",
            "data": [],
            "model": queryable.name,
            "plan": plan.as_dict(),
        }

    summary = llm.generate(summary_prompt(question, data))
    return {
        "message": summary,
        "data": data,
        "model": queryable.name,
        "plan": plan.as_dict(),
    }
