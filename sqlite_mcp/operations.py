from __future__ import annotations

import enum
import json
import math
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Callable, Iterable, Iterator, Mapping

from jsonschema import Draft202012Validator

from .errors import InvalidArguments

if TYPE_CHECKING:
    from .db import Database
    from .insights import InsightsLog

TABLE_CREATED_TEXT = "Table created successfully"
INSIGHT_ADDED_TEXT = "Insight added successfully"


class ExecutionPolicy(enum.Enum):
    READ_ONLY = "read-only"
    MUTATING = "mutating"
    SCHEMA_DEFINING = "schema-defining"
    NONE = "none"

    @property
    def required_prefix(self) -> str | None:
        return _REQUIRED_PREFIXES.get(self)


_REQUIRED_PREFIXES = {
    ExecutionPolicy.READ_ONLY: "select",
    ExecutionPolicy.SCHEMA_DEFINING: "create table",
}


@dataclass(frozen=True)
class TextBlock:
    text: str
    type: str = "text"

    def to_dict(self) -> dict[str, str]:
        return {"type": self.type, "text": self.text}


@dataclass(frozen=True)
class ResultEnvelope:
    content: tuple[TextBlock, ...]

    @classmethod
    def text(cls, text: str) -> ResultEnvelope:
        return cls(content=(TextBlock(text),))

    @classmethod
    def json(cls, value: Any) -> ResultEnvelope:
        return cls.text(to_pretty_json(value))

    def to_dict(self) -> dict[str, Any]:
        return {"content": [block.to_dict() for block in self.content]}


@dataclass(frozen=True)
class OperationContext:
    db: Database
    insights: InsightsLog


Handler = Callable[[OperationContext, dict[str, Any]], ResultEnvelope]


@dataclass(frozen=True)
class OperationDefinition:
    name: str
    description: str
    input_schema: Mapping[str, Any]
    policy: ExecutionPolicy
    handler: Handler = field(compare=False, repr=False)
    statement_field: str | None = None


def _json_default(value: Any) -> Any:
    # BLOB columns come back as bytes
    if isinstance(value, (bytes, bytearray, memoryview)):
        return list(bytes(value))
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def _finite(value: Any) -> Any:
    # REAL overflow yields inf/nan; JSON has no spelling for them
    if isinstance(value, float) and not math.isfinite(value):
        return None
    if isinstance(value, dict):
        return {k: _finite(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_finite(v) for v in value]
    return value


def to_pretty_json(value: Any) -> str:
    return json.dumps(_finite(value), indent=2, ensure_ascii=False, allow_nan=False, default=_json_default)


def _string_arg_schema(name: str, description: str) -> dict[str, Any]:
    return {
        "type": "object",
        "properties": {name: {"type": "string", "description": description}},
        "required": [name],
    }


def read_query(ctx: OperationContext, arguments: dict[str, Any]) -> ResultEnvelope:
    return ResultEnvelope.json(ctx.db.fetch_all(arguments["query"]))


def write_query(ctx: OperationContext, arguments: dict[str, Any]) -> ResultEnvelope:
    affected = ctx.db.execute(arguments["query"])
    payload = {} if affected is None else {"affected_rows": affected}
    return ResultEnvelope.json(payload)


def create_table(ctx: OperationContext, arguments: dict[str, Any]) -> ResultEnvelope:
    ctx.db.execute(arguments["query"])
    return ResultEnvelope.text(TABLE_CREATED_TEXT)


def list_tables(ctx: OperationContext, arguments: dict[str, Any]) -> ResultEnvelope:
    return ResultEnvelope.json(ctx.db.list_tables())


def describe_table(ctx: OperationContext, arguments: dict[str, Any]) -> ResultEnvelope:
    return ResultEnvelope.json(ctx.db.table_info(arguments["table_name"]))


def append_insight(ctx: OperationContext, arguments: dict[str, Any]) -> ResultEnvelope:
    ctx.insights.append(arguments["insight"])
    return ResultEnvelope.text(INSIGHT_ADDED_TEXT)


def builtin_operations() -> list[OperationDefinition]:
    return [
        OperationDefinition(
            name="read_query",
            description="Execute a SELECT query",
            input_schema=_string_arg_schema("query", "The SELECT SQL query to execute"),
            policy=ExecutionPolicy.READ_ONLY,
            handler=read_query,
            statement_field="query",
        ),
        OperationDefinition(
            name="write_query",
            description="Execute an INSERT, UPDATE, or DELETE query",
            input_schema=_string_arg_schema("query", "The SQL modification query"),
            policy=ExecutionPolicy.MUTATING,
            handler=write_query,
            statement_field="query",
        ),
        OperationDefinition(
            name="create_table",
            description="Create a new table",
            input_schema=_string_arg_schema("query", "CREATE TABLE SQL statement"),
            policy=ExecutionPolicy.SCHEMA_DEFINING,
            handler=create_table,
            statement_field="query",
        ),
        OperationDefinition(
            name="list_tables",
            description="List all tables in the database",
            input_schema={"type": "object", "properties": {}},
            policy=ExecutionPolicy.READ_ONLY,
            handler=list_tables,
        ),
        OperationDefinition(
            name="describe_table",
            description="View schema information for a table",
            input_schema=_string_arg_schema("table_name", "Name of table to describe"),
            policy=ExecutionPolicy.READ_ONLY,
            handler=describe_table,
        ),
        OperationDefinition(
            name="append_insight",
            description="Add a new business insight to the memo",
            input_schema=_string_arg_schema("insight", "Business insight discovered from data analysis"),
            policy=ExecutionPolicy.NONE,
            handler=append_insight,
        ),
    ]


class OperationCatalog(Mapping[str, OperationDefinition]):
    """Immutable name -> definition registry, fixed at construction."""

    def __init__(self, definitions: Iterable[OperationDefinition]):
        entries: dict[str, OperationDefinition] = {}
        for definition in definitions:
            if definition.name in entries:
                raise ValueError(f"duplicate operation name: {definition.name}")
            entries[definition.name] = definition
        self._entries = MappingProxyType(entries)

    @classmethod
    def builtin(cls) -> OperationCatalog:
        return cls(builtin_operations())

    def __getitem__(self, name: str) -> OperationDefinition:
        return self._entries[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)


def validate_json_schema(schema: Mapping[str, Any], payload: Any) -> list[str]:
    errors = sorted(Draft202012Validator(dict(schema)).iter_errors(payload), key=lambda e: list(e.path))
    return [f"{'/'.join(str(p) for p in e.path) or '$'}: {e.message}" for e in errors]


def validate_arguments(definition: OperationDefinition, arguments: Any) -> dict[str, Any]:
    if arguments is None:
        arguments = {}
    if not isinstance(arguments, dict):
        raise InvalidArguments(f"Arguments for {definition.name} must be an object")
    errors = validate_json_schema(definition.input_schema, arguments)
    if errors:
        raise InvalidArguments(f"Invalid arguments for {definition.name}: {'; '.join(errors)}", errors)
    return arguments
