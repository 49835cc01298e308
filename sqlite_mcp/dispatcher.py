from __future__ import annotations

import logging
import sqlite3
from typing import Any, Iterator

from .db import Database
from .errors import ExecutionError, PolicyViolation, UnknownOperation
from .insights import InsightsLog
from .operations import (
    ExecutionPolicy,
    OperationCatalog,
    OperationContext,
    OperationDefinition,
    ResultEnvelope,
    validate_arguments,
)

logger = logging.getLogger("sqlite_mcp.dispatcher")

POLICY_MESSAGES = {
    ExecutionPolicy.READ_ONLY: "Only SELECT queries are allowed",
    ExecutionPolicy.SCHEMA_DEFINING: "Query must be a CREATE TABLE statement",
}

_WRITE_PREFIXES = ("insert", "update", "delete", "replace")


def enforce_policy(definition: OperationDefinition, arguments: dict[str, Any]) -> None:
    if definition.statement_field is None:
        return
    statement = arguments[definition.statement_field].lower().strip()
    prefix = definition.policy.required_prefix
    if prefix is not None and not statement.startswith(prefix):
        raise PolicyViolation(POLICY_MESSAGES[definition.policy])
    if definition.policy is ExecutionPolicy.MUTATING and not statement.startswith(_WRITE_PREFIXES):
        # write_query stays permissive for existing clients, only note it.
        logger.debug("write_query executing non-DML statement", extra={"extra": {"operation": definition.name}})


class Dispatcher:
    """Resolves, validates and runs catalog operations against owned resources."""

    def __init__(self, db: Database, insights: InsightsLog, catalog: OperationCatalog | None = None):
        self.catalog = catalog if catalog is not None else OperationCatalog.builtin()
        self._ctx = OperationContext(db=db, insights=insights)

    @property
    def db(self) -> Database:
        return self._ctx.db

    @property
    def insights(self) -> InsightsLog:
        return self._ctx.insights

    def list_operations(self) -> Iterator[OperationDefinition]:
        return iter(self.catalog.values())

    def resolve(self, name: str) -> OperationDefinition:
        try:
            return self.catalog[name]
        except KeyError:
            raise UnknownOperation(name) from None

    def dispatch(self, name: str, arguments: Any = None) -> ResultEnvelope:
        definition = self.resolve(name)
        args = validate_arguments(definition, arguments)
        enforce_policy(definition, args)
        try:
            envelope = definition.handler(self._ctx, args)
        except (sqlite3.Error, sqlite3.Warning, UnicodeEncodeError) as exc:  # lone surrogates fail to encode
            logger.warning("operation failed", extra={"extra": {"operation": name, "error": str(exc)}})
            raise ExecutionError(str(exc), {"operation": name}) from exc
        logger.info("operation completed", extra={"extra": {"operation": name}})
        return envelope
