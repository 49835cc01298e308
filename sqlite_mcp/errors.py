"""Error taxonomy shared by the MCP binding and the HTTP side channel."""

from __future__ import annotations

from typing import Any

from mcp.shared.exceptions import McpError
from mcp.types import INTERNAL_ERROR, INVALID_PARAMS, INVALID_REQUEST, ErrorData


class SqliteMcpError(Exception):
    """Base exception carrying both a JSON-RPC code and an HTTP status."""

    code: int = INTERNAL_ERROR
    status_code: int = 500

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_error_data(self) -> ErrorData:
        return ErrorData(code=self.code, message=self.message, data=self.details or None)

    def to_mcp_error(self) -> McpError:
        return McpError(self.to_error_data())


class UnknownOperation(SqliteMcpError):
    code = INVALID_REQUEST
    status_code = 400

    def __init__(self, name: str):
        super().__init__(f"Unknown tool: {name}", {"name": name})
        self.name = name


class UnknownResource(SqliteMcpError):
    code = INVALID_REQUEST
    status_code = 404

    def __init__(self, uri: str):
        super().__init__("Resource not found", {"uri": uri})
        self.uri = uri


class UnknownPrompt(SqliteMcpError):
    code = INVALID_REQUEST
    status_code = 404

    def __init__(self, name: str):
        super().__init__("Unknown prompt", {"name": name})
        self.name = name


class InvalidArguments(SqliteMcpError):
    code = INVALID_REQUEST
    status_code = 400

    def __init__(self, message: str, errors: list[str] | None = None):
        super().__init__(message, {"errors": errors} if errors else None)
        self.errors = errors or []


class PolicyViolation(SqliteMcpError):
    code = INVALID_PARAMS
    status_code = 400


class ExecutionError(SqliteMcpError):
    """The database rejected or failed a statement; the engine message is kept as-is."""

    code = INTERNAL_ERROR
    status_code = 500


class IngestionError(SqliteMcpError):
    code = INVALID_REQUEST
    status_code = 400

    def __init__(self, reason: str):
        super().__init__("Invalid message format", {"reason": reason})
        self.reason = reason


def http_status_to_code(status_code: int) -> str:
    return f"E{status_code}0"


def build_error_body(
    *,
    message: str,
    status_code: int,
    detail: str | None = None,
    extra: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Build the JSON error body returned by the HTTP side channel."""
    payload: dict[str, Any] = {
        "error": message,
        "code": http_status_to_code(status_code),
    }
    if detail is not None:
        payload["detail"] = detail
    if extra:
        payload.update(extra)
    return payload
