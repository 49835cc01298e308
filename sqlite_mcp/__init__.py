"""SQLite MCP server: SQL tools, a business insights memo and an SSE broadcast channel."""

from .db import Database
from .dispatcher import Dispatcher
from .eventbus import BroadcastHub
from .insights import InsightsLog
from .operations import ExecutionPolicy, OperationCatalog, ResultEnvelope

__all__ = [
    "BroadcastHub",
    "Database",
    "Dispatcher",
    "ExecutionPolicy",
    "InsightsLog",
    "OperationCatalog",
    "ResultEnvelope",
]
__version__ = "0.1.0"
