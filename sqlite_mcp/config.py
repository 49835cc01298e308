from __future__ import annotations

import os
from dataclasses import dataclass, field

MEMORY_DB_PATH = ":memory:"


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


@dataclass(frozen=True)
class Settings:
    db_path: str = field(default_factory=lambda: os.getenv("SQLITE_MCP_DB_PATH", MEMORY_DB_PATH))
    host: str = field(default_factory=lambda: os.getenv("SQLITE_MCP_HOST", "0.0.0.0"))
    port: int = field(default_factory=lambda: int(os.getenv("SQLITE_MCP_PORT", "3000")))
    http_enabled: bool = field(default_factory=lambda: _env_bool("SQLITE_MCP_HTTP_ENABLED", "true"))
    cors_origins_raw: str = field(default_factory=lambda: os.getenv("SQLITE_MCP_CORS_ORIGINS", "*"))
    max_request_bytes: int = field(default_factory=lambda: int(os.getenv("SQLITE_MCP_MAX_REQUEST_BYTES", "262144")))
    sse_heartbeat_s: float = field(default_factory=lambda: float(os.getenv("SQLITE_MCP_SSE_HEARTBEAT_SECONDS", "15.0")))
    startup_message_delay_s: float = field(default_factory=lambda: float(os.getenv("SQLITE_MCP_STARTUP_MESSAGE_DELAY_S", "1.0")))
    log_level: str = field(default_factory=lambda: os.getenv("SQLITE_MCP_LOG_LEVEL", "INFO").upper())
    log_json: bool = field(default_factory=lambda: _env_bool("SQLITE_MCP_LOG_JSON", "true"))

    @property
    def cors_origins(self) -> list[str]:
        origins = [o.strip() for o in self.cors_origins_raw.split(",") if o.strip()]
        if "*" in origins and len(origins) > 1:
            raise ValueError("SQLITE_MCP_CORS_ORIGINS: '*' cannot be combined with explicit origins")
        return origins
