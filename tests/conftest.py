from __future__ import annotations

from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from sqlite_mcp.app import create_app
from sqlite_mcp.config import Settings
from sqlite_mcp.db import Database
from sqlite_mcp.dispatcher import Dispatcher
from sqlite_mcp.eventbus import BroadcastHub
from sqlite_mcp.insights import InsightsLog


@pytest.fixture()
def db():
    database = Database(":memory:")
    yield database
    database.close()


@pytest.fixture()
def file_db(tmp_path: Path):
    database = Database(str(tmp_path / "nested" / "test.db"))
    yield database
    database.close()


@pytest.fixture()
def insights() -> InsightsLog:
    return InsightsLog()


@pytest.fixture()
def dispatcher(db: Database, insights: InsightsLog) -> Dispatcher:
    return Dispatcher(db, insights)


@pytest.fixture()
def hub() -> BroadcastHub:
    return BroadcastHub()


@pytest.fixture()
def settings() -> Settings:
    return Settings(cors_origins_raw="*", max_request_bytes=1024, sse_heartbeat_s=0.2)


@pytest.fixture()
def client(settings: Settings, hub: BroadcastHub):
    app = create_app(settings, hub)
    with TestClient(app) as c:
        yield c
