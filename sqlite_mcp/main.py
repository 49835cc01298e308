from __future__ import annotations

import argparse
import asyncio
import contextlib
import dataclasses
import logging
import os
import signal
from dataclasses import dataclass
from typing import Sequence

import uvicorn
from fastapi import FastAPI
from mcp.server.lowlevel import Server

from .app import create_app
from .config import Settings
from .db import Database
from .dispatcher import Dispatcher
from .eventbus import BroadcastHub
from .insights import InsightsLog
from .logging_utils import configure_logging
from .server import build_mcp_server, run_stdio

logger = logging.getLogger("sqlite_mcp")

STARTUP_MESSAGE = {
    "type": "server_started",
    "message": "SQLite MCP server is ready to accept connections",
}


@dataclass
class ServerRuntime:
    """Everything the process owns; built once, closed once."""

    settings: Settings
    db: Database
    insights: InsightsLog
    hub: BroadcastHub
    dispatcher: Dispatcher
    mcp_server: Server
    app: FastAPI

    @classmethod
    def build(cls, settings: Settings) -> ServerRuntime:
        db = Database(settings.db_path)
        insights = InsightsLog()
        hub = BroadcastHub()
        dispatcher = Dispatcher(db, insights)
        return cls(
            settings=settings,
            db=db,
            insights=insights,
            hub=hub,
            dispatcher=dispatcher,
            mcp_server=build_mcp_server(dispatcher, insights),
            app=create_app(settings, hub, db),
        )

    def close(self) -> None:
        self.db.close()
        logger.info("database closed")


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="sqlite-mcp-server", description="SQLite MCP server with an SSE broadcast channel")
    parser.add_argument("--db-path", help="SQLite database path (default: in-memory)")
    parser.add_argument("--host", help="HTTP listen address")
    parser.add_argument("--port", type=int, help="HTTP listen port")
    parser.add_argument("--no-http", action="store_true", help="serve MCP over stdio only")
    return parser.parse_args(argv)


def apply_overrides(settings: Settings, args: argparse.Namespace) -> Settings:
    overrides: dict[str, object] = {}
    if args.db_path:
        overrides["db_path"] = args.db_path
    if args.host:
        overrides["host"] = args.host
    if args.port is not None:
        overrides["port"] = args.port
    if args.no_http:
        overrides["http_enabled"] = False
    return dataclasses.replace(settings, **overrides) if overrides else settings


async def announce_startup(hub: BroadcastHub, delay_s: float) -> None:
    await asyncio.sleep(delay_s)
    hub.publish(dict(STARTUP_MESSAGE))


async def serve(runtime: ServerRuntime) -> bool:
    """Run the transports until one of them ends or a stop signal arrives.

    Returns True when the stdio reader is still blocked on stdin. That read
    happens in a worker thread that cannot be cancelled, so the caller must
    exit without joining it.
    """
    settings = runtime.settings
    loop = asyncio.get_running_loop()
    stop = asyncio.Event()

    def request_stop(signame: str) -> None:
        logger.info("stop signal received", extra={"extra": {"signal": signame}})
        stop.set()

    installed: list[signal.Signals] = []
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, request_stop, sig.name)
        except (NotImplementedError, RuntimeError):
            continue
        installed.append(sig)

    stdio_task = asyncio.create_task(run_stdio(runtime.mcp_server), name="mcp-stdio")
    stop_task = asyncio.create_task(stop.wait(), name="stop")
    waited = [stdio_task, stop_task]
    background: list[asyncio.Task] = [stop_task]
    http_server: uvicorn.Server | None = None
    http_task: asyncio.Task | None = None
    if settings.http_enabled:
        http_server = uvicorn.Server(uvicorn.Config(runtime.app, host=settings.host, port=settings.port, log_config=None))
        http_task = asyncio.create_task(http_server.serve(), name="http")
        waited.append(http_task)
        background.append(asyncio.create_task(announce_startup(runtime.hub, settings.startup_message_delay_s), name="announce"))
        logger.info(
            "HTTP server starting",
            extra={"extra": {"host": settings.host, "port": settings.port, "sse": "/sse", "messages": "/messages"}},
        )
    try:
        # stdin closing, HTTP shutdown or a stop signal ends the process
        done, _ = await asyncio.wait(waited, return_when=asyncio.FIRST_COMPLETED)
        for task in done:
            if task is not stop_task:
                task.result()
    finally:
        for sig in installed:
            loop.remove_signal_handler(sig)
        if http_server is not None and http_task is not None:
            http_server.should_exit = True
            with contextlib.suppress(asyncio.CancelledError):
                await http_task
        for task in background:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
    if stdio_task.done():
        stdio_task.result()
        return False
    return True


def main(argv: Sequence[str] | None = None) -> None:
    settings = apply_overrides(Settings(), parse_args(argv))
    configure_logging(settings.log_level, settings.log_json)
    runtime = ServerRuntime.build(settings)
    logger.info("starting", extra={"extra": {"db_path": settings.db_path, "http_enabled": settings.http_enabled}})
    loop = asyncio.new_event_loop()
    stdio_open, exit_code = True, 0
    try:
        stdio_open = loop.run_until_complete(serve(runtime))
    except KeyboardInterrupt:
        logger.info("interrupted, shutting down")
    except SystemExit as exc:
        # uvicorn exits this way when it cannot bind
        exit_code = exc.code if isinstance(exc.code, int) else 1
    except Exception:
        logger.exception("server failed")
        exit_code = 1
    finally:
        runtime.close()
    if stdio_open or exit_code:
        logging.shutdown()
        os._exit(exit_code)
    loop.run_until_complete(loop.shutdown_asyncgens())
    loop.close()


if __name__ == "__main__":
    main()
