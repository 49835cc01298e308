from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, AsyncIterator, Awaitable, Callable

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse, Response, StreamingResponse
from pydantic import BaseModel

from .config import Settings
from .db import Database
from .errors import IngestionError, SqliteMcpError, build_error_body
from .eventbus import BroadcastHub

logger = logging.getLogger("sqlite_mcp.http")

SSE_HANDSHAKE = "event: ping\ndata: connected\n\n"
SSE_HEARTBEAT = ": heartbeat\n\n"
CONNECTION_TEST_TYPE = "connection_test"


class MessageAck(BaseModel):
    success: bool = True


class MessagesUsage(BaseModel):
    message: str = "This endpoint only accepts POST requests for MCP protocol messages"
    usage: str = "Send POST requests to this endpoint with JSON message body"


class RequestSizeLimitMiddleware:
    def __init__(self, app: Any, max_bytes: int):
        self.app = app
        self.max_bytes = max_bytes

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return
        if scope.get("method") in {"GET", "HEAD", "OPTIONS"}:
            await self.app(scope, receive, send)
            return
        req = Request(scope, receive)
        body = await req.body()
        if len(body) > self.max_bytes:
            response = JSONResponse(build_error_body(message="Request body too large", status_code=413), status_code=413)
            await response(scope, receive, send)
            return
        body_sent = False

        async def receive_again():
            nonlocal body_sent
            if not body_sent:
                body_sent = True
                return {"type": "http.request", "body": body, "more_body": False}
            return await receive()

        await self.app(scope, receive_again, send)


def format_sse_message(message: Any) -> str:
    return f"data: {json.dumps(message, separators=(',', ':'))}\n\n"


def _sse_headers() -> dict[str, str]:
    return {"Cache-Control": "no-cache", "Connection": "keep-alive", "X-Accel-Buffering": "no"}


async def sse_event_stream(
    hub: BroadcastHub,
    heartbeat_s: float,
    is_disconnected: Callable[[], Awaitable[bool]] | None = None,
) -> AsyncIterator[str]:
    """Handshake, then every broadcast message until the client goes away.

    The listener is attached before the handshake is sent and detached when
    the generator is closed.
    """
    with hub.subscribe() as subscription:
        logger.info("SSE connection established", extra={"extra": {"listener_id": subscription.listener.listener_id}})
        try:
            yield SSE_HANDSHAKE
            while True:
                if is_disconnected is not None and await is_disconnected():
                    break
                try:
                    message = await subscription.next(timeout=heartbeat_s)
                except asyncio.TimeoutError:
                    yield SSE_HEARTBEAT
                    continue
                if not (isinstance(message, dict) and message.get("type") == CONNECTION_TEST_TYPE):
                    logger.info("broadcasting message to client", extra={"extra": {"listener_id": subscription.listener.listener_id}})
                yield format_sse_message(message)
        finally:
            logger.info("SSE connection closed", extra={"extra": {"listener_id": subscription.listener.listener_id}})


def parse_message_body(raw: bytes) -> Any:
    if not raw.strip():
        raise IngestionError("empty body")
    try:
        message = json.loads(raw)
    except ValueError as exc:
        raise IngestionError("body is not valid JSON") from exc
    if not isinstance(message, (dict, list)):
        raise IngestionError("body must be a JSON object or array")
    return message


def create_app(
    settings: Settings | None = None,
    hub: BroadcastHub | None = None,
    db: Database | None = None,
) -> FastAPI:
    settings = settings or Settings()
    app = FastAPI(title="SQLite MCP Server", version="0.1.0")
    app.state.settings = settings
    app.state.hub = hub if hub is not None else BroadcastHub()
    app.state.db = db

    app.add_middleware(RequestSizeLimitMiddleware, max_bytes=settings.max_request_bytes)
    origins = settings.cors_origins
    if origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=origins,
            allow_credentials=origins != ["*"],
            allow_methods=["GET", "POST", "OPTIONS"],
            allow_headers=["Origin", "X-Requested-With", "Content-Type", "Accept"],
        )

    @app.exception_handler(SqliteMcpError)
    async def sqlite_mcp_error_handler(request: Request, exc: SqliteMcpError) -> JSONResponse:
        level = logging.ERROR if exc.status_code >= 500 else logging.WARNING
        logger.log(level, "request failed", extra={"extra": {"path": request.url.path, "error": exc.message, **exc.details}})
        return JSONResponse(
            status_code=exc.status_code,
            content=build_error_body(message=exc.message, status_code=exc.status_code, detail=exc.details.get("reason")),
        )

    @app.exception_handler(Exception)
    async def generic_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.error("unhandled error processing request", exc_info=True, extra={"extra": {"path": request.url.path}})
        return JSONResponse(status_code=500, content=build_error_body(message="Internal server error", status_code=500))

    @app.get("/health")
    def health(request: Request):
        db = request.app.state.db
        if db is not None and not db.ping():
            return PlainTextResponse("Database unavailable", status_code=503)
        return PlainTextResponse("OK")

    @app.get("/")
    def root():
        return PlainTextResponse("SQLite MCP Server is running")

    @app.get("/sse")
    async def sse(request: Request, once: bool = False):
        if once:
            return Response(content=SSE_HANDSHAKE, media_type="text/event-stream", headers=_sse_headers())
        return StreamingResponse(
            sse_event_stream(request.app.state.hub, request.app.state.settings.sse_heartbeat_s, request.is_disconnected),
            media_type="text/event-stream",
            headers=_sse_headers(),
        )

    @app.get("/messages", response_model=MessagesUsage)
    def messages_usage():
        return MessagesUsage()

    @app.post("/messages", response_model=MessageAck)
    async def post_message(request: Request):
        message = parse_message_body(await request.body())
        logger.info("received message", extra={"extra": {"path": "/messages", "listeners": request.app.state.hub.listener_count}})
        request.app.state.hub.publish(message)
        return MessageAck()

    return app
