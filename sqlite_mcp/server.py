"""MCP protocol binding: tools, the insights resource and the demo prompt."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import mcp.types as types
from mcp.server.lowlevel import NotificationOptions, Server
from mcp.server.lowlevel.helper_types import ReadResourceContents
from mcp.server.models import InitializationOptions
from mcp.server.stdio import stdio_server
from pydantic import AnyUrl

from .dispatcher import Dispatcher
from .errors import SqliteMcpError, UnknownResource
from .insights import INSIGHTS_DESCRIPTION, INSIGHTS_MIME_TYPE, INSIGHTS_NAME, INSIGHTS_URI, InsightsLog
from .prompts import DEMO_PROMPT_DESCRIPTION, DEMO_PROMPT_NAME, TOPIC_ARGUMENT, TOPIC_DESCRIPTION, render_prompt

logger = logging.getLogger("sqlite_mcp.server")

SERVER_NAME = "sqlite-server"
SERVER_VERSION = "0.1.0"


def build_mcp_server(dispatcher: Dispatcher, insights: InsightsLog) -> Server:
    server: Server = Server(SERVER_NAME)

    @server.list_tools()
    async def handle_list_tools() -> list[types.Tool]:
        return [
            types.Tool(name=op.name, description=op.description, inputSchema=dict(op.input_schema))
            for op in dispatcher.list_operations()
        ]

    async def handle_call_tool(req: types.CallToolRequest) -> types.ServerResult:
        name = req.params.name
        try:
            # statement execution blocks, keep it off the event loop
            envelope = await asyncio.to_thread(dispatcher.dispatch, name, req.params.arguments)
        except SqliteMcpError as exc:
            logger.warning("tool call rejected", extra={"extra": {"tool": name, "code": exc.code, "error": exc.message}})
            raise exc.to_mcp_error() from exc
        content: list[Any] = [types.TextContent(type="text", text=block.text) for block in envelope.content]
        return types.ServerResult(types.CallToolResult(content=content, isError=False))

    # Registered directly so taxonomy errors surface as JSON-RPC errors
    # instead of being folded into an isError tool result.
    server.request_handlers[types.CallToolRequest] = handle_call_tool

    @server.list_resources()
    async def handle_list_resources() -> list[types.Resource]:
        return [
            types.Resource(
                uri=AnyUrl(INSIGHTS_URI),
                name=INSIGHTS_NAME,
                description=INSIGHTS_DESCRIPTION,
                mimeType=INSIGHTS_MIME_TYPE,
            )
        ]

    @server.read_resource()
    async def handle_read_resource(uri: AnyUrl) -> list[ReadResourceContents]:
        if str(uri) != INSIGHTS_URI:
            raise UnknownResource(str(uri)).to_mcp_error()
        return [ReadResourceContents(content=insights.render_all(), mime_type=INSIGHTS_MIME_TYPE)]

    @server.list_prompts()
    async def handle_list_prompts() -> list[types.Prompt]:
        return [
            types.Prompt(
                name=DEMO_PROMPT_NAME,
                description=DEMO_PROMPT_DESCRIPTION,
                arguments=[types.PromptArgument(name=TOPIC_ARGUMENT, description=TOPIC_DESCRIPTION, required=True)],
            )
        ]

    @server.get_prompt()
    async def handle_get_prompt(name: str, arguments: dict[str, str] | None) -> types.GetPromptResult:
        try:
            rendered = render_prompt(name, arguments)
        except SqliteMcpError as exc:
            raise exc.to_mcp_error() from exc
        return types.GetPromptResult(
            description=rendered.description,
            messages=[
                types.PromptMessage(role="user", content=types.TextContent(type="text", text=rendered.text)),
            ],
        )

    return server


def initialization_options(server: Server) -> InitializationOptions:
    return InitializationOptions(
        server_name=SERVER_NAME,
        server_version=SERVER_VERSION,
        capabilities=server.get_capabilities(
            notification_options=NotificationOptions(),
            experimental_capabilities={},
        ),
    )


async def run_stdio(server: Server) -> None:
    async with stdio_server() as (read_stream, write_stream):
        logger.info("SQLite MCP server running on stdio")
        await server.run(read_stream, write_stream, initialization_options(server))
