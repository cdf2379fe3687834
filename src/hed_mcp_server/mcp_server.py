"""Model Context Protocol (MCP) server implementation.

Exposes the HED validation tools and schema cache as MCP tools and
resources. Two transports are supported: ``stdio`` (the MCP SDK's stdio
loop, for desktop agents that spawn the server) and ``http`` (JSON-RPC
messages posted to, or streamed over a WebSocket at ``/mcp/ws`` of, the
FastAPI app, see :mod:`hed_mcp_server.app`).

High-level responsibilities:
    * Build the :class:`~hed_mcp_server.bridge.HedMCPBridge`.
    * Register list/call/read handlers on an ``mcp.server.Server``.
    * Dispatch raw JSON-RPC messages with optional bearer auth.

Configuration is read from the environment by :meth:`MCPConfig.from_env`:

    HED_MCP_TRANSPORT     stdio | http (default stdio)
    HED_MCP_HOST          bind host for http (default localhost)
    HED_MCP_PORT          bind port for http (default 3000)
    HED_MCP_AUTH_TOKEN    bearer token
    HED_MCP_REQUIRE_AUTH  "true" to reject unauthenticated HTTP requests
    HED_MCP_LOG_LEVEL     logging level name (default INFO)
    HED_MCP_CORS_ORIGINS  comma separated allowed origins (default *)
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from mcp.server import Server
from mcp.server.lowlevel.helper_types import ReadResourceContents
from mcp.server.stdio import stdio_server
from mcp.types import Resource, TextContent, Tool

from .bridge import INVALID_REQUEST, PARSE_ERROR, SERVER_NAME, HedMCPBridge

logger = logging.getLogger(__name__)

TRANSPORTS = ("stdio", "http")


def _split_origins(value: str) -> List[str]:
    return [origin.strip() for origin in value.split(",") if origin.strip()]


@dataclass
class MCPConfig:
    """Configuration container for :class:`MCPServer` and the HTTP app.

    Attributes:
        transport: Transport backend ("stdio" or "http").
        host: Bind host for HTTP transport.
        port: TCP port for HTTP transport (ignored for stdio).
        auth_token: Optional bearer token for simple auth.
        require_auth: If True, reject unauthenticated HTTP requests.
        log_level: Python logging level name.
        cors_origins: Origins allowed by the HTTP app's CORS middleware.
    """

    transport: str = "stdio"
    host: str = "localhost"
    port: int = 3000
    auth_token: Optional[str] = None
    require_auth: bool = False
    log_level: str = "INFO"
    cors_origins: List[str] = field(default_factory=lambda: ["*"])

    @classmethod
    def from_env(cls) -> "MCPConfig":
        """Create configuration from ``HED_MCP_*`` environment variables."""
        return cls(
            transport=os.getenv("HED_MCP_TRANSPORT", "stdio"),
            host=os.getenv("HED_MCP_HOST", "localhost"),
            port=int(os.getenv("HED_MCP_PORT", "3000")),
            auth_token=os.getenv("HED_MCP_AUTH_TOKEN"),
            require_auth=os.getenv("HED_MCP_REQUIRE_AUTH", "false").lower() == "true",
            log_level=os.getenv("HED_MCP_LOG_LEVEL", "INFO"),
            cors_origins=_split_origins(os.getenv("HED_MCP_CORS_ORIGINS", "*")),
        )


class ToolExecutionError(Exception):
    """Raised inside the SDK call handler so the SDK reports ``isError``."""


class MCPServer:
    """Runtime façade managing the MCP handlers and transport lifecycle.

    Handler registration happens once in :meth:`start`; repeated calls are
    idempotent.
    """

    def __init__(self, config: MCPConfig, bridge: Optional[HedMCPBridge] = None):
        """Instantiate server (no I/O yet).

        Raises:
            ValueError: For unsupported transport values.
        """
        if config.transport not in TRANSPORTS:
            raise ValueError(f"Unsupported transport: {config.transport}")

        self.config = config
        self.bridge = bridge or HedMCPBridge()
        self.server: Optional[Server] = None
        self.running = False

    def authenticate(self, token: Optional[str]) -> bool:
        """Return True if the request may proceed under the auth settings."""
        if not self.config.require_auth:
            return True
        return bool(token) and token == self.config.auth_token

    async def start(self) -> None:
        """Create the SDK server and register handlers."""
        if self.running:
            logger.warning("Server is already running")
            return

        logger.info(f"Starting MCP server with {self.config.transport} transport")
        self.server = Server(SERVER_NAME)
        self._register_handlers(self.server)
        self.running = True
        logger.info("MCP server started successfully")

    async def stop(self) -> None:
        if not self.running:
            return
        logger.info("Stopping MCP server")
        self.running = False
        logger.info("MCP server stopped")

    def _register_handlers(self, server: Server) -> None:
        bridge = self.bridge

        @server.list_tools()
        async def list_tools() -> List[Tool]:
            return bridge.list_tools()

        @server.call_tool()
        async def call_tool(name: str, arguments: Dict[str, Any]) -> List[TextContent]:
            content, is_error = await bridge.call_tool(name, arguments)
            if is_error:
                raise ToolExecutionError(content[0].text)
            return content

        @server.list_resources()
        async def list_resources() -> List[Resource]:
            return bridge.list_resources()

        @server.read_resource()
        async def read_resource(uri: Any) -> List[ReadResourceContents]:
            text = await bridge.read_resource(uri)
            return [ReadResourceContents(content=text, mime_type="application/json")]

        logger.info(
            f"Registered handlers for {len(bridge.list_tools())} tools "
            f"and {len(bridge.list_resources())} resources"
        )

    async def run_stdio(self) -> None:
        """Serve MCP over stdin/stdout until the client disconnects."""
        await self.start()
        logger.info("MCP server running on stdio")
        async with stdio_server() as (read_stream, write_stream):
            await self.server.run(
                read_stream, write_stream, self.server.create_initialization_options()
            )

    async def handle_message(
        self, message: str, auth_token: Optional[str] = None
    ) -> Optional[Dict[str, Any]]:
        """Decode, authenticate (optional), and dispatch a single MCP message.

        Args:
            message: Raw JSON string representing an MCP request.
            auth_token: Bearer token when auth is enforced.

        Returns:
            Optional[Dict[str, Any]]: JSON-RPC response envelope, or None for
            a notification.
        """
        if not self.authenticate(auth_token):
            return {
                "jsonrpc": "2.0",
                "error": {"code": INVALID_REQUEST, "message": "Authentication required"},
            }

        try:
            msg = json.loads(message)
        except json.JSONDecodeError as e:
            return {
                "jsonrpc": "2.0",
                "error": {"code": PARSE_ERROR, "message": f"Parse error: {e}"},
            }

        return await self.bridge.handle_mcp_message(msg)


async def run_server(config: Optional[MCPConfig] = None) -> None:
    """Run the configured transport until it stops."""
    if config is None:
        config = MCPConfig.from_env()

    if config.transport == "http":
        import uvicorn

        from .app import create_app

        logger.info(f"HED MCP server running on http://{config.host}:{config.port}")
        uvicorn_config = uvicorn.Config(
            app=create_app(config),
            host=config.host,
            port=config.port,
            log_level=config.log_level.lower(),
        )
        await uvicorn.Server(uvicorn_config).serve()
        return

    server = MCPServer(config)
    try:
        await server.run_stdio()
    finally:
        await server.stop()
