"""
FastAPI integration for the MCP server.

Mounts the JSON-RPC endpoints on a FastAPI application so the same app serves
the REST validation API, MCP over HTTP POST and MCP over a WebSocket.
"""

import dataclasses
import logging
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request, Response, WebSocket, WebSocketDisconnect, status
from fastapi.responses import JSONResponse
from starlette.requests import HTTPConnection

from . import __version__
from .bridge import INVALID_REQUEST, PARSE_ERROR, HedMCPBridge
from .mcp_server import MCPConfig, MCPServer

logger = logging.getLogger(__name__)


class MCPFastAPIIntegration:
    """Serve MCP JSON-RPC messages posted over HTTP or sent over a WebSocket.

    Responsibilities:
        * Reject empty bodies and enforce optional bearer token auth.
        * Hand the raw message to :meth:`MCPServer.handle_message`.
        * Map protocol-level failures onto HTTP status codes.
    """

    def __init__(
        self, mcp_config: Optional[MCPConfig] = None, bridge: Optional[HedMCPBridge] = None
    ):
        """Initialize MCP FastAPI integration.

        Args:
            mcp_config: Optional MCP configuration. If None, uses HTTP defaults.
            bridge: Bridge to dispatch through; defaults to one over the global cache.
        """
        self.mcp_config = mcp_config or MCPConfig(transport="http")
        self.server = MCPServer(
            dataclasses.replace(self.mcp_config, transport="http"), bridge
        )
        self.bridge = self.server.bridge
        logger.info("MCP FastAPI integration initialized")

    @staticmethod
    def _bearer_token(connection: HTTPConnection) -> Optional[str]:
        auth_header = connection.headers.get("Authorization")
        if auth_header and auth_header.startswith("Bearer "):
            return auth_header[7:]
        return None

    async def handle_mcp_request(self, request: Request) -> Response:
        """Handle a single MCP HTTP POST request.

        Returns:
            Response: 400 for empty or malformed JSON, 401 when auth fails, 202
            with no body for a notification, otherwise 200 with the JSON-RPC
            envelope.
        """
        body = await request.body()
        if not body:
            return JSONResponse(
                status_code=400,
                content={
                    "jsonrpc": "2.0",
                    "error": {"code": PARSE_ERROR, "message": "Parse error: Empty request body"},
                },
            )

        auth_token = self._bearer_token(request)
        if not self.server.authenticate(auth_token):
            return JSONResponse(
                status_code=401,
                content={
                    "jsonrpc": "2.0",
                    "error": {"code": INVALID_REQUEST, "message": "Authentication required"},
                },
            )

        response = await self.server.handle_message(
            body.decode("utf-8", errors="replace"), auth_token
        )
        if response is None:
            return Response(status_code=status.HTTP_202_ACCEPTED)
        status_code = 400 if response.get("error", {}).get("code") == PARSE_ERROR else 200
        return JSONResponse(status_code=status_code, content=response)

    async def handle_mcp_websocket(self, websocket: WebSocket) -> None:
        """Serve JSON-RPC messages over one WebSocket connection.

        The bearer token comes from the ``Authorization`` header or, for
        browser clients that cannot set headers, the ``token`` query
        parameter. Unauthenticated connections are closed with 1008 before
        being accepted. Each text frame is one message; notifications get no
        reply.
        """
        auth_token = self._bearer_token(websocket) or websocket.query_params.get("token")
        if not self.server.authenticate(auth_token):
            await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
            return

        await websocket.accept()
        logger.info("MCP WebSocket client connected")
        try:
            while True:
                message = await websocket.receive_text()
                response = await self.server.handle_message(message, auth_token)
                if response is not None:
                    await websocket.send_json(response)
        except WebSocketDisconnect:
            logger.info("MCP WebSocket client disconnected")


def mount_mcp_server(
    app: FastAPI,
    path: str = "/mcp",
    config: Optional[MCPConfig] = None,
    bridge: Optional[HedMCPBridge] = None,
) -> MCPFastAPIIntegration:
    """Mount MCP endpoints under a given path.

    Adds four endpoints:
        POST {path}              -> MCP message handler
        WS   {path}/ws           -> MCP over a WebSocket
        GET  {path}/health       -> liveness probe
        GET  {path}/info         -> tool names and resource URIs

    Args:
        app: FastAPI application instance.
        path: Base path for MCP endpoints (default "/mcp").
        config: Optional :class:`MCPConfig` instance.
        bridge: Optional bridge (tests inject one bound to an isolated cache).
    """
    logger.info(f"Mounting MCP server at {path}")
    mcp_integration = MCPFastAPIIntegration(config, bridge)

    @app.post(path)
    async def mcp_endpoint(request: Request) -> Response:
        return await mcp_integration.handle_mcp_request(request)

    @app.websocket(f"{path}/ws")
    async def mcp_websocket(websocket: WebSocket) -> None:
        await mcp_integration.handle_mcp_websocket(websocket)

    @app.get(f"{path}/health")
    async def mcp_health() -> Dict[str, Any]:
        return {
            "status": "ok",
            "service": "hed-mcp-server",
            "version": __version__,
            "transport": "http",
        }

    @app.get(f"{path}/info")
    async def mcp_info() -> Dict[str, Any]:
        """Summarize exported MCP resources/tools for discovery."""
        return {
            "service": "hed-mcp-server",
            "version": __version__,
            "protocol": "Model Context Protocol",
            "tools": [tool.name for tool in mcp_integration.bridge.list_tools()],
            "resources": [
                str(r.uri) for r in mcp_integration.bridge.list_resources()
            ],
            "transport": "http",
            "websocket": f"{path}/ws",
            "auth_required": mcp_integration.mcp_config.require_auth,
        }

    return mcp_integration
