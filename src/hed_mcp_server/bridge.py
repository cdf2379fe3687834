"""Tool registry ↔ MCP bridge.

Turns the tool registry in :mod:`hed_mcp_server.tools` into Model Context
Protocol primitives and executes them:

* registry entries → MCP ``Tool`` entries (input schema from the pydantic
  argument model)
* cache and catalogue views → MCP ``Resource`` entries

The same bridge backs both transports: the stdio server registers its
handlers on an ``mcp.server.Server`` and the HTTP endpoint feeds raw JSON-RPC
messages through :meth:`HedMCPBridge.handle_mcp_message`.

Example (minimal)::

        from hed_mcp_server.bridge import HedMCPBridge

        bridge = HedMCPBridge()
        for tool in bridge.list_tools():
                print(tool.name, sorted(tool.inputSchema["properties"]))

        content, is_error = await bridge.call_tool(
                "validateHedString", {"hedString": "Red", "hedVersion": "8.4.0"}
        )
        print(content[0].text)
"""

from __future__ import annotations

import json
import logging
import time
from typing import Any, Dict, List, Optional, Tuple

from mcp.types import LATEST_PROTOCOL_VERSION, Resource, TextContent, Tool
from pydantic import ValidationError

from . import __version__
from .cache import HedSchemaCache, get_schema_cache
from .file_reader import FileReaderError
from .monitoring import PerformanceMonitor, get_monitor
from .tools import TOOLS

logger = logging.getLogger(__name__)

SERVER_NAME = "hed-mcp-server"

CACHE_RESOURCE_URI = "hed://schema/cache"
TOOLS_RESOURCE_URI = "hed://tools"

# JSON-RPC error codes
PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603


class BridgeError(Exception):
    """A request the bridge rejects with a specific JSON-RPC error code."""

    def __init__(self, code: int, message: str):
        super().__init__(message)
        self.code = code
        self.message = message


class HedMCPBridge:
    """Expose the HED tools and cache as MCP tools/resources.

    Args:
        cache: Schema cache handed to every tool call. Defaults to the
            process-wide cache.
        monitor: Performance monitor receiving per-tool metrics.
    """

    def __init__(
        self,
        cache: Optional[HedSchemaCache] = None,
        monitor: Optional[PerformanceMonitor] = None,
    ):
        self.cache = cache or get_schema_cache()
        self.monitor = monitor or get_monitor()
        self._tools_cache: Optional[List[Tool]] = None
        logger.info(f"HED MCP bridge initialized with {len(TOOLS)} tools")

    # ---------------- Tools -----------------
    def list_tools(self) -> List[Tool]:
        """Return MCP tool descriptors (built once)."""
        if self._tools_cache is None:
            self._tools_cache = [
                Tool(
                    name=spec.name,
                    description=spec.description,
                    inputSchema=spec.input_schema(),
                )
                for spec in TOOLS.values()
            ]
        return self._tools_cache

    async def run_tool(self, name: str, arguments: Optional[Dict[str, Any]]) -> Any:
        """Validate ``arguments`` and run the named tool's handler.

        Returns:
            The handler's return value (a result record or file text).

        Raises:
            BridgeError: Unknown tool or invalid arguments (``-32602``).
            FileReaderError: From ``getFileFromPath``.
        """
        spec = TOOLS.get(name)
        if spec is None:
            raise BridgeError(INVALID_PARAMS, f"Unknown tool: {name}")
        try:
            args = spec.arguments.model_validate(arguments or {})
        except ValidationError as e:
            raise BridgeError(
                INVALID_PARAMS, f"Invalid arguments for tool {name}: {e}"
            ) from e
        return await spec.handler(args, self.cache)

    async def call_tool(
        self, name: str, arguments: Optional[Dict[str, Any]]
    ) -> Tuple[List[TextContent], bool]:
        """Run a tool and wrap its output as MCP text content.

        Result records are serialized as pretty JSON; ``getFileFromPath``
        returns the file text as-is.

        Returns:
            ``(content, is_error)``; ``is_error`` is True when the tool could
            not produce a result (e.g. an unreadable file).
        """
        start_time = time.time()
        is_error = False
        try:
            output = await self.run_tool(name, arguments)
            if isinstance(output, str):
                text = output
            else:
                text = json.dumps(output.to_dict(), indent=2)
        except FileReaderError as e:
            is_error = True
            text = e.message
        finally:
            # Unknown tools are not recorded; their names are caller-controlled.
            if name in TOOLS:
                self.monitor.record_tool_call(
                    name, time.time() - start_time, failed=is_error
                )
        return [TextContent(type="text", text=text)], is_error

    # ---------------- Resources -----------------
    def list_resources(self) -> List[Resource]:
        return [
            Resource(
                uri=CACHE_RESOURCE_URI,
                name="HED Schema Cache",
                description="HED schema versions currently loaded in this server",
                mimeType="application/json",
            ),
            Resource(
                uri=TOOLS_RESOURCE_URI,
                name="HED Tools",
                description="Catalogue of the HED validation tools and their arguments",
                mimeType="application/json",
            ),
        ]

    async def read_resource(self, uri: Any) -> str:
        """Return the JSON text of a resource.

        Raises:
            BridgeError: For an unknown URI (``-32602``).
        """
        key = str(uri).rstrip("/")
        if key == CACHE_RESOURCE_URI:
            return json.dumps(self.cache.get_cache_stats(), indent=2)
        if key == TOOLS_RESOURCE_URI:
            catalogue = [
                {
                    "name": tool.name,
                    "description": tool.description,
                    "inputSchema": tool.inputSchema,
                }
                for tool in self.list_tools()
            ]
            return json.dumps(catalogue, indent=2)
        raise BridgeError(INVALID_PARAMS, f"Unknown resource: {uri}")

    # ---------------- JSON-RPC -----------------
    def server_info(self) -> Dict[str, Any]:
        return {"name": SERVER_NAME, "version": __version__}

    async def _dispatch(self, method: Optional[str], params: Dict[str, Any]) -> Any:
        if method == "initialize":
            return {
                "protocolVersion": params.get("protocolVersion", LATEST_PROTOCOL_VERSION),
                "capabilities": {"tools": {}, "resources": {}},
                "serverInfo": self.server_info(),
            }

        if method == "ping":
            return {}

        if method == "tools/list":
            return {
                "tools": [
                    tool.model_dump(mode="json", exclude_none=True)
                    for tool in self.list_tools()
                ]
            }

        if method == "tools/call":
            content, is_error = await self.call_tool(
                params.get("name"), params.get("arguments", {})
            )
            return {
                "content": [c.model_dump(mode="json", exclude_none=True) for c in content],
                "isError": is_error,
            }

        if method == "resources/list":
            return {
                "resources": [
                    r.model_dump(mode="json", exclude_none=True)
                    for r in self.list_resources()
                ]
            }

        if method == "resources/read":
            uri = params.get("uri")
            return {
                "contents": [
                    {
                        "uri": uri,
                        "mimeType": "application/json",
                        "text": await self.read_resource(uri),
                    }
                ]
            }

        raise BridgeError(METHOD_NOT_FOUND, f"Method not found: {method}")

    async def _handle_notification(self, message: Dict[str, Any]) -> None:
        method = message.get("method")
        if isinstance(method, str) and method.startswith("notifications/"):
            logger.debug(f"Received MCP notification {method}")
            return
        try:
            await self._dispatch(method, message.get("params") or {})
        except Exception as e:
            logger.warning(f"Error handling MCP notification {method}: {e}")

    async def handle_mcp_message(self, message: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Handle one decoded JSON-RPC request or notification.

        Supports methods:
            initialize, ping, tools/list, tools/call, resources/list, resources/read

        Returns:
            JSON-RPC dict with either ``result`` or ``error``, echoing the
            request ``id``. None for notifications (messages without ``id``),
            which get no response.
        """
        envelope: Dict[str, Any] = {"jsonrpc": "2.0"}
        if not isinstance(message, dict):
            envelope["error"] = {"code": INVALID_REQUEST, "message": "Invalid request"}
            return envelope
        if "id" not in message:
            await self._handle_notification(message)
            return None
        envelope["id"] = message["id"]

        params = message.get("params") or {}
        try:
            envelope["result"] = await self._dispatch(message.get("method"), params)
        except BridgeError as e:
            envelope["error"] = {"code": e.code, "message": e.message}
        except Exception as e:
            logger.error(f"Error handling MCP message: {e}")
            envelope["error"] = {"code": INTERNAL_ERROR, "message": f"Internal error: {e}"}
        return envelope
