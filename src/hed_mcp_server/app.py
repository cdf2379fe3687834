"""FastAPI application exposing HED validation over HTTP.

Serves a small REST API around the same tool handlers the MCP server uses,
plus MCP JSON-RPC over HTTP, schema cache management and performance
metrics.

Quick start (run the server)::

    hed-mcp-server --transport http --port 3000
    # or
    uvicorn hed_mcp_server.app:app --port 3000

Core endpoints (REST):

    GET    /health                   Basic health probe
    GET    /api                      Endpoint catalogue
    POST   /api/validate/string      Validate a HED string
    POST   /api/validate/tsv         Validate TSV text (optionally with a sidecar)
    POST   /api/validate/sidecar     Parse and validate sidecar JSON
    GET    /api/cache                Loaded schema versions
    DELETE /api/cache                Evict every loaded schema
    DELETE /api/cache/{version}      Evict one schema version
    GET    /metrics/*                Performance + cache metrics
    POST   /mcp                      MCP JSON-RPC over HTTP
    WS     /mcp/ws                   MCP JSON-RPC over a WebSocket

Validation examples::

    curl -X POST http://localhost:3000/api/validate/string \
         -H "Content-Type: application/json" \
         -d '{"hedString": "Sensory-event, Red", "hedVersion": "8.4.0"}'

    curl -X POST http://localhost:3000/api/validate/tsv \
         -H "Content-Type: application/json" \
         -d '{"hedVersion": "8.4.0", "tsvData": "onset\\tduration\\tHED\\n1.0\\t0\\tRed\\n"}'

Error handling:
    * Missing required body fields answer 400 with the list of required fields.
    * 404 and 500 are wrapped with JSON payloads; the 404 payload lists the
      available endpoints.
"""

from __future__ import annotations

import time
from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import __version__
from .bridge import HedMCPBridge
from .cache import HedSchemaCache, get_schema_cache
from .mcp_fastapi_integration import mount_mcp_server
from .mcp_server import MCPConfig
from .monitoring import get_monitor
from .tools import (
    ValidateHedSidecarArgs,
    ValidateHedStringArgs,
    ValidateHedTsvArgs,
    handle_parse_hed_sidecar,
    handle_validate_hed_string,
    handle_validate_hed_tsv,
)

DEFAULT_TSV_PATH = "/virtual/data.tsv"
DEFAULT_SIDECAR_PATH = "/virtual/sidecar.json"

ENDPOINTS = {
    "GET /health": "Health check",
    "GET /api": "API information",
    "POST /api/validate/string": "Validate HED string",
    "POST /api/validate/tsv": "Validate TSV file data",
    "POST /api/validate/sidecar": "Parse and validate sidecar JSON",
    "GET /api/cache": "List loaded HED schema versions",
    "DELETE /api/cache": "Clear the HED schema cache",
    "DELETE /api/cache/{version}": "Remove one HED schema version from the cache",
    "GET /metrics/performance": "Performance summary",
    "GET /metrics/cache": "Schema cache analytics",
    "POST /metrics/reset": "Reset performance metrics",
    "POST /mcp": "MCP JSON-RPC endpoint",
    "WS /mcp/ws": "MCP JSON-RPC over WebSocket",
}


class RestRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class StringValidationRequest(RestRequest):
    """Body of ``POST /api/validate/string``."""

    hed_string: Optional[str] = Field(None, alias="hedString", description="HED string")
    hed_version: Optional[str] = Field(
        None, alias="hedVersion", description="HED schema version"
    )
    check_for_warnings: bool = Field(False, alias="checkForWarnings")
    definitions: Optional[List[str]] = Field(None, description="Definition strings")


class TsvValidationRequest(RestRequest):
    """Body of ``POST /api/validate/tsv``; ``tsvData``/``sidecarData`` are aliases."""

    file_path: Optional[str] = Field(None, alias="filePath")
    hed_version: Optional[str] = Field(None, alias="hedVersion")
    check_for_warnings: bool = Field(False, alias="checkForWarnings")
    file_data: Optional[str] = Field(None, alias="fileData", description="TSV text")
    tsv_data: Optional[str] = Field(None, alias="tsvData", description="TSV text")
    json_data: Optional[str] = Field(None, alias="jsonData", description="Sidecar JSON text")
    sidecar_data: Optional[str] = Field(
        None, alias="sidecarData", description="Sidecar JSON text"
    )
    definitions: Optional[List[str]] = None


class SidecarValidationRequest(RestRequest):
    """Body of ``POST /api/validate/sidecar``; ``jsonData`` is an alias of ``fileData``."""

    file_path: Optional[str] = Field(None, alias="filePath")
    hed_version: Optional[str] = Field(None, alias="hedVersion")
    check_for_warnings: bool = Field(False, alias="checkForWarnings")
    file_data: Optional[Union[str, Dict[str, Any]]] = Field(None, alias="fileData")
    json_data: Optional[Union[str, Dict[str, Any]]] = Field(None, alias="jsonData")


def missing_parameters(required: List[str]) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content={"error": "Missing required parameters", "required": required},
    )


def get_cache(request: Request) -> HedSchemaCache:
    """Dependency returning the schema cache bound to this app."""
    return request.app.state.schema_cache


def create_app(
    config: Optional[MCPConfig] = None, cache: Optional[HedSchemaCache] = None
) -> FastAPI:
    """Build the HTTP application.

    Args:
        config: Server configuration; defaults to :meth:`MCPConfig.from_env`.
        cache: Schema cache shared by REST and MCP routes; defaults to the
            process-wide cache.
    """
    config = config or MCPConfig.from_env()
    cache = cache or get_schema_cache()

    app = FastAPI(
        title="HED Validation API",
        version=__version__,
        description="REST and MCP access to HED (Hierarchical Event Descriptor) validation",
    )
    app.state.schema_cache = cache
    app.state.config = config

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )

    @app.middleware("http")
    async def monitor_requests(request: Request, call_next):
        """Record per-endpoint latency and expose it as a header."""
        start_time = time.time()
        response = await call_next(request)
        response_time = time.time() - start_time

        endpoint = f"{request.method} {request.url.path}"
        get_monitor().record_endpoint_request(endpoint, response_time, response.status_code)

        response.headers["X-Response-Time"] = f"{response_time:.3f}s"
        return response

    @app.exception_handler(StarletteHTTPException)
    async def not_found_handler(request: Request, exc: StarletteHTTPException):
        if exc.status_code != 404:
            return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})
        return JSONResponse(
            status_code=404,
            content={
                "error": "Not found",
                "message": f"Endpoint {request.method} {request.url.path} not found",
                "available": list(ENDPOINTS),
            },
        )

    @app.exception_handler(Exception)
    async def internal_error_handler(request: Request, exc: Exception):
        return JSONResponse(
            status_code=500,
            content={"error": "Internal server error", "message": str(exc)},
        )

    @app.get("/health")
    def health() -> Dict[str, Any]:
        return {
            "status": "healthy",
            "timestamp": datetime.now().isoformat(),
            "version": __version__,
        }

    @app.get("/api")
    def api_info() -> Dict[str, Any]:
        return {
            "name": "HED Validation API",
            "version": __version__,
            "description": "REST API for HED (Hierarchical Event Descriptor) validation",
            "endpoints": ENDPOINTS,
        }

    @app.post("/api/validate/string")
    async def validate_string(
        body: StringValidationRequest, cache: HedSchemaCache = Depends(get_cache)
    ):
        """Validate a HED string.

        Example::

            {"hedString": "Red, Blue", "hedVersion": "8.4.0", "checkForWarnings": true}
        """
        if not body.hed_string or not body.hed_version:
            return missing_parameters(["hedString", "hedVersion"])
        args = ValidateHedStringArgs(
            hed_string=body.hed_string,
            hed_version=body.hed_version,
            check_for_warnings=body.check_for_warnings,
            definitions=body.definitions,
        )
        result = await handle_validate_hed_string(args, cache)
        return result.to_dict()

    @app.post("/api/validate/tsv")
    async def validate_tsv(
        body: TsvValidationRequest, cache: HedSchemaCache = Depends(get_cache)
    ):
        """Validate TSV text given inline (``fileData`` or ``tsvData``)."""
        tsv_text = body.file_data or body.tsv_data
        if not body.hed_version or not tsv_text:
            return missing_parameters(["hedVersion", "fileData or tsvData"])
        args = ValidateHedTsvArgs(
            file_path=body.file_path or DEFAULT_TSV_PATH,
            hed_version=body.hed_version,
            check_for_warnings=body.check_for_warnings,
            file_data=tsv_text,
            json_data=body.json_data or body.sidecar_data,
            definitions=body.definitions,
        )
        result = await handle_validate_hed_tsv(args, cache)
        return result.to_dict()

    @app.post("/api/validate/sidecar")
    async def validate_sidecar(
        body: SidecarValidationRequest, cache: HedSchemaCache = Depends(get_cache)
    ):
        """Parse and validate sidecar JSON given inline (``fileData`` or ``jsonData``)."""
        sidecar_data = body.file_data or body.json_data
        if not body.hed_version or not sidecar_data:
            return missing_parameters(["hedVersion", "fileData or jsonData"])
        args = ValidateHedSidecarArgs(
            file_path=body.file_path or DEFAULT_SIDECAR_PATH,
            hed_version=body.hed_version,
            check_for_warnings=body.check_for_warnings,
            file_data=sidecar_data,
        )
        result = await handle_parse_hed_sidecar(args, cache)
        return result.to_dict()

    @app.get("/api/cache")
    def cache_stats(cache: HedSchemaCache = Depends(get_cache)) -> Dict[str, Any]:
        return cache.get_cache_stats()

    @app.delete("/api/cache")
    def clear_cache(cache: HedSchemaCache = Depends(get_cache)) -> Dict[str, Any]:
        cleared = cache.get_cache_stats()["size"]
        cache.clear()
        return {"cleared": cleared}

    @app.delete("/api/cache/{version:path}")
    def remove_cached_version(
        version: str, cache: HedSchemaCache = Depends(get_cache)
    ) -> Dict[str, Any]:
        return {"version": version, "removed": cache.remove(version)}

    @app.get("/metrics/performance")
    def get_performance_metrics():
        """Get performance metrics for endpoints, tools and the schema cache."""
        return get_monitor().get_performance_summary()

    @app.get("/metrics/cache")
    def get_cache_metrics(cache: HedSchemaCache = Depends(get_cache)):
        analytics = get_monitor().get_cache_analytics()
        analytics["schemas"] = cache.get_cache_stats()
        return analytics

    @app.post("/metrics/reset")
    def reset_metrics():
        """Reset all performance metrics (useful for testing)."""
        get_monitor().reset_metrics()
        return {
            "message": "All metrics have been reset",
            "timestamp": datetime.now().isoformat(),
        }

    mount_mcp_server(app, "/mcp", config, HedMCPBridge(cache=cache))
    return app


app = create_app()
