"""HED MCP Server
==============

Exposes HED (Hierarchical Event Descriptor) validation as Model Context
Protocol tools and as a parallel REST API. HED grammar and semantics come
from the ``hedtools`` library; this package routes requests, caches loaded
schemas, assembles caller-supplied definitions and normalizes validator
issues into one stable record.

Key capabilities
----------------
- Validate HED strings, BIDS TSV files and JSON sidecars
  (:mod:`hed_mcp_server.tools`).
- Schema cache keyed by normalized version specifiers with single-flight
  loading (:mod:`hed_mcp_server.cache`).
- Uniform :class:`~hed_mcp_server.models.FormattedIssue` records for every
  issue shape (:mod:`hed_mcp_server.issues`).
- MCP over stdio (:mod:`hed_mcp_server.mcp_server`) and over HTTP next to the
  REST endpoints (:mod:`hed_mcp_server.app`).
- In-process performance metrics (:mod:`hed_mcp_server.monitoring`).

Minimal quick start
-------------------
>>> import asyncio
>>> from hed_mcp_server.tools import ValidateHedStringArgs, handle_validate_hed_string
>>> args = ValidateHedStringArgs(hedString="Sensory-event, Red", hedVersion="8.4.0")
>>> asyncio.run(handle_validate_hed_string(args)).to_dict()
{'errors': [], 'warnings': []}

FastAPI application instance (for ASGI servers like uvicorn):
>>> from hed_mcp_server.app import app  # noqa: F401
"""

__version__ = "0.1.0"

from .cache import HedSchemaCache, get_schema_cache, normalize_version
from .issues import format_issue, format_issues, separate_issues_by_severity
from .models import FormattedIssue, HedValidationResult, ParseSidecarResult

__all__ = [
    "FormattedIssue",
    "HedSchemaCache",
    "HedValidationResult",
    "ParseSidecarResult",
    "format_issue",
    "format_issues",
    "get_schema_cache",
    "normalize_version",
    "separate_issues_by_severity",
]
