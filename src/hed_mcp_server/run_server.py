"""Command line entry point for the HED MCP server.

Usage::

    hed-mcp-server                          # MCP over stdio (for desktop agents)
    hed-mcp-server --transport http         # REST + MCP over HTTP on port 3000
    hed-mcp-server --transport http --port 8080 --host 0.0.0.0 -v

Unset options fall back to the ``HED_MCP_*`` environment variables read by
:meth:`~hed_mcp_server.mcp_server.MCPConfig.from_env`.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import List, Optional

from . import __version__
from .mcp_server import TRANSPORTS, MCPConfig, run_server

logger = logging.getLogger(__name__)


def setup_logging(level: str = "INFO", verbose: bool = False) -> None:
    """Configure root logging.

    Logs always go to stderr; on the stdio transport stdout carries the
    protocol stream.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="HED validation server for the Model Context Protocol",
        prog="hed-mcp-server",
    )
    parser.add_argument("--transport", choices=TRANSPORTS, help="Transport to serve")
    parser.add_argument("--host", help="Bind host for the http transport")
    parser.add_argument("--port", type=int, help="Bind port for the http transport")
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        type=str.upper,
        help="Logging level",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Enable debug logging"
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def config_from_args(args: argparse.Namespace) -> MCPConfig:
    """Overlay explicit command line options on the environment configuration."""
    config = MCPConfig.from_env()
    if args.transport:
        config.transport = args.transport
    if args.host:
        config.host = args.host
    if args.port is not None:
        config.port = args.port
    if args.log_level:
        config.log_level = args.log_level
    if args.verbose:
        config.log_level = "DEBUG"
    return config


def main(argv: Optional[List[str]] = None) -> int:
    """Parse arguments and run the server until interrupted."""
    args = build_parser().parse_args(argv)
    config = config_from_args(args)
    setup_logging(config.log_level, args.verbose)

    try:
        asyncio.run(run_server(config))
    except KeyboardInterrupt:
        logger.info("Server shutdown complete")
    except Exception as e:
        logger.error(f"Failed to start server: {e}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
