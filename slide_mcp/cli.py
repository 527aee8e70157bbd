"""
Slide MCP server command line.

Usage:
    slide-mcp-server --api-key KEY                       # stdio transport
    slide-mcp-server --transport http --port 8080        # HTTP + SSE transport
    slide-mcp-server --tool slide_agents --args '{"operation":"list"}'
    slide-mcp-server --version

Every flag falls back to the matching SLIDE_* environment variable.
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from typing import List, Optional

from slide_mcp.api.client import SlideClient
from slide_mcp.core.config import ConfigError, SlideConfig
from slide_mcp.mcp.handlers import McpDispatcher
from slide_mcp.version import SERVER_NAME, __version__

logger = logging.getLogger("Slide.cli")

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(level: Optional[str]) -> None:
    """Log to stderr only; stdout carries protocol frames in stdio mode."""
    name = (level or os.environ.get("SLIDE_LOG_LEVEL") or "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, name, logging.INFO),
        format=LOG_FORMAT,
        stream=sys.stderr,
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog=SERVER_NAME,
        description="MCP server exposing the Slide backup API as tools.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="Examples:\n"
               "  slide-mcp-server --api-key tk_... --tools reporting\n"
               "  slide-mcp-server --transport http --host 0.0.0.0 --port 8080\n"
               "  slide-mcp-server --tool slide_reports --args '{\"operation\":\"daily_backup_snapshot\"}'\n",
    )
    parser.add_argument("--api-key", default=None, help="API key for Slide service (overrides SLIDE_API_KEY).")
    parser.add_argument("--base-url", default=None, help="Base URL for Slide API (overrides SLIDE_BASE_URL).")
    parser.add_argument(
        "--tools",
        default=None,
        metavar="MODE",
        help="Tools mode: reporting, restores, full-safe, full (overrides SLIDE_TOOLS).",
    )
    parser.add_argument(
        "--disabled-tools",
        default=None,
        metavar="CSV",
        help="Comma-separated list of tool names to disable (overrides SLIDE_DISABLED_TOOLS).",
    )
    parser.add_argument(
        "--enable-presentation",
        action="store_true",
        default=False,
        help="Enable the slide_presentation tool (or set SLIDE_ENABLE_PRESENTATION).",
    )
    parser.add_argument(
        "--enable-reports",
        action="store_true",
        default=False,
        help="Enable the slide_reports tool (or set SLIDE_ENABLE_REPORTS).",
    )
    parser.add_argument(
        "--exit-after-first",
        action="store_true",
        default=False,
        help="Exit after processing the first request instead of running continuously.",
    )
    parser.add_argument("--transport", choices=("stdio", "http"), default="stdio", help="Transport to serve on.")
    parser.add_argument("--host", default=None, help="HTTP bind host (overrides SLIDE_HTTP_HOST).")
    parser.add_argument("--port", type=int, default=None, help="HTTP bind port (overrides SLIDE_HTTP_PORT).")
    parser.add_argument("--log-level", default=None, help="Logging level (overrides SLIDE_LOG_LEVEL).")
    parser.add_argument("--tool", default=None, metavar="NAME", help="Run a single tool call then exit.")
    parser.add_argument(
        "--args",
        dest="tool_args",
        default=None,
        metavar="JSON",
        help="JSON object with arguments for --tool.",
    )
    parser.add_argument("--version", action="store_true", default=False, help="Show version information and exit.")
    return parser


def run_one_shot(dispatcher: McpDispatcher, tool: str, raw_args: Optional[str]) -> int:
    arguments = {}
    if raw_args:
        try:
            arguments = json.loads(raw_args)
        except ValueError as exc:
            print(f"Invalid JSON for --args: {exc}", file=sys.stderr)
            return 1
    request = {
        "jsonrpc": "2.0",
        "id": 1,
        "method": "tools/call",
        "params": {"name": tool, "arguments": arguments},
    }
    response = dispatcher.handle_message(request)
    print(json.dumps(response, indent=2))
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    if args.version:
        print(f"{SERVER_NAME} version {__version__}")
        return 0

    configure_logging(args.log_level)

    try:
        config = SlideConfig.from_sources(
            api_key=args.api_key,
            base_url=args.base_url,
            tools_mode=args.tools,
            disabled_tools=args.disabled_tools,
            enable_presentation=args.enable_presentation,
            enable_reports=args.enable_reports,
            http_host=args.host,
            http_port=args.port,
        )
        client = SlideClient(config.api_key, base_url=config.base_url, timeout=config.request_timeout)
    except (ConfigError, ValueError) as exc:
        print(str(exc), file=sys.stderr)
        return 1

    with client:
        dispatcher = McpDispatcher(config, client)

        if args.tool:
            return run_one_shot(dispatcher, args.tool, args.tool_args)

        if args.transport == "http":
            from slide_mcp.mcp.http_transport import create_app, serve_http

            serve_http(create_app(dispatcher, config), config.http_host, config.http_port)
            return 0

        from slide_mcp.mcp.server import McpServer

        logger.info("Starting %s %s (mode=%s)", SERVER_NAME, __version__, config.tools_mode)
        McpServer(dispatcher.handle_message).serve(exit_after_first=args.exit_after_first)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
