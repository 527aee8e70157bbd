"""
JSON-RPC method dispatch shared by the stdio and HTTP transports.
"""

import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple

from slide_mcp.api.client import SlideClient
from slide_mcp.api.errors import SlideError
from slide_mcp.core.config import SlideConfig
from slide_mcp.core.policy import ToolPolicy
from slide_mcp.mcp.protocol import (
    INVALID_PARAMS,
    METHOD_NOT_FOUND,
    PARSE_ERROR,
    PROTOCOL_VERSION,
    SILENT_NOTIFICATIONS,
    error_response,
    has_id_token,
    is_notification,
    recover_id,
    result_response,
    tool_error_result,
    tool_result,
)
from slide_mcp.tools.base import ToolContext
from slide_mcp.tools.meta import build_hierarchy
from slide_mcp.tools.registry import ToolRegistry, build_registry
from slide_mcp.version import SERVER_NAME, __version__

logger = logging.getLogger("Slide.mcp.handlers")

INITIAL_CONTEXT_NOTE = "Initial context will be available via the list_all_clients_devices_and_agents tool"


def parse_message(raw: str) -> Tuple[Optional[Any], Optional[Dict[str, Any]]]:
    """
    Decode one raw JSON-RPC frame.

    Returns ``(message, None)`` for a JSON object. Broken JSON and JSON that
    is not an object return ``(None, error)`` where ``error`` is a -32700
    response when an id could be recovered from the text and None otherwise.
    """
    try:
        message = json.loads(raw)
    except ValueError as exc:
        logger.warning("Failed to parse JSON-RPC message: %s", exc)
        return None, _parse_error_for(raw)
    if not isinstance(message, dict):
        logger.warning("JSON-RPC message is not an object")
        return None, _parse_error_for(raw)
    return message, None


def _parse_error_for(raw: str) -> Optional[Dict[str, Any]]:
    if not has_id_token(raw):
        return None
    return error_response(recover_id(raw), PARSE_ERROR, "Parse error")


class McpDispatcher:
    """
    Routes decoded JSON-RPC messages to method handlers.

    ``handle_message`` returns the response envelope for requests and None
    for notifications. ``SlideError`` raised by a tool becomes an in-band
    ``isError`` result; any other exception propagates to the transport.
    """

    def __init__(
        self,
        config: SlideConfig,
        client: SlideClient,
        registry: Optional[ToolRegistry] = None,
        policy: Optional[ToolPolicy] = None,
    ):
        self.config = config
        self.client = client
        self.registry = registry or build_registry(config)
        self.policy = policy or ToolPolicy(config)
        self.context = ToolContext(client=client, config=config)

    def handle_message(self, message: Any) -> Optional[Dict[str, Any]]:
        if not isinstance(message, dict):
            logger.warning("Dropping JSON-RPC message that is not an object")
            return None

        method = message.get("method")
        if not isinstance(method, str):
            if is_notification(message):
                logger.warning("Dropping notification without a method")
                return None
            return error_response(message.get("id"), PARSE_ERROR, "Parse error")

        if is_notification(message):
            self.handle_notification(method)
            return None

        msg_id = message.get("id")
        params = message.get("params")
        if method == "initialize":
            return result_response(msg_id, self.initialize_result())
        if method == "ping":
            return result_response(msg_id, {})
        if method == "tools/list":
            return result_response(msg_id, {"tools": self.registry.catalog(self.policy)})
        if method == "tools/call":
            return self.handle_call_tool(msg_id, params)
        logger.debug("Unknown method %s", method)
        return error_response(msg_id, METHOD_NOT_FOUND, "Method not found")

    def handle_notification(self, method: str) -> None:
        if method in SILENT_NOTIFICATIONS:
            logger.debug("Notification %s", method)
        else:
            logger.info("Unknown notification: %s", method)

    # ------------------------------------------------------------------

    def initial_context(self) -> Dict[str, Any]:
        try:
            return build_hierarchy(self.client)
        except SlideError as exc:
            logger.warning("Failed to fetch initial context data: %s", exc)
            return {"error": f"Failed to fetch initial context: {exc}", "note": INITIAL_CONTEXT_NOTE}

    def initialize_result(self) -> Dict[str, Any]:
        return {
            "protocolVersion": PROTOCOL_VERSION,
            "capabilities": {"tools": {}},
            "serverInfo": {"name": SERVER_NAME, "version": __version__},
            "initialContext": {
                "clients_devices_agents": self.initial_context(),
                "_metadata": {
                    "description": (
                        "Initial overview of all clients, devices, and agents loaded at startup for improved performance"
                    ),
                    "source_tool": "list_all_clients_devices_and_agents",
                    "usage_note": (
                        "This data is also available via the slide_meta tool (operation "
                        "list_all_clients_devices_and_agents) and should be refreshed if needed"
                    ),
                    "timestamp": datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ"),
                },
            },
        }

    def handle_call_tool(self, msg_id: Any, params: Any) -> Dict[str, Any]:
        if not isinstance(params, dict):
            return error_response(msg_id, INVALID_PARAMS, "Invalid params")

        name = params.get("name")
        if not isinstance(name, str) or not name:
            return error_response(msg_id, INVALID_PARAMS, "Tool name required")

        arguments = params.get("arguments")
        if arguments is None:
            arguments = {}
        if not isinstance(arguments, dict):
            return error_response(msg_id, INVALID_PARAMS, "Tool arguments must be an object")

        denial = self.policy.check_tool(name)
        if denial:
            return error_response(msg_id, METHOD_NOT_FOUND, denial)

        tool = self.registry.get(name)
        if tool is None:
            return error_response(msg_id, METHOD_NOT_FOUND, f"Unknown tool: {name}")

        operation = arguments.get("operation")
        if tool.has_operation(operation):
            denial = self.policy.check_operation(name, operation)
            if denial:
                return error_response(msg_id, METHOD_NOT_FOUND, denial)

        try:
            text = tool.call(self.context, arguments)
        except SlideError as exc:
            logger.info("Tool %s failed: %s", name, exc)
            return result_response(msg_id, tool_error_result(str(exc)))
        return result_response(msg_id, tool_result(text))
