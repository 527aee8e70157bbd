"""
Slide MCP Protocol Constants & Envelopes
"""

import json
import re
from typing import Any, Dict, Optional

PROTOCOL_VERSION = "2024-11-05"
JSONRPC_VERSION = "2.0"

# Standard JSON-RPC error codes
PARSE_ERROR = -32700
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603

SILENT_NOTIFICATIONS = ("notifications/initialized", "notifications/cancelled")

_ID_PATTERN = re.compile(r'"id"\s*:\s*("(?:[^"\\]|\\.)*"|-?\d+(?:\.\d+)?(?:[eE][+-]?\d+)?|null)')


def is_notification(message: Dict[str, Any]) -> bool:
    return "id" not in message


def result_response(msg_id: Any, result: Any) -> Dict[str, Any]:
    return {"jsonrpc": JSONRPC_VERSION, "id": msg_id, "result": result}


def error_response(msg_id: Any, code: int, message: str, data: Any = None) -> Dict[str, Any]:
    error: Dict[str, Any] = {"code": code, "message": message}
    if data is not None:
        error["data"] = data
    return {"jsonrpc": JSONRPC_VERSION, "id": msg_id, "error": error}


def tool_result(text: str, is_error: bool = False) -> Dict[str, Any]:
    return {"content": [{"type": "text", "text": text}], "isError": is_error}


def tool_error_result(message: str) -> Dict[str, Any]:
    return tool_result(f"Error: {message}", is_error=True)


def recover_id(raw: str) -> Optional[Any]:
    """
    Best-effort extraction of a request id from text that failed to parse.

    Returns the id value, or None when no ``"id"`` token is present. A
    literal ``null`` id is reported as None as well.
    """
    match = _ID_PATTERN.search(raw)
    if not match:
        return None
    try:
        return json.loads(match.group(1))
    except ValueError:
        return None


def has_id_token(raw: str) -> bool:
    return _ID_PATTERN.search(raw) is not None
