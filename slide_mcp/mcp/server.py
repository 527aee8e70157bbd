import json
import logging
import sys
import threading
from typing import Any, Callable, Dict, Optional, TextIO

from slide_mcp.mcp.handlers import parse_message
from slide_mcp.mcp.protocol import INTERNAL_ERROR, error_response

logger = logging.getLogger("Slide.mcp.server")


class McpServer:
    """
    Handles newline-delimited JSON-RPC over stdio, one request at a time.
    """

    def __init__(self, dispatch_fn: Callable[[Any], Optional[Dict[str, Any]]]):
        self.dispatch_fn = dispatch_fn
        self.transport_closed = threading.Event()
        self.write_lock = threading.Lock()

    def stop(self) -> None:
        self.transport_closed.set()

    def send_rpc(self, message: Dict[str, Any], stream: Optional[TextIO] = None) -> None:
        """Serialize one JSON-RPC message as a single line."""
        if self.transport_closed.is_set():
            return
        out = stream or sys.stdout
        try:
            serialized = json.dumps(message)
            with self.write_lock:
                if self.transport_closed.is_set():
                    return
                out.write(serialized + "\n")
                out.flush()
        except (BrokenPipeError, OSError, ValueError) as exc:
            self.transport_closed.set()
            logger.warning("MCP stdio transport closed while sending: %s", exc)

    def _dispatch_guarded(self, message: Any) -> Optional[Dict[str, Any]]:
        try:
            return self.dispatch_fn(message)
        except Exception:
            logger.exception("Unexpected error during RPC dispatch")
            if isinstance(message, dict) and "id" in message:
                return error_response(message.get("id"), INTERNAL_ERROR, "Internal error")
            return None

    def serve(
        self,
        stdin: Optional[TextIO] = None,
        stdout: Optional[TextIO] = None,
        exit_after_first: bool = False,
    ) -> None:
        """Read requests until end of input (or after the first request when asked)."""
        source = stdin or sys.stdin
        sink = stdout or sys.stdout
        logger.info("Serving MCP over stdio")
        while not self.transport_closed.is_set():
            line = source.readline()
            if not line:
                logger.info("stdin closed, shutting down")
                return
            line = line.strip()
            if not line:
                continue

            message, parse_error = parse_message(line)
            if parse_error is not None:
                self.send_rpc(parse_error, sink)
                continue
            if message is None:
                continue

            response = self._dispatch_guarded(message)
            if response is not None:
                self.send_rpc(response, sink)

            if exit_after_first and isinstance(message, dict) and "id" in message:
                return
