"""
Slide REST adapter exceptions.

Every subclass of ``SlideError`` is an in-band tool failure: the protocol
layer turns it into an ``isError`` tool result instead of a JSON-RPC error.
"""

from __future__ import annotations

from typing import Any, Optional


class SlideError(RuntimeError):
    """Base class for tool-level failures."""


class SlideConnectionError(SlideError):
    """Raised when the Slide API cannot be reached or the request times out."""


class SlideAPIError(SlideError):
    """Raised when the Slide API answers with a non-2xx status."""

    def __init__(
        self,
        status_code: int,
        body: str,
        *,
        path: Optional[str] = None,
        payload: Optional[Any] = None,
    ) -> None:
        self.status_code = status_code
        self.body = body
        self.path = path
        self.payload = payload
        super().__init__(f"API error {status_code}: {body}")


class ToolError(SlideError):
    """Raised for argument and routing faults inside a tool handler."""
