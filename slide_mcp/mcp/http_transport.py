"""
Streamable HTTP transport: JSON-RPC over POST plus a per-session SSE stream.

- ``POST /mcp`` carries one JSON-RPC message. The session id travels in the
  ``Mcp-Session-Id`` header; unknown or missing ids get a fresh session.
- ``GET /mcp`` opens the server-to-client event stream for a known session.
- ``GET /health`` is a plain liveness probe.
"""

import asyncio
import logging
import secrets
import threading
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Callable, Dict, List, Optional, Tuple

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, PlainTextResponse, Response, StreamingResponse
from starlette.concurrency import run_in_threadpool

from slide_mcp.core.config import SlideConfig
from slide_mcp.mcp.handlers import McpDispatcher, parse_message
from slide_mcp.mcp.protocol import INTERNAL_ERROR, PARSE_ERROR, error_response, is_notification
from slide_mcp.version import SERVER_NAME, __version__

logger = logging.getLogger("Slide.mcp.http")

SESSION_HEADER = "Mcp-Session-Id"
SWEEP_INTERVAL_SECONDS = 60.0
BODY_LOG_LIMIT = 1000


def _now_rfc3339() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


# ---------------------------------------------------------------------------
# Sessions
# ---------------------------------------------------------------------------

@dataclass
class Session:
    session_id: str
    created_at: float
    last_used: float


class SessionManager:
    """Process-local session table guarded by a lock."""

    def __init__(self, idle_timeout: float = 0.0, clock: Callable[[], float] = time.monotonic):
        self.idle_timeout = idle_timeout
        self._clock = clock
        self._lock = threading.Lock()
        self._sessions: Dict[str, Session] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def create(self) -> str:
        session_id = secrets.token_hex(16)
        now = self._clock()
        with self._lock:
            self._sessions[session_id] = Session(session_id, now, now)
        logger.info("Created session %s", session_id)
        return session_id

    def validate(self, session_id: Optional[str]) -> bool:
        """True for a known session; touches its ``last_used`` stamp."""
        if not session_id:
            return False
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                return False
            session.last_used = self._clock()
            return True

    def evict_idle(self, max_idle: Optional[float] = None) -> List[str]:
        limit = self.idle_timeout if max_idle is None else max_idle
        if limit <= 0:
            return []
        cutoff = self._clock() - limit
        with self._lock:
            stale = [sid for sid, session in self._sessions.items() if session.last_used < cutoff]
            for sid in stale:
                del self._sessions[sid]
        for sid in stale:
            logger.debug("Evicted idle session %s", sid)
        return stale


# ---------------------------------------------------------------------------
# SSE fan-out
# ---------------------------------------------------------------------------

@dataclass
class SseReader:
    session_id: str
    loop: asyncio.AbstractEventLoop
    queue: "asyncio.Queue[Optional[str]]" = field(default_factory=asyncio.Queue)

    def push(self, frame: Optional[str]) -> None:
        """Thread-safe enqueue; ``None`` ends the stream."""
        self.loop.call_soon_threadsafe(self.queue.put_nowait, frame)


def format_event(data: str, event_type: Optional[str] = None, event_id: Optional[str] = None) -> str:
    lines = [f"id: {event_id or secrets.token_hex(8)}"]
    if event_type:
        lines.append(f"event: {event_type}")
    lines.extend(f"data: {chunk}" for chunk in data.split("\n"))
    return "\n".join(lines) + "\n\n"


class SseHub:
    """At most one attached reader per session."""

    def __init__(self):
        self._lock = threading.Lock()
        self._readers: Dict[str, SseReader] = {}

    def attach(self, session_id: str) -> SseReader:
        """Register a reader for ``session_id``; must run on the event loop."""
        reader = SseReader(session_id=session_id, loop=asyncio.get_running_loop())
        with self._lock:
            previous = self._readers.get(session_id)
            self._readers[session_id] = reader
        if previous is not None:
            logger.info("Replacing SSE reader for session %s", session_id)
            self._close(previous)
        logger.info("SSE reader attached for session %s", session_id)
        return reader

    def detach(self, session_id: str, reader: Optional[SseReader] = None) -> bool:
        with self._lock:
            current = self._readers.get(session_id)
            if current is None or (reader is not None and current is not reader):
                return False
            del self._readers[session_id]
        logger.info("SSE reader detached for session %s", session_id)
        return True

    def close(self, session_id: str) -> None:
        with self._lock:
            reader = self._readers.pop(session_id, None)
        if reader is not None:
            self._close(reader)

    def has_reader(self, session_id: str) -> bool:
        with self._lock:
            return session_id in self._readers

    @staticmethod
    def _close(reader: SseReader) -> None:
        try:
            reader.push(None)
        except RuntimeError as exc:
            logger.debug("SSE reader for %s already gone: %s", reader.session_id, exc)

    def send_event(self, session_id: str, data: str, event_type: Optional[str] = None) -> bool:
        with self._lock:
            reader = self._readers.get(session_id)
        if reader is None:
            logger.warning("No SSE reader for session %s; event dropped", session_id)
            return False
        try:
            reader.push(format_event(data, event_type))
        except RuntimeError as exc:
            logger.warning("SSE send to session %s failed: %s", session_id, exc)
            return False
        return True

    def broadcast(self, data: str, event_type: Optional[str] = None) -> Tuple[int, int]:
        with self._lock:
            readers = list(self._readers.values())
        successes = failures = 0
        for reader in readers:
            try:
                reader.push(format_event(data, event_type))
                successes += 1
            except RuntimeError as exc:
                logger.warning("SSE broadcast to session %s failed: %s", reader.session_id, exc)
                failures += 1
        logger.info("SSE broadcast delivered to %d readers (%d failed)", successes, failures)
        return successes, failures


async def event_stream(
    hub: SseHub,
    request: Any,
    reader: SseReader,
    heartbeat_interval: float,
) -> AsyncIterator[str]:
    """Yield SSE frames for one reader until the client goes away or the reader is closed."""
    try:
        yield f": connected at {_now_rfc3339()}\n\n"
        while True:
            if await request.is_disconnected():
                break
            try:
                frame = await asyncio.wait_for(reader.queue.get(), timeout=heartbeat_interval)
            except asyncio.TimeoutError:
                yield f": heartbeat {_now_rfc3339()}\n\n"
                continue
            if frame is None:
                break
            yield frame
    finally:
        hub.detach(reader.session_id, reader)


# ---------------------------------------------------------------------------
# Idle sweeper
# ---------------------------------------------------------------------------

class SessionSweeper:
    """Daemon thread evicting idle sessions and closing their SSE readers."""

    def __init__(self, sessions: SessionManager, hub: SseHub, interval: float = SWEEP_INTERVAL_SECONDS):
        self.sessions = sessions
        self.hub = hub
        self.interval = interval
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def sweep_once(self) -> List[str]:
        evicted = self.sessions.evict_idle()
        for session_id in evicted:
            self.hub.close(session_id)
        if evicted:
            logger.info("Evicted %d idle sessions (%d active)", len(evicted), len(self.sessions))
        return evicted

    def _run(self) -> None:
        while not self._stop.wait(self.interval):
            self.sweep_once()

    def start(self) -> None:
        if self._thread is not None:
            return
        self._thread = threading.Thread(target=self._run, name="slide-session-sweeper", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        self._stop.set()


# ---------------------------------------------------------------------------
# Application
# ---------------------------------------------------------------------------

def _dispatch(dispatcher: McpDispatcher, message: Any) -> Optional[Dict[str, Any]]:
    try:
        return dispatcher.handle_message(message)
    except Exception:
        logger.exception("Unexpected error during RPC dispatch")
        if isinstance(message, dict) and "id" in message:
            return error_response(message.get("id"), INTERNAL_ERROR, "Internal error")
        return None


def _truncate_body(text: str) -> str:
    if len(text) > BODY_LOG_LIMIT:
        return text[:BODY_LOG_LIMIT] + "... [truncated]"
    return text


def _json_reply(body: Dict[str, Any], status_code: int, headers: Dict[str, str]) -> JSONResponse:
    reply = JSONResponse(body, status_code=status_code, headers=headers)
    logger.debug("Response body: %s", _truncate_body(reply.body.decode("utf-8", errors="replace")))
    return reply


def create_app(
    dispatcher: McpDispatcher,
    config: SlideConfig,
    sessions: Optional[SessionManager] = None,
    hub: Optional[SseHub] = None,
) -> FastAPI:
    sessions = sessions or SessionManager(idle_timeout=config.session_idle_timeout)
    hub = hub or SseHub()
    sweeper = SessionSweeper(sessions, hub)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if sessions.idle_timeout > 0:
            sweeper.start()
        yield
        sweeper.stop()

    app = FastAPI(title=SERVER_NAME, version=__version__, lifespan=lifespan)
    app.state.dispatcher = dispatcher
    app.state.sessions = sessions
    app.state.hub = hub
    app.state.sweeper = sweeper

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        started = time.perf_counter()
        client = request.client.host if request.client else "-"
        logger.info("%s %s %s", request.method, request.url.path, client)
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.info(
            "%s %s %s -> %d (%.1f ms)",
            request.method,
            request.url.path,
            client,
            response.status_code,
            elapsed_ms,
        )
        return response

    @app.post("/mcp")
    async def post_mcp(request: Request):
        session_id = request.headers.get(SESSION_HEADER)
        if not sessions.validate(session_id):
            session_id = sessions.create()
        headers = {SESSION_HEADER: session_id}

        raw = (await request.body()).decode("utf-8", errors="replace")
        logger.debug("Request body: %s", _truncate_body(raw))
        message, parse_error = parse_message(raw)
        if message is None:
            body = parse_error or error_response(None, PARSE_ERROR, "Parse error")
            return _json_reply(body, 400, headers)

        if isinstance(message, dict) and is_notification(message) and isinstance(message.get("method"), str):
            await run_in_threadpool(_dispatch, dispatcher, message)
            return Response(status_code=202, headers=headers)

        response = await run_in_threadpool(_dispatch, dispatcher, message)
        if response is None:
            return _json_reply(error_response(None, PARSE_ERROR, "Parse error"), 400, headers)
        status_code = 400 if response.get("error", {}).get("code") == PARSE_ERROR else 200
        return _json_reply(response, status_code, headers)

    @app.get("/mcp")
    async def get_mcp(request: Request):
        if "text/event-stream" not in request.headers.get("accept", ""):
            return PlainTextResponse("Not Acceptable: client must accept text/event-stream", status_code=406)
        session_id = request.headers.get(SESSION_HEADER)
        if not sessions.validate(session_id):
            return PlainTextResponse("Invalid or missing session ID", status_code=401)

        last_event_id = request.headers.get("Last-Event-ID")
        if last_event_id:
            logger.info("SSE reconnect for session %s with Last-Event-ID %s", session_id, last_event_id)

        reader = hub.attach(session_id)
        return StreamingResponse(
            event_stream(hub, request, reader, config.sse_heartbeat_interval),
            media_type="text/event-stream",
            headers={
                "Cache-Control": "no-cache",
                "Connection": "keep-alive",
                "Access-Control-Allow-Origin": "*",
                SESSION_HEADER: session_id,
            },
        )

    @app.get("/health")
    async def health():
        return PlainTextResponse("OK")

    return app


def serve_http(app: FastAPI, host: str, port: int) -> None:
    logger.info("Serving MCP over HTTP on %s:%d", host, port)
    uvicorn.run(app, host=host, port=port, log_level="warning")
