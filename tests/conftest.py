"""Shared fixtures: a scripted requests session and config/context factories."""

from __future__ import annotations

import json
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import urlparse

import pytest
import requests

from slide_mcp.api.client import SlideClient
from slide_mcp.core.config import FeatureGates, SlideConfig
from slide_mcp.tools.base import ToolContext


def make_response(
    status: int = 200,
    payload: Any = None,
    *,
    text: Optional[str] = None,
    url: str = "https://api.slide.tech/",
    headers: Optional[Dict[str, str]] = None,
) -> requests.Response:
    response = requests.Response()
    response.status_code = status
    if text is None:
        text = "" if payload is None else json.dumps(payload)
    response._content = text.encode("utf-8")
    response.encoding = "utf-8"
    response.url = url
    response.headers.update(headers or {})
    return response


class StubSession:
    """
    Stands in for ``requests.Session``.

    ``routes`` maps ``(METHOD, path)`` or ``(METHOD, absolute_url)`` to a JSON
    payload, a prepared Response, an exception instance, or a callable taking
    the recorded call dict and returning any of those.
    """

    def __init__(self, routes: Optional[Dict[tuple, Any]] = None):
        self.routes = dict(routes or {})
        self.calls: List[Dict[str, Any]] = []
        self.closed = False

    def request(self, method, url, headers=None, json=None, params=None, timeout=None):
        call = {
            "method": method,
            "url": url,
            "path": urlparse(url).path,
            "headers": headers or {},
            "json": json,
            "params": params or {},
            "timeout": timeout,
        }
        self.calls.append(call)
        for key in ((method, url), (method, call["path"])):
            if key in self.routes:
                handler = self.routes[key]
                break
        else:
            return make_response(404, text='{"message":"not found"}', url=url)
        if callable(handler):
            handler = handler(call)
        if isinstance(handler, Exception):
            raise handler
        if isinstance(handler, requests.Response):
            return handler
        return make_response(200, handler, url=url)

    def close(self):
        self.closed = True

    def paths(self, method: Optional[str] = None) -> List[str]:
        return [call["path"] for call in self.calls if method is None or call["method"] == method]


def page(rows: List[Dict[str, Any]], *, total: Optional[int] = None, next_offset: Optional[int] = None) -> Dict[str, Any]:
    pagination: Dict[str, Any] = {"total": len(rows) if total is None else total}
    if next_offset is not None:
        pagination["next_offset"] = next_offset
    return {"pagination": pagination, "data": rows}


@pytest.fixture
def make_config() -> Callable[..., SlideConfig]:
    def factory(*, presentation: bool = False, reports: bool = False, **overrides: Any) -> SlideConfig:
        overrides.setdefault("api_key", "test-key")
        return SlideConfig(features=FeatureGates(presentation=presentation, reports=reports), **overrides)

    return factory


@pytest.fixture
def config(make_config) -> SlideConfig:
    return make_config()


@pytest.fixture
def session() -> StubSession:
    return StubSession()


@pytest.fixture
def client(session) -> SlideClient:
    return SlideClient("test-key", session=session)


@pytest.fixture
def make_ctx(make_config) -> Callable[..., ToolContext]:
    """Build a ToolContext over a StubSession scripted with ``routes``."""

    def factory(routes: Optional[Dict[tuple, Any]] = None, **config_overrides: Any) -> ToolContext:
        stub = StubSession(routes)
        ctx = ToolContext(client=SlideClient("test-key", session=stub), config=make_config(**config_overrides))
        ctx.session = stub
        return ctx

    return factory
