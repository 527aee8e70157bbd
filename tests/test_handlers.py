"""Tests for slide_mcp.mcp.handlers: JSON-RPC method routing and tools/call validation."""

import pytest

from conftest import StubSession, make_response, page
from slide_mcp.api.client import SlideClient
from slide_mcp.mcp.handlers import INITIAL_CONTEXT_NOTE, McpDispatcher, parse_message
from slide_mcp.mcp.protocol import (
    INVALID_PARAMS,
    METHOD_NOT_FOUND,
    PARSE_ERROR,
    PROTOCOL_VERSION,
    recover_id,
    tool_error_result,
)


@pytest.fixture
def make_dispatcher(make_config):
    def factory(routes=None, **config_overrides):
        stub = StubSession(routes)
        dispatcher = McpDispatcher(make_config(**config_overrides), SlideClient("test-key", session=stub))
        dispatcher.session = stub
        return dispatcher

    return factory


def _call(dispatcher, params, msg_id=1):
    return dispatcher.handle_message({"jsonrpc": "2.0", "id": msg_id, "method": "tools/call", "params": params})


class TestParseMessage:
    def test_valid(self):
        assert parse_message('{"jsonrpc":"2.0","id":1,"method":"ping"}') == (
            {"jsonrpc": "2.0", "id": 1, "method": "ping"},
            None,
        )

    def test_broken_with_id(self):
        message, error = parse_message('{"jsonrpc":"2.0","id": 7, "method":')
        assert message is None
        assert error == {"jsonrpc": "2.0", "id": 7, "error": {"code": PARSE_ERROR, "message": "Parse error"}}

    def test_broken_without_id(self):
        assert parse_message("not json at all") == (None, None)

    def test_non_object_with_id(self):
        message, error = parse_message('[{"jsonrpc":"2.0","id":7,"method":"ping"}]')
        assert message is None
        assert error == {"jsonrpc": "2.0", "id": 7, "error": {"code": PARSE_ERROR, "message": "Parse error"}}

    def test_non_object_without_id(self):
        assert parse_message('"x"') == (None, None)
        assert parse_message("[1, 2]") == (None, None)

    def test_recover_string_id(self):
        assert recover_id('{"id": "abc-1", "method": ') == "abc-1"


class TestMethodRouting:
    def test_ping(self, make_dispatcher):
        assert make_dispatcher().handle_message({"jsonrpc": "2.0", "id": 3, "method": "ping"}) == {
            "jsonrpc": "2.0",
            "id": 3,
            "result": {},
        }

    def test_unknown_method(self, make_dispatcher):
        response = make_dispatcher().handle_message({"jsonrpc": "2.0", "id": 3, "method": "resources/list"})
        assert response["error"] == {"code": METHOD_NOT_FOUND, "message": "Method not found"}

    def test_notifications_get_no_response(self, make_dispatcher):
        dispatcher = make_dispatcher()
        assert dispatcher.handle_message({"jsonrpc": "2.0", "method": "notifications/initialized"}) is None
        assert dispatcher.handle_message({"jsonrpc": "2.0", "method": "notifications/whatever"}) is None

    def test_null_id_is_a_request(self, make_dispatcher):
        response = make_dispatcher().handle_message({"jsonrpc": "2.0", "id": None, "method": "ping"})
        assert response == {"jsonrpc": "2.0", "id": None, "result": {}}

    def test_missing_method_with_id(self, make_dispatcher):
        response = make_dispatcher().handle_message({"jsonrpc": "2.0", "id": 4})
        assert response["error"]["code"] == PARSE_ERROR

    def test_tools_list(self, make_dispatcher):
        response = make_dispatcher(tools_mode="reporting").handle_message(
            {"jsonrpc": "2.0", "id": 2, "method": "tools/list"}
        )
        names = [tool["name"] for tool in response["result"]["tools"]]
        assert "slide_agents" in names
        assert "slide_reports" not in names


class TestInitialize:
    def test_with_context(self, make_dispatcher):
        dispatcher = make_dispatcher(
            {
                ("GET", "/v1/client"): page([]),
                ("GET", "/v1/device"): page([]),
            }
        )
        result = dispatcher.handle_message({"jsonrpc": "2.0", "id": 1, "method": "initialize", "params": {}})["result"]
        assert result["protocolVersion"] == PROTOCOL_VERSION
        assert result["capabilities"] == {"tools": {}}
        assert result["serverInfo"] == {"name": "slide-mcp-server", "version": "2.3.0"}
        context = result["initialContext"]
        assert context["clients_devices_agents"]["clients"] == []
        assert context["_metadata"]["timestamp"].endswith("Z")

    def test_context_failure_is_best_effort(self, make_dispatcher):
        dispatcher = make_dispatcher({("GET", "/v1/client"): make_response(401, text="bad key")})
        result = dispatcher.handle_message({"jsonrpc": "2.0", "id": 1, "method": "initialize"})["result"]
        context = result["initialContext"]["clients_devices_agents"]
        assert context["error"] == "Failed to fetch initial context: failed to get clients: API error 401: bad key"
        assert context["note"] == INITIAL_CONTEXT_NOTE


class TestCallToolValidation:
    def test_params_not_object(self, make_dispatcher):
        response = _call(make_dispatcher(), ["slide_agents"])
        assert response["error"] == {"code": INVALID_PARAMS, "message": "Invalid params"}

    def test_name_required(self, make_dispatcher):
        response = _call(make_dispatcher(), {"arguments": {}})
        assert response["error"] == {"code": INVALID_PARAMS, "message": "Tool name required"}

    def test_arguments_must_be_object(self, make_dispatcher):
        response = _call(make_dispatcher(), {"name": "slide_agents", "arguments": "list"})
        assert response["error"] == {"code": INVALID_PARAMS, "message": "Tool arguments must be an object"}

    def test_disabled_tool(self, make_dispatcher):
        response = _call(make_dispatcher(disabled_tools=("slide_agents",)), {"name": "slide_agents", "arguments": {}})
        assert response["error"] == {"code": METHOD_NOT_FOUND, "message": "Tool 'slide_agents' is disabled"}

    def test_gated_tool(self, make_dispatcher):
        response = _call(make_dispatcher(), {"name": "slide_reports", "arguments": {"operation": "daily_backup_snapshot"}})
        assert response["error"]["message"] == "Tool 'slide_reports' not available in 'full-safe' mode"

    def test_unknown_tool(self, make_dispatcher):
        response = _call(make_dispatcher(), {"name": "slide_magic"})
        assert response["error"] == {"code": METHOD_NOT_FOUND, "message": "Unknown tool: slide_magic"}

    def test_unknown_tool_in_restricted_mode(self, make_dispatcher):
        response = _call(make_dispatcher(tools_mode="reporting"), {"name": "slide_magic"})
        assert response["error"]["message"] == "Tool 'slide_magic' not available in 'reporting' mode"

    def test_operation_denied(self, make_dispatcher):
        response = _call(make_dispatcher(), {"name": "slide_agents", "arguments": {"operation": "delete", "agent_id": "a1"}})
        assert response["error"] == {
            "code": METHOD_NOT_FOUND,
            "message": "operation 'delete' not available for slide_agents in 'full-safe' mode",
        }

    def test_reporting_mode_denies_mutation(self, make_dispatcher):
        dispatcher = make_dispatcher(tools_mode="reporting")
        response = _call(dispatcher, {"name": "slide_agents", "arguments": {"operation": "create"}})
        assert response["error"]["code"] == METHOD_NOT_FOUND
        assert dispatcher.session.calls == []


class TestCallToolResults:
    def test_success(self, make_dispatcher):
        dispatcher = make_dispatcher({("GET", "/v1/agent/a1"): {"agent_id": "a1"}})
        response = _call(dispatcher, {"name": "slide_agents", "arguments": {"operation": "get", "agent_id": "a1"}})
        result = response["result"]
        assert result["isError"] is False
        assert result["content"][0]["type"] == "text"
        assert '"agent_id": "a1"' in result["content"][0]["text"]

    def test_arguments_default_to_empty(self, make_dispatcher):
        response = _call(make_dispatcher(), {"name": "slide_agents", "arguments": None})
        assert response["result"] == tool_error_result("operation parameter is required")

    def test_unknown_operation_is_in_band(self, make_dispatcher):
        response = _call(make_dispatcher(), {"name": "slide_agents", "arguments": {"operation": "explode"}})
        assert response["result"] == {
            "content": [{"type": "text", "text": "Error: unknown operation: explode"}],
            "isError": True,
        }

    def test_api_error_is_in_band(self, make_dispatcher):
        dispatcher = make_dispatcher({("GET", "/v1/agent/a9"): make_response(404, text="no such agent")})
        response = _call(dispatcher, {"name": "slide_agents", "arguments": {"operation": "get", "agent_id": "a9"}})
        assert response["result"]["isError"] is True
        assert response["result"]["content"][0]["text"] == "Error: API error 404: no such agent"

    def test_unexpected_exception_propagates(self, make_dispatcher, monkeypatch):
        dispatcher = make_dispatcher()

        def boom(ctx, args):
            raise KeyError("bug")

        monkeypatch.setitem(dispatcher.registry.get("slide_docs").operations, "list_sections", boom)
        with pytest.raises(KeyError):
            _call(dispatcher, {"name": "slide_docs", "arguments": {"operation": "list_sections"}})
