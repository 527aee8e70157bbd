import io
import json

from slide_mcp.mcp.protocol import INTERNAL_ERROR, PARSE_ERROR
from slide_mcp.mcp.server import McpServer


def _echo(message):
    if "id" not in message:
        return None
    return {"jsonrpc": "2.0", "id": message["id"], "result": {"method": message.get("method")}}


def _lines(stream):
    return [json.loads(line) for line in stream.getvalue().splitlines()]


class _BrokenStream:
    def write(self, data):
        raise BrokenPipeError("client went away")

    def flush(self):
        pass


def test_serves_until_eof():
    stdin = io.StringIO(
        '{"jsonrpc":"2.0","id":1,"method":"ping"}\n'
        '{"jsonrpc":"2.0","method":"notifications/initialized"}\n'
        "\n"
        '{"jsonrpc":"2.0","id":2,"method":"tools/list"}\n'
    )
    stdout = io.StringIO()
    McpServer(_echo).serve(stdin=stdin, stdout=stdout)
    assert [frame["id"] for frame in _lines(stdout)] == [1, 2]


def test_parse_error_with_recoverable_id():
    stdin = io.StringIO('{"jsonrpc":"2.0","id":9,"method":\n{"jsonrpc":"2.0","id":10,"method":"ping"}\n')
    stdout = io.StringIO()
    McpServer(_echo).serve(stdin=stdin, stdout=stdout)
    frames = _lines(stdout)
    assert frames[0] == {"jsonrpc": "2.0", "id": 9, "error": {"code": PARSE_ERROR, "message": "Parse error"}}
    assert frames[1]["id"] == 10


def test_non_object_frame_with_id_gets_parse_error():
    stdin = io.StringIO('[{"jsonrpc":"2.0","id":7,"method":"ping"}]\n"x"\n')
    stdout = io.StringIO()
    McpServer(_echo).serve(stdin=stdin, stdout=stdout)
    assert _lines(stdout) == [{"jsonrpc": "2.0", "id": 7, "error": {"code": PARSE_ERROR, "message": "Parse error"}}]


def test_unparseable_line_without_id_is_dropped():
    stdin = io.StringIO("garbage\n")
    stdout = io.StringIO()
    McpServer(_echo).serve(stdin=stdin, stdout=stdout)
    assert stdout.getvalue() == ""


def test_exit_after_first_request():
    stdin = io.StringIO(
        '{"jsonrpc":"2.0","method":"notifications/initialized"}\n'
        '{"jsonrpc":"2.0","id":1,"method":"ping"}\n'
        '{"jsonrpc":"2.0","id":2,"method":"ping"}\n'
    )
    stdout = io.StringIO()
    McpServer(_echo).serve(stdin=stdin, stdout=stdout, exit_after_first=True)
    assert [frame["id"] for frame in _lines(stdout)] == [1]
    assert stdin.readline().startswith('{"jsonrpc":"2.0","id":2')


def test_dispatch_exception_becomes_internal_error():
    def explode(message):
        raise RuntimeError("bug")

    stdin = io.StringIO('{"jsonrpc":"2.0","id":5,"method":"ping"}\n{"jsonrpc":"2.0","method":"x"}\n')
    stdout = io.StringIO()
    McpServer(explode).serve(stdin=stdin, stdout=stdout)
    assert _lines(stdout) == [
        {"jsonrpc": "2.0", "id": 5, "error": {"code": INTERNAL_ERROR, "message": "Internal error"}}
    ]


def test_frames_are_single_lines():
    stdout = io.StringIO()
    McpServer(_echo).send_rpc({"jsonrpc": "2.0", "id": 1, "result": {"text": "a\nb"}}, stdout)
    assert stdout.getvalue().count("\n") == 1


def test_broken_pipe_closes_transport():
    server = McpServer(_echo)
    server.send_rpc({"jsonrpc": "2.0", "id": 1, "result": {}}, _BrokenStream())
    assert server.transport_closed.is_set()


def test_stop_suppresses_output():
    server = McpServer(_echo)
    server.stop()
    stdout = io.StringIO()
    server.send_rpc({"jsonrpc": "2.0", "id": 1, "result": {}}, stdout)
    assert stdout.getvalue() == ""
