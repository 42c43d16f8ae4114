import json
import threading
import time

import pytest

from jsinspector.cdp import CDPHandler
from jsinspector.session import DebugSession, Engine


class FakeTransport:
    def __init__(self):
        self.sent = []

    def send(self, message):
        self.sent.append(json.loads(message))
        return True

    def responses(self):
        return [m for m in self.sent if "id" in m]

    def events(self, method=None):
        return [m for m in self.sent if "method" in m and (method is None or m["method"] == method)]


@pytest.fixture
def setup():
    transport = FakeTransport()
    session = DebugSession()
    handler = CDPHandler(transport, session)
    session.send_event = handler.send_event
    return transport, session, handler


def request(handler, message_id, method, params=None):
    message = {"id": message_id, "method": method}
    if params is not None:
        message["params"] = params
    handler.handle_message(json.dumps(message))


def last_result(transport):
    return transport.responses()[-1]["result"]


def wait_until(predicate, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return False


def test_runtime_enable_sends_context_event_then_response(setup):
    transport, _, handler = setup
    request(handler, 1, "Runtime.enable")
    assert transport.sent[0]["method"] == "Runtime.executionContextCreated"
    context = transport.sent[0]["params"]["context"]
    assert context["id"] == 1
    assert context["name"] == "QuickJS"
    assert context["auxData"] == {"isDefault": True}
    assert transport.sent[1] == {"id": 1, "result": {}}
    assert handler.runtime_enabled is True


def test_runtime_disable(setup):
    transport, _, handler = setup
    request(handler, 1, "Runtime.enable")
    request(handler, 2, "Runtime.disable")
    assert handler.runtime_enabled is False
    assert transport.responses()[-1] == {"id": 2, "result": {}}


def test_debugger_enable_announces_scripts(setup):
    transport, session, handler = setup
    source = "let a = 1;\nlet b = 2;\n//# sourceMappingURL=app.js.map"
    session.add_script("/srv/app.js", source)
    request(handler, 3, "Debugger.enable")
    parsed = transport.events("Debugger.scriptParsed")
    assert len(parsed) == 1
    params = parsed[0]["params"]
    assert params["scriptId"] == "1"
    assert params["url"] == "file:///srv/app.js"
    assert params["endLine"] == 3
    assert params["sourceMapURL"] == "app.js.map"
    assert params["length"] == len(source)
    assert last_result(transport) == {"debuggerId": "quickjs-debugger-1"}
    assert session.is_enabled() is True
    assert handler.debugger_enabled is True


def test_debugger_disable(setup):
    transport, session, handler = setup
    request(handler, 1, "Debugger.enable")
    request(handler, 2, "Debugger.disable")
    assert session.is_enabled() is False
    assert handler.debugger_enabled is False
    assert transport.responses()[-1] == {"id": 2, "result": {}}


def test_no_response_without_positive_id(setup):
    transport, _, handler = setup
    handler.handle_message(json.dumps({"method": "Profiler.enable"}))
    handler.handle_message(json.dumps({"id": 0, "method": "Profiler.disable"}))
    assert transport.sent == []


def test_unknown_method_gives_empty_result(setup):
    transport, _, handler = setup
    request(handler, 7, "Network.enable")
    assert transport.sent == [{"id": 7, "result": {}}]


def test_non_object_message_is_ignored(setup):
    transport, _, handler = setup
    handler.handle_message("[1, 2, 3]")
    handler.handle_message("")
    assert transport.sent == []


def test_unparseable_message_raises(setup):
    _, _, handler = setup
    with pytest.raises(ValueError):
        handler.handle_message("garbage")


def test_set_breakpoint_by_url_strips_file_scheme(setup):
    transport, session, handler = setup
    session.add_script("/srv/app.js", "x")
    request(handler, 4, "Debugger.setBreakpointByUrl",
            {"url": "file:///srv/app.js", "lineNumber": 4, "columnNumber": 2})
    result = last_result(transport)
    assert result["breakpointId"] == "1:4:0"
    assert result["locations"] == [{"scriptId": "1", "lineNumber": 4, "columnNumber": 2}]


def test_set_breakpoint_by_url_regex(setup):
    transport, session, handler = setup
    session.add_script("/srv/other.js", "x")
    session.add_script("/srv/main.js", "y")
    request(handler, 5, "Debugger.setBreakpointByUrl",
            {"urlRegex": "main\\.js$", "lineNumber": 0})
    result = last_result(transport)
    assert result["breakpointId"] == "1:0:0"
    assert result["locations"][0]["scriptId"] == "2"


def test_set_breakpoint_without_matching_script(setup):
    transport, _, handler = setup
    request(handler, 1, "Debugger.setBreakpointByUrl", {"url": "/nowhere/x.js", "lineNumber": 2})
    assert last_result(transport)["locations"][0]["scriptId"] == "0"


def test_remove_breakpoint(setup):
    transport, session, handler = setup
    request(handler, 1, "Debugger.setBreakpointByUrl", {"url": "/a.js", "lineNumber": 1})
    bp_id = last_result(transport)["breakpointId"]
    request(handler, 2, "Debugger.removeBreakpoint", {"breakpointId": bp_id})
    assert transport.responses()[-1] == {"id": 2, "result": {}}
    assert session.remove_breakpoint(bp_id) is False


def test_get_script_source(setup):
    transport, session, handler = setup
    script_id = session.add_script("/a.js", "console.log(1)")
    request(handler, 1, "Debugger.getScriptSource", {"scriptId": script_id})
    assert last_result(transport) == {"scriptSource": "console.log(1)"}
    request(handler, 2, "Debugger.getScriptSource", {"scriptId": "99"})
    assert last_result(transport) == {"scriptSource": ""}


def test_possible_breakpoints_with_end(setup):
    transport, _, handler = setup
    request(handler, 1, "Debugger.getPossibleBreakpoints",
            {"start": {"scriptId": "1", "lineNumber": 2}, "end": {"lineNumber": 4}})
    locations = last_result(transport)["locations"]
    assert [loc["lineNumber"] for loc in locations] == [2, 3, 4]
    assert all(loc["scriptId"] == "1" and loc["columnNumber"] == 0 for loc in locations)


def test_possible_breakpoints_without_end(setup):
    transport, _, handler = setup
    request(handler, 1, "Debugger.getPossibleBreakpoints",
            {"start": {"scriptId": "1", "lineNumber": 7}})
    locations = last_result(transport)["locations"]
    assert [loc["lineNumber"] for loc in locations] == [7, 8]


def test_possible_breakpoints_without_start(setup):
    transport, _, handler = setup
    request(handler, 1, "Debugger.getPossibleBreakpoints", {})
    assert last_result(transport) == {"locations": []}


def test_evaluate_on_call_frame_when_running(setup):
    transport, _, handler = setup
    request(handler, 1, "Debugger.evaluateOnCallFrame", {"callFrameId": "0", "expression": "x"})
    assert last_result(transport) == {"result": {"type": "undefined"}}


@pytest.mark.parametrize("method", ["Runtime.evaluate", "Runtime.callFunctionOn"])
def test_runtime_evaluate_stubs(setup, method):
    transport, _, handler = setup
    request(handler, 1, method, {"expression": "1+1"})
    assert last_result(transport) == {"result": {"type": "undefined"}}


def test_get_isolate_id(setup):
    transport, _, handler = setup
    request(handler, 1, "Runtime.getIsolateId")
    assert last_result(transport) == {"id": "quickjs-isolate-1"}


def test_get_properties_unknown_object(setup):
    transport, _, handler = setup
    request(handler, 1, "Runtime.getProperties", {"objectId": "nope"})
    assert last_result(transport) == {"result": []}


def test_run_if_waiting_releases_waiter(setup):
    transport, session, handler = setup
    session.set_pause_on_start(True)
    waiter = threading.Thread(target=session.wait_for_debugger)
    waiter.start()
    time.sleep(0.05)
    request(handler, 1, "Runtime.runIfWaitingForDebugger")
    waiter.join(timeout=5)
    assert not waiter.is_alive()
    assert transport.responses()[-1] == {"id": 1, "result": {}}


def _run_trace(session, engine, filename, line):
    thread = threading.Thread(target=session.trace, args=(engine, filename, "main", line, 1))
    thread.start()
    return thread


def test_pause_request_then_resume(setup):
    transport, session, handler = setup
    session.add_script("/srv/app.js", "a\nb\nc")
    request(handler, 1, "Debugger.enable")
    request(handler, 2, "Debugger.pause")
    thread = _run_trace(session, Engine(frames=[{"x": 5}]), "/srv/app.js", 2)
    assert wait_until(session.is_paused)
    paused = transport.events("Debugger.paused")
    assert len(paused) == 1
    assert paused[0]["params"]["reason"] == "pause"
    assert paused[0]["params"]["callFrames"][0]["location"]["lineNumber"] == 1

    request(handler, 3, "Debugger.evaluateOnCallFrame", {"callFrameId": "0", "expression": "x"})
    assert last_result(transport)["result"]["value"] == 5

    request(handler, 4, "Debugger.resume")
    thread.join(timeout=5)
    assert not thread.is_alive()
    assert len(transport.events("Debugger.resumed")) == 1


def test_inactive_breakpoints_do_not_pause(setup):
    transport, session, handler = setup
    request(handler, 1, "Debugger.enable")
    request(handler, 2, "Debugger.setBreakpointByUrl", {"url": "/srv/app.js", "lineNumber": 0})
    request(handler, 3, "Debugger.setBreakpointsActive", {"active": False})
    thread = _run_trace(session, Engine(frames=[{}]), "/srv/app.js", 1)
    thread.join(timeout=2)
    if thread.is_alive():
        session.resume()
        thread.join(timeout=5)
    assert transport.events("Debugger.paused") == []


def test_active_breakpoint_pauses(setup):
    transport, session, handler = setup
    request(handler, 1, "Debugger.enable")
    request(handler, 2, "Debugger.setBreakpointByUrl", {"url": "/srv/app.js", "lineNumber": 0})
    thread = _run_trace(session, Engine(frames=[{}]), "/srv/app.js", 1)
    assert wait_until(session.is_paused)
    params = transport.events("Debugger.paused")[0]["params"]
    assert params["reason"] == "breakpoint"
    assert params["hitBreakpoints"] == ["1:0:0"]
    request(handler, 3, "Debugger.resume")
    thread.join(timeout=5)
    assert not thread.is_alive()
    assert session.is_paused() is False