"""DevTools protocol dispatcher for the Debugger, Runtime and Profiler domains."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any, Protocol

from .paths import strip_file_scheme
from .protocol_json import dumps, loads
from .session import DebugSession, _script_parsed_params

__all__ = ["CDPHandler", "Transport"]

log = logging.getLogger(__name__)

Params = dict[str, Any]
Result = dict[str, Any]


class Transport(Protocol):
    """Anything that can deliver a text message to the client."""

    def send(self, message: str) -> Any: ...


def _int(params: Params, key: str, default: int = 0) -> int:
    if key not in params:
        return default
    value = params[key]
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0
    return int(value)


def _str(params: Params, key: str, default: str = "") -> str:
    if key not in params:
        return default
    value = params[key]
    return value if isinstance(value, str) else ""


def _bool(params: Params, key: str, default: bool) -> bool:
    if key not in params:
        return default
    value = params[key]
    return value if isinstance(value, bool) else False


def _obj(params: Params, key: str) -> Params:
    value = params.get(key)
    return value if isinstance(value, dict) else {}


def _undefined() -> Result:
    return {"result": {"type": "undefined"}}


class CDPHandler:
    """Parses client requests, drives the session and writes replies and events."""

    def __init__(self, transport: Transport, session: DebugSession) -> None:
        self.transport = transport
        self.session = session
        self.runtime_enabled = False
        self.debugger_enabled = False
        self._handlers: dict[str, Callable[[Params], Result]] = {
            "Debugger.enable": self._debugger_enable,
            "Debugger.disable": self._debugger_disable,
            "Debugger.setBreakpointByUrl": self._debugger_set_breakpoint_by_url,
            "Debugger.removeBreakpoint": self._debugger_remove_breakpoint,
            "Debugger.resume": self._simple(session.resume),
            "Debugger.stepOver": self._simple(session.step_over),
            "Debugger.stepInto": self._simple(session.step_into),
            "Debugger.stepOut": self._simple(session.step_out),
            "Debugger.pause": self._simple(session.request_pause),
            "Debugger.getScriptSource": self._debugger_get_script_source,
            "Debugger.setBreakpointsActive": self._debugger_set_breakpoints_active,
            "Debugger.getPossibleBreakpoints": self._debugger_get_possible_breakpoints,
            "Debugger.evaluateOnCallFrame": self._debugger_evaluate_on_call_frame,
            "Debugger.setPauseOnExceptions": lambda params: {},
            "Runtime.enable": self._runtime_enable,
            "Runtime.disable": self._runtime_disable,
            "Runtime.getProperties": self._runtime_get_properties,
            "Runtime.runIfWaitingForDebugger": self._simple(session.run_if_waiting),
            "Runtime.evaluate": lambda params: _undefined(),
            "Runtime.callFunctionOn": lambda params: _undefined(),
            "Runtime.releaseObjectGroup": lambda params: {},
            "Runtime.getIsolateId": lambda params: {"id": "quickjs-isolate-1"},
            "Profiler.enable": lambda params: {},
            "Profiler.disable": lambda params: {},
        }

    @staticmethod
    def _simple(action: Callable[[], Any]) -> Callable[[Params], Result]:
        def handler(params: Params) -> Result:
            action()
            return {}
        return handler

    # --- outgoing ---

    def _send_response(self, message_id: int, result: Result) -> None:
        self.transport.send(dumps({"id": message_id, "result": result}))

    def _send_error(self, message_id: int, code: int, message: str) -> None:
        self.transport.send(dumps({"id": message_id, "error": {"code": code, "message": message}}))

    def send_event(self, method: str, params: Params) -> None:
        """Send a protocol event to the client."""
        self.transport.send(dumps({"method": method, "params": params}))

    # --- incoming ---

    def handle_message(self, message: str) -> None:
        """Handle one request; replies only when it carries a positive id."""
        request = loads(message)
        if not isinstance(request, dict):
            return
        message_id = _int(request, "id")
        method = _str(request, "method")
        params = _obj(request, "params")
        log.debug("[CDP] <- %s (id=%d)", method, message_id)

        handler = self._handlers.get(method)
        if handler is None:
            log.info("[CDP] Unhandled method: %s", method)
            result: Result = {}
        else:
            result = handler(params)

        if message_id > 0:
            self._send_response(message_id, result)

    # --- Debugger domain ---

    def _debugger_enable(self, params: Params) -> Result:
        self.debugger_enabled = True
        self.session.set_enabled(True)
        for script in self.session.scripts():
            self.send_event("Debugger.scriptParsed", _script_parsed_params(script))
        return {"debuggerId": "quickjs-debugger-1"}

    def _debugger_disable(self, params: Params) -> Result:
        self.debugger_enabled = False
        self.session.set_enabled(False)
        return {}

    def _debugger_set_breakpoint_by_url(self, params: Params) -> Result:
        line = _int(params, "lineNumber")
        column = _int(params, "columnNumber")
        is_regex = False
        url = ""
        if "url" in params:
            url = _str(params, "url")
        elif "urlRegex" in params:
            url = _str(params, "urlRegex")
            is_regex = True
        if not is_regex:
            url = strip_file_scheme(url)
        condition = _str(params, "condition")
        log.debug("[CDP] setBreakpointByUrl: %s=%r line=%d cond=%r",
                  "regex" if is_regex else "url", url, line, condition)
        return self.session.set_breakpoint_by_url(url, line, column, is_regex, condition)

    def _debugger_remove_breakpoint(self, params: Params) -> Result:
        self.session.remove_breakpoint(_str(params, "breakpointId"))
        return {}

    def _debugger_get_script_source(self, params: Params) -> Result:
        script = self.session.get_script_by_id(_str(params, "scriptId"))
        return {"scriptSource": script.source if script is not None else ""}

    def _debugger_set_breakpoints_active(self, params: Params) -> Result:
        self.session.set_breakpoints_active(_bool(params, "active", True))
        return {}

    def _debugger_get_possible_breakpoints(self, params: Params) -> Result:
        locations: list[Params] = []
        if "start" in params:
            start = _obj(params, "start")
            script_id = _str(start, "scriptId")
            start_line = _int(start, "lineNumber")
            end_line = start_line + 1
            if "end" in params:
                end_line = _int(_obj(params, "end"), "lineNumber")
            locations = [
                {"scriptId": script_id, "lineNumber": number, "columnNumber": 0}
                for number in range(start_line, end_line + 1)
            ]
        return {"locations": locations}

    def _debugger_evaluate_on_call_frame(self, params: Params) -> Result:
        call_frame_id = _str(params, "callFrameId", "0")
        expression = _str(params, "expression")
        return self.session.evaluate_on_call_frame(call_frame_id, expression)

    # --- Runtime domain ---

    def _runtime_enable(self, params: Params) -> Result:
        self.runtime_enabled = True
        self.send_event("Runtime.executionContextCreated", {
            "context": {
                "id": 1,
                "origin": "",
                "name": "QuickJS",
                "auxData": {"isDefault": True},
            },
        })
        return {}

    def _runtime_disable(self, params: Params) -> Result:
        self.runtime_enabled = False
        return {}

    def _runtime_get_properties(self, params: Params) -> Result:
        return self.session.get_properties(_str(params, "objectId"))