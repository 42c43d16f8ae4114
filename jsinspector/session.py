"""Debug session state: scripts, breakpoints, stepping and pausing the engine."""

from __future__ import annotations

import enum
import logging
import re
import threading
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

from .breakpoints import Breakpoint, BreakpointRegistry
from .paths import basename, extract_source_map_url, normalize_url, paths_match, to_file_url
from .remote import ObjectStore

__all__ = [
    "ScriptInfo",
    "FrameInfo",
    "PauseReason",
    "StepMode",
    "ScriptError",
    "Engine",
    "DebugSession",
    "register_for_context",
    "unregister_context",
    "find_for_context",
    "debug_trace_handler",
]

log = logging.getLogger(__name__)

SendEvent = Callable[[str, dict[str, Any]], None]

_MAX_GLOBALS = 50
_LEADING_INT = re.compile(r"\s*([+-]?\d+)")


@dataclass
class ScriptInfo:
    """A script known to the debugger."""

    id: str
    url: str
    source: str
    source_map_url: str = ""
    end_line: int = 0


@dataclass
class FrameInfo:
    """The last known position of one stack frame."""

    filename: str = ""
    funcname: str = ""
    line: int = 0
    col: int = 0


class PauseReason(enum.Enum):
    """Why execution stopped; the value is the reason sent to the client."""

    BREAKPOINT = "breakpoint"
    STEP = "step"
    PAUSE_REQUEST = "pause"
    ENTRY = "Break on start"


class StepMode(enum.Enum):
    NONE = enum.auto()
    CONTINUE = enum.auto()
    OVER = enum.auto()
    INTO = enum.auto()
    OUT = enum.auto()
    PAUSE = enum.auto()


class ScriptError(Exception):
    """An exception thrown by script code being evaluated."""


class Engine:
    """The view of a script engine that the debugger needs.

    ``frames`` holds each active frame's local variables, outermost first.
    Expressions are handed to ``evaluator(expression, scope)`` when one is
    given; otherwise an expression is looked up as a variable name.
    """

    def __init__(self, global_vars: Mapping[str, Any] | None = None,
                 frames: list[dict[str, Any]] | None = None,
                 evaluator: Callable[[str, dict[str, Any]], Any] | None = None) -> None:
        self.globals: dict[str, Any] = dict(global_vars or {})
        self.frames: list[dict[str, Any]] = list(frames or [])
        self.evaluator = evaluator

    def stack_depth(self) -> int:
        return len(self.frames)

    def local_variables(self, level: int) -> dict[str, Any]:
        """Locals of the frame ``level`` steps out from the innermost one."""
        if 0 <= level < len(self.frames):
            return dict(self.frames[len(self.frames) - 1 - level])
        return {}

    def global_variables(self) -> dict[str, Any]:
        return dict(self.globals)

    def evaluate(self, expression: str) -> Any:
        """Evaluate ``expression`` in the global scope."""
        return self.evaluate_with_locals(expression, {})

    def evaluate_with_locals(self, expression: str, local_vars: Mapping[str, Any]) -> Any:
        """Evaluate with ``local_vars`` shadowing globals; raises ScriptError."""
        scope = {**self.globals, **local_vars}
        if self.evaluator is not None:
            return self.evaluator(expression, scope)
        name = expression.strip()
        if name in scope:
            return scope[name]
        raise ScriptError(f"ReferenceError: '{name}' is not defined")


_registry_lock = threading.Lock()
_sessions: dict[Any, DebugSession] = {}


def register_for_context(context: Any, session: DebugSession) -> None:
    """Bind ``session`` to an engine context for the trace handler."""
    with _registry_lock:
        _sessions[context] = session


def unregister_context(context: Any) -> None:
    with _registry_lock:
        _sessions.pop(context, None)


def find_for_context(context: Any) -> DebugSession | None:
    with _registry_lock:
        return _sessions.get(context)


def debug_trace_handler(context: Any, engine: Engine, filename: str, funcname: str,
                        line: int, col: int) -> None:
    """Per-statement hook: forward to the session bound to ``context``, if any."""
    session = find_for_context(context)
    if session is not None:
        session.trace(engine, filename, funcname, line, col)


@dataclass
class _EvalRequest:
    expression: str
    call_frame_id: str
    result: dict[str, Any] = field(default_factory=dict)
    done: bool = False


def _leading_int(text: str, default: int = 0) -> int:
    match = _LEADING_INT.match(text)
    return int(match.group(1)) if match else default


def _undefined_result() -> dict[str, Any]:
    return {"result": {"type": "undefined"}}


def _script_parsed_params(script: ScriptInfo) -> dict[str, Any]:
    return {
        "scriptId": script.id,
        "url": to_file_url(script.url),
        "startLine": 0,
        "startColumn": 0,
        "endLine": script.end_line,
        "endColumn": 0,
        "executionContextId": 1,
        "hash": "",
        "isLiveEdit": False,
        "sourceMapURL": script.source_map_url,
        "hasSourceURL": False,
        "isModule": False,
        "length": len(script.source),
    }


def _script_matches(script_url: str, breakpoint: Breakpoint) -> bool:
    if breakpoint.is_regex:
        try:
            pattern = re.compile(breakpoint.url, re.IGNORECASE)
        except re.error:
            pass
        else:
            if pattern.search(to_file_url(script_url)) or pattern.search(script_url):
                return True
    lower_script = script_url.lower()
    lower_bp = breakpoint.url.lower()
    if paths_match(script_url, breakpoint.url) or lower_bp in lower_script or lower_script in lower_bp:
        return True
    script_base = basename(script_url)
    return bool(script_base) and paths_match(script_base, basename(breakpoint.url))


class DebugSession:
    """Debugger state shared between the engine thread and the client thread."""

    def __init__(self, send_event: SendEvent | None = None) -> None:
        self.send_event = send_event
        self._scripts: list[ScriptInfo] = []
        self._next_script_id = 1
        self._breakpoints = BreakpointRegistry()
        self._objects = ObjectStore()

        self._cond = threading.Condition()
        self._enabled = False
        self._paused = False
        self._step_mode = StepMode.NONE
        self._pause_requested = False
        self._step_start_depth = 0
        self._step_start_file = ""
        self._step_start_line = 0
        self._frame_stack: list[FrameInfo] = []
        self._captured_frames: list[dict[str, Any]] = []

        self._pause_on_start = False
        self._waiting = False
        self._pending_eval: _EvalRequest | None = None

    def _emit(self, method: str, params: dict[str, Any]) -> None:
        if self.send_event is not None:
            self.send_event(method, params)

    # --- scripts ---

    def add_script(self, url: str, source: str) -> str:
        """Register a script and return its id; announce it when enabled."""
        script = ScriptInfo(
            id=str(self._next_script_id),
            url=normalize_url(url),
            source=source,
            source_map_url=extract_source_map_url(source),
            end_line=source.count("\n") + 1,
        )
        self._next_script_id += 1
        self._scripts.append(script)
        if self._enabled:
            self._emit("Debugger.scriptParsed", _script_parsed_params(script))
        return script.id

    def get_script_by_id(self, script_id: str) -> ScriptInfo | None:
        return next((script for script in self._scripts if script.id == script_id), None)

    def scripts(self) -> list[ScriptInfo]:
        return list(self._scripts)

    def find_script_id(self, filename: str) -> str:
        """Id of the script at ``filename`` (or with its basename), else ``"0"``."""
        norm = normalize_url(filename)
        file_base = basename(norm)
        for script in self._scripts:
            if paths_match(script.url, norm):
                return script.id
            script_base = basename(script.url)
            if script_base and paths_match(script_base, file_base):
                return script.id
        return "0"

    # --- breakpoints ---

    def set_breakpoint_by_url(self, url: str, line: int, column: int = 0,
                              is_regex: bool = False, condition: str = "") -> dict[str, Any]:
        """Add a breakpoint at 0-based ``line`` and return the CDP result."""
        breakpoint = self._breakpoints.add(url, line + 1, column, is_regex, condition)
        log.debug("[DBG] Set breakpoint #%d: url=%r line=%d (1-based) cond=%r",
                  breakpoint.id, breakpoint.url, breakpoint.line, condition)
        script_id = next(
            (script.id for script in self._scripts if _script_matches(script.url, breakpoint)),
            "0",
        )
        return {
            "breakpointId": f"{breakpoint.id}:{line}:0",
            "locations": [{"scriptId": script_id, "lineNumber": line, "columnNumber": column}],
        }

    def remove_breakpoint(self, breakpoint_id: str) -> bool:
        return self._breakpoints.remove(breakpoint_id)

    def set_breakpoints_active(self, active: bool) -> None:
        self._breakpoints.set_active(active)

    # --- execution control ---

    def _release(self, mode: StepMode) -> None:
        with self._cond:
            if mode is not StepMode.CONTINUE:
                self._step_start_depth = len(self._frame_stack)
                top = self._frame_stack[-1] if self._frame_stack else FrameInfo()
                self._step_start_line = top.line
                self._step_start_file = top.filename
            self._step_mode = mode
            self._pause_requested = False
            self._paused = False
            self._cond.notify_all()

    def resume(self) -> None:
        self._release(StepMode.CONTINUE)

    def step_over(self) -> None:
        self._release(StepMode.OVER)

    def step_into(self) -> None:
        self._release(StepMode.INTO)

    def step_out(self) -> None:
        self._release(StepMode.OUT)

    def request_pause(self) -> None:
        self._pause_requested = True

    def is_paused(self) -> bool:
        return self._paused

    def is_enabled(self) -> bool:
        return self._enabled

    def set_enabled(self, value: bool) -> None:
        self._enabled = value

    # --- waiting for the debugger ---

    def set_pause_on_start(self, value: bool) -> None:
        self._pause_on_start = value

    def wait_for_debugger(self) -> None:
        """Block until ``run_if_waiting`` when pausing on start."""
        if not self._pause_on_start:
            return
        with self._cond:
            self._waiting = True
            self._cond.wait_for(lambda: not self._waiting)

    def run_if_waiting(self) -> None:
        with self._cond:
            self._step_mode = StepMode.CONTINUE
            self._waiting = False
            self._cond.notify_all()

    def on_disconnect(self) -> None:
        """Release a paused or waiting engine when the client goes away."""
        with self._cond:
            self._pause_requested = False
            self._step_mode = StepMode.CONTINUE
            self._paused = False
            self._waiting = False
            self._cond.notify_all()

    # --- paused state ---

    def get_call_frames_json(self) -> list[dict[str, Any]]:
        return self._captured_frames

    def get_properties(self, object_id: str) -> dict[str, Any]:
        return self._objects.get_properties(object_id)

    def evaluate_on_call_frame(self, call_frame_id: str, expression: str) -> dict[str, Any]:
        """Have the paused engine thread evaluate ``expression`` and wait for it."""
        request = _EvalRequest(expression, call_frame_id)
        with self._cond:
            if not self._paused:
                return _undefined_result()
            self._pending_eval = request
            self._cond.notify_all()
            self._cond.wait_for(lambda: request.done or not self._paused)
            if self._pending_eval is request:
                self._pending_eval = None
        return request.result if request.done else _undefined_result()

    # --- engine side ---

    def _sync_frames(self, depth: int, filename: str, funcname: str, line: int, col: int) -> None:
        del self._frame_stack[depth:]
        self._frame_stack.extend(FrameInfo() for _ in range(depth - len(self._frame_stack)))
        if self._frame_stack:
            top = self._frame_stack[-1]
            top.filename = filename or ""
            top.funcname = funcname or ""
            top.line = line
            top.col = col

    def _capture_frames(self, engine: Engine, filename: str, funcname: str,
                        line: int, col: int) -> None:
        self._sync_frames(engine.stack_depth(), filename, funcname, line, col)
        self._objects.clear()
        frames = []
        for level, info in enumerate(reversed(self._frame_stack)):
            name = info.funcname or "(anonymous)"
            scope_chain = []
            local_vars = engine.local_variables(level)
            if local_vars:
                props = [
                    _property(key, self._objects.to_remote_object(value, "scope"))
                    for key, value in local_vars.items()
                ]
                scope_chain.append({
                    "type": "local",
                    "object": {"type": "object", "className": "Object",
                               "objectId": self._objects.store("scope", props)},
                    "name": name,
                })
            global_items = [(key, value) for key, value in engine.global_variables().items()
                            if isinstance(key, str)][:_MAX_GLOBALS]
            global_props = [
                _property(key, self._objects.to_remote_object(value, "global"))
                for key, value in global_items
            ]
            scope_chain.append({
                "type": "global",
                "object": {"type": "object", "className": "Object",
                           "objectId": self._objects.store("global", global_props)},
            })
            frames.append({
                "callFrameId": str(level),
                "functionName": name,
                "location": {
                    "scriptId": self.find_script_id(info.filename),
                    "lineNumber": info.line - 1 if info.line > 0 else 0,
                    "columnNumber": info.col - 1 if info.col > 0 else 0,
                },
                "url": to_file_url(info.filename),
                "scopeChain": scope_chain,
                "this": {"type": "object", "className": "global"},
            })
        self._captured_frames = frames

    def _evaluate_request(self, engine: Engine, request: _EvalRequest) -> dict[str, Any]:
        local_vars = engine.local_variables(_leading_int(request.call_frame_id))
        if request.expression in local_vars:
            value = local_vars[request.expression]
            return {"result": self._objects.to_remote_object(value, "watch")}
        try:
            value = engine.evaluate(request.expression)
        except Exception as exc:  # noqa: BLE001 - script errors are reported, not raised
            return {
                "result": {
                    "type": "object",
                    "subtype": "error",
                    "className": "Error",
                    "description": str(exc) or "Error",
                },
                "exceptionDetails": {},
            }
        return {"result": self._objects.to_remote_object(value, "console")}

    def _do_pause(self, engine: Engine, filename: str, funcname: str, line: int, col: int,
                  reason: PauseReason, breakpoint_id: int = 0) -> None:
        self._capture_frames(engine, filename, funcname, line, col)
        with self._cond:
            self._paused = True
        hit = [f"{breakpoint_id}:{line - 1}:0"] if (
            reason is PauseReason.BREAKPOINT and breakpoint_id > 0) else []
        self._emit("Debugger.paused", {
            "callFrames": self._captured_frames,
            "reason": reason.value,
            "hitBreakpoints": hit,
        })
        with self._cond:
            while self._paused:
                self._cond.wait_for(lambda: not self._paused or self._pending_eval is not None)
                request = self._pending_eval
                if self._paused and request is not None:
                    request.result = self._evaluate_request(engine, request)
                    request.done = True
                    self._pending_eval = None
                    self._cond.notify_all()
        self._emit("Debugger.resumed", {})

    @staticmethod
    def _evaluate_condition(engine: Engine, expression: str) -> bool:
        if not expression:
            return True
        try:
            return bool(engine.evaluate_with_locals(expression, engine.local_variables(0)))
        except Exception:  # noqa: BLE001 - a throwing condition means "do not break"
            return False

    def trace(self, engine: Engine, filename: str, funcname: str, line: int, col: int) -> None:
        """Called before each statement; blocks while execution is paused."""
        if not self._enabled or not filename or line <= 0:
            return
        log.debug("[DBG] Trace: %s:%d in %s", filename, line, funcname or "(anonymous)")

        depth = engine.stack_depth()
        self._sync_frames(depth, filename, funcname, line, col)
        mode = self._step_mode

        if self._pause_requested:
            self._pause_requested = False
            self._step_mode = StepMode.NONE
            self._do_pause(engine, filename, funcname, line, col, PauseReason.PAUSE_REQUEST)
            return

        if self._pause_on_start:
            self._pause_on_start = False
            self._step_mode = StepMode.NONE
            self._do_pause(engine, filename, funcname, line, col, PauseReason.ENTRY)
            return

        breakpoint = self._breakpoints.find_match(filename, line)
        if breakpoint is not None:
            if breakpoint.condition and not self._evaluate_condition(engine, breakpoint.condition):
                return
            self._step_mode = StepMode.NONE
            self._do_pause(engine, filename, funcname, line, col,
                           PauseReason.BREAKPOINT, breakpoint.id)
            return

        moved = line != self._step_start_line or self._step_start_file != filename
        if (
            (mode is StepMode.INTO and moved)
            or (mode is StepMode.OVER and depth <= self._step_start_depth and moved)
            or (mode is StepMode.OUT and depth < self._step_start_depth)
        ):
            self._step_mode = StepMode.NONE
            self._do_pause(engine, filename, funcname, line, col, PauseReason.STEP)


def _property(name: str, remote_object: dict[str, Any]) -> dict[str, Any]:
    return {
        "name": name,
        "value": remote_object,
        "writable": True,
        "configurable": True,
        "enumerable": True,
        "isOwn": True,
    }