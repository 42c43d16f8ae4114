# jsinspector

jsinspector is a debugging back end for an embedded JavaScript engine. It
speaks the Chrome DevTools Protocol (CDP). Chrome DevTools, VS Code and
other CDP clients connect to it over a WebSocket. A client can then:

- set breakpoints by plain URL, by URL regex, or with a condition;
- step over, into and out of code;
- pause on request or on the first statement;
- inspect call frames, scopes and variables;
- evaluate expressions while execution is paused.

The package uses only the Python standard library.

## Modules

- **`jsinspector.protocol_json`**
  - `dumps` writes compact JSON with object keys in sorted order.
  - `loads` is a lenient reader. It accepts truncated input and ignores anything after the first value.
  - `loads` raises `ValueError` only when no number can be read.
- **`jsinspector.paths`**
  - `normalize_url` turns backslashes into forward slashes.
  - `to_file_url` turns absolute paths, including `C:/...` paths, into `file://` URLs.
  - `strip_file_scheme`, `basename`, `extract_source_map_url`.
  - `paths_match` ignores case on Windows.
- **`jsinspector.websocket`**
  - `WebSocketServer` is a single-client WebSocket server.
  - `Opcode`, `encode_frame`, `compute_accept_key`, `get_header`, `get_request_path`.
- **`jsinspector.breakpoints`**
  - `Breakpoint` has a `matches(filename)` method.
  - `BreakpointRegistry` is thread-safe. It provides `add`, `remove`, `set_active`, `find_match` and `check`.
- **`jsinspector.remote`**
  - `ObjectStore` turns Python values into CDP `RemoteObject`s and answers `Runtime.getProperties`.
  - `UNDEFINED` is the script-level `undefined`. It is the single instance of `Undefined`.
  - `make_property` builds a property descriptor.
- **`jsinspector.session`**
  - `DebugSession` holds scripts, breakpoints, stepping and pause state.
  - `Engine` describes the interpreter.
  - `register_for_context`, `unregister_context`, `find_for_context` and `debug_trace_handler`.
  - `ScriptInfo`, `FrameInfo`, `PauseReason`, `StepMode` and `ScriptError`.
- **`jsinspector.cdp`**
  - `CDPHandler` dispatches `Debugger.*`, `Runtime.*` and `Profiler.*` requests to a `DebugSession`.
  - It writes replies and events to any object with a `send(message)` method.

## The WebSocket server

`WebSocketServer.start(port)` listens on all interfaces and raises `OSError`
if binding fails. With port `0` the system picks a free port, and `port()`
then reports the port that was chosen. The server is also a context manager:
leaving the `with` block calls `stop()`.

`wait_for_connection(target_name, target_url)` blocks until a WebSocket
client completes the handshake. While it waits, it answers these discovery
requests:

- `/json/version`
- `/json` and `/json/list`, which return one target whose `webSocketDebuggerUrl` is `ws://127.0.0.1:<port>/debug`.

Any other plain HTTP path gets a 404. If the server was not started,
`wait_for_connection` raises `RuntimeError`.

`send(message)` sends a text frame and returns `False` if there is no client.
`receive()` handles pings, pongs and close frames for you. It returns the next
text payload, or `None` once the connection is gone.

## The engine interface

`Engine(global_vars, frames, evaluator)` tells the debugger what it needs to
know about the interpreter:

- `frames` lists each active frame's local variables, outermost first.
- `evaluator(expression, scope)` evaluates an expression. `scope` holds the globals with the frame's locals on top of them.

Without an evaluator, an expression is only looked up as a variable name. An
unknown name raises `ScriptError`. You can subclass `Engine` and override
these methods:

- `stack_depth()`
- `local_variables(level)`
- `global_variables()`
- `evaluate(expression)`
- `evaluate_with_locals(expression, local_vars)`

The interpreter calls `debug_trace_handler(context, engine, filename,
funcname, line, col)` before each statement. You can also call
`DebugSession.trace(engine, filename, funcname, line, col)` directly. Line
and column are 1-based. The call returns at once unless the session is
enabled. While the session is paused, the call blocks. During that time it
serves `Debugger.evaluateOnCallFrame` requests on the calling thread.

## Example

```python
import threading

from jsinspector.cdp import CDPHandler
from jsinspector.paths import normalize_url, to_file_url
from jsinspector.session import (
    DebugSession,
    Engine,
    debug_trace_handler,
    register_for_context,
)
from jsinspector.websocket import WebSocketServer

server = WebSocketServer()
server.start(9229)

session = DebugSession()
cdp = CDPHandler(server, session)
session.send_event = cdp.send_event

path = normalize_url("/home/me/app.js")
session.add_script(path, "let x = 1;\nconsole.log(x);\n")

server.wait_for_connection(path, to_file_url(path))
session.set_pause_on_start(True)
session.set_enabled(True)


def pump():
    while True:
        message = server.receive()
        if not message:
            session.on_disconnect()
            break
        cdp.handle_message(message)


threading.Thread(target=pump, daemon=True).start()
session.wait_for_debugger()  # returns after Runtime.runIfWaitingForDebugger

context = object()
register_for_context(context, session)
engine = Engine(global_vars={"answer": 42}, frames=[{"x": 1}])
debug_trace_handler(context, engine, path, "", 1, 1)  # pauses: break on start
```

Point a client at `ws://127.0.0.1:9229/debug`. In Chrome, you can instead
add `127.0.0.1:9229` as a target in `chrome://inspect`.

## Protocol behaviour

- **Breakpoints**
  - Breakpoint ids have the form `"N:line:0"`.
  - Line numbers are 0-based on the wire and 1-based inside the session.
  - A plain `url` loses its `file://` or `file:///` prefix.
  - A `urlRegex` is matched without regard to case, against both the file URL and the raw path.
  - A conditional breakpoint pauses only when its condition is truthy. The condition is evaluated with the innermost frame's locals in scope. If it is falsy or raises an error, execution does not pause.
- **Evaluating while paused**
  - `Debugger.evaluateOnCallFrame` first looks the expression up as a local variable of the frame.
  - If no local matches, it falls back to `Engine.evaluate`.
  - Errors come back as an error `RemoteObject` with `exceptionDetails`.
  - If the session is not paused, the result is `undefined`.
- **Object previews**
  - Previews are walked one level deep, with at most 100 children per object.
  - At most 50 globals are listed.
  - Deeper levels show up as expandable objects with no children.
- **Script and isolate requests**
  - `Debugger.enable` announces every known script with `Debugger.scriptParsed`.
  - `Debugger.enable` returns the `debuggerId` `quickjs-debugger-1`.
  - `Debugger.getPossibleBreakpoints` lists every line in the requested range at column 0.
  - `Runtime.getIsolateId` returns `quickjs-isolate-1`.
- **Stubs and unknown methods**
  - `Runtime.evaluate` and `Runtime.callFunctionOn` always return `undefined`.
  - `Debugger.setPauseOnExceptions` and the `Profiler` methods return an empty result.
  - A method the handler does not know gets an empty result, not an error.
- **Replies**
  - A reply is sent only when the request carries a positive `id`.

## What it does not do

jsinspector contains no JavaScript interpreter. It also has no command that
loads and runs a script. The embedding program must do that itself:

- supply an `Engine` for its interpreter;
- call the trace hook before each statement;
- pass each received message to `CDPHandler.handle_message`.

jsinspector has no `console.log` bridge and never emits
`Runtime.consoleAPICalled`.

## Running the tests

```
pip install -e .[test]
pytest
```