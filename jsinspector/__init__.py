"""Chrome DevTools Protocol debugging back end for embedded JavaScript engines.

Submodules: protocol_json, paths, websocket, breakpoints, remote, session, cdp.
"""

__version__ = "0.1.0"

__all__ = ["breakpoints", "cdp", "paths", "protocol_json", "remote", "session", "websocket"]