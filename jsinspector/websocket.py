"""Minimal single-client WebSocket server with DevTools discovery endpoints."""

from __future__ import annotations

import base64
import enum
import hashlib
import logging
import socket
import threading

from .protocol_json import dumps

__all__ = [
    "Opcode",
    "WebSocketServer",
    "compute_accept_key",
    "get_header",
    "get_request_path",
    "encode_frame",
]

log = logging.getLogger(__name__)

_WS_GUID = "258EAFA5-E914-47DA-95CA-C5AB0DC85B11"
_MAX_REQUEST_SIZE = 8192
_HEADER_END = b"\r\n\r\n"


class Opcode(enum.IntEnum):
    """WebSocket frame opcodes."""

    CONTINUATION = 0x0
    TEXT = 0x1
    BINARY = 0x2
    CLOSE = 0x8
    PING = 0x9
    PONG = 0xA


def compute_accept_key(key: str) -> str:
    """Return the ``Sec-WebSocket-Accept`` value for a client key."""
    digest = hashlib.sha1((key + _WS_GUID).encode("latin-1")).digest()
    return base64.b64encode(digest).decode("ascii")


def get_header(request: str, name: str) -> str:
    """Return the value of header ``name`` (case-insensitive), or ``""``."""
    lower_name = name.lower() + ":"
    pos = request.lower().find(lower_name)
    if pos == -1:
        return ""
    pos += len(lower_name)
    while pos < len(request) and request[pos] == " ":
        pos += 1
    end = request.find("\r\n", pos)
    if end == -1:
        end = len(request)
    return request[pos:end]


def get_request_path(request: str) -> str:
    """Return the path of an HTTP request line, or ``"/"`` if absent."""
    start = request.find(" ")
    if start == -1:
        return "/"
    start += 1
    end = request.find(" ", start)
    if end == -1:
        return "/"
    return request[start:end]


def encode_frame(opcode: int, payload: bytes | str = b"") -> bytes:
    """Build a single unmasked, final WebSocket frame."""
    if isinstance(payload, str):
        payload = payload.encode("utf-8")
    length = len(payload)
    first = 0x80 | (int(opcode) & 0x0F)
    if length < 126:
        header = bytes([first, length])
    elif length < 65536:
        header = bytes([first, 126]) + length.to_bytes(2, "big")
    else:
        header = bytes([first, 127]) + length.to_bytes(8, "big")
    return header + payload


def _recv_exact(sock: socket.socket, size: int) -> bytes:
    chunks = bytearray()
    while len(chunks) < size:
        chunk = sock.recv(size - len(chunks))
        if not chunk:
            raise ConnectionError(f"connection closed with {size - len(chunks)} bytes outstanding")
        chunks += chunk
    return bytes(chunks)


def _read_frame(sock: socket.socket) -> tuple[int, bytes]:
    first, second = _recv_exact(sock, 2)
    opcode = first & 0x0F
    masked = bool(second & 0x80)
    length = second & 0x7F
    if length == 126:
        length = int.from_bytes(_recv_exact(sock, 2), "big")
    elif length == 127:
        length = int.from_bytes(_recv_exact(sock, 8), "big")
    mask = _recv_exact(sock, 4) if masked else b""
    payload = _recv_exact(sock, length) if length else b""
    if masked and payload:
        payload = bytes(byte ^ mask[index % 4] for index, byte in enumerate(payload))
    return opcode, payload


def _read_http_request(sock: socket.socket) -> str:
    """Read request headers byte by byte; return ``""`` on close or overflow."""
    request = bytearray()
    while len(request) < _MAX_REQUEST_SIZE:
        try:
            byte = sock.recv(1)
        except OSError:
            return ""
        if not byte:
            return ""
        request += byte
        if request.endswith(_HEADER_END):
            return request.decode("latin-1")
    return ""


def _send_http_response(sock: socket.socket, code: int, status: str,
                        content_type: str, body: str) -> bool:
    body_bytes = body.encode("utf-8")
    header = (
        f"HTTP/1.1 {code} {status}\r\n"
        f"Content-Type: {content_type}; charset=UTF-8\r\n"
        f"Content-Length: {len(body_bytes)}\r\n"
        "Connection: close\r\n"
        "\r\n"
    )
    try:
        sock.sendall(header.encode("latin-1") + body_bytes)
    except OSError:
        return False
    return True


class WebSocketServer:
    """Accepts one DevTools client at a time over a plain TCP WebSocket."""

    def __init__(self) -> None:
        self._listen_sock: socket.socket | None = None
        self._client_sock: socket.socket | None = None
        self._port = 0
        self._connected = threading.Event()
        self._send_lock = threading.Lock()
        self._target_name = ""
        self._target_url = ""

    def __enter__(self) -> WebSocketServer:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.stop()

    def start(self, port: int) -> None:
        """Listen on all interfaces at ``port``; raises OSError on failure."""
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM, socket.IPPROTO_TCP)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind(("0.0.0.0", port))
            sock.listen(1)
        except OSError:
            log.error("[WS] Bind/listen failed on port %d", port)
            sock.close()
            raise
        self._listen_sock = sock
        self._port = sock.getsockname()[1]

    def stop(self) -> None:
        """Drop the client and close the listening socket."""
        self.disconnect()
        if self._listen_sock is not None:
            self._listen_sock.close()
            self._listen_sock = None

    def disconnect(self) -> None:
        """Close the current client connection, if any."""
        self._connected.clear()
        sock, self._client_sock = self._client_sock, None
        if sock is not None:
            try:
                sock.shutdown(socket.SHUT_RDWR)
            except OSError:
                pass
            sock.close()

    def is_connected(self) -> bool:
        return self._connected.is_set()

    def port(self) -> int:
        return self._port

    def wait_for_connection(self, target_name: str, target_url: str) -> None:
        """Serve discovery requests until a WebSocket client completes a handshake.

        Raises RuntimeError if the server was not started and OSError if
        accepting a connection fails.
        """
        if self._listen_sock is None:
            raise RuntimeError("server is not listening")
        self._target_name = target_name
        self._target_url = target_url

        while True:
            sock, _ = self._listen_sock.accept()
            try:
                sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
            except OSError:
                pass

            request = _read_http_request(sock)
            if not request:
                sock.close()
                continue

            path = get_request_path(request)
            if get_header(request, "Upgrade").lower() == "websocket":
                log.debug("[WS] Upgrade request on path %r", path)
                if not self._handshake(sock, request):
                    log.warning("[WS] Handshake failed, waiting for new connection")
                    sock.close()
                    continue
                self._client_sock = sock
                self._connected.set()
                log.info("[WS] DevTools connected (path=%s)", path)
                return

            if path == "/json/version":
                body = dumps({"Browser": "QuickJS-Debug/1.0", "Protocol-Version": "1.3"})
                _send_http_response(sock, 200, "OK", "application/json", body)
            elif path in ("/json", "/json/list"):
                _send_http_response(sock, 200, "OK", "application/json", self._target_list())
            else:
                _send_http_response(sock, 404, "Not Found", "text/plain", "Not Found")
            sock.close()

    def _target_list(self) -> str:
        port = self._port
        return dumps([{
            "description": "QuickJS instance",
            "devtoolsFrontendUrl": (
                "devtools://devtools/bundled/js_app.html?experiments=true"
                f"&v8only=true&ws=127.0.0.1:{port}/debug"
            ),
            "id": "main",
            "title": self._target_name,
            "type": "node",
            "url": self._target_url,
            "webSocketDebuggerUrl": f"ws://127.0.0.1:{port}/debug",
        }])

    @staticmethod
    def _handshake(sock: socket.socket, request: str) -> bool:
        key = get_header(request, "Sec-WebSocket-Key")
        if not key:
            log.warning("[WS] Handshake failed: no Sec-WebSocket-Key")
            return False
        protocol = get_header(request, "Sec-WebSocket-Protocol")
        response = (
            "HTTP/1.1 101 Switching Protocols\r\n"
            "Upgrade: websocket\r\n"
            "Connection: Upgrade\r\n"
            f"Sec-WebSocket-Accept: {compute_accept_key(key)}\r\n"
        )
        if protocol:
            response += f"Sec-WebSocket-Protocol: {protocol}\r\n"
        response += "\r\n"
        try:
            sock.sendall(response.encode("latin-1"))
        except OSError:
            return False
        return True

    def _send_frame(self, opcode: int, payload: bytes) -> bool:
        sock = self._client_sock
        if sock is None:
            return False
        try:
            sock.sendall(encode_frame(opcode, payload))
        except OSError:
            return False
        return True

    def send(self, message: str) -> bool:
        """Send a text frame; returns False when not connected or on failure."""
        with self._send_lock:
            if not self._connected.is_set() or self._client_sock is None:
                return False
            return self._send_frame(Opcode.TEXT, message.encode("utf-8"))

    def receive(self) -> str | None:
        """Block for the next data frame; None once the connection is gone."""
        while True:
            sock = self._client_sock
            if not self._connected.is_set() or sock is None:
                return None
            try:
                opcode, payload = _read_frame(sock)
            except OSError as exc:
                log.debug("[WS] receive failed: %s", exc)
                self._connected.clear()
                return None

            if opcode == Opcode.CLOSE:
                self._connected.clear()
                with self._send_lock:
                    self._send_frame(Opcode.CLOSE, b"")
                return None
            if opcode == Opcode.PING:
                with self._send_lock:
                    self._send_frame(Opcode.PONG, payload)
                continue
            if opcode == Opcode.PONG:
                continue
            return payload.decode("utf-8", "replace")