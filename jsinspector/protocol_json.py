"""Lenient JSON reader and compact writer for DevTools protocol messages.

The writer emits object keys in sorted order, prints integral numbers
without a fractional part, and escapes only quotes, backslashes and
control characters.

The reader accepts truncated input: unterminated strings, objects and
arrays end at the end of the text, and anything after the first value
is ignored. It raises ValueError only where no number can be read.
"""

from __future__ import annotations

import math
import re
from typing import Any

__all__ = ["dumps", "loads"]

_INT_LIMIT = 1e15

_SIMPLE_ESCAPES = {
    '"': '\\"',
    "\\": "\\\\",
    "\b": "\\b",
    "\f": "\\f",
    "\n": "\\n",
    "\r": "\\r",
    "\t": "\\t",
}

_READ_ESCAPES = {
    '"': '"',
    "\\": "\\",
    "/": "/",
    "b": "\b",
    "f": "\f",
    "n": "\n",
    "r": "\r",
    "t": "\t",
}

_WHITESPACE = " \t\n\r"
_NUMBER_SPAN = re.compile(r"-?[0-9]*(?:\.[0-9]*)?(?:[eE][+-]?[0-9]*)?")
_NUMBER_PREFIX = re.compile(r"-?(?:[0-9]+\.?[0-9]*|\.[0-9]+)(?:[eE][+-]?[0-9]+)?")
_HEX_PREFIX = re.compile(r"[0-9a-fA-F]+")


def dumps(value: Any) -> str:
    """Serialise a JSON-compatible Python value to compact text."""
    parts: list[str] = []
    _write(value, parts)
    return "".join(parts)


def _write(value: Any, out: list[str]) -> None:
    if value is None:
        out.append("null")
    elif isinstance(value, bool):
        out.append("true" if value else "false")
    elif isinstance(value, (int, float)):
        out.append(_format_number(value))
    elif isinstance(value, str):
        out.append(_quote(value))
    elif isinstance(value, (list, tuple)):
        out.append("[")
        for index, item in enumerate(value):
            if index:
                out.append(",")
            _write(item, out)
        out.append("]")
    elif isinstance(value, dict):
        out.append("{")
        for index, key in enumerate(sorted(value)):
            if not isinstance(key, str):
                raise TypeError(f"object keys must be strings, not {type(key).__name__}")
            if index:
                out.append(",")
            out.append(_quote(key))
            out.append(":")
            _write(value[key], out)
        out.append("}")
    else:
        raise TypeError(f"cannot serialise {type(value).__name__} as JSON")


def _format_number(number: int | float) -> str:
    if isinstance(number, int) and -_INT_LIMIT <= number <= _INT_LIMIT:
        return str(number)
    as_float = float(number)
    if math.isfinite(as_float) and as_float.is_integer() and -_INT_LIMIT <= as_float <= _INT_LIMIT:
        return str(int(as_float))
    return f"{as_float:.17g}"


def _quote(text: str) -> str:
    pieces = ['"']
    for char in text:
        escaped = _SIMPLE_ESCAPES.get(char)
        if escaped is not None:
            pieces.append(escaped)
        elif ord(char) < 0x20:
            pieces.append(f"\\u{ord(char):04x}")
        else:
            pieces.append(char)
    pieces.append('"')
    return "".join(pieces)


def loads(text: str) -> Any:
    """Parse the first JSON value in ``text``; empty input gives None."""
    value, _ = _Reader(text).read_value(0)
    return value


class _Reader:
    def __init__(self, text: str) -> None:
        self.text = text

    def skip_ws(self, pos: int) -> int:
        text = self.text
        while pos < len(text) and text[pos] in _WHITESPACE:
            pos += 1
        return pos

    def read_value(self, pos: int) -> tuple[Any, int]:
        pos = self.skip_ws(pos)
        if pos >= len(self.text):
            return None, pos
        char = self.text[pos]
        if char == '"':
            return self.read_string(pos)
        if char == "{":
            return self.read_object(pos)
        if char == "[":
            return self.read_array(pos)
        if char in "tf":
            return self.read_bool(pos)
        if char == "n":
            return self.read_null(pos)
        return self.read_number(pos)

    def read_string(self, pos: int) -> tuple[str, int]:
        text = self.text
        size = len(text)
        pos += 1
        chars: list[str] = []
        while pos < size and text[pos] != '"':
            char = text[pos]
            if char == "\\":
                pos += 1
                if pos >= size:
                    break
                code = text[pos]
                if code in _READ_ESCAPES:
                    chars.append(_READ_ESCAPES[code])
                elif code == "u":
                    if pos + 4 < size:
                        chars.append(chr(self._hex_quad(pos + 1)))
                        pos += 4
                else:
                    chars.append(code)
            else:
                chars.append(char)
            pos += 1
        if pos < size:
            pos += 1
        return _join_surrogates("".join(chars)), pos

    def _hex_quad(self, pos: int) -> int:
        quad = self.text[pos:pos + 4]
        match = _HEX_PREFIX.match(quad.lstrip())
        if match is None:
            raise ValueError(f"invalid \\u escape {quad!r} at offset {pos}")
        return int(match.group(), 16)

    def read_number(self, pos: int) -> tuple[int | float, int]:
        span = _NUMBER_SPAN.match(self.text, pos)
        end = span.end() if span else pos
        literal = self.text[pos:end]
        prefix = _NUMBER_PREFIX.match(literal)
        if prefix is None:
            raise ValueError(f"expected a JSON value at offset {pos}")
        digits = prefix.group()
        if not any(mark in digits for mark in ".eE"):
            return int(digits), end
        number = float(digits)
        if math.isinf(number):
            raise ValueError(f"number out of range at offset {pos}")
        return number, end

    def read_bool(self, pos: int) -> tuple[bool | None, int]:
        if self.text.startswith("true", pos):
            return True, pos + 4
        if self.text.startswith("false", pos):
            return False, pos + 5
        return None, pos

    def read_null(self, pos: int) -> tuple[None, int]:
        if self.text.startswith("null", pos):
            pos += 4
        return None, pos

    def read_object(self, pos: int) -> tuple[dict[str, Any], int]:
        text = self.text
        size = len(text)
        result: dict[str, Any] = {}
        pos = self.skip_ws(pos + 1)
        if pos < size and text[pos] == "}":
            return result, pos + 1
        while pos < size:
            pos = self.skip_ws(pos)
            if pos >= size or text[pos] != '"':
                break
            key, pos = self.read_string(pos)
            pos = self.skip_ws(pos)
            if pos < size and text[pos] == ":":
                pos += 1
            value, pos = self.read_value(pos)
            result[key] = value
            pos = self.skip_ws(pos)
            if pos < size and text[pos] == ",":
                pos += 1
            else:
                break
        pos = self.skip_ws(pos)
        if pos < size and text[pos] == "}":
            pos += 1
        return result, pos

    def read_array(self, pos: int) -> tuple[list[Any], int]:
        text = self.text
        size = len(text)
        result: list[Any] = []
        pos = self.skip_ws(pos + 1)
        if pos < size and text[pos] == "]":
            return result, pos + 1
        while pos < size:
            value, pos = self.read_value(pos)
            result.append(value)
            pos = self.skip_ws(pos)
            if pos < size and text[pos] == ",":
                pos += 1
            else:
                break
        pos = self.skip_ws(pos)
        if pos < size and text[pos] == "]":
            pos += 1
        return result, pos


def _join_surrogates(text: str) -> str:
    if not any(0xD800 <= ord(char) <= 0xDFFF for char in text):
        return text
    return text.encode("utf-16", "surrogatepass").decode("utf-16", "surrogatepass")