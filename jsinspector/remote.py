"""Conversion of script values into DevTools RemoteObject descriptions."""

from __future__ import annotations

import threading
from collections.abc import Mapping
from typing import Any

__all__ = ["Undefined", "UNDEFINED", "ObjectStore", "make_property", "MAX_REMOTE_OBJECT_DEPTH"]

MAX_REMOTE_OBJECT_DEPTH = 1
_MAX_CHILDREN = 100
_INT32_MIN = -(2 ** 31)
_INT32_MAX = 2 ** 31 - 1


class Undefined:
    """The script-level ``undefined`` value; there is only one instance."""

    _instance: Undefined | None = None

    def __new__(cls) -> Undefined:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "undefined"

    def __bool__(self) -> bool:
        return False


UNDEFINED = Undefined()


def make_property(name: str, remote_object: dict[str, Any], writable: bool = True,
                  configurable: bool = True, enumerable: bool = True) -> dict[str, Any]:
    """Build an own PropertyDescriptor for ``Runtime.getProperties``."""
    return {
        "name": name,
        "value": remote_object,
        "writable": writable,
        "configurable": configurable,
        "enumerable": enumerable,
        "isOwn": True,
    }


class ObjectStore:
    """Keeps property lists of objects shown to the client, keyed by object id."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._objects: dict[str, list[dict[str, Any]]] = {}
        self._next_id = 1

    def clear(self) -> None:
        """Forget all stored objects and restart ordinals at 1."""
        with self._lock:
            self._objects.clear()
            self._next_id = 1

    def store(self, group: str, props: list[dict[str, Any]]) -> str:
        """Store ``props`` and return the new object id."""
        with self._lock:
            object_id = f'{{"ordinal":{self._next_id},"injectedScriptId":1}}'
            self._next_id += 1
            self._objects[object_id] = props
            return object_id

    def get_properties(self, object_id: str) -> dict[str, Any]:
        """Return the ``Runtime.getProperties`` result for ``object_id``."""
        with self._lock:
            props = self._objects.get(object_id)
        return {"result": props if props is not None else []}

    def to_remote_object(self, value: Any, group: str = "", depth: int = 0) -> dict[str, Any]:
        """Describe ``value`` as a RemoteObject, storing children of containers.

        Children are walked only while ``depth`` is below the depth limit,
        and at most 100 of them per container.
        """
        if isinstance(value, Undefined):
            return {"type": "undefined"}
        if value is None:
            return {"type": "object", "subtype": "null", "value": None}
        if isinstance(value, bool):
            return {"type": "boolean", "value": value, "description": "true" if value else "false"}
        if isinstance(value, int) and _INT32_MIN <= value <= _INT32_MAX:
            return {"type": "number", "value": value, "description": str(value)}
        if isinstance(value, (int, float)):
            number = float(value)
            return {"type": "number", "value": number, "description": f"{number:.17g}"}
        if isinstance(value, str):
            return {"type": "string", "value": value, "description": f'"{value}"'}
        if isinstance(value, (list, tuple)):
            return self._array(value, group, depth)
        if isinstance(value, Mapping):
            return self._object(value, group, depth)
        if callable(value):
            return {
                "type": "function",
                "className": "Function",
                "description": "function()",
                "objectId": self.store(group, []),
            }
        return {"type": "undefined"}

    def _array(self, items: list[Any] | tuple[Any, ...], group: str, depth: int) -> dict[str, Any]:
        length = len(items)
        props: list[dict[str, Any]] = []
        if depth < MAX_REMOTE_OBJECT_DEPTH:
            props = [
                make_property(str(index), self.to_remote_object(item, group, depth + 1))
                for index, item in enumerate(items[:_MAX_CHILDREN])
            ]
        length_object = {"type": "number", "value": length, "description": str(length)}
        props.append(make_property("length", length_object, configurable=False, enumerable=False))
        return {
            "type": "object",
            "subtype": "array",
            "className": "Array",
            "description": f"Array({length})",
            "objectId": self.store(group, props),
        }

    def _object(self, mapping: Mapping[Any, Any], group: str, depth: int) -> dict[str, Any]:
        props: list[dict[str, Any]] = []
        if depth < MAX_REMOTE_OBJECT_DEPTH:
            names = [key for key in mapping if isinstance(key, str)][:_MAX_CHILDREN]
            props = [
                make_property(name, self.to_remote_object(mapping[name], group, depth + 1))
                for name in names
            ]
        return {
            "type": "object",
            "className": "Object",
            "description": "Object",
            "objectId": self.store(group, props),
        }