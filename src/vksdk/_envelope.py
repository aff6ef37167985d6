"""
Request and response envelopes.

VkParameters is the ordered mapping of method parameters sent as the form
body of a call. VkResponse wraps the parsed answer: the `response` member
for regular calls, the whole document for long-poll calls.
"""

from __future__ import annotations

import json
from collections.abc import Iterable, Mapping
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from vksdk._converters import ConverterSet


def to_param_value(value: Any) -> str:
    """
    Render a Python value the way the provider expects it in a form field.

    Booleans become "1"/"0", enums their value, datetimes Unix seconds and
    iterables a comma-separated list.
    """
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, Enum):
        return str(value.value)
    if isinstance(value, datetime):
        return str(int(value.timestamp()))
    if isinstance(value, str):
        return value
    if isinstance(value, Iterable):
        return ",".join(to_param_value(item) for item in value)
    return str(value)


class VkParameters(dict[str, str]):
    """
    Ordered method parameters, stored as strings.

    Values are converted with `to_param_value()` on insertion; None values
    are skipped so optional arguments can be passed straight through.

    Example:
        >>> params = VkParameters({"user_ids": [1, 2], "extended": True, "fields": None})
        >>> dict(params)
        {'user_ids': '1,2', 'extended': '1'}
    """

    def __init__(self, values: Mapping[str, Any] | None = None, **kwargs: Any):
        super().__init__()
        self.update(values or {}, **kwargs)

    def __setitem__(self, key: str, value: Any) -> None:
        if value is None:
            return
        super().__setitem__(key, to_param_value(value))

    def update(self, values: Mapping[str, Any] | Iterable[tuple[str, Any]] = (), **kwargs: Any) -> None:  # type: ignore[override]
        items = values.items() if isinstance(values, Mapping) else values
        for key, value in items:
            self[key] = value
        for key, value in kwargs.items():
            self[key] = value

    def add(self, key: str, value: Any) -> VkParameters:
        """Set a parameter and return self, for chaining."""
        self[key] = value
        return self

    def add_if_absent(self, key: str, value: Any) -> bool:
        """Set a parameter only when the key is not present yet. Returns whether it was set."""
        if key in self or value is None:
            return False
        self[key] = value
        return True

    def copy(self) -> VkParameters:
        return VkParameters(self)


class VkResponse:
    """
    Immutable wrapper around one node of an API answer.

    Attributes:
        raw_json: The full JSON text the node was parsed from.

    Example:
        >>> response = api.call("users.get", VkParameters({"user_ids": 1}))
        >>> response[0]["first_name"].value
        'Pavel'
        >>> users = response.to_model(list[User])
    """

    __slots__ = ("_node", "_raw_json")

    def __init__(self, node: Any, raw_json: str = ""):
        self._node = node
        self._raw_json = raw_json

    @classmethod
    def from_json(cls, raw_json: str, root: bool = False) -> VkResponse:
        """
        Parse an answer.

        Args:
            raw_json: JSON text of the answer.
            root: Wrap the whole document instead of its `response` member.
        """
        document = json.loads(raw_json)
        node = document if root else (document.get("response") if isinstance(document, dict) else None)
        return cls(node, raw_json)

    @property
    def value(self) -> Any:
        return self._node

    @property
    def raw_json(self) -> str:
        return self._raw_json

    @property
    def has_value(self) -> bool:
        return self._node is not None

    def get(self, key: str, default: Any = None) -> Any:
        if isinstance(self._node, dict):
            return self._node.get(key, default)
        return default

    def __getitem__(self, key: str | int) -> VkResponse:
        if isinstance(self._node, dict) and isinstance(key, str):
            return VkResponse(self._node.get(key), self._raw_json)
        if isinstance(self._node, list) and isinstance(key, int):
            return VkResponse(self._node[key] if -len(self._node) <= key < len(self._node) else None, self._raw_json)
        raise KeyError(key)

    def __contains__(self, key: object) -> bool:
        return isinstance(self._node, dict) and key in self._node

    def to_model(self, model_type: Any, converters: ConverterSet | None = None) -> Any:
        """
        Map this node onto `model_type` with the given (or default) converters.

        Raises:
            DeserializationError: If the node does not fit the model.
        """
        from vksdk._converters import map_node

        return map_node(self._node, model_type, converters)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, VkResponse):
            return self._node == other._node
        return NotImplemented

    def __hash__(self) -> int:
        return hash(json.dumps(self._node, sort_keys=True, default=str))

    def __str__(self) -> str:
        return json.dumps(self._node, ensure_ascii=False)

    def __repr__(self) -> str:
        return f"VkResponse({self._node!r})"
