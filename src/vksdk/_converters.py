"""
JSON to model mapping.

`map_node()` maps a parsed JSON node onto a target type; `deserialize()` decodes
JSON text first. The provider's
quirks are handled by an ordered set of converters, tried first to last:

    1. CollectionConverter     `{"count", "items"}` pages and bare arrays
    2. DefaultValueConverter   null (or `[]` for objects) becomes the type's default
    3. UnixDateTimeConverter   Unix-epoch seconds become aware datetimes
    4. AttachmentConverter     `{"type": t, t: {...}}` becomes the registered subclass
    5. StringEnumConverter     enums by name (case-insensitive) or by value

The set is built once per client and passed explicitly; there is no global
registry to mutate.

Example:
    >>> from vksdk._converters import deserialize, default_converters
    >>> deserialize('{"count": 2, "items": [1, 2]}', VkCollection[int])
    VkCollection(count=2, items=[1, 2])
"""

from __future__ import annotations

import dataclasses
import json
import logging
import types
from abc import ABC, abstractmethod
from collections.abc import Sequence
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Union, get_args, get_origin, get_type_hints, override

from vksdk._errors import DeserializationError
from vksdk._models import Attachment, UnknownAttachment, VkCollection

logger = logging.getLogger(__name__)

_NONE_TYPE = type(None)


def _is_optional(target: Any) -> bool:
    origin = get_origin(target)
    return origin in (Union, types.UnionType) and _NONE_TYPE in get_args(target)


def _strip_optional(target: Any) -> Any:
    args = [arg for arg in get_args(target) if arg is not _NONE_TYPE]
    return args[0] if len(args) == 1 else Union[tuple(args)]  # noqa: UP007


def _is_dataclass_type(target: Any) -> bool:
    return isinstance(target, type) and dataclasses.is_dataclass(target)


def default_for(target: Any) -> Any:
    """Return the value a missing or null member of type `target` maps to."""
    origin = get_origin(target) or target
    if origin in (list, Sequence):
        return []
    if origin is dict:
        return {}
    if origin is VkCollection:
        return VkCollection()
    if target in (int, float, str, bool):
        return target()
    return None


# =============================================================================
# Converters
# =============================================================================


class JsonConverter(ABC):
    """
    A single mapping rule.

    Converters are asked in order; the first whose `can_convert()` returns
    True maps the value. Nested values go back through the mapper so the
    whole set applies at every depth.
    """

    @abstractmethod
    def can_convert(self, value: Any, target: Any) -> bool:
        pass

    @abstractmethod
    def convert(self, value: Any, target: Any, mapper: ModelMapper) -> Any:
        pass


class CollectionConverter(JsonConverter):
    """Normalizes `{"count": n, "items": [...]}` pages and bare arrays into lists and VkCollections."""

    @override
    def can_convert(self, value: Any, target: Any) -> bool:
        origin = get_origin(target) or target
        if origin is VkCollection:
            return isinstance(value, (dict, list))
        if origin is list:
            return isinstance(value, list) or (isinstance(value, dict) and "items" in value)
        return False

    @override
    def convert(self, value: Any, target: Any, mapper: ModelMapper) -> Any:
        args = get_args(target)
        item_type = args[0] if args else Any

        if isinstance(value, dict):
            raw_items = value.get("items") or []
            count = value.get("count", len(raw_items))
        else:
            raw_items = value
            count = len(value)

        items = [mapper.convert(item, item_type) for item in raw_items]
        if (get_origin(target) or target) is VkCollection:
            return VkCollection(count=int(count), items=items)
        return items


class DefaultValueConverter(JsonConverter):
    """
    Maps null to the target type's default.

    The provider sends an empty array where an empty object is meant; that
    also maps to the default for non-list targets.
    """

    @override
    def can_convert(self, value: Any, target: Any) -> bool:
        if value is None:
            return True
        origin = get_origin(target) or target
        return value == [] and origin is not list

    @override
    def convert(self, value: Any, target: Any, mapper: ModelMapper) -> Any:
        return default_for(target)


class UnixDateTimeConverter(JsonConverter):
    """Maps Unix-epoch seconds (number or numeric string) to a UTC datetime."""

    @override
    def can_convert(self, value: Any, target: Any) -> bool:
        return target is datetime

    @override
    def convert(self, value: Any, target: Any, mapper: ModelMapper) -> Any:
        if isinstance(value, bool):
            raise DeserializationError(f"Cannot read a date from {value!r}", payload=value, model_type=target)
        if isinstance(value, (int, float)):
            return datetime.fromtimestamp(value, tz=UTC)
        if isinstance(value, str):
            if value.lstrip("-").isdigit():
                return datetime.fromtimestamp(int(value), tz=UTC)
            return datetime.fromisoformat(value)
        raise DeserializationError(f"Cannot read a date from {value!r}", payload=value, model_type=target)


class AttachmentConverter(JsonConverter):
    """Resolves `{"type": "video", "video": {...}}` into the Attachment subclass registered for the type."""

    @override
    def can_convert(self, value: Any, target: Any) -> bool:
        return (
            isinstance(target, type)
            and issubclass(target, Attachment)
            and isinstance(value, dict)
            and isinstance(value.get("type"), str)
            and value["type"] in value
        )

    @override
    def convert(self, value: Any, target: Any, mapper: ModelMapper) -> Any:
        alias = value["type"]
        attachment_class = Attachment.resolve(alias)
        if attachment_class is None:
            logger.debug(f"No model registered for attachment type '{alias}'")
            return UnknownAttachment(type=alias, raw=value[alias])
        if not issubclass(attachment_class, target):
            raise DeserializationError(
                f"Attachment of type '{alias}' is not a {target.__name__}",
                payload=value, model_type=target,
            )
        return mapper.map_dataclass(value[alias], attachment_class)


class StringEnumConverter(JsonConverter):
    """Maps enum members by name (case-insensitive), falling back to their value."""

    @override
    def can_convert(self, value: Any, target: Any) -> bool:
        return isinstance(target, type) and issubclass(target, Enum)

    @override
    def convert(self, value: Any, target: Any, mapper: ModelMapper) -> Any:
        if isinstance(value, str):
            for member in target:
                if member.name.lower() == value.lower():
                    return member
        try:
            return target(value)
        except ValueError as e:
            raise DeserializationError(
                f"{value!r} is not a valid {target.__name__}",
                payload=value, model_type=target, cause=e,
            ) from e


class ConverterSet:
    """
    Immutable, ordered list of converters.

    Example:
        >>> converters = default_converters().with_converter(MyConverter(), first=True)
    """

    def __init__(self, converters: Sequence[JsonConverter]):
        self._converters: tuple[JsonConverter, ...] = tuple(converters)

    @staticmethod
    def of(*converters: JsonConverter) -> ConverterSet:
        return ConverterSet(converters)

    def with_converter(self, converter: JsonConverter, first: bool = False) -> ConverterSet:
        """Return a new set with `converter` added at the front or the back."""
        if first:
            return ConverterSet((converter, *self._converters))
        return ConverterSet((*self._converters, converter))

    def find(self, value: Any, target: Any) -> JsonConverter | None:
        for converter in self._converters:
            if converter.can_convert(value, target):
                return converter
        return None

    def __iter__(self):
        return iter(self._converters)

    def __len__(self) -> int:
        return len(self._converters)


def default_converters() -> ConverterSet:
    """Build the standard converter set, in its fixed order."""
    return ConverterSet.of(
        CollectionConverter(),
        DefaultValueConverter(),
        UnixDateTimeConverter(),
        AttachmentConverter(),
        StringEnumConverter(),
    )


# =============================================================================
# Mapper
# =============================================================================


class ModelMapper:
    """
    Walks a JSON node and a target type together.

    Converters get the first chance at every value; dataclasses, lists,
    dicts and primitives are handled here otherwise.
    """

    def __init__(self, converters: ConverterSet):
        self.converters = converters

    def convert(self, value: Any, target: Any) -> Any:
        if target is Any or target is object:
            return value

        if _is_optional(target):
            if value is None:
                return None
            target = _strip_optional(target)

        converter = self.converters.find(value, target)
        if converter is not None:
            return converter.convert(value, target, self)

        if _is_dataclass_type(target):
            return self.map_dataclass(value, target)

        origin = get_origin(target)
        if origin is list:
            if not isinstance(value, list):
                raise DeserializationError(f"Expected an array, got {type(value).__name__}", payload=value, model_type=target)
            args = get_args(target)
            return [self.convert(item, args[0] if args else Any) for item in value]
        if origin is dict:
            if not isinstance(value, dict):
                raise DeserializationError(f"Expected an object, got {type(value).__name__}", payload=value, model_type=target)
            _, value_type = get_args(target) or (str, Any)
            return {key: self.convert(item, value_type) for key, item in value.items()}

        return self._convert_primitive(value, target)

    def map_dataclass(self, node: Any, model_type: type) -> Any:
        if not isinstance(node, dict):
            raise DeserializationError(
                f"Expected an object for {model_type.__name__}, got {type(node).__name__}",
                payload=node, model_type=model_type,
            )

        hints = get_type_hints(model_type)
        kwargs: dict[str, Any] = {}
        for f in dataclasses.fields(model_type):
            if not f.init:
                continue
            json_name = f.metadata.get("json", f.name)
            if json_name in node:
                kwargs[f.name] = self.convert(node[json_name], hints[f.name])
            elif f.default is dataclasses.MISSING and f.default_factory is dataclasses.MISSING:
                kwargs[f.name] = default_for(hints[f.name])
        return model_type(**kwargs)

    def _convert_primitive(self, value: Any, target: Any) -> Any:
        if target is bool:
            if isinstance(value, (bool, int)):
                return bool(value)
            if isinstance(value, str) and value.lower() in ("1", "0", "true", "false"):
                return value.lower() in ("1", "true")
        elif target is int:
            if isinstance(value, bool):
                return int(value)
            if isinstance(value, (int, str)):
                return int(value)
            if isinstance(value, float) and value.is_integer():
                return int(value)
        elif target is float:
            if isinstance(value, (int, float, str)) and not isinstance(value, bool):
                return float(value)
        elif target is str:
            if isinstance(value, (str, int, float)):
                return str(value)
        elif isinstance(target, type) and isinstance(value, target):
            return value

        raise DeserializationError(
            f"Cannot map {value!r} to {getattr(target, '__name__', target)}",
            payload=value, model_type=target,
        )


def deserialize(data: Any, model_type: Any, converters: ConverterSet | None = None) -> Any:
    """
    Decode JSON text and map it onto `model_type`.

    Text is decoded only here; use `map_node()` for values that were already
    parsed, such as `VkResponse.value`.

    Args:
        data: JSON text or bytes. Anything else is treated as a parsed node.
        model_type: Target type: a dataclass, `list[...]`, `VkCollection[...]`,
            a primitive, an enum, ...
        converters: Converter set to use; `default_converters()` when None.

    Returns:
        The mapped value.

    Raises:
        DeserializationError: If the payload is not valid JSON or does not fit the type.
    """
    node = data
    if isinstance(data, (str, bytes)) and model_type is not str:
        try:
            node = json.loads(data)
        except ValueError as e:
            raise DeserializationError(f"Payload is not valid JSON: {e}", payload=data, model_type=model_type, cause=e) from e

    return map_node(node, model_type, converters)


def map_node(node: Any, model_type: Any, converters: ConverterSet | None = None) -> Any:
    """
    Map a parsed JSON node onto `model_type`.

    Strings are taken as string values and never decoded again, so a
    `"male"` node maps onto `Sex.MALE` and `"[1]"` stays the text `"[1]"`.

    Raises:
        DeserializationError: If the node does not fit the type.
    """
    mapper = ModelMapper(converters if converters is not None else default_converters())
    try:
        return mapper.convert(node, model_type)
    except DeserializationError:
        raise
    except (TypeError, ValueError, KeyError, NameError) as e:
        type_name = getattr(model_type, "__name__", str(model_type))
        raise DeserializationError(
            f"Failed to map payload onto {type_name}: {e}",
            payload=node, model_type=model_type, cause=e,
        ) from e
