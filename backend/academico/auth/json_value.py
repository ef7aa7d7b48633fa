"""
Tagged representation of untyped JSON coming from the backend.

Identity payloads are converted once with `parse_json_value` and every
traversal in the auth package dispatches on the variant instead of probing
raw Python objects.
"""
from __future__ import annotations

import math
from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from typing import Any


class JsonValue:
    """Base class of the JSON variants. Never instantiated directly."""

    __slots__ = ()


@dataclass(frozen=True, slots=True)
class JsonNull(JsonValue):
    pass


@dataclass(frozen=True, slots=True)
class JsonBool(JsonValue):
    value: bool


@dataclass(frozen=True, slots=True)
class JsonNumber(JsonValue):
    value: int | float

    def as_text(self) -> str:
        # Same textual form a JSON serializer would use: 5.0 -> "5"
        value = self.value
        if isinstance(value, float) and value.is_integer():
            return str(int(value))
        return str(value)

    def as_int(self) -> int | None:
        value = self.value
        if isinstance(value, int):
            return value
        if math.isfinite(value) and value.is_integer():
            return int(value)
        return None


@dataclass(frozen=True, slots=True)
class JsonString(JsonValue):
    value: str


@dataclass(frozen=True, slots=True)
class JsonArray(JsonValue):
    items: tuple[JsonValue, ...] = ()

    def __iter__(self) -> Iterator[JsonValue]:
        return iter(self.items)

    def __len__(self) -> int:
        return len(self.items)


@dataclass(frozen=True, slots=True)
class JsonObject(JsonValue):
    entries: tuple[tuple[str, JsonValue], ...] = ()

    def get(self, key: str) -> JsonValue | None:
        for entry_key, value in self.entries:
            if entry_key == key:
                return value
        return None

    def __contains__(self, key: object) -> bool:
        return any(entry_key == key for entry_key, _ in self.entries)

    def __iter__(self) -> Iterator[tuple[str, JsonValue]]:
        return iter(self.entries)

    def __len__(self) -> int:
        return len(self.entries)


JSON_NULL = JsonNull()


def parse_json_value(raw: Any) -> JsonValue:
    """Convert a decoded JSON document (dict/list/str/...) into the tagged form.

    Values that cannot come out of a JSON decoder (sets, custom objects,
    NaN) are mapped to `JsonNull` so traversal never has to handle them.
    """
    if raw is None:
        return JSON_NULL
    # bool is a subclass of int and must be checked first
    if isinstance(raw, bool):
        return JsonBool(raw)
    if isinstance(raw, int):
        return JsonNumber(raw)
    if isinstance(raw, float):
        if not math.isfinite(raw):
            return JSON_NULL
        return JsonNumber(raw)
    if isinstance(raw, str):
        return JsonString(raw)
    if isinstance(raw, Mapping):
        return JsonObject(
            tuple((str(key), parse_json_value(value)) for key, value in raw.items())
        )
    if isinstance(raw, (list, tuple)):
        return JsonArray(tuple(parse_json_value(item) for item in raw))
    return JSON_NULL


def scalar_text(value: JsonValue | None) -> str | None:
    """Text of a string or number variant, `None` for anything else."""
    if isinstance(value, JsonString):
        return value.value
    if isinstance(value, JsonNumber):
        return value.as_text()
    return None


def non_blank_text(value: JsonValue | None) -> str | None:
    if isinstance(value, JsonString) and value.value.strip():
        return value.value
    return None


def member(value: JsonValue | None, key: str) -> JsonValue | None:
    """`value[key]` when `value` is an object, otherwise `None`."""
    if isinstance(value, JsonObject):
        return value.get(key)
    return None
