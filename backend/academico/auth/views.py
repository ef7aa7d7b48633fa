"""
View (permission) codes: normalization, extraction and deduplication.

The backend does not commit to one layout for the list of views a user may
open. Codes show up as bare strings, as records keyed by `codigo`/`code`/
`permiso`/`permission`, wrapped in `items`/`data` envelopes or spread over a
map. `extract_views` walks any of those shapes; `dedupe_views` collapses the
result by canonical code.
"""
from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

from .json_value import (
    JsonArray,
    JsonNumber,
    JsonObject,
    JsonString,
    JsonValue,
    non_blank_text,
    parse_json_value,
    scalar_text,
)

CODE_KEYS: tuple[str, ...] = ("codigo", "code", "permiso", "permission")
ID_KEYS: tuple[str, ...] = ("id", "vista_id")
NAME_KEYS: tuple[str, ...] = ("nombre", "name", "label")
DESCRIPTION_KEYS: tuple[str, ...] = ("descripcion", "description")
ENVELOPE_KEYS: tuple[str, ...] = ("items", "data")


@dataclass(frozen=True, slots=True)
class ViewDescriptor:
    code: str
    id: int | None = None
    name: str | None = None
    description: str | None = None


def normalize_view_code(raw: Any) -> str | None:
    if isinstance(raw, JsonValue):
        raw = scalar_text(raw)
    elif isinstance(raw, float) and raw.is_integer():
        raw = int(raw)
    code = str("" if raw is None else raw).strip().upper()
    return code or None


def _bare_view(value: JsonValue, fallback_id: int) -> ViewDescriptor | None:
    code = normalize_view_code(scalar_text(value))
    if code is None:
        return None
    return ViewDescriptor(id=fallback_id, name=code, code=code)


def _first_present(record: JsonObject, keys: Iterable[str]) -> JsonValue | None:
    for key in keys:
        if key in record:
            return record.get(key)
    return None


def _record_view(record: JsonObject, fallback_id: int) -> ViewDescriptor | None:
    raw_code = _first_present(record, CODE_KEYS)
    if not isinstance(raw_code, (JsonString, JsonNumber)):
        return None
    code = normalize_view_code(raw_code)
    if code is None:
        return None

    view_id = fallback_id
    for key in ID_KEYS:
        candidate = record.get(key)
        explicit_id = candidate.as_int() if isinstance(candidate, JsonNumber) else None
        if explicit_id is not None:
            view_id = explicit_id
            break

    name = next(
        (text for text in (non_blank_text(record.get(key)) for key in NAME_KEYS) if text),
        code,
    )
    description = next(
        (text for text in (non_blank_text(record.get(key)) for key in DESCRIPTION_KEYS) if text),
        None,
    )
    return ViewDescriptor(id=view_id, name=name, code=code, description=description)


def _extract_array(array: JsonArray) -> list[ViewDescriptor]:
    collected: list[ViewDescriptor] = []
    for index, item in enumerate(array):
        if isinstance(item, (JsonString, JsonNumber)):
            view = _bare_view(item, index + 1)
        elif isinstance(item, JsonObject):
            view = _record_view(item, index + 1)
        else:
            view = None
        if view is not None:
            collected.append(view)
    return collected


def _is_role_key(key: str) -> bool:
    lowered = key.lower()
    return "role" in lowered and "permission" not in lowered and "vista" not in lowered


def _is_view_key(key: str) -> bool:
    lowered = key.lower()
    return "permission" in lowered or "vista" in lowered


def _extract_map(record: JsonObject) -> list[ViewDescriptor]:
    collected: list[ViewDescriptor] = []
    for position, (key, value) in enumerate(record):
        # role data sitting next to views must never be read as a grant
        if _is_role_key(key):
            continue
        if isinstance(value, JsonArray):
            collected.extend(_extract_array(value))
        elif isinstance(value, JsonObject):
            if _is_view_key(key):
                collected.extend(extract_views(value))
        elif isinstance(value, (JsonString, JsonNumber)):
            view = _bare_view(value, position + 1)
            if view is not None:
                collected.append(view)
    return collected


def extract_views(value: Any) -> list[ViewDescriptor]:
    """Collect view descriptors from an arbitrary JSON value.

    Best effort: entries that do not look like a view are dropped, nothing
    raises. The result may hold duplicate codes; pass it through
    `dedupe_views` before use.
    """
    if not isinstance(value, JsonValue):
        value = parse_json_value(value)

    if isinstance(value, JsonArray):
        return _extract_array(value)
    if isinstance(value, JsonObject):
        for key in ENVELOPE_KEYS:
            envelope = value.get(key)
            if isinstance(envelope, JsonArray):
                return _extract_array(envelope)
        return _extract_map(value)
    return []


def dedupe_views(descriptors: Iterable[ViewDescriptor]) -> list[ViewDescriptor]:
    """Merge descriptors by code.

    A later descriptor replaces an earlier one with the same code, but the
    code keeps the position where it was first seen.
    """
    merged: dict[str, ViewDescriptor] = {}
    for index, view in enumerate(descriptors):
        code = normalize_view_code(view.code)
        if code is None:
            continue
        name = view.name if view.name and view.name.strip() else code
        description = (
            view.description if view.description and view.description.strip() else None
        )
        merged[code] = ViewDescriptor(
            id=view.id if view.id is not None else index + 1,
            name=name,
            code=code,
            description=description,
        )
    return list(merged.values())


def collect_views(sources: Iterable[Any]) -> list[ViewDescriptor]:
    """Extract from every candidate source in order and dedupe once."""
    aggregated: list[ViewDescriptor] = []
    for source in sources:
        if source is None:
            continue
        aggregated.extend(extract_views(source))
    return dedupe_views(aggregated)


def has_any_view(views: Iterable[ViewDescriptor], codes: Iterable[Any]) -> bool:
    granted = {view.code for view in views}
    return any(normalize_view_code(code) in granted for code in codes)
