"""
Role vocabulary, normalization and collection.

Roles form an open vocabulary: the known values below get aliases and
labels, any other non-empty value the backend sends passes through
lower-cased so unknown roles are not lost.
"""
from __future__ import annotations

import re
from collections.abc import Iterable
from enum import Enum
from typing import Any, Final

from .json_value import (
    JsonArray,
    JsonNumber,
    JsonObject,
    JsonString,
    JsonValue,
    parse_json_value,
    scalar_text,
)

CanonicalRole = str


class KnownRole(str, Enum):
    ADMIN = "admin"
    DOCENTE = "docente"
    PADRE = "padre"


ROLE_ALIASES: Final[dict[str, KnownRole]] = {
    "admin": KnownRole.ADMIN,
    "administrador": KnownRole.ADMIN,
    "adm": KnownRole.ADMIN,
    "docente": KnownRole.DOCENTE,
    "doc": KnownRole.DOCENTE,
    "profesor": KnownRole.DOCENTE,
    "profe": KnownRole.DOCENTE,
    "maestro": KnownRole.DOCENTE,
    "padre": KnownRole.PADRE,
    "pad": KnownRole.PADRE,
    "apoderado": KnownRole.PADRE,
}

ROLE_LABELS: Final[dict[str, str]] = {
    KnownRole.ADMIN.value: "Administrador",
    KnownRole.DOCENTE.value: "Docente",
    KnownRole.PADRE.value: "Padre",
}

_INVALID_ROLE_VALUES: Final[frozenset[str]] = frozenset(
    {"", "undefined", "null", "none", "ninguno"}
)
_ROLE_PREFIX = re.compile(r"^(?:role|rol)[\s._-]+")
_WHITESPACE = re.compile(r"\s+")
_SEPARATORS = re.compile(r"[\s._-]+")


def _sanitize(raw: str) -> str:
    lowered = raw.strip().lower()
    without_prefix = _ROLE_PREFIX.sub("", lowered)
    candidate = without_prefix or lowered
    return _WHITESPACE.sub(" ", candidate).strip()


def normalize_role(raw: Any) -> CanonicalRole | None:
    if isinstance(raw, JsonValue):
        text = scalar_text(raw)
    elif isinstance(raw, (str, int, float)) and not isinstance(raw, bool):
        text = scalar_text(parse_json_value(raw))
    else:
        text = None
    if text is None:
        return None

    sanitized = _sanitize(text)
    if sanitized in _INVALID_ROLE_VALUES:
        return None

    alias = ROLE_ALIASES.get(sanitized) or ROLE_ALIASES.get(_SEPARATORS.sub("", sanitized))
    if alias is not None:
        return alias.value
    return sanitized


def resolve_role_label(role: Any) -> str:
    normalized = normalize_role(role)
    if not normalized:
        return ""
    label = ROLE_LABELS.get(normalized)
    if label:
        return label
    return " ".join(word[:1].upper() + word[1:].lower() for word in normalized.split(" ") if word)


def looks_like_role_key(key: str) -> bool:
    """Heuristic: does this object key hold role data?

    Plain substring test on "role"/"rol". It over-matches on purpose
    (`rolename_custom`, `control`), so it is a hint for traversal and not an
    authoritative classification.
    """
    lowered = key.lower()
    return "role" in lowered or "rol" in lowered


class _OrderedRoles:
    def __init__(self) -> None:
        self._seen: dict[str, None] = {}

    def add(self, role: CanonicalRole | None) -> None:
        if role is not None and role not in self._seen:
            self._seen[role] = None

    def as_list(self) -> list[CanonicalRole]:
        return list(self._seen)


def _visit(value: JsonValue, acc: _OrderedRoles, *, role_position: bool) -> None:
    if isinstance(value, (JsonString, JsonNumber)):
        if role_position:
            acc.add(normalize_role(value))
    elif isinstance(value, JsonArray):
        for item in value:
            _visit(item, acc, role_position=role_position)
    elif isinstance(value, JsonObject):
        for key, item in value:
            if looks_like_role_key(key):
                _visit(item, acc, role_position=True)
            elif isinstance(item, (JsonObject, JsonArray)):
                _visit(item, acc, role_position=False)


def collect_roles(sources: Iterable[Any]) -> list[CanonicalRole]:
    """Collect canonical roles from candidate sources, depth-first.

    Every source is itself a role position, so a bare string source counts.
    Inside objects only values under role-like keys are collected; other
    nested containers are searched for role-like keys but their own scalars
    are ignored. First occurrence wins the position.

    Role-like keys count at any depth, so `{"permissions": [{"controller":
    "admin"}]}` yields `admin` and can become the primary role.
    """
    acc = _OrderedRoles()
    for source in sources:
        if source is None:
            continue
        if not isinstance(source, JsonValue):
            source = parse_json_value(source)
        _visit(source, acc, role_position=True)
    return acc.as_list()
