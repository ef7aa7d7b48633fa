"""
Canonical user resolution.

`fetch_current_user` turns whatever the identity endpoint returns into one
immutable `CanonicalUser`: roles from a fixed, ordered list of candidate
slots, views from another, and a single fallback call to the permissions
endpoint when no view was found anywhere in the payload.
"""
from __future__ import annotations

import logging
import re
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

import httpx

from ..errors import IdentityFetchError, InvalidShapeError
from .client import IdentityClient
from .json_value import (
    JsonNumber,
    JsonObject,
    JsonString,
    JsonValue,
    member,
    non_blank_text,
    parse_json_value,
)
from .roles import CanonicalRole, collect_roles, normalize_role
from .views import ViewDescriptor, collect_views, normalize_view_code

logger = logging.getLogger("academico.auth.identity")

# (container, key); container "payload" is the top level, "user" is payload.user
# only when that is an object, "resolved" is whichever object holds the user.
ROLE_SOURCES: tuple[tuple[str, str], ...] = (
    ("payload", "roles"),
    ("payload", "role"),
    ("payload", "role_context"),
    ("user", "role"),
    ("user", "roles"),
    ("user", "role_context"),
    ("user", "context"),
    ("resolved", "role"),
    ("context", "role"),
    ("context", "roles"),
)

VIEW_SOURCES: tuple[tuple[str, str], ...] = (
    ("payload", "vistas"),
    ("payload", "permissions"),
    ("payload", "permisos"),
    ("payload", "permissions_cache"),
    ("payload", "permission_cache"),
    ("payload", "role_context"),
    ("user", "vistas"),
    ("user", "permissions"),
    ("user", "permisos"),
    ("user", "permissions_cache"),
    ("user", "permission_cache"),
    ("user", "role_context"),
    ("resolved", "vistas"),
)

_ID_KEYS = ("id", "user_id", "usuario_id")
_USERNAME_KEYS = ("username", "usuario", "login")
_EMAIL_KEYS = ("email", "correo")
_DISPLAY_NAME_KEYS = ("display_name", "name", "nombre", "full_name", "nombre_completo")
_splitter = re.compile(r"[^0-9A-Za-zÀ-ÿ]+")


@dataclass(frozen=True, slots=True)
class CanonicalUser:
    id: int | str | None
    display_name: str | None
    username: str | None
    email: str | None
    primary_role: CanonicalRole | None
    roles: tuple[CanonicalRole, ...] = ()
    views: tuple[ViewDescriptor, ...] = ()

    @property
    def view_codes(self) -> tuple[str, ...]:
        return tuple(view.code for view in self.views)

    def has_view(self, code: Any) -> bool:
        normalized = normalize_view_code(code)
        return normalized is not None and normalized in self.view_codes


@dataclass(frozen=True, slots=True)
class FallbackOutcome:
    """Result of the fallback permissions call.

    On failure `views` is empty and `error` says why; callers never see an
    exception from this path.
    """

    views: tuple[ViewDescriptor, ...] = ()
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


FallbackFetcher = Callable[[], Awaitable[FallbackOutcome]]


def _containers(payload: JsonObject, resolved: JsonObject) -> dict[str, JsonValue | None]:
    user = payload.get("user")
    return {
        "payload": payload,
        "user": user if isinstance(user, JsonObject) else None,
        "resolved": resolved,
        "context": payload.get("context"),
    }


def _sources(
    containers: dict[str, JsonValue | None], paths: tuple[tuple[str, str], ...]
) -> list[JsonValue]:
    found: list[JsonValue] = []
    for container, key in paths:
        value = member(containers[container], key)
        if value is not None:
            found.append(value)
    return found


def humanize_identifier(value: str) -> str:
    """Turn an email or username into a display name ("ana.perez" -> "Ana Perez")."""
    if "@" in value:
        value = value.split("@", 1)[0]
    parts = [part for part in _splitter.split(value) if part]
    return " ".join(part[:1].upper() + part[1:].lower() for part in parts)


def _first_text(record: JsonObject, keys: tuple[str, ...]) -> str | None:
    for key in keys:
        text = non_blank_text(record.get(key))
        if text:
            return text.strip()
    return None


def _identity_id(record: JsonObject) -> int | str | None:
    for key in _ID_KEYS:
        value = record.get(key)
        if isinstance(value, JsonNumber) and value.as_int() is not None:
            return value.as_int()
        if isinstance(value, JsonString) and value.value.strip():
            return value.value.strip()
    return None


def _display_name(record: JsonObject, username: str | None, email: str | None) -> str | None:
    explicit = _first_text(record, _DISPLAY_NAME_KEYS)
    if explicit:
        return explicit
    given = _first_text(record, ("nombres", "first_name"))
    family = _first_text(record, ("apellidos", "last_name"))
    if given or family:
        return " ".join(part for part in (given, family) if part)
    for identifier in (username, email):
        if identifier:
            humanized = humanize_identifier(identifier)
            if humanized:
                return humanized
    return None


def resolve_user_record(raw: Any) -> tuple[JsonObject, JsonObject]:
    """Return `(payload, user)` objects or raise `InvalidShapeError`."""
    payload = raw if isinstance(raw, JsonValue) else parse_json_value(raw)
    if not isinstance(payload, JsonObject):
        raise InvalidShapeError(
            "Identity payload is not an object",
            details={"type": type(payload).__name__},
        )
    nested = payload.get("user")
    resolved = nested if isinstance(nested, JsonObject) else payload
    if not isinstance(resolved, JsonObject):
        raise InvalidShapeError("Identity payload does not contain a user")
    return payload, resolved


async def build_canonical_user(raw: Any, *, fallback: FallbackFetcher) -> CanonicalUser:
    payload, resolved = resolve_user_record(raw)
    containers = _containers(payload, resolved)

    roles = collect_roles(_sources(containers, ROLE_SOURCES))
    views: tuple[ViewDescriptor, ...] = tuple(
        collect_views(_sources(containers, VIEW_SOURCES))
    )
    if not views:
        outcome = await fallback()
        views = outcome.views

    primary_role = roles[0] if roles else normalize_role(resolved.get("role"))

    username = _first_text(resolved, _USERNAME_KEYS)
    email = _first_text(resolved, _EMAIL_KEYS)
    return CanonicalUser(
        id=_identity_id(resolved),
        display_name=_display_name(resolved, username, email),
        username=username,
        email=email,
        primary_role=primary_role,
        roles=tuple(roles),
        views=views,
    )


async def fetch_permissions_fallback(client: IdentityClient) -> FallbackOutcome:
    """Ask the permissions endpoint for views. Degrades to empty on failure."""
    try:
        data = await client.fetch_permissions()
    except (httpx.HTTPError, ValueError) as exc:
        logger.warning("Failed to fetch permissions from fallback endpoint: %s", exc)
        return FallbackOutcome(error=str(exc) or type(exc).__name__)
    return FallbackOutcome(views=tuple(collect_views([data])))


async def fetch_current_user(client: IdentityClient) -> CanonicalUser:
    """Fetch the identity payload and resolve it into a `CanonicalUser`.

    Raises:
        IdentityFetchError: the identity request failed or returned no JSON
        InvalidShapeError: the payload does not resolve to a user object
    """
    try:
        raw = await client.fetch_identity()
    except httpx.HTTPStatusError as exc:
        raise IdentityFetchError(
            f"Identity endpoint answered {exc.response.status_code}",
            upstream_status=exc.response.status_code,
        ) from exc
    except httpx.HTTPError as exc:
        raise IdentityFetchError(f"Identity endpoint unreachable: {exc}") from exc
    except ValueError as exc:
        raise IdentityFetchError("Identity endpoint did not return JSON") from exc

    async def fallback() -> FallbackOutcome:
        return await fetch_permissions_fallback(client)

    return await build_canonical_user(raw, fallback=fallback)
