"""
Capability gates for console routes.

All gates share one state machine over the request's `AuthSession`:

- loading: render the "checking access" placeholder, decide nothing yet
- anonymous: redirect to the login page, remembering the requested location
- authenticated: hand over to the specific gate

`require_view` is the canonical gate (any of the listed view codes grants
access). `role_guard` compares the primary role exactly and is only used
where a page must follow the role and not the view list.

The decision functions are pure; the `require_*` factories wrap them as
FastAPI dependencies that raise `GatePending`/`GateRedirect` for the app's
exception handlers to render.
"""
from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from enum import Enum
from typing import Any
from urllib.parse import urlencode

from fastapi import Depends, Request

from ..dependencies import get_auth_session
from .identity import CanonicalUser
from .roles import normalize_role
from .session import AuthSession
from .views import normalize_view_code

logger = logging.getLogger("academico.auth.gates")

LOGIN_ROUTE = "/login"
FORBIDDEN_ROUTE = "/403"
ROOT_ROUTE = "/"


class GateOutcome(str, Enum):
    ALLOW = "allow"
    PENDING = "pending"
    REDIRECT = "redirect"


@dataclass(frozen=True, slots=True)
class GateDecision:
    outcome: GateOutcome
    location: str | None = None

    @classmethod
    def allow(cls) -> "GateDecision":
        return cls(GateOutcome.ALLOW)

    @classmethod
    def pending(cls) -> "GateDecision":
        return cls(GateOutcome.PENDING)

    @classmethod
    def redirect(cls, location: str) -> "GateDecision":
        return cls(GateOutcome.REDIRECT, location)

    @property
    def allowed(self) -> bool:
        return self.outcome is GateOutcome.ALLOW


class GatePending(Exception):
    """The session is still loading; the request gets the placeholder page."""

    def __init__(self, requested: str) -> None:
        super().__init__(requested)
        self.requested = requested


class GateRedirect(Exception):
    def __init__(self, location: str) -> None:
        super().__init__(location)
        self.location = location


def safe_local_path(value: str | None, default: str = ROOT_ROUTE) -> str:
    """Accept only same-site absolute paths as redirect targets."""
    if not value or not value.startswith("/") or value.startswith("//") or "\\" in value:
        return default
    return value


def login_location(requested: str) -> str:
    return f"{LOGIN_ROUTE}?{urlencode({'next': safe_local_path(requested)})}"


def forbidden_location(requested: str) -> str:
    return f"{FORBIDDEN_ROUTE}?{urlencode({'from': requested})}"


def _gate(
    session: AuthSession,
    requested: str,
    check: Callable[[CanonicalUser], GateDecision],
) -> GateDecision:
    if session.is_loading:
        return GateDecision.pending()
    if not session.is_authenticated or session.user is None:
        return GateDecision.redirect(login_location(requested))
    return check(session.user)


def protected_route(session: AuthSession, requested: str = ROOT_ROUTE) -> GateDecision:
    return _gate(session, requested, lambda _user: GateDecision.allow())


def require_view(
    session: AuthSession, codes: Iterable[Any], requested: str = ROOT_ROUTE
) -> GateDecision:
    required = [code for code in (normalize_view_code(c) for c in codes) if code]

    def check(user: CanonicalUser) -> GateDecision:
        if any(user.has_view(code) for code in required):
            return GateDecision.allow()
        return GateDecision.redirect(forbidden_location(requested))

    return _gate(session, requested, check)


def role_guard(
    session: AuthSession, allowed_roles: Iterable[Any], requested: str = ROOT_ROUTE
) -> GateDecision:
    allowed = {role for role in (normalize_role(r) for r in allowed_roles) if role}

    def check(user: CanonicalUser) -> GateDecision:
        if user.primary_role is not None and user.primary_role in allowed:
            return GateDecision.allow()
        return GateDecision.redirect(ROOT_ROUTE)

    return _gate(session, requested, check)


def requested_location(request: Request) -> str:
    query = request.url.query
    return f"{request.url.path}?{query}" if query else request.url.path


def enforce(decision: GateDecision, request: Request, session: AuthSession) -> CanonicalUser:
    if decision.outcome is GateOutcome.PENDING:
        raise GatePending(requested_location(request))
    if decision.outcome is GateOutcome.REDIRECT:
        if session.is_authenticated:
            logger.warning(
                "Access denied method=%s path=%s role=%s redirect=%s",
                request.method,
                request.url.path,
                session.user.primary_role if session.user else None,
                decision.location,
            )
        raise GateRedirect(decision.location or ROOT_ROUTE)
    assert session.user is not None
    return session.user


async def require_login(
    request: Request, session: AuthSession = Depends(get_auth_session)
) -> CanonicalUser:
    return enforce(protected_route(session, requested_location(request)), request, session)


def require_views(*codes: str) -> Callable:
    """Dependency allowing users that hold any of `codes`."""

    async def dependency(
        request: Request, session: AuthSession = Depends(get_auth_session)
    ) -> CanonicalUser:
        decision = require_view(session, codes, requested_location(request))
        return enforce(decision, request, session)

    return dependency


def require_role(*roles: str) -> Callable:
    """Dependency allowing users whose primary role is one of `roles`."""

    async def dependency(
        request: Request, session: AuthSession = Depends(get_auth_session)
    ) -> CanonicalUser:
        decision = role_guard(session, roles, requested_location(request))
        return enforce(decision, request, session)

    return dependency
