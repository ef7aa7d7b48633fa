"""Declarative mapping of console sections to the gate that protects them.

Each section is reached through one path and lists either the view codes
that open it (any of them is enough) or, for the role-managed pages, the
primary roles allowed. Sections with neither only require a login.
"""
from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

from .gates import (
    GateDecision,
    protected_route,
    require_login,
    require_role,
    require_view,
    require_views,
    role_guard,
)
from .session import AuthSession


@dataclass(frozen=True, slots=True)
class ConsoleSection:
    path: str
    label: str
    views: tuple[str, ...] = ()
    roles: tuple[str, ...] = ()

    def decide(self, session: AuthSession) -> GateDecision:
        if self.roles:
            return role_guard(session, self.roles, self.path)
        if self.views:
            return require_view(session, self.views, self.path)
        return protected_route(session, self.path)

    def dependency(self) -> Callable:
        if self.roles:
            return require_role(*self.roles)
        if self.views:
            return require_views(*self.views)
        return require_login


CONSOLE_SECTIONS: tuple[ConsoleSection, ...] = (
    ConsoleSection("/", "Dashboard"),
    ConsoleSection("/estudiantes", "Estudiantes", views=("ESTUDIANTES",)),
    ConsoleSection("/docentes", "Docentes", views=("DOCENTES",)),
    ConsoleSection("/personas", "Personas", views=("PERSONAS",)),
    ConsoleSection("/cursos", "Cursos", views=("CURSOS", "CURSOS_LEGACY")),
    ConsoleSection("/materias", "Materias", views=("MATERIAS",)),
    ConsoleSection("/calificaciones", "Calificaciones", views=("NOTAS",)),
    ConsoleSection("/asistencia", "Asistencia", views=("ASISTENCIA",)),
    ConsoleSection("/alertas", "Alertas", views=("ALERTAS",)),
    ConsoleSection("/reportes", "Reportes", views=("REPORTES",)),
    ConsoleSection("/usuarios", "Usuarios", views=("USUARIOS",)),
    # gated on the primary role, not on the view list
    ConsoleSection("/roles", "Roles", roles=("admin",)),
    ConsoleSection("/auditoria", "Auditoría", views=("AUDITORIA",)),
)


def section_for(path: str) -> ConsoleSection:
    for section in CONSOLE_SECTIONS:
        if section.path == path:
            return section
    raise KeyError(path)


def visible_sections(session: AuthSession) -> list[ConsoleSection]:
    """Sections the session may open, in menu order. Empty unless authenticated."""
    if not session.is_authenticated:
        return []
    return [section for section in CONSOLE_SECTIONS if section.decide(session).allowed]
