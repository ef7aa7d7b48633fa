"""
Server-rendered pages of the console.

Plain f-string templates; every dynamic value goes through `escape`.
"""
from __future__ import annotations

from html import escape
from urllib.parse import urlencode

from .auth.enforcement_matrix import ConsoleSection, visible_sections
from .auth.gates import safe_local_path
from .auth.roles import resolve_role_label
from .auth.session import AuthSession


def _document(title: str, body: str, *, app_name: str) -> str:
    return f"""<!DOCTYPE html>
<html lang="es">
<head>
    <meta charset="utf-8">
    <meta name="viewport" content="width=device-width, initial-scale=1">
    <title>{escape(title)} · {escape(app_name)}</title>
</head>
<body>
{body}
</body>
</html>"""


def _sidebar(session: AuthSession, current_path: str, *, app_name: str) -> str:
    links = []
    for section in visible_sections(session):
        active = ' aria-current="page"' if section.path == current_path else ""
        links.append(
            f'<li><a href="{escape(section.path)}"{active}>{escape(section.label)}</a></li>'
        )
    return (
        '<aside id="sidebar">'
        f'<div class="brand">{escape(app_name)}</div>'
        f'<nav><ul>{"".join(links)}</ul></nav>'
        "</aside>"
    )


def _topbar(session: AuthSession) -> str:
    user = session.user
    if user is None:
        return ""
    name = user.display_name or user.username or user.email or "Usuario"
    role = resolve_role_label(user.primary_role)
    role_html = f' <span class="role">{escape(role)}</span>' if role else ""
    return (
        '<header class="topbar">'
        f'<span class="user">{escape(name)}</span>{role_html}'
        '<form method="post" action="/logout"><button type="submit">Cerrar sesión</button></form>'
        "</header>"
    )


def render_section(section: ConsoleSection, session: AuthSession, *, app_name: str) -> str:
    body = (
        f"{_sidebar(session, section.path, app_name=app_name)}"
        f"{_topbar(session)}"
        f'<main id="main-content"><h1>{escape(section.label)}</h1></main>'
    )
    return _document(section.label, body, app_name=app_name)


def render_login(*, app_name: str, next_path: str | None = None, error: str | None = None) -> str:
    action = "/login"
    target = safe_local_path(next_path, default="")
    if target:
        action = f"/login?{urlencode({'next': target})}"
    error_html = f'<p class="error" role="alert">{escape(error)}</p>' if error else ""
    body = f"""<main id="main-content" class="login">
    <h1>Iniciar sesión</h1>
    {error_html}
    <form method="post" action="{escape(action)}">
        <label for="username">Usuario</label>
        <input id="username" name="username" autocomplete="username" required>
        <label for="password">Contraseña</label>
        <input id="password" name="password" type="password" autocomplete="current-password" required>
        <button type="submit">Ingresar</button>
    </form>
</main>"""
    return _document("Iniciar sesión", body, app_name=app_name)


def render_checking_access(*, app_name: str) -> str:
    body = '<main id="main-content"><p class="checking">Verificando permisos…</p></main>'
    return _document("Verificando permisos", body, app_name=app_name)


def render_forbidden(*, app_name: str, denied_path: str | None = None) -> str:
    attempted = ""
    if denied_path:
        attempted = (
            f'<p class="attempted">Intentaste acceder a: <code>{escape(denied_path)}</code></p>'
        )
    body = f"""<main id="main-content" class="forbidden">
    <h1>403</h1>
    <p>No tienes permiso para ver esta sección.</p>
    {attempted}
    <a href="/">Ir al inicio</a>
</main>"""
    return _document("Acceso denegado", body, app_name=app_name)
