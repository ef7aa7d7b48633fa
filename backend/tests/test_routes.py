import asyncio
import logging
import threading

import httpx
import pytest
from fastapi.testclient import TestClient

from academico.auth.identity import fetch_current_user
from academico.main import create_app
from tests.backend_helpers import FakeBackend, make_settings

ADMIN_IDENTITY = {
    "user": {"id": 1, "nombre": "Ana Pérez"},
    "role": "ADMINISTRADOR",
    "permisos": ["CURSOS", "NOTAS", "USUARIOS"],
}
DOCENTE_IDENTITY = {
    "user": {"id": 2, "username": "juan.soto", "role": "Docente", "vistas": ["NOTAS", "ROLES"]},
}
COOKIE = "academico_session"


def make_client(backend: FakeBackend, **overrides) -> TestClient:
    app = create_app(make_settings(**overrides), transport=backend.transport)
    return TestClient(app)


def login(client: TestClient, next_path: str = "/", username: str = "ana") -> httpx.Response:
    return client.post(
        "/login",
        params={"next": next_path},
        data={"username": username, "password": "secret"},
        follow_redirects=False,
    )


def test_anonymous_visit_redirects_to_login_with_next():
    with make_client(FakeBackend()) as client:
        response = client.get("/cursos", follow_redirects=False)

    assert response.status_code == 303
    assert response.headers["location"] == "/login?next=%2Fcursos"


def test_login_page_keeps_next_in_form_action():
    with make_client(FakeBackend()) as client:
        response = client.get("/login", params={"next": "/calificaciones"})

    assert response.status_code == 200
    assert 'action="/login?next=%2Fcalificaciones"' in response.text


def test_login_redirects_back_and_renders_section():
    backend = FakeBackend(identity=ADMIN_IDENTITY)
    with make_client(backend) as client:
        response = login(client, "/cursos")
        assert response.status_code == 303
        assert response.headers["location"] == "/cursos"
        assert client.cookies.get(COOKIE)

        page = client.get("/cursos")

    assert page.status_code == 200
    assert "<h1>Cursos</h1>" in page.text
    assert "Ana Pérez" in page.text
    assert 'href="/usuarios"' in page.text
    assert 'href="/auditoria"' not in page.text
    assert backend.count("GET", "/auth/me") == 1
    assert backend.count("GET", "/me/permisos") == 0


def test_login_ignores_foreign_next():
    with make_client(FakeBackend(identity=ADMIN_IDENTITY)) as client:
        response = login(client, "https://evil.example/")

    assert response.headers["location"] == "/"


def test_missing_view_redirects_to_forbidden(caplog):
    with make_client(FakeBackend(identity=ADMIN_IDENTITY)) as client:
        login(client)
        with caplog.at_level(logging.WARNING, logger="academico.auth.gates"):
            response = client.get("/auditoria", follow_redirects=False)
        forbidden = client.get(response.headers["location"])

    assert response.status_code == 303
    assert response.headers["location"] == "/403?from=%2Fauditoria"
    assert "Access denied" in caplog.text
    assert forbidden.status_code == 403
    assert "Intentaste acceder a: <code>/auditoria</code>" in forbidden.text


def test_role_management_follows_primary_role():
    with make_client(FakeBackend(identity=DOCENTE_IDENTITY)) as client:
        login(client, username="juan")
        denied = client.get("/roles", follow_redirects=False)
        notas = client.get("/calificaciones")

    assert denied.status_code == 303
    assert denied.headers["location"] == "/"
    assert notas.status_code == 200
    assert "Juan Soto" in notas.text
    assert "Docente" in notas.text


def test_admin_opens_role_management():
    with make_client(FakeBackend(identity=ADMIN_IDENTITY)) as client:
        login(client)
        response = client.get("/roles")

    assert response.status_code == 200
    assert "<h1>Roles</h1>" in response.text


def test_session_endpoint():
    with make_client(FakeBackend(identity=ADMIN_IDENTITY)) as client:
        anonymous = client.get("/auth/session").json()
        login(client)
        body = client.get("/auth/session").json()

    assert anonymous == {"status": "anonymous", "user": None, "views": []}
    assert body["status"] == "authenticated"
    assert body["views"] == ["CURSOS", "NOTAS", "USUARIOS"]
    assert body["user"]["primary_role"] == "admin"
    assert body["user"]["role_label"] == "Administrador"
    assert body["user"]["views"][0] == {
        "id": 1,
        "name": "CURSOS",
        "code": "CURSOS",
        "description": None,
    }


def test_refresh_endpoint_reloads_identity():
    backend = FakeBackend(identity=ADMIN_IDENTITY)
    with make_client(backend) as client:
        login(client)
        backend.identity = {**ADMIN_IDENTITY, "permisos": ["AUDITORIA"]}
        body = client.post("/auth/refresh").json()
        page = client.get("/auditoria")

    assert body["views"] == ["AUDITORIA"]
    assert page.status_code == 200
    assert backend.count("GET", "/auth/me") == 2


def test_logout_clears_session():
    backend = FakeBackend(identity=ADMIN_IDENTITY)
    with make_client(backend) as client:
        login(client)
        response = client.post("/logout", follow_redirects=False)
        after = client.get("/cursos", follow_redirects=False)

    assert response.status_code == 303
    assert response.headers["location"] == "/login"
    assert backend.count("POST", "/auth/logout") == 1
    assert after.headers["location"] == "/login?next=%2Fcursos"


def test_logout_survives_backend_failure():
    backend = FakeBackend(identity=ADMIN_IDENTITY, logout_status=500)
    with make_client(backend) as client:
        login(client)
        response = client.post("/logout", follow_redirects=False)
        session = client.get("/auth/session").json()

    assert response.status_code == 303
    assert session["status"] == "anonymous"


def test_rejected_credentials_render_login_error():
    with make_client(FakeBackend(login_status=401)) as client:
        response = login(client, "/cursos")

        assert client.cookies.get(COOKIE) is None

    assert response.status_code == 401
    assert "Credenciales inválidas" in response.text
    assert 'action="/login?next=%2Fcursos"' in response.text


def test_unreachable_backend_on_login():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    app = create_app(make_settings(), transport=httpx.MockTransport(handler))
    with TestClient(app) as client:
        response = login(client)

    assert response.status_code == 502
    assert "No se pudo contactar al servidor" in response.text


def test_identity_failure_after_login():
    backend = FakeBackend(identity=httpx.Response(500))
    with make_client(backend) as client:
        response = login(client)

        assert client.cookies.get(COOKIE) is None

    assert response.status_code == 502
    assert "No se pudo obtener la información del usuario." in response.text
    assert backend.count("POST", "/auth/logout") == 1


def test_missing_form_fields_are_validation_errors():
    with make_client(FakeBackend()) as client:
        response = client.post("/login", data={"username": "ana"})

    assert response.status_code == 422
    assert response.json()["error"]["code"] == "VALIDATION_ERROR"


def test_slow_identity_shows_checking_access_page():
    release = threading.Event()

    async def slow_loader(client):
        while not release.is_set():
            await asyncio.sleep(0.01)
        return await fetch_current_user(client)

    backend = FakeBackend(identity=ADMIN_IDENTITY)
    app = create_app(
        make_settings(session_wait_seconds=0.05),
        transport=backend.transport,
        loader=slow_loader,
    )
    with TestClient(app) as client:
        response = login(client, "/cursos")
        pending = client.get("/cursos", follow_redirects=False)
        status_while_loading = client.get("/auth/session").json()["status"]

        release.set()
        client.post("/auth/refresh")
        page = client.get("/cursos")

    assert response.status_code == 303
    assert pending.status_code == 200
    assert pending.headers["refresh"] == "1"
    assert "Verificando permisos" in pending.text
    assert status_while_loading == "loading"
    assert page.status_code == 200
    assert "<h1>Cursos</h1>" in page.text


def test_login_page_redirects_authenticated_users():
    with make_client(FakeBackend(identity=ADMIN_IDENTITY)) as client:
        login(client)
        response = client.get("/login", params={"next": "/calificaciones"}, follow_redirects=False)

    assert response.status_code == 303
    assert response.headers["location"] == "/calificaciones"


def test_health():
    with make_client(FakeBackend()) as client:
        response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


@pytest.mark.parametrize("path", ["/", "/cursos", "/roles", "/auditoria"])
def test_every_section_is_gated(path):
    with make_client(FakeBackend()) as client:
        response = client.get(path, follow_redirects=False)

    assert response.status_code == 303
    assert response.headers["location"].startswith("/login?next=")


def test_identity_body_that_is_not_utf8_renders_login_error():
    backend = FakeBackend(identity=httpx.Response(200, content=b'{"user": "\xff"}'))
    with make_client(backend) as client:
        response = login(client)

    assert response.status_code == 502
    assert "No se pudo obtener la información del usuario." in response.text


def test_refresh_without_session_is_an_auth_error():
    with make_client(FakeBackend()) as client:
        response = client.post("/auth/refresh")

    assert response.status_code == 401
    assert response.json()["error"] == {
        "code": "AUTH_ERROR",
        "message": "No active console session",
        "details": None,
    }
