import logging

import httpx
from fastapi import APIRouter, Depends, Form, Response, status
from fastapi.responses import HTMLResponse, RedirectResponse

from ..auth.gates import safe_local_path
from ..auth.session import AuthSession, SessionRegistry, SessionSlot
from ..config import Settings
from ..dependencies import (
    get_app_settings,
    get_auth_session,
    get_session_id,
    get_session_registry,
    get_session_slot,
)
from ..errors import AuthError, LoginFailedError
from ..pages import render_login
from ..schemas.session import SessionResponse

logger = logging.getLogger("academico.auth")

router = APIRouter(tags=["auth"])


def _set_session_cookie(response: Response, session_id: str, settings: Settings) -> None:
    response.set_cookie(
        key=settings.session_cookie_name,
        value=session_id,
        httponly=True,
        secure=settings.session_cookie_secure,
        samesite="lax",
        path="/",
        max_age=settings.session_ttl_seconds,
    )


def _login_page(
    settings: Settings, next_path: str | None, error: str, status_code: int
) -> HTMLResponse:
    return HTMLResponse(
        render_login(app_name=settings.app_name, next_path=next_path, error=error),
        status_code=status_code,
    )


@router.get("/login", response_class=HTMLResponse)
async def login_page(
    next: str | None = None,
    session: AuthSession = Depends(get_auth_session),
    settings: Settings = Depends(get_app_settings),
) -> Response:
    if session.is_authenticated:
        return RedirectResponse(safe_local_path(next), status_code=status.HTTP_303_SEE_OTHER)
    return HTMLResponse(render_login(app_name=settings.app_name, next_path=next))


@router.post("/login")
async def login(
    username: str = Form(...),
    password: str = Form(...),
    next: str | None = None,
    session_id: str | None = Depends(get_session_id),
    registry: SessionRegistry = Depends(get_session_registry),
    settings: Settings = Depends(get_app_settings),
) -> Response:
    # a fresh slot per login so an old cookie never carries over
    registry.discard(session_id)
    new_session_id, slot = registry.create()
    try:
        await slot.login(username, password)
    except httpx.HTTPStatusError as exc:
        registry.discard(new_session_id)
        logger.info(
            "Backend rejected login status=%s", exc.response.status_code
        )
        return _login_page(
            settings, next, LoginFailedError.message, status.HTTP_401_UNAUTHORIZED
        )
    except httpx.HTTPError as exc:
        registry.discard(new_session_id)
        logger.warning("Login request failed: %s", exc)
        return _login_page(
            settings,
            next,
            "No se pudo contactar al servidor. Intenta nuevamente.",
            status.HTTP_502_BAD_GATEWAY,
        )

    # a slow identity fetch still redirects; the next page shows the loading state
    session = await registry.settle(slot)
    if not session.is_authenticated and not session.is_loading:
        await slot.logout()
        registry.discard(new_session_id)
        return _login_page(
            settings,
            next,
            "No se pudo obtener la información del usuario.",
            status.HTTP_502_BAD_GATEWAY,
        )

    logger.info("Console login role=%s", session.user.primary_role if session.user else None)
    response = RedirectResponse(safe_local_path(next), status_code=status.HTTP_303_SEE_OTHER)
    _set_session_cookie(response, new_session_id, settings)
    return response


@router.post("/logout")
async def logout(
    session_id: str | None = Depends(get_session_id),
    slot: SessionSlot | None = Depends(get_session_slot),
    registry: SessionRegistry = Depends(get_session_registry),
    settings: Settings = Depends(get_app_settings),
) -> Response:
    if slot is not None:
        await slot.logout()
        logger.info("Console logout")
    registry.discard(session_id)
    response = RedirectResponse("/login", status_code=status.HTTP_303_SEE_OTHER)
    response.delete_cookie(settings.session_cookie_name, path="/")
    return response


@router.get("/auth/session", response_model=SessionResponse)
async def current_session(
    session: AuthSession = Depends(get_auth_session),
) -> SessionResponse:
    return SessionResponse.from_session(session)


@router.post("/auth/refresh", response_model=SessionResponse)
async def refresh_session(
    slot: SessionSlot | None = Depends(get_session_slot),
) -> SessionResponse:
    if slot is None:
        raise AuthError("No active console session")
    session = await slot.refresh()
    return SessionResponse.from_session(session)
