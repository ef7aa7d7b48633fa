from fastapi import Depends, Request

from .auth.session import AuthSession, SessionRegistry, SessionSlot
from .config import Settings, get_settings


def get_app_settings() -> Settings:
    return get_settings()


def get_session_registry(request: Request) -> SessionRegistry:
    return request.app.state.sessions


def get_session_id(
    request: Request, settings: Settings = Depends(get_app_settings)
) -> str | None:
    return request.cookies.get(settings.session_cookie_name)


def get_session_slot(
    session_id: str | None = Depends(get_session_id),
    registry: SessionRegistry = Depends(get_session_registry),
) -> SessionSlot | None:
    return registry.get(session_id)


async def get_auth_session(
    session_id: str | None = Depends(get_session_id),
    registry: SessionRegistry = Depends(get_session_registry),
) -> AuthSession:
    return await registry.resolve(session_id)
