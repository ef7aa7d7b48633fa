from fastapi import APIRouter, Depends, Query
from fastapi.responses import HTMLResponse

from ..auth.enforcement_matrix import CONSOLE_SECTIONS, ConsoleSection
from ..auth.gates import FORBIDDEN_ROUTE
from ..auth.identity import CanonicalUser
from ..auth.session import AuthSession
from ..config import Settings
from ..dependencies import get_app_settings, get_auth_session
from ..pages import render_forbidden, render_section

router = APIRouter(tags=["console"])


@router.get(FORBIDDEN_ROUTE, response_class=HTMLResponse)
async def forbidden(
    settings: Settings = Depends(get_app_settings),
    denied_path: str | None = Query(default=None, alias="from"),
) -> HTMLResponse:
    return HTMLResponse(
        render_forbidden(app_name=settings.app_name, denied_path=denied_path),
        status_code=403,
    )


def _section_endpoint(section: ConsoleSection):
    async def endpoint(
        _user: CanonicalUser = Depends(section.dependency()),
        session: AuthSession = Depends(get_auth_session),
        settings: Settings = Depends(get_app_settings),
    ) -> HTMLResponse:
        return HTMLResponse(render_section(section, session, app_name=settings.app_name))

    return endpoint


for _section in CONSOLE_SECTIONS:
    router.add_api_route(
        _section.path,
        _section_endpoint(_section),
        methods=["GET"],
        response_class=HTMLResponse,
        name=f"section:{_section.path}",
    )
