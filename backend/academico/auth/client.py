from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

import httpx

from ..config import Settings

logger = logging.getLogger("academico.auth.client")


class IdentityClient:
    """Backend client for one browser session.

    Holds the cookie jar the backend hands out on login, so every call made
    for that session is authenticated the same way. Timeouts come from the
    settings; retries are left to the caller.
    """

    def __init__(
        self,
        *,
        base_url: str,
        identity_path: str = "/auth/me",
        permissions_path: str = "/me/permisos",
        login_path: str = "/auth/login",
        logout_path: str = "/auth/logout",
        timeout_seconds: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._identity_path = identity_path
        self._permissions_path = permissions_path
        self._login_path = login_path
        self._logout_path = logout_path
        self._timeout_seconds = timeout_seconds
        self._transport = transport
        self._cookies = httpx.Cookies()

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> "IdentityClient":
        return cls(
            base_url=settings.api_base_url,
            identity_path=settings.identity_path,
            permissions_path=settings.permissions_fallback_path,
            login_path=settings.login_path,
            logout_path=settings.logout_path,
            timeout_seconds=settings.request_timeout_seconds,
            transport=transport,
        )

    @property
    def has_credentials(self) -> bool:
        return len(self._cookies) > 0

    def clear_credentials(self) -> None:
        self._cookies.clear()

    async def fetch_identity(self) -> Any:
        return await self._get_json(self._identity_path)

    async def fetch_permissions(self) -> Any:
        return await self._get_json(self._permissions_path)

    async def login(self, username: str, password: str) -> None:
        """Authenticate against the backend with form-encoded credentials.

        Any failure (network or non-2xx) propagates as `httpx.HTTPError`.
        """
        self.clear_credentials()
        await self._post(
            self._login_path,
            data={"username": username, "password": password},
        )

    async def logout(self) -> bool:
        """Best-effort backend logout. Local credentials are always dropped."""
        try:
            await self._post(self._logout_path)
            return True
        except httpx.HTTPError as exc:
            logger.warning("Backend logout failed: %s", exc)
            return False
        finally:
            self.clear_credentials()

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self._base_url,
            timeout=self._timeout_seconds,
            cookies=self._cookies,
            transport=self._transport,
        )

    async def _get_json(self, path: str) -> Any:
        async with self._client() as client:
            response = await client.get(path)
            self._cookies.update(response.cookies)
            response.raise_for_status()
            return response.json()

    async def _post(
        self, path: str, *, data: Mapping[str, str] | None = None
    ) -> httpx.Response:
        async with self._client() as client:
            response = await client.post(path, data=data)
            self._cookies.update(response.cookies)
            response.raise_for_status()
            return response
