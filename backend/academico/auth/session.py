"""
Session state for console users.

Every browser session owns one `SessionSlot`, and the slot owns exactly one
`AuthSession` value. The value is immutable and replaced wholesale on
login, logout and refresh; readers always see either the previous value or
the new one.

`SessionSlot.refresh` is the single entry point for resolving the user:
concurrent callers share the in-flight task, and a generation counter drops
results that arrive after a logout or a newer login.
"""
from __future__ import annotations

import asyncio
import logging
import secrets
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

import httpx

from ..config import Settings
from ..errors import IdentityFetchError, InvalidShapeError
from .client import IdentityClient
from .identity import CanonicalUser, fetch_current_user

logger = logging.getLogger("academico.auth.session")


class AuthStatus(str, Enum):
    ANONYMOUS = "anonymous"
    LOADING = "loading"
    AUTHENTICATED = "authenticated"


@dataclass(frozen=True, slots=True)
class AuthSession:
    status: AuthStatus
    user: CanonicalUser | None = None

    @classmethod
    def anonymous(cls) -> "AuthSession":
        return cls(AuthStatus.ANONYMOUS)

    @classmethod
    def loading(cls) -> "AuthSession":
        return cls(AuthStatus.LOADING)

    @classmethod
    def authenticated(cls, user: CanonicalUser) -> "AuthSession":
        return cls(AuthStatus.AUTHENTICATED, user)

    @property
    def is_authenticated(self) -> bool:
        return self.status is AuthStatus.AUTHENTICATED and self.user is not None

    @property
    def is_loading(self) -> bool:
        return self.status is AuthStatus.LOADING

    def has_view(self, code: Any) -> bool:
        return self.user is not None and self.user.has_view(code)


UserLoader = Callable[[IdentityClient], Awaitable[CanonicalUser]]


class SessionSlot:
    def __init__(
        self,
        client: IdentityClient,
        *,
        keep_user_on_error: bool = False,
        loader: UserLoader = fetch_current_user,
    ) -> None:
        self.client = client
        self._keep_user_on_error = keep_user_on_error
        self._loader = loader
        self._state = AuthSession.anonymous()
        self._generation = 0
        self._refresh_task: asyncio.Task[AuthSession] | None = None
        self._loaded = False
        self.touched_at = time.monotonic()

    @property
    def current(self) -> AuthSession:
        return self._state

    @property
    def loaded(self) -> bool:
        """True once a refresh has completed for the current generation."""
        return self._loaded

    @property
    def refresh_in_flight(self) -> bool:
        return self._refresh_task is not None and not self._refresh_task.done()

    def touch(self) -> None:
        self.touched_at = time.monotonic()

    def refresh(self) -> "asyncio.Task[AuthSession]":
        """Start a refresh, or join the one already running."""
        if self.refresh_in_flight:
            return self._refresh_task  # type: ignore[return-value]
        if self._state.user is None:
            self._state = AuthSession.loading()
        self._refresh_task = asyncio.ensure_future(self._run_refresh(self._generation))
        return self._refresh_task

    async def _run_refresh(self, generation: int) -> AuthSession:
        previous = self._state
        try:
            user = await self._loader(self.client)
        except InvalidShapeError as exc:
            logger.warning("Identity payload rejected: %s", exc.message)
            result = AuthSession.anonymous()
        except IdentityFetchError as exc:
            logger.warning("Identity refresh failed: %s", exc.message)
            if (
                self._keep_user_on_error
                and previous.user is not None
                and not exc.is_unauthenticated
            ):
                result = AuthSession.authenticated(previous.user)
            else:
                result = AuthSession.anonymous()
        except Exception:  # noqa: BLE001
            logger.exception("Unexpected identity refresh failure")
            result = AuthSession.anonymous()
        else:
            result = AuthSession.authenticated(user)

        if generation != self._generation:
            logger.debug("Discarding refresh result from a stale generation")
            return self._state
        self._state = result
        self._loaded = True
        return result

    async def login(self, username: str, password: str) -> "asyncio.Task[AuthSession]":
        """Log in against the backend and start resolving the new user.

        Returns the refresh task. Backend rejections propagate as
        `httpx.HTTPError`; the slot is left anonymous in that case.
        """
        self._invalidate()
        try:
            await self.client.login(username, password)
        except httpx.HTTPError:
            self._state = AuthSession.anonymous()
            self._loaded = True
            raise
        return self.refresh()

    async def logout(self) -> None:
        self._invalidate()
        self._state = AuthSession.anonymous()
        await self.client.logout()
        self._loaded = True

    def _invalidate(self) -> None:
        self._generation += 1
        self._refresh_task = None
        self._loaded = False


class SessionRegistry:
    """Maps opaque session ids (the console cookie) to their slots.

    Created once per application in the lifespan and handed to requests
    through `app.state`. Slots idle for longer than the TTL are dropped.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        loader: UserLoader = fetch_current_user,
    ) -> None:
        self._settings = settings
        self._transport = transport
        self._loader = loader
        self._slots: dict[str, SessionSlot] = {}

    def __len__(self) -> int:
        return len(self._slots)

    def get(self, session_id: str | None) -> SessionSlot | None:
        self.purge_expired()
        if not session_id:
            return None
        slot = self._slots.get(session_id)
        if slot is not None:
            slot.touch()
        return slot

    def create(self) -> tuple[str, SessionSlot]:
        session_id = secrets.token_urlsafe(24)
        slot = SessionSlot(
            IdentityClient.from_settings(self._settings, transport=self._transport),
            keep_user_on_error=self._settings.keep_user_on_refresh_error,
            loader=self._loader,
        )
        self._slots[session_id] = slot
        return session_id, slot

    def discard(self, session_id: str | None) -> None:
        if session_id:
            self._slots.pop(session_id, None)

    def purge_expired(self) -> int:
        cutoff = time.monotonic() - self._settings.session_ttl_seconds
        expired = [sid for sid, slot in self._slots.items() if slot.touched_at < cutoff]
        for sid in expired:
            del self._slots[sid]
        if expired:
            logger.info("Purged %d idle console sessions", len(expired))
        return len(expired)

    async def settle(self, slot: SessionSlot) -> AuthSession:
        """Wait up to `session_wait_seconds` for a slot that was never loaded.

        The refresh keeps running past the wait; callers then see the
        `loading` state.
        """
        if not slot.loaded:
            task = slot.refresh()
            try:
                await asyncio.wait_for(
                    asyncio.shield(task), timeout=self._settings.session_wait_seconds
                )
            except asyncio.TimeoutError:
                pass
        return slot.current

    async def resolve(self, session_id: str | None) -> AuthSession:
        """Current session for a request, anonymous for unknown ids."""
        slot = self.get(session_id)
        if slot is None:
            return AuthSession.anonymous()
        return await self.settle(slot)
