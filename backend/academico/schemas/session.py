from pydantic import BaseModel, Field

from ..auth.identity import CanonicalUser
from ..auth.roles import resolve_role_label
from ..auth.session import AuthSession, AuthStatus


class ViewResponse(BaseModel):
    id: int
    name: str
    code: str
    description: str | None = None


class UserResponse(BaseModel):
    id: int | str | None = None
    display_name: str | None = None
    username: str | None = None
    email: str | None = None
    primary_role: str | None = None
    role_label: str = ""
    roles: list[str] = Field(default_factory=list)
    views: list[ViewResponse] = Field(default_factory=list)

    @classmethod
    def from_user(cls, user: CanonicalUser) -> "UserResponse":
        return cls(
            id=user.id,
            display_name=user.display_name,
            username=user.username,
            email=user.email,
            primary_role=user.primary_role,
            role_label=resolve_role_label(user.primary_role),
            roles=list(user.roles),
            views=[
                ViewResponse(
                    id=view.id if view.id is not None else index + 1,
                    name=view.name or view.code,
                    code=view.code,
                    description=view.description,
                )
                for index, view in enumerate(user.views)
            ],
        )


class SessionResponse(BaseModel):
    status: AuthStatus
    user: UserResponse | None = None
    views: list[str] = Field(default_factory=list)

    @classmethod
    def from_session(cls, session: AuthSession) -> "SessionResponse":
        user = session.user
        return cls(
            status=session.status,
            user=UserResponse.from_user(user) if user is not None else None,
            views=list(user.view_codes) if user is not None else [],
        )
