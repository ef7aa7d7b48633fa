import os
import threading
from urllib.parse import urlparse

from dotenv import load_dotenv
from pydantic import BaseModel, Field


load_dotenv()


def _parse_bool(name: str, raw: str) -> bool:
    value = raw.strip().lower()
    if value in {"1", "true", "yes", "on"}:
        return True
    if value in {"0", "false", "no", "off"}:
        return False
    raise ValueError(f"{name} must be a boolean value")


def _parse_path(name: str, raw: str) -> str:
    value = raw.strip()
    if not value.startswith("/"):
        raise ValueError(f"{name} must start with '/'")
    return value


class Settings(BaseModel):
    app_name: str = Field(default="Académico")
    debug: bool = Field(default=False)
    api_base_url: str = Field(default="")
    identity_path: str = Field(default="/auth/me")
    permissions_fallback_path: str = Field(default="/me/permisos")
    login_path: str = Field(default="/auth/login")
    logout_path: str = Field(default="/auth/logout")
    request_timeout_seconds: float = Field(default=10.0)
    session_cookie_name: str = Field(default="academico_session")
    session_cookie_secure: bool = Field(default=True)
    session_ttl_seconds: int = Field(default=8 * 60 * 60)
    session_wait_seconds: float = Field(default=5.0)
    keep_user_on_refresh_error: bool = Field(default=False)
    log_level: str = Field(default="INFO")

    @classmethod
    def from_env(cls) -> "Settings":
        api_base_url = os.getenv("API_BASE_URL", "").strip()
        if not api_base_url:
            raise ValueError("API_BASE_URL environment variable must be set")

        parsed = urlparse(api_base_url)
        if parsed.scheme not in {"http", "https"} or not parsed.netloc:
            raise ValueError("API_BASE_URL must be a valid http/https URL with host")

        request_timeout_seconds = float(
            os.getenv(
                "REQUEST_TIMEOUT_SECONDS",
                cls.model_fields["request_timeout_seconds"].default,
            )
        )
        if request_timeout_seconds <= 0:
            raise ValueError("REQUEST_TIMEOUT_SECONDS must be greater than 0")

        session_ttl_seconds = int(
            os.getenv("SESSION_TTL_SECONDS", cls.model_fields["session_ttl_seconds"].default)
        )
        if session_ttl_seconds <= 0:
            raise ValueError("SESSION_TTL_SECONDS must be greater than 0")

        session_wait_seconds = float(
            os.getenv("SESSION_WAIT_SECONDS", cls.model_fields["session_wait_seconds"].default)
        )
        if session_wait_seconds < 0:
            raise ValueError("SESSION_WAIT_SECONDS must be greater than or equal to 0")

        session_cookie_name = os.getenv(
            "SESSION_COOKIE_NAME", cls.model_fields["session_cookie_name"].default
        ).strip()
        if not session_cookie_name:
            raise ValueError("SESSION_COOKIE_NAME must not be empty")

        return cls(
            app_name=os.getenv("APP_NAME", cls.model_fields["app_name"].default),
            debug=_parse_bool("DEBUG", os.getenv("DEBUG", "false")),
            api_base_url=api_base_url.rstrip("/"),
            identity_path=_parse_path(
                "IDENTITY_PATH",
                os.getenv("IDENTITY_PATH", cls.model_fields["identity_path"].default),
            ),
            permissions_fallback_path=_parse_path(
                "PERMISSIONS_FALLBACK_PATH",
                os.getenv(
                    "PERMISSIONS_FALLBACK_PATH",
                    cls.model_fields["permissions_fallback_path"].default,
                ),
            ),
            login_path=_parse_path(
                "LOGIN_PATH", os.getenv("LOGIN_PATH", cls.model_fields["login_path"].default)
            ),
            logout_path=_parse_path(
                "LOGOUT_PATH", os.getenv("LOGOUT_PATH", cls.model_fields["logout_path"].default)
            ),
            request_timeout_seconds=request_timeout_seconds,
            session_cookie_name=session_cookie_name,
            session_cookie_secure=_parse_bool(
                "SESSION_COOKIE_SECURE", os.getenv("SESSION_COOKIE_SECURE", "true")
            ),
            session_ttl_seconds=session_ttl_seconds,
            session_wait_seconds=session_wait_seconds,
            keep_user_on_refresh_error=_parse_bool(
                "KEEP_USER_ON_REFRESH_ERROR",
                os.getenv("KEEP_USER_ON_REFRESH_ERROR", "false"),
            ),
            log_level=os.getenv("LOG_LEVEL", cls.model_fields["log_level"].default).upper(),
        )


# Deferred so the module can be imported without a configured environment
_settings_instance: Settings | None = None
_settings_lock = threading.Lock()


def get_settings() -> Settings:
    """Get settings instance, creating it on first access.

    Uses double-checked locking so concurrent first accesses build the
    settings only once.

    Raises:
        ValueError: If required environment variables are missing or invalid
    """
    global _settings_instance

    if _settings_instance is not None:
        return _settings_instance

    with _settings_lock:
        if _settings_instance is None:
            _settings_instance = Settings.from_env()

    return _settings_instance


def reset_settings() -> None:
    """Drop the cached settings so the next access re-reads the environment."""
    global _settings_instance
    with _settings_lock:
        _settings_instance = None


class _SettingsProxy:
    """Proxy to defer settings creation until first attribute access."""

    def __getattr__(self, name: str):
        return getattr(get_settings(), name)


settings = _SettingsProxy()  # type: ignore[assignment]
