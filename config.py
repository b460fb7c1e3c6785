import os
from functools import lru_cache
from pathlib import Path


class Settings:
    def __init__(
        self,
        database_url: str,
        session_secret: str,
        session_max_age_hours: int,
        cookie_secure: bool,
        query_timeout_ms: int,
        log_level: str,
        auth_domain: str,
        auth_client_id: str,
        auth_client_secret: str,
        auth_redirect_uri: str,
        auth_logout_redirect_uri: str,
        auth_timeout_secs: float,
    ) -> None:
        self.database_url = database_url
        self.session_secret = session_secret
        self.session_max_age_hours = session_max_age_hours
        self.cookie_secure = cookie_secure
        self.query_timeout_ms = query_timeout_ms
        self.log_level = log_level
        self.auth_domain = auth_domain
        self.auth_client_id = auth_client_id
        self.auth_client_secret = auth_client_secret
        self.auth_redirect_uri = auth_redirect_uri
        self.auth_logout_redirect_uri = auth_logout_redirect_uri
        self.auth_timeout_secs = auth_timeout_secs


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("EXPENSES_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    database_url = os.getenv("EXPENSES_DATABASE_URL")
    if not database_url:
        default_db = _ensure_data_dir() / "expenses.db"
        database_url = f"sqlite:///{default_db}"
    session_secret = os.getenv(
        "EXPENSES_SESSION_SECRET",
        "4c1f0e8b7f3a9d2e6b5c8a1d0f7e3b9c2a6d5e8f1b4c7a0d3e6f9b2c5a8d1e4f",
    )
    session_max_age_hours = int(os.getenv("EXPENSES_SESSION_MAX_AGE_HOURS", "168"))
    cookie_secure = _env_flag("EXPENSES_COOKIE_SECURE", "true")
    query_timeout_ms = int(os.getenv("EXPENSES_QUERY_TIMEOUT_MS", "5000"))
    log_level = os.getenv("EXPENSES_LOG_LEVEL", "INFO").upper()
    auth_domain = os.getenv("EXPENSES_AUTH_DOMAIN", "https://example.kinde.com")
    auth_client_id = os.getenv("EXPENSES_AUTH_CLIENT_ID", "")
    auth_client_secret = os.getenv("EXPENSES_AUTH_CLIENT_SECRET", "")
    auth_redirect_uri = os.getenv(
        "EXPENSES_AUTH_REDIRECT_URI", "http://localhost:8000/api/v1/callback"
    )
    auth_logout_redirect_uri = os.getenv(
        "EXPENSES_AUTH_LOGOUT_REDIRECT_URI", "http://localhost:8000/"
    )
    auth_timeout_secs = float(os.getenv("EXPENSES_AUTH_TIMEOUT_SECS", "5"))
    return Settings(
        database_url=database_url,
        session_secret=session_secret,
        session_max_age_hours=session_max_age_hours,
        cookie_secure=cookie_secure,
        query_timeout_ms=query_timeout_ms,
        log_level=log_level,
        auth_domain=auth_domain.rstrip("/"),
        auth_client_id=auth_client_id,
        auth_client_secret=auth_client_secret,
        auth_redirect_uri=auth_redirect_uri,
        auth_logout_redirect_uri=auth_logout_redirect_uri,
        auth_timeout_secs=auth_timeout_secs,
    )
