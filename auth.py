from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Optional
from urllib.error import URLError
from urllib.parse import urlencode
from urllib.request import Request, urlopen

from fastapi import HTTPException, Request as HttpRequest

from config import Settings, get_settings
from sessions import SESSION_COOKIE, SessionUser, read_session_token

logger = logging.getLogger(__name__)

OAUTH_SCOPES = "openid profile email offline"


class IdentityProviderError(RuntimeError):
    pass


@dataclass(frozen=True)
class TokenSet:
    access_token: str
    id_token: Optional[str]
    refresh_token: Optional[str]
    expires_in: Optional[int]


class IdentityProvider:
    """Authorization-code client for the hosted identity provider."""

    def __init__(self, settings: Optional[Settings] = None) -> None:
        self.settings = settings or get_settings()

    def authorization_url(self, state: str, *, register: bool = False) -> str:
        params = {
            "client_id": self.settings.auth_client_id,
            "response_type": "code",
            "redirect_uri": self.settings.auth_redirect_uri,
            "scope": OAUTH_SCOPES,
            "state": state,
        }
        if register:
            params["prompt"] = "create"
        return f"{self.settings.auth_domain}/oauth2/auth?{urlencode(params)}"

    def logout_url(self) -> str:
        query = urlencode({"redirect": self.settings.auth_logout_redirect_uri})
        return f"{self.settings.auth_domain}/logout?{query}"

    def exchange_code(self, code: str) -> TokenSet:
        body = urlencode(
            {
                "grant_type": "authorization_code",
                "code": code,
                "client_id": self.settings.auth_client_id,
                "client_secret": self.settings.auth_client_secret,
                "redirect_uri": self.settings.auth_redirect_uri,
            }
        ).encode("utf-8")
        req = Request(
            f"{self.settings.auth_domain}/oauth2/token",
            data=body,
            headers={
                "Accept": "application/json",
                "Content-Type": "application/x-www-form-urlencoded",
            },
            method="POST",
        )
        payload = self._request_json(req, "token exchange")
        try:
            return TokenSet(
                access_token=payload["access_token"],
                id_token=payload.get("id_token"),
                refresh_token=payload.get("refresh_token"),
                expires_in=payload.get("expires_in"),
            )
        except KeyError as exc:
            raise IdentityProviderError("Token response missing access_token") from exc

    def fetch_profile(self, access_token: str) -> SessionUser:
        req = Request(
            f"{self.settings.auth_domain}/oauth2/v2/user_profile",
            headers={
                "Accept": "application/json",
                "Authorization": f"Bearer {access_token}",
            },
        )
        payload = self._request_json(req, "profile fetch")
        user_id = payload.get("id") or payload.get("sub")
        if not user_id:
            raise IdentityProviderError("Profile response missing user id")
        return SessionUser(
            id=str(user_id),
            email=payload.get("email") or payload.get("preferred_email"),
            given_name=payload.get("given_name") or payload.get("first_name"),
            family_name=payload.get("family_name") or payload.get("last_name"),
        )

    def _request_json(self, req: Request, action: str) -> dict:
        try:
            with urlopen(req, timeout=self.settings.auth_timeout_secs) as resp:
                payload = json.loads(resp.read().decode("utf-8"))
        except (URLError, TimeoutError, json.JSONDecodeError) as exc:
            raise IdentityProviderError(
                f"Identity provider {action} failed"
            ) from exc
        if not isinstance(payload, dict):
            raise IdentityProviderError(f"Unexpected {action} response")
        return payload


def get_identity_provider() -> IdentityProvider:
    return IdentityProvider()


def session_user(request: HttpRequest) -> Optional[SessionUser]:
    return read_session_token(request.cookies.get(SESSION_COOKIE))


def get_current_user(request: HttpRequest) -> SessionUser:
    user = session_user(request)
    if user is None:
        raise HTTPException(status_code=401, detail="You are not authenticated")
    return user
