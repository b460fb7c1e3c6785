import secrets
from dataclasses import dataclass
from typing import Optional

from itsdangerous import BadSignature, URLSafeTimedSerializer

from config import get_settings

SESSION_COOKIE = "expenses_session"
STATE_COOKIE = "expenses_oauth_state"
STATE_MAX_AGE_SECS = 600


@dataclass(frozen=True)
class SessionUser:
    id: str
    email: Optional[str] = None
    given_name: Optional[str] = None
    family_name: Optional[str] = None

    def to_dict(self) -> dict[str, Optional[str]]:
        return {
            "id": self.id,
            "email": self.email,
            "givenName": self.given_name,
            "familyName": self.family_name,
        }


def _serializer(salt: str) -> URLSafeTimedSerializer:
    settings = get_settings()
    return URLSafeTimedSerializer(settings.session_secret, salt=salt)


def create_session_token(user: SessionUser) -> str:
    payload = {
        "u": user.id,
        "e": user.email,
        "g": user.given_name,
        "f": user.family_name,
    }
    return _serializer("session").dumps(payload)


def read_session_token(
    token: Optional[str], max_age_hours: Optional[int] = None
) -> Optional[SessionUser]:
    if not token:
        return None
    if max_age_hours is None:
        max_age_hours = get_settings().session_max_age_hours
    try:
        data = _serializer("session").loads(token, max_age=max_age_hours * 3600)
    except BadSignature:
        return None
    if not isinstance(data, dict) or not data.get("u"):
        return None
    return SessionUser(
        id=str(data["u"]),
        email=data.get("e"),
        given_name=data.get("g"),
        family_name=data.get("f"),
    )


def generate_state() -> str:
    return _serializer("oauth-state").dumps({"n": secrets.token_urlsafe(16)})


def validate_state(token: Optional[str], cookie_value: Optional[str]) -> bool:
    if not token or not cookie_value:
        return False
    if not secrets.compare_digest(token, cookie_value):
        return False
    try:
        _serializer("oauth-state").loads(token, max_age=STATE_MAX_AGE_SECS)
    except BadSignature:
        return False
    return True
