from fastapi import Header, HTTPException
from itsdangerous import BadSignature, URLSafeTimedSerializer

from config import get_settings
from services import get_current_user_id

CSRF_HEADER = "X-CSRF-Token"
MAX_AGE_HOURS = 2


def _serializer() -> URLSafeTimedSerializer:
    settings = get_settings()
    return URLSafeTimedSerializer(settings.csrf_secret, salt="bills-csrf")


def generate_csrf_token(user_id: int) -> str:
    return _serializer().dumps({"u": user_id})


def validate_csrf_token(
    token: str, user_id: int, max_age_hours: int = MAX_AGE_HOURS
) -> bool:
    if not token:
        return False
    try:
        data = _serializer().loads(token, max_age=max_age_hours * 3600)
    except BadSignature:
        return False
    return isinstance(data, dict) and data.get("u") == user_id


def require_csrf(x_csrf_token: str = Header(default="", alias=CSRF_HEADER)) -> None:
    if not validate_csrf_token(x_csrf_token, get_current_user_id()):
        raise HTTPException(status_code=403, detail="Invalid CSRF token")
