import time
from typing import Optional

from itsdangerous import BadSignature, URLSafeTimedSerializer
from passlib.context import CryptContext

from config import Settings, get_settings
from errors import AuthenticationFailed

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return pwd_context.verify(password, password_hash)
    except ValueError:
        return False


def _serializer(settings: Settings) -> URLSafeTimedSerializer:
    return URLSafeTimedSerializer(settings.token_secret, salt="session-token")


def issue_token(user_id: int, settings: Optional[Settings] = None) -> str:
    settings = settings or get_settings()
    timestamp = int(time.time())
    expiry = timestamp + settings.token_expire_days * 24 * 3600
    token_data = {"u": user_id, "ts": timestamp, "exp": expiry}
    return _serializer(settings).dumps(token_data)


def read_token(token: str, settings: Optional[Settings] = None) -> int:
    """Return the user id carried by a session token."""
    settings = settings or get_settings()
    max_age = settings.token_expire_days * 24 * 3600
    try:
        data = _serializer(settings).loads(token, max_age=max_age)
    except BadSignature as exc:
        raise AuthenticationFailed("Invalid or expired token") from exc

    if not isinstance(data, dict) or not isinstance(data.get("u"), int):
        raise AuthenticationFailed("Invalid or expired token")
    if int(time.time()) > int(data.get("exp", 0)):
        raise AuthenticationFailed("Invalid or expired token")
    return data["u"]
