from typing import Optional
from itsdangerous import URLSafeTimedSerializer, BadSignature, SignatureExpired
from flask import current_app

def _serializer() -> URLSafeTimedSerializer:
    secret = current_app.config["SECRET_KEY"]
    salt = current_app.config.get("API_TOKEN_SALT", "api-token-v1")
    return URLSafeTimedSerializer(secret_key=secret, salt=salt)

def generate_api_token(user_id: int) -> str:
    return _serializer().dumps({"k": "api", "u": int(user_id)})

def verify_api_token(token: str, max_age_seconds: Optional[int] = None) -> Optional[int]:
    """Return the user id carried by a bearer token, or None when invalid/expired."""
    if max_age_seconds is None:
        max_age_seconds = current_app.config.get("API_TOKEN_MAX_AGE", 7 * 24 * 3600)
    try:
        data = _serializer().loads(token, max_age=max_age_seconds)
    except (BadSignature, SignatureExpired):
        return None
    if not isinstance(data, dict) or data.get("k") != "api":
        return None
    try:
        return int(data.get("u"))
    except (TypeError, ValueError):
        return None
