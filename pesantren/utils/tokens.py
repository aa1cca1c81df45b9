from itsdangerous import URLSafeTimedSerializer, BadSignature, SignatureExpired
from flask import current_app

TOKEN_SALT = "api-bearer"


def _serializer():
    return URLSafeTimedSerializer(current_app.config["SECRET_KEY"])


def generate_auth_token(user):
    return _serializer().dumps({"id": user.id, "role": user.role.value}, salt=TOKEN_SALT)


def verify_auth_token(token, max_age=None):
    """Kembalikan user id dari token, atau None bila token rusak/kedaluwarsa."""
    if not token:
        return None
    if max_age is None:
        max_age = current_app.config.get("AUTH_TOKEN_MAX_AGE", 3600)
    try:
        payload = _serializer().loads(token, salt=TOKEN_SALT, max_age=max_age)
    except (BadSignature, SignatureExpired):
        return None
    if not isinstance(payload, dict):
        return None
    return payload.get("id")
