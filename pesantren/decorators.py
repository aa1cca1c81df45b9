from functools import wraps
from flask import jsonify
from flask_login import current_user
from pesantren.models import UserRole
from pesantren.utils.roles import user_has_role


def unauthorized_response():
    return jsonify({"message": "Unauthorized"}), 401


def role_required(*roles):
    """
    Decorator untuk membatasi akses endpoint API berdasarkan Role.
    Penggunaan: @role_required(UserRole.ADMIN)
    Ditolak sebelum query apa pun dijalankan (401).
    """
    def wrapper(fn):
        @wraps(fn)
        def decorated_view(*args, **kwargs):
            if not current_user.is_authenticated:
                return unauthorized_response()
            if not user_has_role(current_user, *roles):
                return unauthorized_response()
            return fn(*args, **kwargs)
        return decorated_view
    return wrapper


def admin_required(fn):
    return role_required(UserRole.ADMIN)(fn)
