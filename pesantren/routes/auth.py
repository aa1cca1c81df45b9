from datetime import datetime
from flask import Blueprint, jsonify
from flask_login import login_user, logout_user, current_user, login_required
from sqlalchemy import or_
from pesantren.extensions import db
from pesantren.models import User, Student
from pesantren.forms import LoginForm
from pesantren.utils.roles import role_label
from pesantren.utils.tokens import generate_auth_token


auth_bp = Blueprint('auth', __name__)


def _resolve_user_for_login(login_id):
    identifier = (login_id or '').strip()
    if not identifier:
        return None, False

    # 1) Prioritas: username/email langsung pada tabel users
    direct_user = User.query.filter(
        or_(User.email == identifier, User.username == identifier)
    ).first()
    if direct_user:
        return direct_user, False

    # 2) Fallback: santri login pakai NIS
    student_rows = db.session.query(Student.user_id).filter(Student.nis == identifier).all()
    candidate_ids = {row[0] for row in student_rows if row[0]}

    if not candidate_ids:
        return None, False

    if len(candidate_ids) > 1:
        return None, True

    return db.session.get(User, next(iter(candidate_ids))), False


def _authenticate(form):
    """Return (user, error_response)."""
    if not form.validate_on_submit():
        return None, (jsonify({"message": "Validasi gagal", "errors": form.errors}), 400)

    user, is_ambiguous = _resolve_user_for_login(form.login_id.data)
    if is_ambiguous:
        return None, (jsonify({
            "message": "Login gagal: identifier terhubung ke lebih dari satu akun. Hubungi admin."
        }), 401)

    if not user or not user.check_password(form.password.data):
        return None, (jsonify({"message": "Login gagal. Cek kembali Username/Email/NIS dan password."}), 401)

    user.last_login = datetime.utcnow()
    db.session.commit()
    return user, None


def _user_payload(user):
    return {
        "id": user.id,
        "username": user.username,
        "role": user.role.value,
        "roleLabel": role_label(user.role),
    }


# --- LOGIN SESSION (cookie) ---
@auth_bp.route('/login', methods=['POST'])
def login():
    form = LoginForm()
    user, error = _authenticate(form)
    if error:
        return error

    login_user(user, remember=bool(form.remember.data))
    return jsonify({"message": "Login berhasil", "user": _user_payload(user)})


# --- TOKEN (Authorization: Bearer ...) ---
@auth_bp.route('/token', methods=['POST'])
def issue_token():
    user, error = _authenticate(LoginForm())
    if error:
        return error

    return jsonify({
        "token": generate_auth_token(user),
        "tokenType": "Bearer",
        "user": _user_payload(user),
    })


@auth_bp.route('/logout', methods=['POST'])
@login_required
def logout():
    logout_user()
    return jsonify({"message": "Logout berhasil"})


@auth_bp.route('/me', methods=['GET'])
@login_required
def me():
    return jsonify(_user_payload(current_user))
