"""
Authentication Routes

Provides:
- /auth/login
- /auth/logout
- /auth/me
- /auth/csrf-token
- /auth/seed-admin (first system bootstrap)

Rules:
- Only active users may log in.
- seed-admin only works while the users table is empty.
"""

from flask import Blueprint, jsonify
from flask_login import current_user, login_required, login_user, logout_user
from flask_wtf.csrf import generate_csrf

from ...errors import ConflictError, ValidationError
from ...extensions import db
from ...models import User
from ...security import current_actor
from ...utils import request_payload


auth_bp = Blueprint("auth", __name__, url_prefix="/auth")


def user_to_dict(user: User) -> dict:
    return {
        "id": user.id,
        "username": user.username,
        "full_name": user.full_name,
        "is_admin": bool(user.is_admin),
        "can_manage": bool(user.can_manage()),
        "is_active": bool(user.is_active),
    }


@auth_bp.route("/csrf-token", methods=["GET"])
def csrf_token():
    """Token for JSON clients; send it back in the X-CSRFToken header."""
    return jsonify({"csrf_token": generate_csrf()})


# ============================================================
# LOGIN / LOGOUT
# ============================================================

@auth_bp.route("/login", methods=["POST"])
def login():
    data = request_payload()
    username = str(data.get("username") or "").strip()
    password = str(data.get("password") or "")

    user = User.query.filter_by(username=username).first()
    if not user or not user.check_password(password):
        return jsonify({"code": "invalid_credentials", "message": "Invalid username or password"}), 401
    if not user.is_active:
        return jsonify({"code": "inactive_account", "message": "This account is inactive"}), 403

    login_user(user)
    return jsonify(user_to_dict(user))


@auth_bp.route("/logout", methods=["POST"])
@login_required
def logout():
    logout_user()
    return jsonify({"logged_out": True})


@auth_bp.route("/me", methods=["GET"])
@login_required
def me():
    data = user_to_dict(current_user)
    data["actor"] = {"can_manage": current_actor().can_manage}
    return jsonify(data)


# ============================================================
# SEED FIRST ADMIN (BOOTSTRAP)
# ============================================================

@auth_bp.route("/seed-admin", methods=["POST"])
def seed_admin():
    """
    Bootstrap the FIRST admin of the system.

    If ANY user already exists the request is refused.
    """
    if User.query.count() > 0:
        raise ConflictError("A user already exists; seed-admin is only available on an empty system")

    data = request_payload()
    username = str(data.get("username") or "").strip()
    password = str(data.get("password") or "")
    if not username or not password:
        raise ValidationError("Username and password are required", field="username")

    user = User(
        username=username,
        full_name=str(data.get("full_name") or "System Administrator"),
        is_admin=True,
        can_manage_quotations=True,
        is_active=True,
    )
    user.set_password(password)

    db.session.add(user)
    db.session.commit()
    return jsonify(user_to_dict(user)), 201
