from flask import Blueprint, request, jsonify, session
from flask_login import login_user, logout_user

from services.auth_service import authenticate_user

# Define the blueprint
auth_bp = Blueprint("auth", __name__)


# =========================================================
# LOGIN ROUTE
# =========================================================
@auth_bp.route("/login", methods=["POST"])
def login():
    data = request.get_json(silent=True) or request.form
    username = (data.get("username") or "").strip()
    password = data.get("password") or ""

    # 1. Basic Validation
    if not username or not password:
        return jsonify({"error": "Username and password are required"}), 400

    # 2. Authenticate User
    user = authenticate_user(username, password)
    if not user:
        return jsonify({"error": "Invalid username or password"}), 401

    # 3. Log the user in with Flask-Login
    login_user(user)
    session["user_id"] = user.user_id

    return jsonify({
        "status": "success",
        "username": user.username,
        "role": user.role.role_name.lower(),
    })


# =========================================================
# LOGOUT ROUTE
# =========================================================
@auth_bp.route("/logout")
def logout():
    logout_user()
    session.clear()
    return jsonify({"status": "logged_out"})
