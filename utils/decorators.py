from functools import wraps
from flask import jsonify
from flask_login import current_user


def role_required(*allowed_roles):
    allowed = {r.lower() for r in allowed_roles}

    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            # 1. Check if user is logged in
            if not current_user.is_authenticated:
                return jsonify({"error": "Login required"}), 401

            # 2. Check if user has one of the accepted roles
            role = getattr(current_user, "role", None)
            role_name = role.role_name.lower() if role else ""
            if role_name not in allowed:
                return jsonify({"error": "Access Denied: You do not have the required role."}), 403

            return func(*args, **kwargs)
        return wrapper
    return decorator
