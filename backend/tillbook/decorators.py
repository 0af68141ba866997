# Overview: Request and role decorators for API routes.

from functools import wraps

from flask import g, jsonify, request

from .errors import AuthError
from .services import auth_service


def require_auth(f):
    """
    Require a valid bearer token.

    Sets g.current_user to the authenticated Staff row.
    Returns 401 if the header is missing or the token is invalid/expired.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        auth_header = request.headers.get("Authorization")

        if not auth_header or not auth_header.startswith("Bearer "):
            return jsonify({"error": "Authentication required"}), 401

        token = auth_header.split(" ", 1)[1].strip()
        try:
            g.current_user = auth_service.staff_for_token(token)
        except AuthError as e:
            return jsonify({"error": e.message}), 401

        return f(*args, **kwargs)

    return decorated_function


def require_role(required):
    """
    Require a role (or higher rank). Must be stacked under @require_auth.

    require_role("manager")               manager or admin
    require_role(["cashier", "manager"])  cashier, manager or anyone ranked above
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            user = getattr(g, "current_user", None)
            if user is None:
                return jsonify({"error": "Authentication required"}), 401

            if not auth_service.role_allows(user.role, required):
                return jsonify({
                    "error": "Permission denied",
                    "required_role": required,
                }), 403

            return f(*args, **kwargs)

        return decorated_function

    return decorator
