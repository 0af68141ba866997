# Overview: Flask API routes for staff login.

from flask import Blueprint, current_app, jsonify, request

from ..errors import DomainError, error_response
from ..services import auth_service


auth_bp = Blueprint("auth", __name__, url_prefix="/api")


@auth_bp.post("/login")
def login_route():
    """
    Request body: {"username": "manager", "password": "..."}
    Response: {"token": "<jwt>", "role": "manager"}
    """
    try:
        data = request.get_json(silent=True) or {}
        username = data.get("username")
        password = data.get("password")
        if not username or not password:
            return jsonify({"error": "username and password required"}), 400

        staff = auth_service.authenticate(username, password)
        return jsonify({"token": auth_service.issue_token(staff), "role": staff.role}), 200

    except DomainError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Login failed")
        return jsonify({"error": "Internal server error"}), 500
