# Overview: Flask API routes for in-app notifications.

from flask import Blueprint, jsonify

from ..decorators import require_auth
from ..services import notification_service


notifications_bp = Blueprint("notifications", __name__, url_prefix="/api/notifications")


@notifications_bp.get("")
@notifications_bp.get("/")
@require_auth
def list_notifications_route():
    """Latest 50 notifications, newest first."""
    return jsonify([n.to_dict() for n in notification_service.list_recent(50)]), 200
