# Overview: Flask API routes for shift operations; parses input and returns JSON responses.

"""
Shift Operations API Routes

DESIGN:
- Shift lifecycle: start -> (cash drops / pay-ins) -> close, immutable once closed
- Starting over an open shift requires an explicit closePrevious mode
- The server recomputes counted cash; client totals are only cross-checked

SECURITY:
- All endpoints: cashier or manager (and anyone ranked above)
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth, require_role
from ..errors import DomainError, error_response
from ..services import reconciliation_service
from ..validation import optional_str, parse_money, require_json


operations_bp = Blueprint("operations", __name__, url_prefix="/api/operations")

SHIFT_ROLES = ["cashier", "manager"]


def _actor() -> str:
    return g.current_user.username


@operations_bp.get("/shift/current")
@require_auth
@require_role(SHIFT_ROLES)
def current_shift_route():
    """
    Response (open shift):
    {
        "isOpen": true, "shiftId": 4, "openedAt": "...", "openedBy": "cashier",
        "startingCash": 200.0, "expectedCash": 412.5, "totalSales": 530.0,
        "cashSales": 212.5, "cardSales": 317.5, "transactionCount": 9, ...
    }
    Response (no shift): {"isOpen": false}
    """
    try:
        return jsonify(reconciliation_service.current_shift_report()), 200
    except Exception:
        current_app.logger.exception("Failed to load current shift")
        return jsonify({"error": "Internal server error"}), 500


@operations_bp.post("/shift/start")
@require_auth
@require_role(SHIFT_ROLES)
def start_shift_route():
    """
    Request body:
    {
        "startingCash": 200,
        "closePrevious": {"mode": "forced"}
                       | {"mode": "validated", "cashCounts": {...}, "notes": "...", "confirmDiscrepancy": true}
    }

    closePrevious is required only when a shift is already open (409 otherwise).
    """
    try:
        data = require_json(request.get_json(silent=True))
        starting_cash = parse_money(data.get("startingCash", 0), "startingCash")

        close_previous = None
        if data.get("closePrevious") is not None:
            close_previous = reconciliation_service.parse_close_request(data["closePrevious"])

        shift = reconciliation_service.start_shift(
            starting_cash,
            actor=_actor(),
            close_previous=close_previous,
        )
        return jsonify({"message": "Shift started", "shift": shift.to_dict()}), 200

    except DomainError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to start shift")
        return jsonify({"error": "Internal server error"}), 500


@operations_bp.post("/shift/close")
@require_auth
@require_role(SHIFT_ROLES)
def close_shift_route():
    """
    Request body:
    {
        "cashCounts": {"hundreds": 2, "fifties": 1, "coins": 4.50},
        "notes": "Short because of a refund",
        "confirmDiscrepancy": true,
        "actualCash": 254.50,      (optional, cross-checked)
        "discrepancy": -45.50      (optional, cross-checked)
    }
    """
    try:
        data = require_json(request.get_json(silent=True))
        close_request = reconciliation_service.build_validated_close(data)
        shift = reconciliation_service.close_shift(close_request, actor=_actor())
        return jsonify({"message": "Shift closed", "shift": shift.to_dict()}), 200

    except DomainError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to close shift")
        return jsonify({"error": "Internal server error"}), 500


def _drawer_movement(event_type: str):
    try:
        data = require_json(request.get_json(silent=True))
        amount = parse_money(data.get("amount"), "amount")
        event = reconciliation_service.record_drawer_movement(
            event_type,
            amount,
            reason=optional_str(data, "reason"),
            actor=_actor(),
        )
        return jsonify({"event": event.to_dict()}), 201

    except DomainError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to record %s", event_type)
        return jsonify({"error": "Internal server error"}), 500


@operations_bp.post("/shift/cash-drop")
@require_auth
@require_role(SHIFT_ROLES)
def cash_drop_route():
    """Request body: {"amount": 100, "reason": "Safe drop"}"""
    return _drawer_movement("CASH_DROP")


@operations_bp.post("/shift/pay-in")
@require_auth
@require_role(SHIFT_ROLES)
def pay_in_route():
    """Request body: {"amount": 50, "reason": "Change float top-up"}"""
    return _drawer_movement("PAY_IN")
