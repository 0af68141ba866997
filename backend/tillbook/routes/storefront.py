# Overview: Public storefront routes for order checkout and quote requests.

"""
Storefront API Routes

Unauthenticated endpoints used by the public shop. Customers are matched by
email (upsert). Staff are notified after the document is committed; a
notification failure never fails the request.
"""

from flask import Blueprint, current_app, jsonify, request

from ..errors import DomainError, ValidationError, error_response
from ..services import lifecycle_service
from ..validation import optional_str, parse_line_items, require_json


storefront_bp = Blueprint("storefront", __name__, url_prefix="/api")

PAYMENT_METHODS = {"cod", "transfer"}


def _require_email(value) -> str:
    if not isinstance(value, str) or "@" not in value.strip():
        raise ValidationError("A valid email is required")
    return value.strip()


@storefront_bp.post("/orders")
def submit_order_route():
    """
    Request body:
    {
        "customer": {"name": "Aisha", "email": "aisha@example.com", "phone": "...", "address": "..."},
        "cart": [{"id": 7, "quantity": 1, "price": 12.50}],
        "payment": {"method": "cod" | "transfer", "reference": "..."}
    }

    Response: 201 {orderId, total, subtotal, taxAmount, status}
    """
    try:
        data = require_json(request.get_json(silent=True))
        customer = data.get("customer")
        if not isinstance(customer, dict):
            return jsonify({"error": "customer is required"}), 400

        name = optional_str(customer, "name")
        if not name:
            return jsonify({"error": "customer.name is required"}), 400
        buyer = {
            "name": name,
            "email": _require_email(customer.get("email")),
            "phone": optional_str(customer, "phone", max_length=32),
            "address": optional_str(customer, "address", max_length=1000),
        }

        payment = data.get("payment") or {}
        if not isinstance(payment, dict):
            return jsonify({"error": "payment must be an object"}), 400
        method = (optional_str(payment, "method", max_length=32) or "cod").lower()
        if method not in PAYMENT_METHODS:
            return jsonify({"error": f"Unsupported payment method: {method}"}), 400

        document = lifecycle_service.submit_order(
            customer=buyer,
            items=parse_line_items(data.get("cart")),
            payment_method=method,
            payment_reference=optional_str(payment, "reference", max_length=128),
        )

        return jsonify({
            "orderId": document.id,
            "subtotal": float(document.subtotal),
            "taxAmount": float(document.tax_amount),
            "total": float(document.total),
            "status": document.status,
        }), 201

    except DomainError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to submit order")
        return jsonify({"error": "Internal server error"}), 500


@storefront_bp.post("/quotes")
def submit_quote_route():
    """
    Request body:
    {
        "contact_name": "Ibrahim", "email": "...", "phone": "...",
        "company_name": "Reef Traders", "details": "Need delivery by Friday",
        "cart": [{"id": 7, "quantity": 10}]
    }

    Lines with quantity 0 or less are dropped.
    """
    try:
        data = require_json(request.get_json(silent=True))
        contact_name = optional_str(data, "contact_name")
        if not contact_name:
            return jsonify({"error": "contact_name is required"}), 400

        document = lifecycle_service.submit_quote_request(
            contact_name=contact_name,
            email=_require_email(data.get("email")),
            phone=optional_str(data, "phone", max_length=32),
            company_name=optional_str(data, "company_name"),
            details=optional_str(data, "details", max_length=4000),
            items=parse_line_items(data.get("cart"), skip_non_positive=True),
        )

        return jsonify({
            "quoteId": document.id,
            "total": float(document.total),
            "status": document.status,
        }), 201

    except DomainError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to submit quote request")
        return jsonify({"error": "Internal server error"}), 500
