# Overview: Flask API routes for quotes, invoices and orders; parses input and returns JSON responses.

"""
Document API Routes

DESIGN:
- One table for quotes, invoices and orders (tagged by type)
- Every mutation goes through services/lifecycle_service.py
- Error body is always {"error": message}, optionally with "details"

SECURITY:
- create: cashier and up
- status / convert / edit / read one: manager and up
- delete: admin
- list: any authenticated staff
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth, require_role
from ..errors import DomainError, ValidationError, error_response
from ..services import document_store, lifecycle_service
from ..validation import optional_str, parse_int, parse_line_items, require_json


invoices_bp = Blueprint("invoices", __name__, url_prefix="/api/invoices")


def _actor() -> str | None:
    user = getattr(g, "current_user", None)
    return user.username if user else None


def _document_type(raw) -> str:
    if raw is None or raw == "":
        return "invoice"
    if not isinstance(raw, str) or raw.strip().lower() not in ("invoice", "quote"):
        raise ValidationError("type must be 'invoice' or 'quote'")
    return raw.strip().lower()


@invoices_bp.post("")
@invoices_bp.post("/")
@require_auth
@require_role("cashier")
def create_invoice_route():
    """
    Create an invoice or quote.

    Request body:
    {
        "customerId": 3,
        "items": [{"id": 7, "quantity": 2, "price": 12.50}],
        "type": "invoice" | "quote"   (default invoice)
    }

    Response: 201 {id, subtotal, taxAmount, total, type, status}
    """
    try:
        data = require_json(request.get_json(silent=True))
        if data.get("customerId") is None or not data.get("items"):
            return jsonify({"error": "Missing customerId or items"}), 400

        customer_id = parse_int(data.get("customerId"), "customerId", minimum=1)
        items = parse_line_items(data.get("items"))
        doc_type = _document_type(data.get("type"))

        document = lifecycle_service.create_document(
            customer_id=customer_id,
            items=items,
            doc_type=doc_type,
            actor=_actor(),
        )

        return jsonify({
            "id": document.id,
            "subtotal": float(document.subtotal),
            "taxAmount": float(document.tax_amount),
            "total": float(document.total),
            "type": document.type,
            "status": document.status,
        }), 201

    except DomainError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create invoice")
        return jsonify({"error": "Internal server error"}), 500


@invoices_bp.get("")
@invoices_bp.get("/")
@require_auth
def list_invoices_route():
    """All documents, newest first."""
    documents = document_store.list_all()
    return jsonify([doc.to_summary_dict() for doc in documents]), 200


@invoices_bp.get("/<int:document_id>")
@require_auth
@require_role("manager")
def get_invoice_route(document_id: int):
    try:
        document = document_store.get_document(document_id)
        return jsonify(document.to_dict(include_lines=True)), 200
    except DomainError as e:
        return error_response(e)


@invoices_bp.put("/<int:document_id>")
@require_auth
@require_role("manager")
def update_invoice_route(document_id: int):
    """
    Replace the lines of a quote (draft/sent) or an issued invoice/order.

    Request body: {"items": [{"id": 7, "quantity": 3, "price": 12.50}]}
    """
    try:
        data = require_json(request.get_json(silent=True))
        items = parse_line_items(data.get("items"))
        document = lifecycle_service.update_document(document_id, items, actor=_actor())
        return jsonify(document.to_dict(include_lines=True)), 200
    except DomainError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update document %s", document_id)
        return jsonify({"error": "Internal server error"}), 500


@invoices_bp.put("/<int:document_id>/status")
@require_auth
@require_role("manager")
def update_status_route(document_id: int):
    """
    Request body:
    {
        "status": "paid",
        "paymentMethod": "cash",       (optional, used when marking paid)
        "paymentReference": "RCPT-1"   (optional)
    }
    """
    try:
        data = require_json(request.get_json(silent=True))
        status = data.get("status")
        if not isinstance(status, str) or not status.strip():
            return jsonify({"error": "status is required"}), 400

        payment_method = optional_str(data, "paymentMethod", max_length=32)
        document = lifecycle_service.transition_status(
            document_id,
            status.strip().lower(),
            actor=_actor(),
            payment_method=payment_method.lower() if payment_method else None,
            payment_reference=optional_str(data, "paymentReference", max_length=128),
        )
        return jsonify(document.to_dict(include_lines=True)), 200
    except DomainError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update status of document %s", document_id)
        return jsonify({"error": "Internal server error"}), 500


@invoices_bp.put("/<int:document_id>/convert")
@require_auth
@require_role("manager")
def convert_quote_route(document_id: int):
    """Convert a quote into an issued invoice (stock-checked, one-way)."""
    try:
        document = lifecycle_service.convert_quote(document_id, actor=_actor())
        return jsonify(document.to_dict(include_lines=True)), 200
    except DomainError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to convert quote %s", document_id)
        return jsonify({"error": "Internal server error"}), 500


@invoices_bp.delete("/<int:document_id>")
@require_auth
@require_role("admin")
def delete_invoice_route(document_id: int):
    """Delete a document; invoices and orders return their stock."""
    try:
        lifecycle_service.delete_document(document_id, actor=_actor())
        return "", 204
    except DomainError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete document %s", document_id)
        return jsonify({"error": "Internal server error"}), 500
