# Overview: Flask API routes for customer document history.

from flask import Blueprint, jsonify

from ..decorators import require_auth
from ..errors import DomainError, error_response
from ..services import document_store


customers_bp = Blueprint("customers", __name__, url_prefix="/api/customers")


@customers_bp.get("/<int:customer_id>/invoices")
@require_auth
def customer_invoices_route(customer_id: int):
    """A customer's quotes, invoices and orders, newest first."""
    try:
        documents = document_store.list_by_customer(customer_id)
        return jsonify([doc.to_summary_dict() for doc in documents]), 200
    except DomainError as e:
        return error_response(e)
