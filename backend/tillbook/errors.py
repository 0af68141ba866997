# Overview: Domain error taxonomy shared by services and routes.

from __future__ import annotations

from flask import current_app, jsonify


class DomainError(Exception):
    """
    Base class for errors that map onto an HTTP response.

    Services raise these; routes and the app-level handler render them as
    {"error": message} with the class status code.
    """
    status_code = 500

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ValidationError(DomainError):
    """400-level input or business rule problem (message shown to the user)."""
    status_code = 400


class AuthError(DomainError):
    status_code = 401


class ForbiddenError(DomainError):
    status_code = 403


class NotFoundError(DomainError):
    status_code = 404


class ConflictError(DomainError):
    """409-level conflict (unique constraint, shift already open)."""
    status_code = 409


class StorageError(DomainError):
    """
    Database failure inside a unit of work.

    Raised only after the enclosing transaction has been rolled back, so
    document headers, lines and stock deltas are never partially committed.
    """
    status_code = 500


class NotificationError(Exception):
    """Email / in-app dispatch failure. Logged by the sink, never propagated."""


def error_response(exc: DomainError):
    body = {"error": exc.message}
    if exc.details:
        body["details"] = exc.details
    if exc.status_code >= 500:
        current_app.logger.error("Storage failure: %s", exc.message, exc_info=exc)
    return jsonify(body), exc.status_code
