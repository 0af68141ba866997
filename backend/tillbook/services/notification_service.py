# Overview: Notification sink for post-commit events (in-app rows and email).

"""
Notification Sink

Fire-and-forget delivery of lifecycle events (new order, new quote request,
low stock). Everything here runs AFTER the lifecycle transaction committed:
- a failure is logged and swallowed; the document change is already final
- each event uses its own short transaction for the in-app row
- email goes out only when MAIL_SERVER is configured
"""

from __future__ import annotations

import smtplib
from dataclasses import dataclass, field
from email.message import EmailMessage

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..errors import NotificationError
from ..extensions import db
from ..models import Notification


@dataclass
class NotificationEvent:
    title: str
    message: str
    kind: str = "info"
    link: str | None = None
    payload: dict = field(default_factory=dict)
    email_subject: str | None = None


def _store_in_app(event: NotificationEvent) -> Notification:
    try:
        row = Notification(
            title=event.title,
            message=event.message,
            kind=event.kind,
            link=event.link,
            payload=event.payload or None,
        )
        db.session.add(row)
        db.session.commit()
        return row
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise NotificationError(f"Could not store notification: {event.title}") from exc


def send_email(subject: str, body: str, recipient: str | None = None) -> bool:
    """
    Send a plain-text email through the configured SMTP relay.

    Returns False (and sends nothing) when email is not configured.
    Raises NotificationError on delivery failure.
    """
    cfg = current_app.config
    server = cfg.get("MAIL_SERVER")
    recipient = recipient or cfg.get("MAIL_NOTIFY_TO")
    if not server or not recipient:
        return False

    msg = EmailMessage()
    msg["Subject"] = subject
    msg["From"] = cfg.get("MAIL_DEFAULT_SENDER")
    msg["To"] = recipient
    msg.set_content(body)

    try:
        with smtplib.SMTP(server, cfg.get("MAIL_PORT", 587), timeout=10) as smtp:
            if cfg.get("MAIL_USE_TLS"):
                smtp.starttls()
            if cfg.get("MAIL_USERNAME"):
                smtp.login(cfg["MAIL_USERNAME"], cfg.get("MAIL_PASSWORD") or "")
            smtp.send_message(msg)
    except (OSError, smtplib.SMTPException) as exc:
        raise NotificationError(f"Email delivery failed: {subject}") from exc
    return True


def deliver(event: NotificationEvent) -> None:
    """Deliver one event to every channel. Raises NotificationError."""
    _store_in_app(event)
    if event.email_subject:
        send_email(event.email_subject, event.message)


def notify(*events: NotificationEvent) -> int:
    """
    Dispatch events, never raising.

    Returns the number of events that were delivered without error.
    """
    delivered = 0
    for event in events:
        try:
            deliver(event)
            delivered += 1
        except NotificationError as exc:
            current_app.logger.warning("Notification dispatch failed: %s (%s)", event.title, exc)
    return delivered


def list_recent(limit: int = 50) -> list[Notification]:
    return (
        db.session.query(Notification)
        .order_by(Notification.created_at.desc(), Notification.id.desc())
        .limit(limit)
        .all()
    )


# =============================================================================
# EVENT BUILDERS
# =============================================================================

def new_order_event(document, customer) -> NotificationEvent:
    return NotificationEvent(
        title="New order received",
        message=f"Order #{document.id} from {customer.name} ({customer.email}) totalling {document.total}",
        kind="success",
        link=f"/invoices/{document.id}",
        payload={"orderId": document.id, "customerId": customer.id, "total": float(document.total)},
        email_subject=f"New order #{document.id}",
    )


def new_quote_event(document, customer, *, company_name=None, details=None) -> NotificationEvent:
    who = company_name or customer.name
    message = f"Quote request #{document.id} from {who} ({customer.email})"
    if details:
        message = f"{message}: {details}"
    return NotificationEvent(
        title="New quote request",
        message=message,
        kind="info",
        link=f"/invoices/{document.id}",
        payload={"quoteId": document.id, "customerId": customer.id},
        email_subject=f"New quote request #{document.id}",
    )


def low_stock_event(movement) -> NotificationEvent:
    return NotificationEvent(
        title="Low stock",
        message=f"{movement.product_name or movement.product_id} is down to {movement.stock_after} in stock",
        kind="warning",
        link=f"/products/{movement.product_id}",
        payload={"productId": movement.product_id, "stock": movement.stock_after},
    )
