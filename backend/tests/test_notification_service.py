"""
Notification sink tests: in-app rows, email relay and failure isolation.
"""

import smtplib

import pytest

from tillbook.errors import NotificationError
from tillbook.models import Notification
from tillbook.services import notification_service
from tillbook.services.notification_service import NotificationEvent


class FakeSMTP:
    sent = []

    def __init__(self, host, port, timeout=None):
        self.host = host
        self.port = port

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def starttls(self):
        pass

    def login(self, username, password):
        pass

    def send_message(self, msg):
        FakeSMTP.sent.append(msg)


class BrokenSMTP(FakeSMTP):
    def send_message(self, msg):
        raise smtplib.SMTPServerDisconnected("connection lost")


@pytest.fixture()
def mail_config(app):
    app.config.update(MAIL_SERVER="smtp.test.local", MAIL_NOTIFY_TO="owner@test.local")
    FakeSMTP.sent = []


def test_email_disabled_without_server(app, db_session):
    assert notification_service.send_email("subject", "body") is False


def test_email_sent_through_relay(db_session, mail_config, monkeypatch):
    monkeypatch.setattr(smtplib, "SMTP", FakeSMTP)
    assert notification_service.send_email("New order #1", "details") is True
    assert FakeSMTP.sent[0]["To"] == "owner@test.local"
    assert FakeSMTP.sent[0]["Subject"] == "New order #1"


def test_email_failure_raises_notification_error(db_session, mail_config, monkeypatch):
    monkeypatch.setattr(smtplib, "SMTP", BrokenSMTP)
    with pytest.raises(NotificationError):
        notification_service.send_email("New order #1", "details")


def test_notify_swallows_failures_and_keeps_going(db_session, mail_config, monkeypatch):
    monkeypatch.setattr(smtplib, "SMTP", BrokenSMTP)
    delivered = notification_service.notify(
        NotificationEvent(title="First", message="a", email_subject="First"),
        NotificationEvent(title="Second", message="b"),
    )
    assert delivered == 1
    # The in-app row is written before the email attempt
    titles = sorted(n.title for n in db_session.query(Notification).all())
    assert titles == ["First", "Second"]


def test_list_recent_is_capped(db_session):
    for i in range(55):
        db_session.add(Notification(title=f"n{i}", message="m"))
    db_session.commit()
    assert len(notification_service.list_recent(50)) == 50
