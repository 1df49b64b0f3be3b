"""
Unit Tests - Logging and Email
==============================
"""

import smtplib

import pytest

import email_service
from logging_config import redact_sensitive

SERVER_ROW = {
    "wallet_address": "TR7NHqjeKQxGTCi8q8ZY4pL8otSzgjLj6t",
    "name": "Jane Server",
    "agency": "Dept. of Justice",
    "email": "jane@example.com",
    "status": "approved",
}


class FakeSMTP:
    sent = []
    fail = False

    def __init__(self, host, port, timeout=None):
        self.host = host
        self.port = port

    def starttls(self):
        pass

    def login(self, user, password):
        pass

    def send_message(self, msg):
        if FakeSMTP.fail:
            raise smtplib.SMTPServerDisconnected("connection closed")
        FakeSMTP.sent.append(msg)

    def quit(self):
        pass


@pytest.fixture
def smtp(monkeypatch):
    FakeSMTP.sent = []
    FakeSMTP.fail = False
    monkeypatch.setattr(email_service.smtplib, "SMTP", FakeSMTP)
    monkeypatch.setattr("config.SMTP_HOST", "smtp.example.com")
    monkeypatch.setattr("config.SMTP_EMAIL", "notices@example.com")
    monkeypatch.setattr("config.ADMIN_EMAIL", "admin@example.com")
    return FakeSMTP


class TestRedaction:
    @pytest.mark.unit
    def test_key_material_never_reaches_logs(self):
        event = redact_sensitive(
            None,
            "info",
            {"event": "notice_staged", "encryption_key": "k3y", "payload": {"password": "x", "notice_type": "Summons"}},
        )

        assert event["encryption_key"] == "***REDACTED***"
        assert event["payload"] == {"password": "***REDACTED***", "notice_type": "Summons"}
        assert event["event"] == "notice_staged"


class TestEmail:
    @pytest.mark.unit
    def test_skipped_without_smtp_host(self, monkeypatch):
        monkeypatch.setattr("config.SMTP_HOST", "")

        assert email_service.send_registration_notice(SERVER_ROW) is False

    @pytest.mark.unit
    def test_registration_goes_to_admin(self, smtp):
        assert email_service.send_registration_notice(SERVER_ROW) is True

        msg = smtp.sent[0]
        assert msg["To"] == "admin@example.com"
        assert "TR7NHqjeKQxGTCi8q8ZY4pL8otSzgjLj6t" in msg.get_content()

    @pytest.mark.unit
    def test_status_change_goes_to_server(self, smtp):
        assert email_service.send_status_change_notice(SERVER_ROW) is True
        assert smtp.sent[0]["To"] == "jane@example.com"

    @pytest.mark.unit
    def test_send_failure_is_logged_not_raised(self, smtp):
        smtp.fail = True

        assert email_service.send_status_change_notice(SERVER_ROW) is False
