import smtplib
from email.message import EmailMessage
from typing import Any

import config
from logging_config import get_logger

logger = get_logger(__name__)


def _send(to_email: str, subject: str, body: str) -> bool:
    if not config.SMTP_HOST or not to_email:
        logger.info("email_skipped", subject=subject, reason="SMTP not configured")
        return False

    msg = EmailMessage()
    msg["Subject"] = subject
    msg["From"] = config.SMTP_EMAIL
    msg["To"] = to_email
    msg.set_content(body)

    try:
        server = smtplib.SMTP(config.SMTP_HOST, config.SMTP_PORT, timeout=10)
        try:
            server.starttls()
            if config.SMTP_EMAIL and config.SMTP_PASSWORD:
                server.login(config.SMTP_EMAIL, config.SMTP_PASSWORD)
            server.send_message(msg)
        finally:
            server.quit()
    except (smtplib.SMTPException, OSError):
        logger.exception("email_send_failed", subject=subject, to=to_email)
        return False
    logger.info("email_sent", subject=subject, to=to_email)
    return True


def send_registration_notice(server: dict[str, Any]) -> bool:
    """Tell the admin a process server registered and is awaiting review."""
    body = f"""
Hello,

A new process server has registered and is awaiting approval:

  Name:    {server.get("name") or "-"}
  Agency:  {server.get("agency") or "-"}
  Wallet:  {server.get("wallet_address")}
  Email:   {server.get("email") or "-"}

Review the registration in the admin dashboard.

- Notice Service
"""
    return _send(config.ADMIN_EMAIL, "Notice Service - New process server registration", body)


def send_status_change_notice(server: dict[str, Any]) -> bool:
    body = f"""
Hello {server.get("name") or ""},

The status of your process server account ({server.get("wallet_address")})
is now: {server.get("status")}.

- Notice Service
"""
    return _send(server.get("email") or "", "Notice Service - Account status updated", body)
