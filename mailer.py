"""Outgoing mail over SMTP, configured from ``SMTP_*`` environment variables."""

import logging
import os
import smtplib
from email.message import EmailMessage

logger = logging.getLogger(__name__)


def smtp_settings():
    username = os.environ.get("SMTP_USER")
    settings = {
        "host": os.environ.get("SMTP_HOST"),
        "port": int(os.environ.get("SMTP_PORT", "587")),
        "username": username,
        "password": os.environ.get("SMTP_PASSWORD"),
        "sender": os.environ.get("SMTP_FROM") or username,
        "use_tls": os.environ.get("SMTP_TLS", "true").lower() == "true",
    }
    if not settings["host"] or not settings["sender"]:
        raise RuntimeError("SMTP_HOST and SMTP_FROM (or SMTP_USER) must be set.")
    return settings


def send_email(recipients, subject, body, settings=None):
    """Send one plain-text message to each address over a single connection."""
    if isinstance(recipients, str):
        recipients = [recipients]
    settings = settings or smtp_settings()

    with smtplib.SMTP(settings["host"], settings["port"]) as server:
        if settings["use_tls"]:
            server.starttls()
        if settings["username"] and settings["password"]:
            server.login(settings["username"], settings["password"])
        for address in recipients:
            message = EmailMessage()
            message["From"] = settings["sender"]
            message["To"] = address
            message["Subject"] = subject
            message.set_content(body)
            server.send_message(message)
            logger.info("Sent %r to %s", subject, address)
    return len(recipients)
