# Overview: Outbound message dispatch (OTP codes) with pluggable backends.

"""
Messaging Service

Backends (MESSAGE_BACKEND):
- smtp: email targets go out through Flask-Mail (MAIL_* settings)
- log: write the message to the application logger; only delivers in
  debug or testing so codes never land in production logs
- memory: append to an in-process outbox on app.extensions (tests)

send() returns False when the backend reports a failure; callers decide
whether that is fatal.
"""

from __future__ import annotations

import smtplib

from flask import current_app
from flask_mail import Message

from ..extensions import mail


BACKEND_SMTP = "smtp"
BACKEND_LOG = "log"
BACKEND_MEMORY = "memory"
VALID_BACKENDS = {BACKEND_SMTP, BACKEND_LOG, BACKEND_MEMORY}

DEFAULT_SUBJECT = "Your SoleMate verification code"

OUTBOX_KEY = "solemate_outbox"


def get_outbox() -> list[dict]:
    """Messages captured by the memory backend for the current app."""
    return current_app.extensions.setdefault(OUTBOX_KEY, [])


def clear_outbox() -> None:
    get_outbox().clear()


def is_email(target: str) -> bool:
    return "@" in (target or "")


def _send_email(target: str, message: str, subject: str) -> bool:
    try:
        mail.send(Message(subject=subject, recipients=[target], body=message))
    except (smtplib.SMTPException, OSError) as e:
        current_app.logger.error("SMTP delivery to %s failed: %s", target, e)
        return False
    return True


def send(target: str, message: str, subject: str | None = None) -> bool:
    backend = current_app.config.get("MESSAGE_BACKEND", BACKEND_SMTP)

    if backend == BACKEND_MEMORY:
        get_outbox().append({"target": target, "subject": subject or DEFAULT_SUBJECT, "message": message})
        return True

    if backend == BACKEND_SMTP:
        if is_email(target):
            return _send_email(target, message, subject or DEFAULT_SUBJECT)
        # TODO: add an SMS gateway backend for phone targets
        current_app.logger.error("No SMS transport configured; message to %s not sent", target)
        return False

    if backend == BACKEND_LOG:
        if current_app.debug or current_app.testing:
            current_app.logger.info("Message to %s: %s", target, message)
            return True
        current_app.logger.error(
            "MESSAGE_BACKEND 'log' only delivers in debug mode; message to %s not sent", target
        )
        return False

    current_app.logger.error("Unknown MESSAGE_BACKEND %r; message to %s not sent", backend, target)
    return False
