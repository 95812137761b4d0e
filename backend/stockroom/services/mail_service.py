# Overview: Outbound email delivery for verification codes (Flask-Mail).

import logging

from flask_mail import Message

from ..extensions import mail

logger = logging.getLogger(__name__)


class MailDelivery:
    """
    Delivery collaborator: send(recipient, subject, body) -> bool.

    Returns False instead of raising so callers can decide what a failed
    delivery means for them.
    """

    def __init__(self, mailer=None):
        self.mailer = mailer or mail

    def send(self, recipient: str, subject: str, body: str) -> bool:
        try:
            msg = Message(subject=subject, recipients=[recipient], body=body)
            self.mailer.send(msg)
            logger.info("Email sent to %s", recipient)
            return True
        except Exception:
            logger.exception("Failed to send email to %s", recipient)
            return False


def registration_code_message(username: str, code: str, ttl_seconds: int) -> tuple[str, str]:
    minutes = max(1, ttl_seconds // 60)
    subject = "Your registration code"
    body = (
        f"Hello,\n\n"
        f"Your registration verification code is: {code}\n"
        f"It is valid for {minutes} minute(s).\n"
        f"Account: {username}\n"
    )
    return subject, body


def reset_code_message(username: str, code: str, ttl_seconds: int) -> tuple[str, str]:
    minutes = max(1, ttl_seconds // 60)
    subject = "Your password reset code"
    body = (
        f"Hello,\n\n"
        f"Your password reset verification code is: {code}\n"
        f"It is valid for {minutes} minute(s).\n"
        f"Account: {username}\n\n"
        f"If you did not request a reset you can ignore this message.\n"
    )
    return subject, body
