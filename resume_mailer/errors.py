"""Exceptions raised while relaying a message to a recipient list."""

from __future__ import annotations

from typing import Optional


class MailerError(RuntimeError):
    """Base class for errors surfaced by the resume mailer."""

    code = "mailer_error"


class InvalidRequestError(MailerError):
    """Raised when the request is incomplete or the attachment is not a PDF.

    Always raised before the first send is attempted.
    """

    code = "invalid_request"


class SetupError(MailerError):
    """Raised when the relay cannot be prepared (uploads directory, SMTP client)."""

    code = "setup_failed"


class TransportError(MailerError):
    """Raised when the SMTP provider rejects or fails a single delivery."""

    code = "transport_failed"

    def __init__(self, recipient: str, reason: str, smtp_code: Optional[int] = None):
        self.recipient = recipient
        self.reason = reason
        self.smtp_code = smtp_code
        detail = f"{reason} (SMTP {smtp_code})" if smtp_code else reason
        super().__init__(f"Delivery to {recipient} failed: {detail}")
