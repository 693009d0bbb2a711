"""Pydantic models for the resume relay.

Models:
    - SendRequest: validated content of a ``/send-emails`` form
    - StagedAttachment: uploaded PDF staged on local disk
    - DeliveryOutcome: settled result of a single send
    - BatchResult: aggregate summary returned to the caller
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_BATCH_SIZE = 70
PDF_CONTENT_TYPE = "application/pdf"


def parse_recipients(raw: str | None) -> List[str]:
    """Split a comma-separated address list, dropping blank entries."""
    if not raw:
        return []
    return [part.strip() for part in raw.split(",") if part.strip()]


class SendRequest(BaseModel):
    """Everything needed to relay one message to a list of recipients.

    Attributes:
        sender_email: Address used as ``From`` and as SMTP login.
        app_password: Provider credential (an app password for Gmail).
        recipients: Ordered recipient list, already trimmed.
        batch_size: Number of recipients sent concurrently per batch.
        subject: Message subject.
        custom_message: HTML fragment placed at the top of the body.
        name: Signature name.
        phone_number: Signature phone number.
        website: Signature website.
    """

    model_config = ConfigDict(frozen=True)

    sender_email: Annotated[str, Field(min_length=1, description="Sender address")]
    app_password: Annotated[str, Field(min_length=1, description="SMTP credential")]
    recipients: Annotated[List[str], Field(default_factory=list, description="Recipient addresses")]
    batch_size: Annotated[int, Field(default=DEFAULT_BATCH_SIZE, gt=0, description="Recipients per batch")]
    subject: Annotated[str, Field(default="", description="Message subject")]
    custom_message: Annotated[str, Field(default="", description="HTML body fragment")]
    name: Annotated[str, Field(default="", description="Signature name")]
    phone_number: Annotated[str, Field(default="", description="Signature phone number")]
    website: Annotated[str, Field(default="", description="Signature website")]

    @field_validator("recipients")
    @classmethod
    def strip_recipients(cls, value: List[str]) -> List[str]:
        return [item.strip() for item in value if item and item.strip()]


class StagedAttachment(BaseModel):
    """Attachment written to the uploads directory for the lifetime of a request."""

    model_config = ConfigDict(frozen=True)

    path: Path
    filename: str
    content_type: str = PDF_CONTENT_TYPE


class DeliveryOutcome(BaseModel):
    """Settled outcome of one send attempt."""

    model_config = ConfigDict(frozen=True)

    recipient: str
    ok: bool
    error: Optional[str] = None


class BatchResult(BaseModel):
    """Summary of a dispatch, returned as the response body."""

    model_config = ConfigDict(populate_by_name=True)

    total: int = 0
    sent: int = 0
    failed: int = 0
    sent_emails: List[str] = Field(default_factory=list, alias="sentEmails")

    def record(self, outcome: DeliveryOutcome) -> None:
        """Fold a settled outcome into the counters."""
        if outcome.ok:
            self.sent += 1
            self.sent_emails.append(outcome.recipient)
        else:
            self.failed += 1
