"""SMTP client used to relay one message to one recipient."""

from __future__ import annotations

import asyncio
from email.message import EmailMessage
from typing import Optional

import aiosmtplib

from .errors import SetupError, TransportError
from .logger import get_logger
from .models import StagedAttachment

DEFAULT_SMTP_HOST = "smtp.gmail.com"
DEFAULT_SMTP_PORT = 465
CONNECT_BUDGET_SECONDS = 15.0
SEND_BUDGET_SECONDS = 30.0


def _smtp_code(exc: Exception) -> Optional[int]:
    """Extract the SMTP reply code carried by an aiosmtplib exception, if any."""
    if isinstance(exc, aiosmtplib.SMTPRecipientsRefused) and exc.recipients:
        return exc.recipients[0].code
    if isinstance(exc, aiosmtplib.SMTPException):
        # aiosmtplib stores code in different attributes depending on exception type
        code = getattr(exc, "smtp_code", None) or getattr(exc, "code", None)
        if isinstance(code, int):
            return code
    return None


class MailClient:
    """Submit messages through an SMTP provider on behalf of one sender.

    Construction only stores credentials; authentication and network errors
    surface when :meth:`send_one` is awaited.
    """

    def __init__(
        self,
        sender_email: str,
        credential: str,
        *,
        host: str = DEFAULT_SMTP_HOST,
        port: int = DEFAULT_SMTP_PORT,
        use_tls: Optional[bool] = None,
        timeout: float = 10.0,
        logger=None,
    ):
        self.sender_email = sender_email
        self._credential = credential
        self.host = host
        self.port = int(port)
        # Implicit TLS on 465, STARTTLS elsewhere unless told otherwise
        self.use_tls = (self.port == 465) if use_tls is None else bool(use_tls)
        self.timeout = float(timeout)
        self.logger = logger or get_logger("ResumeMailer.smtp")

    def __repr__(self) -> str:
        return f"MailClient(sender={self.sender_email!r}, host={self.host!r}, port={self.port})"

    async def _connect(self) -> aiosmtplib.SMTP:
        """Open a new SMTP connection and authenticate."""
        smtp = aiosmtplib.SMTP(
            hostname=self.host,
            port=self.port,
            use_tls=self.use_tls,
            start_tls=None if not self.use_tls else False,
            timeout=self.timeout,
        )

        async def _do_connect():
            await smtp.connect()
            await smtp.login(self.sender_email, self._credential)

        try:
            await asyncio.wait_for(_do_connect(), timeout=CONNECT_BUDGET_SECONDS)
        except BaseException:
            await self._close(smtp)
            raise
        return smtp

    async def _close(self, smtp: aiosmtplib.SMTP) -> None:
        try:
            await smtp.quit()
        except Exception:
            pass

    async def build_message(
        self,
        recipient: str,
        subject: str,
        html_body: str,
        attachment: Optional[StagedAttachment],
    ) -> EmailMessage:
        """Translate the relay payload into an :class:`EmailMessage`."""
        msg = EmailMessage()
        msg["From"] = self.sender_email
        msg["To"] = recipient
        msg["Subject"] = subject or ""
        msg.set_content(html_body, subtype="html")
        if attachment is not None:
            content = await asyncio.to_thread(attachment.path.read_bytes)
            maintype, subtype = attachment.content_type.split("/", 1)
            msg.add_attachment(content, maintype=maintype, subtype=subtype, filename=attachment.filename)
        return msg

    async def send_one(
        self,
        recipient: str,
        subject: str,
        html_body: str,
        attachment: Optional[StagedAttachment] = None,
    ) -> None:
        """Deliver the message to ``recipient`` or raise :class:`TransportError`."""
        smtp = None
        try:
            msg = await self.build_message(recipient, subject, html_body, attachment)
            smtp = await self._connect()
            async with asyncio.timeout(SEND_BUDGET_SECONDS):
                await smtp.send_message(msg, sender=self.sender_email, recipients=[recipient])
            self.logger.debug("Sent message to %s via %s:%d", recipient, self.host, self.port)
        except Exception as exc:
            raise TransportError(recipient, str(exc) or type(exc).__name__, _smtp_code(exc)) from exc
        finally:
            if smtp is not None:
                await self._close(smtp)


def create_client(
    sender_email: str,
    credential: str,
    *,
    host: str = DEFAULT_SMTP_HOST,
    port: int = DEFAULT_SMTP_PORT,
    use_tls: Optional[bool] = None,
    timeout: float = 10.0,
) -> MailClient:
    """Build a :class:`MailClient` for the given sender credentials."""
    if not sender_email or not credential:
        raise SetupError("Sender address and credential are required to build the SMTP client")
    try:
        return MailClient(sender_email, credential, host=host, port=port, use_tls=use_tls, timeout=timeout)
    except (TypeError, ValueError) as exc:
        raise SetupError(f"Invalid SMTP configuration: {exc}") from exc
