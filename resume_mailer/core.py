"""Request orchestration: validate, stage the attachment, relay, clean up."""

from __future__ import annotations

import asyncio
import html
from typing import Any, Callable, Dict, Optional

from .attachments import AttachmentStore
from .dispatcher import BatchDispatcher, RandomDelay
from .errors import InvalidRequestError
from .logger import get_logger
from .models import DEFAULT_BATCH_SIZE, BatchResult, SendRequest, parse_recipients
from .prometheus import MailMetrics
from .smtp_client import DEFAULT_SMTP_HOST, DEFAULT_SMTP_PORT, MailClient, create_client

BODY_TEMPLATE = """
<html>
<body>
  {custom_message}
  <p>Cordialement,<br>
    {name} <br>
    {phone_number} <br>
    {website}
  </p>
</body>
</html>
"""


def render_body(custom_message: str, name: str, phone_number: str, website: str) -> str:
    """Return the HTML body shared by every recipient of a request.

    ``custom_message`` is caller-supplied markup and is inserted verbatim;
    the signature fields are escaped.
    """
    return BODY_TEMPLATE.format(
        custom_message=custom_message or "",
        name=html.escape(name or ""),
        phone_number=html.escape(phone_number or ""),
        website=html.escape(website or ""),
    )


def parse_batch_size(value: Any, default: int = DEFAULT_BATCH_SIZE) -> int:
    """Coerce the ``batchSize`` form value, falling back to ``default`` when absent."""
    if value is None or (isinstance(value, str) and not value.strip()):
        return default
    try:
        size = int(str(value).strip())
    except ValueError as exc:
        raise InvalidRequestError("batchSize must be a positive integer") from exc
    if size <= 0:
        raise InvalidRequestError("batchSize must be a positive integer")
    return size


class MailRelayService:
    """Wire the attachment store, SMTP client and batch dispatcher together."""

    def __init__(
        self,
        *,
        upload_dir: str = "uploads",
        default_batch_size: int = DEFAULT_BATCH_SIZE,
        smtp_host: str = DEFAULT_SMTP_HOST,
        smtp_port: int = DEFAULT_SMTP_PORT,
        smtp_use_tls: Optional[bool] = None,
        smtp_timeout: float = 10.0,
        delay=None,
        metrics: MailMetrics | None = None,
        logger=None,
        client_factory: Callable[..., MailClient] = create_client,
        sleep=None,
        log_delivery_activity: bool = False,
    ):
        """Prepare the runtime collaborators."""
        self.logger = logger or get_logger()
        self.metrics = metrics or MailMetrics()
        self.attachments = AttachmentStore(upload_dir, logger=self.logger)
        self.dispatcher = BatchDispatcher(
            delay=delay or RandomDelay(),
            metrics=self.metrics,
            logger=self.logger,
            sleep=sleep,
            log_delivery_activity=log_delivery_activity,
        )
        self.default_batch_size = max(1, int(default_batch_size))
        self._client_factory = client_factory
        self._smtp_options: Dict[str, Any] = {
            "host": smtp_host,
            "port": int(smtp_port),
            "use_tls": smtp_use_tls,
            "timeout": float(smtp_timeout),
        }

    @classmethod
    def from_settings(cls, settings: Dict[str, Any], **overrides: Any) -> "MailRelayService":
        """Build a service from the dictionary returned by ``load_settings``."""
        kwargs: Dict[str, Any] = dict(
            upload_dir=settings["upload_dir"],
            default_batch_size=settings["default_batch_size"],
            smtp_host=settings["smtp_host"],
            smtp_port=settings["smtp_port"],
            smtp_use_tls=settings.get("smtp_use_tls"),
            smtp_timeout=settings["smtp_timeout"],
            delay=RandomDelay(settings["batch_delay_min"], settings["batch_delay_max"]),
            log_delivery_activity=bool(settings.get("log_delivery_activity")),
        )
        kwargs.update(overrides)
        return cls(**kwargs)

    def build_request(
        self,
        *,
        sender_email: Optional[str],
        app_password: Optional[str],
        emails: Optional[str],
        batch_size: Any = None,
        name: Optional[str] = None,
        phone_number: Optional[str] = None,
        website: Optional[str] = None,
        degree: Optional[str] = None,
        custom_message: Optional[str] = None,
    ) -> SendRequest:
        """Validate the raw form fields into a :class:`SendRequest`."""
        if not sender_email or not app_password or not emails:
            raise InvalidRequestError("Missing required fields")
        return SendRequest(
            sender_email=sender_email,
            app_password=app_password,
            recipients=parse_recipients(emails),
            batch_size=parse_batch_size(batch_size, self.default_batch_size),
            subject=degree or "",
            custom_message=custom_message or "",
            name=name or "",
            phone_number=phone_number or "",
            website=website or "",
        )

    async def send_emails(
        self,
        request: SendRequest,
        upload,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> BatchResult:
        """Relay the message to every recipient and return the summary.

        The attachment is validated before anything is written, staged for
        the duration of the dispatch and removed exactly once afterwards.
        """
        self.attachments.validate(upload)
        async with self.attachments.stage(upload) as attachment:
            client = self._client_factory(request.sender_email, request.app_password, **self._smtp_options)
            body = render_body(request.custom_message, request.name, request.phone_number, request.website)

            async def send_one(recipient: str) -> None:
                await client.send_one(recipient, request.subject, body, attachment)

            result = await self.dispatcher.dispatch(
                request.recipients,
                request.batch_size,
                send_one,
                cancel_event=cancel_event,
            )
        self.logger.info(
            "Relay from %s finished: total=%d sent=%d failed=%d",
            request.sender_email,
            result.total,
            result.sent,
            result.failed,
        )
        return result
