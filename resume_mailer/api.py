"""
FastAPI application factory for the resume mailer.

The module exposes a `create_app` function that builds the HTTP API: the
multipart ``POST /send-emails`` relay endpoint plus the ``/status`` and
``/metrics`` helpers. Domain errors are mapped to JSON bodies by the
exception handlers registered here.
"""

import asyncio
from typing import Callable, AsyncContextManager, List, Optional

from fastapi import FastAPI, File, Form, Request, UploadFile, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel

from .core import MailRelayService
from .errors import MailerError, SetupError, InvalidRequestError
from .logger import get_logger
from .models import BatchResult

logger = get_logger("ResumeMailer.api")
DISCONNECT_POLL_SECONDS = 1.0


class BasicOkResponse(BaseModel):
    ok: bool


class ErrorResponse(BaseModel):
    """Body returned on rejected or failed requests."""
    error: str
    details: Optional[str] = None


async def _watch_disconnect(request: Request, cancel_event: asyncio.Event, interval: float) -> None:
    """Set ``cancel_event`` once the HTTP client goes away."""
    while not cancel_event.is_set():
        if await request.is_disconnected():
            logger.warning("Client disconnected, stopping dispatch at next batch boundary")
            cancel_event.set()
            return
        await asyncio.sleep(interval)


def create_app(
    svc: MailRelayService,
    cors_origins: Optional[List[str]] = None,
    lifespan: Callable[[FastAPI], AsyncContextManager] | None = None,
    disconnect_poll_seconds: float = DISCONNECT_POLL_SECONDS,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Parameters
    ----------
    svc:
        Instance of :class:`resume_mailer.core.MailRelayService` that
        validates requests and relays the messages.
    cors_origins:
        Origins allowed by the CORS middleware; ``None`` allows any origin.
    lifespan:
        Optional lifespan context manager for startup/shutdown events.
    disconnect_poll_seconds:
        How often a running relay checks whether the caller is still there.

    Returns
    -------
    FastAPI
        A configured application ready to be served by Uvicorn or any ASGI
        server.
    """
    api = FastAPI(title="Resume Mailer", lifespan=lifespan)
    api.state.service = svc
    api.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins if cors_origins is not None else ["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @api.exception_handler(InvalidRequestError)
    async def on_invalid_request(request: Request, exc: InvalidRequestError):
        svc.metrics.inc_request("rejected")
        body = ErrorResponse(error=str(exc)).model_dump(exclude_none=True)
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=body)

    @api.exception_handler(SetupError)
    async def on_setup_error(request: Request, exc: SetupError):
        svc.metrics.inc_request("failed")
        body = ErrorResponse(error="Failed to send emails", details=str(exc)).model_dump()
        return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=body)

    @api.get("/status", response_model=BasicOkResponse)
    async def service_status():
        """Return a simple health status payload."""
        return BasicOkResponse(ok=True)

    @api.get("/metrics")
    async def metrics():
        """Expose Prometheus metrics collected by the dispatcher."""
        return Response(content=svc.metrics.generate_latest(), media_type="text/plain; version=0.0.4")

    @api.post(
        "/send-emails",
        response_model=BatchResult,
        responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
    )
    async def send_emails(
        request: Request,
        senderEmail: Optional[str] = Form(None),
        appPassword: Optional[str] = Form(None),
        emails: Optional[str] = Form(None),
        batchSize: Optional[str] = Form(None),
        name: Optional[str] = Form(None),
        phoneNumber: Optional[str] = Form(None),
        website: Optional[str] = Form(None),
        degree: Optional[str] = Form(None),
        customMessage: Optional[str] = Form(None),
        resume: Optional[UploadFile] = File(None),
    ):
        """Relay the uploaded resume to every address in ``emails``."""
        send_request = svc.build_request(
            sender_email=senderEmail,
            app_password=appPassword,
            emails=emails,
            batch_size=batchSize,
            name=name,
            phone_number=phoneNumber,
            website=website,
            degree=degree,
            custom_message=customMessage,
        )

        cancel_event = asyncio.Event()
        watcher = asyncio.create_task(_watch_disconnect(request, cancel_event, disconnect_poll_seconds))
        try:
            result = await svc.send_emails(send_request, resume, cancel_event=cancel_event)
        except MailerError:
            raise
        except Exception as exc:
            logger.exception("Email sending error: %s", exc)
            raise SetupError(str(exc) or type(exc).__name__) from exc
        finally:
            watcher.cancel()
        svc.metrics.inc_request("ok")
        return result

    return api
