"""Bulk resume relay over SMTP with batched, rate-friendly delivery.

This package exposes a single FastAPI endpoint that sends the same message,
with a PDF attachment, to a list of recipients:

- Recipients are split into fixed-size batches sent concurrently
- A randomized pause separates consecutive batches
- Per-recipient failures are counted, never fatal
- Prometheus metrics for monitoring

Example:
    Basic usage with the FastAPI application::

        from resume_mailer.core import MailRelayService
        from resume_mailer.api import create_app

        service = MailRelayService(upload_dir="uploads")
        app = create_app(service)
"""
