"""Logging helpers for the resume mailer."""

import logging

def get_logger(name: str = "ResumeMailer") -> logging.Logger:
    """Return a configured :class:`logging.Logger` instance.

    Note: Logging configuration should be done via logging.basicConfig()
    in the entry point (``cli.serve``) to avoid duplicate handlers.
    """
    return logging.getLogger(name)
