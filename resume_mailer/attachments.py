"""Staging of uploaded PDF attachments on local disk."""

from __future__ import annotations

import asyncio
import os
import time
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Optional

from .errors import SetupError, InvalidRequestError
from .logger import get_logger
from .models import PDF_CONTENT_TYPE, StagedAttachment


class AttachmentStore:
    """Keep uploaded files under ``upload_dir`` for the lifetime of one request."""

    def __init__(self, upload_dir: str | os.PathLike = "uploads", logger=None):
        """Store the uploads directory; it is created on first use."""
        self.upload_dir = Path(upload_dir)
        self.logger = logger or get_logger("ResumeMailer.attachments")

    @staticmethod
    def validate(upload) -> None:
        """Reject missing uploads and anything that is not a PDF."""
        if upload is None or not getattr(upload, "filename", None):
            raise InvalidRequestError("Resume PDF is required")
        if (upload.content_type or "").split(";", 1)[0].strip().lower() != PDF_CONTENT_TYPE:
            raise InvalidRequestError("Only PDF files are allowed")

    def _ensure_dir(self) -> Path:
        try:
            self.upload_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise SetupError(f"Cannot create uploads directory {self.upload_dir}: {exc}") from exc
        return self.upload_dir

    def _target_path(self, filename: str) -> Path:
        """Timestamp-based name that keeps the original extension."""
        suffix = Path(filename).suffix
        stamp = time.time_ns() // 1000
        candidate = self.upload_dir / f"{stamp}{suffix}"
        while candidate.exists():
            stamp += 1
            candidate = self.upload_dir / f"{stamp}{suffix}"
        return candidate

    async def _write(self, upload, target: Path) -> None:
        data = await upload.read()
        try:
            await asyncio.to_thread(target.write_bytes, data)
        except OSError as exc:
            raise SetupError(f"Cannot stage attachment {upload.filename}: {exc}") from exc

    def _remove(self, path: Path) -> None:
        try:
            path.unlink()
        except FileNotFoundError:
            self.logger.warning("Attachment %s already removed", path)
        except OSError as exc:
            self.logger.warning("Failed to remove attachment %s: %s", path, exc)

    @asynccontextmanager
    async def stage(self, upload) -> AsyncIterator[StagedAttachment]:
        """Write ``upload`` to disk and remove it exactly once on exit.

        Removal failures are logged and never replace the outcome of the
        enclosed block.
        """
        self.validate(upload)
        self._ensure_dir()
        target = self._target_path(upload.filename)
        staged: Optional[StagedAttachment] = None
        try:
            await self._write(upload, target)
            staged = StagedAttachment(path=target, filename=upload.filename, content_type=PDF_CONTENT_TYPE)
            self.logger.debug("Staged attachment %s at %s", upload.filename, target)
            yield staged
        finally:
            if staged is not None or target.exists():
                self._remove(target)
