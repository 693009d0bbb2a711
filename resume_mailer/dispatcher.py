"""Batch dispatcher: concurrent sends inside a batch, sequential batches with a pause."""

from __future__ import annotations

import asyncio
import random
from typing import Any, Awaitable, Callable, Iterator, List, Optional, Sequence

from .errors import InvalidRequestError
from .logger import get_logger
from .models import BatchResult, DeliveryOutcome
from .prometheus import MailMetrics

SendOne = Callable[[str], Awaitable[Any]]

# Reference pause between batches, 3 to 5 minutes
DEFAULT_DELAY_MIN_SECONDS = 180.0
DEFAULT_DELAY_MAX_SECONDS = 300.0


class RandomDelay:
    """Pause drawn uniformly from ``[min_seconds, max_seconds]``."""

    def __init__(
        self,
        min_seconds: float = DEFAULT_DELAY_MIN_SECONDS,
        max_seconds: float = DEFAULT_DELAY_MAX_SECONDS,
        rng: random.Random | None = None,
    ):
        if min_seconds < 0 or max_seconds < min_seconds:
            raise ValueError(f"Invalid delay interval [{min_seconds}, {max_seconds}]")
        self.min_seconds = float(min_seconds)
        self.max_seconds = float(max_seconds)
        self._rng = rng or random.Random()

    def next_delay(self, remaining_batches: int) -> float:
        return self._rng.uniform(self.min_seconds, self.max_seconds)


class NoDelay:
    """Zero pause, used by tests and local runs."""

    def next_delay(self, remaining_batches: int) -> float:
        return 0.0


def chunk(items: Sequence[str], size: int) -> Iterator[List[str]]:
    """Yield consecutive slices of ``items`` of length ``size`` (the last may be shorter)."""
    if size <= 0:
        raise InvalidRequestError("batchSize must be a positive integer")
    for start in range(0, len(items), size):
        yield list(items[start:start + size])


class BatchDispatcher:
    """Send to every recipient, batch after batch, and summarise the outcome."""

    def __init__(
        self,
        *,
        delay=None,
        metrics: MailMetrics | None = None,
        logger=None,
        sleep: Callable[[float], Awaitable[None]] | None = None,
        log_delivery_activity: bool = False,
    ):
        self.delay = delay or RandomDelay()
        self.metrics = metrics or MailMetrics()
        self.logger = logger or get_logger("ResumeMailer.dispatcher")
        self._sleep = sleep or asyncio.sleep
        self._log_delivery_activity = bool(log_delivery_activity)
        self._inflight = 0

    async def dispatch(
        self,
        recipients: Sequence[str],
        batch_size: int,
        send_one: SendOne,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> BatchResult:
        """Deliver through ``send_one`` and return the aggregate result.

        ``send_one`` succeeds when it returns anything but ``False`` and fails
        when it raises or returns ``False``. Failures are logged and counted,
        they never stop the dispatch. When ``cancel_event`` is set the
        dispatch stops at the next batch boundary and the recipients never
        attempted are counted as failed.
        """
        batches = list(chunk(recipients, batch_size))
        result = BatchResult(total=len(recipients))
        if not batches:
            return result

        self.logger.info(
            "Dispatching to %d recipients in %d batches of up to %d",
            len(recipients),
            len(batches),
            batch_size,
        )
        for index, batch in enumerate(batches):
            if cancel_event is not None and cancel_event.is_set():
                skipped = sum(len(rest) for rest in batches[index:])
                self.logger.warning("Dispatch cancelled, %d recipients not attempted", skipped)
                result.failed += skipped
                break

            await self._run_batch(batch, send_one, result)
            self.metrics.inc_batch()
            self.logger.info(
                "Batch %d/%d done (sent=%d, failed=%d)",
                index + 1,
                len(batches),
                result.sent,
                result.failed,
            )

            remaining = len(batches) - index - 1
            if remaining:
                pause = self.delay.next_delay(remaining)
                self.logger.info("Waiting %.1fs before next batch (%d remaining)", pause, remaining)
                await self._pause(pause, cancel_event)
        return result

    async def _run_batch(self, batch: List[str], send_one: SendOne, result: BatchResult) -> None:
        """Fire every send of the batch, fold outcomes as they settle.

        If the dispatch itself is cancelled, pending sends are cancelled and
        awaited before the cancellation propagates, so none outlives the call.
        """
        tasks = [asyncio.create_task(self._attempt(recipient, send_one)) for recipient in batch]
        try:
            for settled in asyncio.as_completed(tasks):
                outcome = await settled
                result.record(outcome)
        finally:
            pending = [task for task in tasks if not task.done()]
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)

    async def _attempt(self, recipient: str, send_one: SendOne) -> DeliveryOutcome:
        self._set_inflight(1)
        try:
            ok = await send_one(recipient)
        except Exception as exc:
            self.logger.warning("Error sending to %s: %s", recipient, exc)
            self.metrics.inc_error()
            return DeliveryOutcome(recipient=recipient, ok=False, error=str(exc))
        finally:
            self._set_inflight(-1)
        if ok is False:
            self.logger.warning("Error sending to %s: rejected", recipient)
            self.metrics.inc_error()
            return DeliveryOutcome(recipient=recipient, ok=False, error="rejected")
        if self._log_delivery_activity:
            self.logger.info("Delivery succeeded for %s", recipient)
        self.metrics.inc_sent()
        return DeliveryOutcome(recipient=recipient, ok=True)

    def _set_inflight(self, step: int) -> None:
        self._inflight += step
        self.metrics.set_inflight(self._inflight)

    async def _pause(self, seconds: float, cancel_event: Optional[asyncio.Event]) -> None:
        """Suspend between batches, waking early when the dispatch is cancelled.

        The pause always goes through the injected ``sleep``; with a
        ``cancel_event`` it races against the event.
        """
        seconds = max(0.0, seconds)
        if cancel_event is None:
            await self._sleep(seconds)
            return
        sleeper = asyncio.ensure_future(self._sleep(seconds))
        waiter = asyncio.ensure_future(cancel_event.wait())
        try:
            await asyncio.wait({sleeper, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in (sleeper, waiter):
                task.cancel()
            await asyncio.gather(sleeper, waiter, return_exceptions=True)
        if sleeper.done() and not sleeper.cancelled():
            sleeper.result()

