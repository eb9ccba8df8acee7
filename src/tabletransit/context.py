"""
Transfer context: cancellation signal plus contextual logging.

A Context is created once per command and handed down to every driver call.
Child contexts share the parent's cancellation signal and extend its logging
prefix, so messages from a staged leg read like
``[a1b2c3 leg=source->temp] Writing stream orders``.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Any, Awaitable, Optional, TypeVar

from .errors import TransferCancelled

T = TypeVar("T")

logger = logging.getLogger(__name__)


class _PrefixAdapter(logging.LoggerAdapter):
    """Prefix log messages with the context's key=value tags."""

    def process(self, msg, kwargs):
        prefix = self.extra.get("prefix")
        if prefix:
            msg = f"[{prefix}] {msg}"
        return msg, kwargs


class Context:
    """Cancellation signal and logger for one transfer."""

    def __init__(
        self,
        transfer_id: Optional[str] = None,
        tags: Optional[dict[str, Any]] = None,
        cancel_event: Optional[asyncio.Event] = None,
        base_logger: Optional[logging.Logger] = None,
    ):
        self.transfer_id = transfer_id or uuid.uuid4().hex[:12]
        self.tags = dict(tags or {})
        self._cancel_event = cancel_event or asyncio.Event()
        self._base_logger = base_logger or logging.getLogger("tabletransit")
        prefix = " ".join([self.transfer_id] + [f"{k}={v}" for k, v in self.tags.items()])
        self.log = _PrefixAdapter(self._base_logger, {"prefix": prefix})

    def child(self, **tags: Any) -> Context:
        """Derive a context sharing this one's cancellation signal."""
        merged = {**self.tags, **tags}
        return Context(self.transfer_id, merged, self._cancel_event, self._base_logger)

    def cancel(self) -> None:
        """Request cancellation. Safe to call more than once."""
        if not self._cancel_event.is_set():
            self.log.warning("Cancellation requested")
        self._cancel_event.set()

    @property
    def cancelled(self) -> bool:
        return self._cancel_event.is_set()

    def check_cancelled(self) -> None:
        """Raise TransferCancelled if cancellation was requested."""
        if self._cancel_event.is_set():
            raise TransferCancelled()

    async def run(self, awaitable: Awaitable[T]) -> T:
        """
        Run a transfer until it finishes or this context is cancelled.

        On cancellation the transfer task is cancelled and awaited so drivers
        can release their resources, then TransferCancelled is raised once.
        """
        task = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._cancel_event.wait())
        try:
            await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            task.cancel()
            raise
        finally:
            waiter.cancel()
        if task.done():
            return task.result()

        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        except TransferCancelled:
            pass
        except Exception as e:
            self.log.debug(f"Error while abandoning cancelled transfer: {e}")
        raise TransferCancelled()
