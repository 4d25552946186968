"""Background task dispatch for pull request events.

Each accepted event runs in its own asyncio task on the server's event loop;
the webhook handler returns as soon as the task is scheduled.
"""

from __future__ import annotations

import asyncio
import time
from typing import Awaitable, Callable

from driftbot.logger import get_logger, log_failure, log_with_context

from .models import PullRequestPayload

logger = get_logger()

PullRequestHandler = Callable[[PullRequestPayload], Awaitable[None]]


class _EventDispatcher:
    def __init__(self) -> None:
        self._handler: PullRequestHandler | None = None
        self._tasks: set[asyncio.Task[None]] = set()

    def configure_handler(self, handler: PullRequestHandler | None) -> None:
        self._handler = handler

    async def _run(self, event: PullRequestPayload) -> None:
        start_time = time.time()
        ctx_logger = log_with_context(
            logger,
            delivery_id=event.delivery_id,
            repository=event.repository.full_name,
            pull_number=event.pull_request.number,
        )
        if self._handler is None:
            log_failure(logger, "No pull request handler configured; dropping event",
                        delivery_id=event.delivery_id, repository=event.repository.full_name)
            return

        ctx_logger.info("=== DISPATCH: Event processing started ===")
        try:
            await self._handler(event)
        except asyncio.CancelledError:
            ctx_logger.warning("Event processing cancelled")
            raise
        except Exception as exc:
            processing_time = time.time() - start_time
            log_failure(logger, f"Unhandled exception while processing event (failed after {processing_time:.3f}s)",
                        exc, delivery_id=event.delivery_id, repository=event.repository.full_name)
            logger.exception("Full exception traceback:")
        else:
            processing_time = time.time() - start_time
            ctx_logger.info(f"=== DISPATCH: Event processing finished in {processing_time:.3f}s ===")

    def dispatch(self, event: PullRequestPayload) -> asyncio.Task[None]:
        loop = asyncio.get_running_loop()
        task = loop.create_task(self._run(event))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def shutdown(self) -> None:
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()

    def pending(self) -> int:
        return len(self._tasks)


_DISPATCHER = _EventDispatcher()


def dispatch_pull_request_event(event: PullRequestPayload) -> asyncio.Task[None]:
    """Schedule ``event`` for processing on the running event loop."""

    log_with_context(logger, delivery_id=event.delivery_id, repository=event.repository.full_name).debug(
        f"Dispatching PR #{event.pull_request.number} (in_flight={_DISPATCHER.pending()})"
    )
    return _DISPATCHER.dispatch(event)


def configure_pull_request_handler(handler: PullRequestHandler | None) -> None:
    """Configure the coroutine that processes dispatched events."""

    _DISPATCHER.configure_handler(handler)


async def shutdown_dispatcher() -> None:
    """Cancel outstanding event tasks."""

    await _DISPATCHER.shutdown()


def pending_tasks() -> int:
    """Return the number of events still being processed."""

    return _DISPATCHER.pending()
