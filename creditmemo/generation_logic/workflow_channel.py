"""Bounded hand-off between a running workflow and its reader.

The run executes in its own task and pushes updates into a bounded queue, so a
slow reader applies back-pressure to the run instead of letting updates pile
up. Completion closes the channel with a sentinel; a failure closes it with the
run's error, which the reader receives after the ``failed`` update.
"""

import asyncio
import contextlib
import logging
from typing import Any

from creditmemo.core.config import settings
from creditmemo.generation_logic.workflow_orchestrator import WorkflowRun
from creditmemo.models.memo_models import MemoData
from creditmemo.models.workflow_models import WorkflowUpdate

__all__ = ["WorkflowChannel"]

logger = logging.getLogger(__name__)

_CLOSED = object()


class WorkflowChannel:
    """Async context manager and iterator over a run's updates.

    Usage::

        async with WorkflowChannel(run) as channel:
            async for update in channel:
                ...

    Leaving the context before the run finishes cancels it: the in-flight
    backend call's result is discarded and no further phase runs.
    """

    def __init__(self, run: WorkflowRun, maxsize: int | None = None):
        self.run = run
        self._queue: asyncio.Queue[Any] = asyncio.Queue(maxsize=maxsize or settings.event_channel_size)
        self._task: asyncio.Task[None] | None = None
        self._error: BaseException | None = None
        self._closed = False

    @property
    def document(self) -> MemoData:
        return self.run.document

    async def _pump(self) -> None:
        stream = self.run.stream()
        try:
            async for update in stream:
                await self._queue.put(update)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            # Handed to the reader, which re-raises it
            self._error = e
        finally:
            await stream.aclose()
        await self._queue.put(_CLOSED)

    async def __aenter__(self) -> "WorkflowChannel":
        if self._task is not None:
            raise RuntimeError("WorkflowChannel cannot be entered twice")
        self._task = asyncio.create_task(self._pump(), name=f"workflow-{self.run.run_id}")
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.cancel()
        if self._task is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await self._task

    def cancel(self) -> None:
        """Stop the run and close the channel. Safe to call more than once."""
        if self._task is not None and not self._task.done():
            logger.info("[%s] Cancelling workflow run", self.run.run_id)
            self._task.cancel()
        if not self._closed:
            self._closed = True
            with contextlib.suppress(asyncio.QueueFull):
                self._queue.put_nowait(_CLOSED)

    def __aiter__(self) -> "WorkflowChannel":
        return self

    async def __anext__(self) -> WorkflowUpdate:
        if self._task is None:
            raise RuntimeError("WorkflowChannel must be entered before iterating")
        if self._closed and self._queue.empty():
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is _CLOSED:
            self._closed = True
            if self._error is not None:
                raise self._error
            raise StopAsyncIteration
        if self._closed:
            # Updates already queued when the channel was cancelled are dropped
            raise StopAsyncIteration
        return item
