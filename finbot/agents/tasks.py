"""
Cancellable AI Tasks

Calls to the AI collaborator run as explicit asyncio tasks. The caller
gets an AiTask handle whose `outcome()` never raises for an ordinary
failure: it resolves to Ok(value) or Err(reason). A CancellationToken
lets the caller abandon a request; the underlying task is cancelled
instead of being left to finish with its result thrown away.

No retries happen here. A failed call is reported once.
"""

import asyncio
from typing import Any, Awaitable, Optional, Union

import structlog
from pydantic import BaseModel, ConfigDict


logger = structlog.get_logger()

CANCELLED = "cancelled"
TIMED_OUT = "timeout"


class Ok(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    value: Any

    @property
    def ok(self) -> bool:
        return True


class Err(BaseModel):
    reason: str
    error_type: Optional[str] = None

    @property
    def ok(self) -> bool:
        return False


Outcome = Union[Ok, Err]


class CancellationToken:
    """
    Caller-held switch that cancels every task registered with it.

    Tasks started after cancel() are cancelled immediately.
    """

    def __init__(self):
        self._cancelled = False
        self._tasks: set[asyncio.Task] = set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def register(self, task: asyncio.Task) -> None:
        if self._cancelled:
            task.cancel()
            return
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def cancel(self) -> None:
        self._cancelled = True
        for task in list(self._tasks):
            task.cancel()


class AiTask:
    """Handle for a running AI request."""

    def __init__(self, task: asyncio.Task, timeout: Optional[float] = None, name: str = "ai_task"):
        self._task = task
        self._timeout = timeout
        self.name = name

    def done(self) -> bool:
        return self._task.done()

    def cancel(self) -> None:
        self._task.cancel()

    async def outcome(self) -> Outcome:
        """Wait for the request and fold its result into Ok | Err."""
        try:
            value = await asyncio.wait_for(self._task, self._timeout)
        except asyncio.TimeoutError:
            logger.warning("ai_task_timed_out", task=self.name, timeout=self._timeout)
            return Err(reason=TIMED_OUT, error_type="TimeoutError")
        except asyncio.CancelledError:
            if self._task.cancelled():
                logger.info("ai_task_cancelled", task=self.name)
                return Err(reason=CANCELLED, error_type="CancelledError")
            raise
        except Exception as e:
            logger.warning("ai_task_failed", task=self.name, error=str(e))
            return Err(reason=str(e) or type(e).__name__, error_type=type(e).__name__)
        return Ok(value=value)


def run_ai_task(
    coro: Awaitable,
    token: Optional[CancellationToken] = None,
    timeout: Optional[float] = None,
    name: str = "ai_task",
) -> AiTask:
    """
    Start `coro` as a task on the running loop.

    Must be called from inside a coroutine.
    """
    task = asyncio.ensure_future(coro)
    if token is not None:
        token.register(task)
    return AiTask(task, timeout=timeout, name=name)
