"""
Best-effort side effects.

Cache invalidation, coupon tracking and user notifications must never
decide the outcome of a billing event. BestEffortRunner executes them
and routes any failure to an error sink (logging by default).

- run(label, fn, *args): execute now, in line, failure goes to the sink
- spawn(label, coro): detached task, failure goes to the sink
- drain(): await every pending detached task (tests, shutdown)
"""

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, Optional, Set

logger = logging.getLogger(__name__)

ErrorSink = Callable[[str, BaseException], None]


def log_error_sink(label: str, error: BaseException) -> None:
    logger.warning(
        "Best-effort operation failed",
        extra={"operation": label, "error": str(error), "error_type": type(error).__name__}
    )


class BestEffortRunner:
    """Runs non-critical work without letting its failures propagate."""

    def __init__(self, error_sink: Optional[ErrorSink] = None):
        self._sink = error_sink or log_error_sink
        self._pending: Set[asyncio.Task] = set()

    def _report(self, label: str, error: BaseException) -> None:
        try:
            self._sink(label, error)
        except Exception:
            logger.exception("Error sink failed", extra={"operation": label})

    async def run(self, label: str, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        """
        Call `fn` (sync or async) and return its result.

        Returns:
            The call's result, or None if it raised
        """
        try:
            result = fn(*args, **kwargs)
            if inspect.isawaitable(result):
                result = await result
            return result
        except Exception as e:
            self._report(label, e)
            return None

    def spawn(self, label: str, coro: Awaitable[Any]) -> asyncio.Task:
        """Schedule `coro` detached from the caller's success path."""

        async def _guarded() -> None:
            try:
                await coro
            except Exception as e:
                self._report(label, e)

        task = asyncio.ensure_future(_guarded())
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    @property
    def pending(self) -> int:
        return len(self._pending)

    async def drain(self) -> None:
        """Wait for every detached task spawned so far."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
