"""Background runner for sync orchestrations.

Slack expects an answer to a message action within three seconds, while a
full sync (Slack lookups, ClickUp call, database writes) can take longer.
The webhook handler therefore acknowledges immediately and hands the
orchestration to this runner:

    POST /slack/message-action
        → verify, parse
        → runner.submit(orchestrator.run(action), key=...)
        → 200 ack                      (response leaves here)
    [background] orchestrator.run → ClickUp → response_url callback

Each submitted coroutine gets its own error boundary. The runner holds a
strong reference to every task until it finishes so the event loop cannot
garbage-collect it mid-flight, and ``join`` lets shutdown (and tests) wait
for in-flight work.
"""

from __future__ import annotations

import asyncio
import time
from typing import Any, Coroutine

import structlog

logger = structlog.get_logger()


class SyncRunner:
    """Spawns orchestrations as tracked asyncio tasks.

    Usage:
        runner = SyncRunner()
        runner.submit(orchestrator.run(action), key=action.sync_key)
        ...
        await runner.join(timeout=25)
    """

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task[Any]] = set()
        self._submitted = 0

    @property
    def active_count(self) -> int:
        return len(self._tasks)

    def submit(self, coro: Coroutine[Any, Any, Any], key: str = "") -> asyncio.Task[Any]:
        """Schedule ``coro`` in the background and return its task."""
        self._submitted += 1

        async def _guarded() -> Any:
            started = time.monotonic()
            try:
                return await coro
            except asyncio.CancelledError:
                logger.info("sync_task_cancelled", key=key)
                raise
            except Exception as e:
                logger.error(
                    "sync_task_crashed",
                    key=key,
                    error=str(e),
                    exc_info=True,
                )
                return None
            finally:
                logger.debug(
                    "sync_task_finished",
                    key=key,
                    elapsed_ms=round((time.monotonic() - started) * 1000, 1),
                )

        task = asyncio.create_task(_guarded(), name=f"sync-{key or self._submitted}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        logger.debug("sync_task_submitted", key=key, active=len(self._tasks))
        return task

    async def join(self, timeout: float | None = None) -> bool:
        """Wait for in-flight tasks. Returns False if some were still running at timeout.

        Tasks that outlive the timeout are cancelled.
        """
        pending = set(self._tasks)
        if not pending:
            return True

        logger.info("sync_runner_draining", active=len(pending), timeout=timeout)
        _, still_running = await asyncio.wait(pending, timeout=timeout)
        if not still_running:
            return True

        logger.warning("sync_runner_drain_timeout", cancelled=len(still_running))
        for task in still_running:
            task.cancel()
        await asyncio.gather(*still_running, return_exceptions=True)
        return False
