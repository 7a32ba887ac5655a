"""
Fire-and-forget coroutine helper.

Event callbacks are synchronous; work they start (autosave, profile
bootstrap) runs as a task on the current event loop, or to completion when
no loop is running.
"""

import asyncio
from typing import Any, Coroutine, Optional, Set

from utils.config import config
from utils.logger import setup_logger

logger = setup_logger(__name__, level=config.log_level, log_file=config.get_log_file(), component="TASKS")

# Strong references so pending tasks are not garbage collected
_background_tasks: Set[asyncio.Task] = set()


def _log_task_failure(task: asyncio.Task):
    _background_tasks.discard(task)
    if task.cancelled():
        return
    error = task.exception()
    if error is not None:
        logger.error(f"Background task {task.get_name()} failed: {error}")


def spawn(coro: Coroutine[Any, Any, Any], name: Optional[str] = None) -> Optional[asyncio.Task]:
    """
    Schedule ``coro`` on the running loop.

    Returns the task, or None when there was no running loop and the
    coroutine was run to completion instead.
    """
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        asyncio.run(coro)
        return None

    task = loop.create_task(coro, name=name)
    _background_tasks.add(task)
    task.add_done_callback(_log_task_failure)
    return task


async def drain():
    """Wait for every task started by spawn() to finish."""
    while _background_tasks:
        await asyncio.gather(*list(_background_tasks), return_exceptions=True)
