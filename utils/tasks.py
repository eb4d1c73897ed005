"""Loading state for async work the UI waits on."""

import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

logger = logging.getLogger(__name__)


class TaskStatus(Enum):
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    ERROR = "error"


class TaskState:
    """
    Runs a coroutine factory and remembers how it went.

    The factory is kept so a failed run can be retried as is. There is no
    cancellation: a started run always finishes (or fails) on its own.

    Usage:
        task = TaskState(lambda: agent.fetch_rows(page=0))
        rows = await task.run()
        if task.status is TaskStatus.ERROR:
            rows = await task.retry()
    """

    def __init__(self, factory: Callable[[], Awaitable[Any]], name: str = "task"):
        self.factory = factory
        self.name = name
        self.status = TaskStatus.IDLE
        self.result: Any = None
        self.error: Optional[BaseException] = None

    @property
    def is_loading(self) -> bool:
        return self.status is TaskStatus.LOADING

    async def run(self) -> Any:
        self.status = TaskStatus.LOADING
        self.error = None
        try:
            self.result = await self.factory()
        except Exception as exc:
            self.status = TaskStatus.ERROR
            self.error = exc
            logger.warning("%s failed: %s", self.name, exc)
            return None
        self.status = TaskStatus.READY
        return self.result

    async def retry(self) -> Any:
        return await self.run()
