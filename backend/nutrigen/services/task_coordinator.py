"""
Per-run registry of in-flight field tasks with cooperative cancellation.

One coordinator is created for every generation run. Tasks are appended as
they are spawned; `cancel_all()` flips the cancelled flag and cancels every
registered task. Spawners and retry loops call `raise_if_cancelled()` at
their checkpoints.
"""

import asyncio
import logging
import threading
from dataclasses import dataclass
from typing import Any, Coroutine, List

from nutrigen.core.errors import GenerationCancelled

logger = logging.getLogger(__name__)


@dataclass
class TaskHandle:
    name: str
    task: asyncio.Task


class TaskCoordinator:
    def __init__(self):
        self._lock = threading.Lock()
        self._handles: List[TaskHandle] = []
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise GenerationCancelled("generation was cancelled")

    def spawn(self, name: str, coro: Coroutine[Any, Any, Any]) -> asyncio.Task:
        """Start `coro` as a task and register it. Refuses once cancelled."""
        if self._cancelled:
            coro.close()
            raise GenerationCancelled("generation was cancelled")

        task = asyncio.ensure_future(coro)
        with self._lock:
            self._handles.append(TaskHandle(name=name, task=task))
        return task

    def cancel_all(self) -> int:
        """Cancel every registered task that is still running."""
        self._cancelled = True
        with self._lock:
            handles = list(self._handles)

        pending = 0
        for handle in handles:
            if not handle.task.done():
                handle.task.cancel()
                pending += 1

        logger.info(f"Cancelled generation ({pending} tasks in flight)")
        return pending

    @property
    def handles(self) -> List[TaskHandle]:
        with self._lock:
            return list(self._handles)
