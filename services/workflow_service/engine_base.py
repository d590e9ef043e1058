# engine_base.py - Shared background-task bookkeeping for the execution engines
# Each submitted execution runs as its own asyncio task owned by exactly one engine instance.

import asyncio
import logging
from typing import Coroutine, Dict, List, Set

from .event_publisher import EventBus
from .execution_store import ExecutionStore

logger = logging.getLogger(__name__)

class ExecutionEngine:
    """Tracks running executions, cancel requests and per-execution write locks."""

    def __init__(self, store: ExecutionStore, event_bus: EventBus):
        self.store = store
        self.event_bus = event_bus
        self.running_executions: Dict[str, asyncio.Task] = {}
        self._cancel_requested: Set[str] = set()
        self._locks: Dict[str, asyncio.Lock] = {}

    def _start_background(self, execution_id: str, coro: Coroutine) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self.running_executions[execution_id] = task
        task.add_done_callback(lambda t: self._release(execution_id))
        return task

    def _lock_for(self, execution_id: str) -> asyncio.Lock:
        # Serialises the loop's writes with a concurrent cancel of the same execution
        return self._locks.setdefault(execution_id, asyncio.Lock())

    def _release(self, execution_id: str):
        self._cancel_requested.discard(execution_id)
        self._locks.pop(execution_id, None)

    def _release_if_idle(self, execution_id: str):
        """Drop bookkeeping for an id with no live background task."""
        task = self.running_executions.get(execution_id)
        if task is None or task.done():
            self._release(execution_id)

    def is_cancel_requested(self, execution_id: str) -> bool:
        return execution_id in self._cancel_requested

    def get_running_executions(self) -> List[str]:
        """Get list of currently running execution IDs."""
        return [eid for eid, task in self.running_executions.items() if not task.done()]

    async def wait_for_execution(self, execution_id: str):
        """Wait until the background task of an execution settles."""
        task = self.running_executions.get(execution_id)
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)

    async def cleanup_completed_executions(self) -> int:
        """Clean up completed execution tasks."""
        completed = [eid for eid, task in self.running_executions.items() if task.done()]
        for execution_id in completed:
            del self.running_executions[execution_id]

        if completed:
            logger.info(f"Cleaned up {len(completed)} completed execution tasks")
        return len(completed)

    async def shutdown(self):
        """Cancel outstanding execution tasks on process exit."""
        tasks = [task for task in self.running_executions.values() if not task.done()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
            logger.info(f"Cancelled {len(tasks)} running executions on shutdown")
        self.running_executions.clear()
