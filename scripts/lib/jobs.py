"""
In-process registry of background job tasks.

A ``JobHandle`` pairs the asyncio task running a job with a cooperative
cancel flag. Cancelling sets the flag; the worker checks it between records
and stops writing. In-flight HTTP calls are not interrupted.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Awaitable, Dict, Optional

from scripts.lib.logger import setup_logger

logger = setup_logger("jobs")


@dataclass
class JobHandle:
    job_id: Any
    task: Optional[asyncio.Task] = None
    _cancel: asyncio.Event = field(default_factory=asyncio.Event)

    def cancel(self) -> None:
        self._cancel.set()

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    @property
    def done(self) -> bool:
        return self.task is not None and self.task.done()


class JobRegistry:
    """Tracks running job handles by id."""

    def __init__(self):
        self._handles: Dict[Any, JobHandle] = {}

    def register(self, job_id: Any) -> JobHandle:
        handle = JobHandle(job_id=job_id)
        self._handles[job_id] = handle
        return handle

    def start(self, handle: JobHandle, coro: Awaitable) -> asyncio.Task:
        """Schedule ``coro`` on the running loop without awaiting it."""
        task = asyncio.ensure_future(coro)
        handle.task = task
        task.add_done_callback(lambda t: self._finished(handle, t))
        return task

    def get(self, job_id: Any) -> Optional[JobHandle]:
        return self._handles.get(job_id)

    def cancel(self, job_id: Any) -> bool:
        handle = self._handles.get(job_id)
        if handle is None:
            return False
        handle.cancel()
        return True

    async def wait(self, job_id: Any) -> None:
        handle = self._handles.get(job_id)
        if handle is not None and handle.task is not None:
            await asyncio.shield(handle.task)

    def _finished(self, handle: JobHandle, task: asyncio.Task) -> None:
        if not task.cancelled() and task.exception() is not None:
            logger.error("Job %s failed: %s", handle.job_id, task.exception())
        self._handles.pop(handle.job_id, None)
