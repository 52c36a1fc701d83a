# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Boundary between the mailer core and the job queue backend.

The core only ever calls ``enqueue(target, attempt, action, args, queue=...)``
on the configured backend and never looks at what the backend does with it.
A backend must later call ``target.perform(attempt, action, *args)`` with the
same values.

This module also provides ``MemoryQueue``, a process-local backend that
stores jobs as JSON (the way a persistent queue would) and a ``work()``
loop that performs them. It is meant for development and tests; production
deployments plug in their own backend.

Example:
    Running queued jobs in process::

        queue = MemoryQueue()
        default_config.queue_target = queue

        await WelcomeMailer.send_welcome(42).deliver()
        await queue.work()
"""

from __future__ import annotations

import importlib
import threading
from collections import deque
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Annotated, Any, Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict, Field

from .logger import get_logger

if TYPE_CHECKING:
    from .config import MailerConfig

logger = get_logger("Queue")

_targets: dict[str, type] = {}
_targets_lock = threading.Lock()


@runtime_checkable
class QueueBackend(Protocol):
    """Interface the core expects from a job queue."""

    async def enqueue(self, target: type, attempt: int, action: str, args: Sequence[Any], *, queue: str) -> None:
        ...


def job_name(target: type) -> str:
    """Return the importable name a target is stored under."""
    return f"{target.__module__}.{target.__qualname__}"


def register_target(target: type) -> None:
    """Make ``target`` resolvable from its job name."""
    with _targets_lock:
        _targets[job_name(target)] = target


def resolve_target(name: str) -> type:
    """Resolve a job name back to its target class.

    Registered targets are looked up first; otherwise the module part of the
    name is imported and the qualified name walked.

    Raises:
        LookupError: If the name cannot be resolved.
    """
    with _targets_lock:
        target = _targets.get(name)
    if target is not None:
        return target

    parts = name.split(".")
    for index in range(len(parts) - 1, 0, -1):
        module_name = ".".join(parts[:index])
        try:
            obj: Any = importlib.import_module(module_name)
        except ImportError:
            continue
        try:
            for attr in parts[index:]:
                obj = getattr(obj, attr)
        except AttributeError:
            break
        if isinstance(obj, type):
            return obj
        break
    raise LookupError(f"Unknown job target: {name}")


class Job(BaseModel):
    """Serialized form of a deferred action.

    Attributes:
        target: Job name of the target class.
        attempt: Attempt counter, starting at 1.
        action: Name of the action to perform.
        args: Positional arguments, JSON-serializable.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    target: Annotated[str, Field(min_length=1, description="Target job name")]
    attempt: Annotated[int, Field(ge=1, description="Attempt counter")]
    action: Annotated[str, Field(min_length=1, description="Action name")]
    args: Annotated[list[Any], Field(default_factory=list, description="Positional arguments")]

    @classmethod
    def build(cls, target: type, attempt: int, action: str, args: Sequence[Any]) -> Job:
        return cls(target=job_name(target), attempt=attempt, action=str(action), args=list(args))

    def resolve(self) -> type:
        return resolve_target(self.target)


async def enqueue_job(config: MailerConfig, target: type, attempt: int, action: str, args: Sequence[Any]) -> None:
    """Hand a job to the configured backend under the configured queue name.

    Raises:
        RuntimeError: If no queue target is configured.
    """
    settings = config.queue_settings()
    if settings.target is None:
        raise RuntimeError("No queue target configured")
    await settings.target.enqueue(target, attempt, action, list(args), queue=settings.name)
    logger.debug(f"Enqueued {job_name(target)}.{action} attempt {attempt} on '{settings.name}'")
    metrics = config.metrics
    if metrics is not None:
        metrics.inc_enqueued(job_name(target))


@dataclass
class FailedJob:
    """A job whose error propagated out of ``perform``."""

    queue: str
    payload: str
    error_type: str
    error: str
    failed_at: datetime


class MemoryQueue:
    """Process-local queue backend keeping JSON payloads per queue name.

    Attributes:
        failed: Jobs whose ``perform`` raised, oldest first.
    """

    def __init__(self):
        self._queues: dict[str, deque[str]] = {}
        self._lock = threading.Lock()
        self.failed: list[FailedJob] = []

    async def enqueue(self, target: type, attempt: int, action: str, args: Sequence[Any], *, queue: str) -> None:
        """Serialize and store a job.

        Raises:
            pydantic.ValidationError: If the job is malformed.
            pydantic_core.PydanticSerializationError: If ``args`` is not
                JSON-serializable.
        """
        payload = Job.build(target, attempt, action, args).model_dump_json()
        with self._lock:
            self._queues.setdefault(queue, deque()).append(payload)

    def size(self, queue: str) -> int:
        with self._lock:
            return len(self._queues.get(queue, ()))

    def queues(self) -> list[str]:
        with self._lock:
            return [name for name, jobs in self._queues.items() if jobs]

    def reserve(self, queue: str) -> Job | None:
        """Pop the oldest job of ``queue``, or None when empty."""
        with self._lock:
            jobs = self._queues.get(queue)
            if not jobs:
                return None
            payload = jobs.popleft()
        return Job.model_validate_json(payload)

    async def perform(self, job: Job) -> None:
        """Invoke the target's ``perform`` entry point for ``job``."""
        target = job.resolve()
        await target.perform(job.attempt, job.action, *job.args)

    async def work(self, queue: str | None = None) -> int:
        """Perform jobs until the queue (or every queue) is empty.

        Jobs re-enqueued while working are performed in the same call.
        Errors escaping ``perform`` are logged and recorded in ``failed``.

        Returns:
            Number of jobs performed, successful or not.
        """
        processed = 0
        while True:
            names = [queue] if queue is not None else self.queues()
            job = None
            for name in names:
                job = self.reserve(name)
                if job is not None:
                    break
            if job is None:
                return processed
            processed += 1
            try:
                await self.perform(job)
            except Exception as exc:
                logger.exception(f"Job {job.target}.{job.action} attempt {job.attempt} failed")
                self.failed.append(
                    FailedJob(
                        queue=name,
                        payload=job.model_dump_json(),
                        error_type=type(exc).__name__,
                        error=str(exc),
                        failed_at=datetime.now(timezone.utc),
                    )
                )
