# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Bounded retry of queued mail jobs.

The queue backend calls ``perform`` once per job. The engine composes the
message, sends it and, when sending fails, decides between three outcomes:

- ``RETRY``: the error is transient and attempts remain; the job goes back
  on the queue with the attempt counter incremented and the error is
  swallowed.
- ``EXHAUSTED``: the error is transient but this was the last attempt;
  the error propagates unchanged.
- ``FATAL``: the error is not transient; it propagates unchanged whatever
  the attempt number.

Errors are never wrapped, so the backend's own failure handling sees the
original exception.
"""

from __future__ import annotations

from collections.abc import Sequence
from enum import Enum
from typing import TYPE_CHECKING, Any

from .errors import ErrorCategory, RetryPolicyTable, retry_policies
from .logger import get_logger
from .queue import enqueue_job, job_name

if TYPE_CHECKING:
    from .config import MailerConfig

logger = get_logger("RetryEngine")

MAX_ATTEMPTS = 3


class RetryDecision(str, Enum):
    """Outcome of a failed attempt."""

    RETRY = "retry"
    EXHAUSTED = "exhausted"
    FATAL = "fatal"


class RetryEngine:
    """Perform queued mail jobs with bounded retry on transient errors.

    Attributes:
        config: Configuration providing the queue target and name.
        policies: Table of per-mailer retryable error extensions.
        max_attempts: Total executions allowed per original request.
    """

    def __init__(
        self,
        config: MailerConfig,
        policies: RetryPolicyTable | None = None,
        max_attempts: int = MAX_ATTEMPTS,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.config = config
        self.policies = policies if policies is not None else retry_policies
        self.max_attempts = max_attempts

    def decide(self, target: type, exc: BaseException, attempt: int) -> RetryDecision:
        if self.policies.classify(target, exc) is ErrorCategory.FATAL:
            return RetryDecision.FATAL
        if attempt >= self.max_attempts:
            return RetryDecision.EXHAUSTED
        return RetryDecision.RETRY

    async def perform(self, target: type, attempt: int, action: str, args: Sequence[Any]) -> None:
        """Compose and send one job, re-enqueueing on transient failure.

        Args:
            target: Mailer class owning ``action``.
            attempt: Attempt counter received from the queue.
            action: Action name.
            args: Positional arguments of the action.

        Raises:
            Exception: The original error when it is fatal or attempts are
                exhausted.
        """
        try:
            await target(action, *args, config=self.config).message.deliver()
        except Exception as exc:
            decision = self.decide(target, exc, attempt)
            name = job_name(target)
            metrics = self.config.metrics
            if decision is not RetryDecision.RETRY:
                logger.error(
                    f"{name}.{action} failed on attempt {attempt}/{self.max_attempts} "
                    f"({decision.value}): {type(exc).__name__}: {exc}"
                )
                if metrics is not None:
                    metrics.inc_failed(name, decision.value)
                raise
            logger.warning(
                f"{name}.{action} attempt {attempt}/{self.max_attempts} failed with "
                f"{type(exc).__name__}, rescheduling"
            )
            await enqueue_job(self.config, target, attempt + 1, action, args)
            if metrics is not None:
                metrics.inc_retried(name)
