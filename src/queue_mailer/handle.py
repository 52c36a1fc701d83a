# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Stand-in returned when a mail action is deferred.

A ``DeferredMessage`` remembers which mailer action was called and with
which arguments. ``deliver()`` puts the job on the queue without composing
anything. Any other use (``deliver_now()``, reading ``subject``, header
lookups) composes the message once and works on the result.
"""

from __future__ import annotations

import threading
from collections.abc import Sequence
from typing import TYPE_CHECKING, Any

from .queue import enqueue_job

if TYPE_CHECKING:
    from .config import MailerConfig
    from .message import Message


class DeferredMessage:
    """Deferred handle for one mailer action call.

    Attributes:
        mailer_class: Mailer class owning the action.
        action: Action name.
        args: Positional arguments of the action.
        config: Configuration used to enqueue.
    """

    def __init__(
        self,
        mailer_class: type,
        action: str,
        args: Sequence[Any] = (),
        config: MailerConfig | None = None,
    ):
        self.mailer_class = mailer_class
        self.action = action
        self.args = tuple(args)
        self.config = config if config is not None else mailer_class.config
        self._actual_message: Message | None = None
        self._realize_lock = threading.Lock()

    def __repr__(self) -> str:
        return f"<DeferredMessage {self.mailer_class.__name__}.{self.action}{self.args!r}>"

    @property
    def realized(self) -> bool:
        return self._actual_message is not None

    def _realize(self) -> Message:
        with self._realize_lock:
            if self._actual_message is None:
                self._actual_message = self.mailer_class(self.action, *self.args, config=self.config).message
            return self._actual_message

    @property
    def actual_message(self) -> Message:
        """The composed message, built on first access."""
        return self._realize()

    async def deliver(self) -> None:
        """Enqueue the action as attempt 1. Nothing is composed or sent here."""
        await enqueue_job(self.config, self.mailer_class, 1, self.action, self.args)

    async def deliver_now(self) -> None:
        """Compose and send synchronously, bypassing the queue and retries."""
        await self._realize().deliver_now()

    def __getattr__(self, name: str) -> Any:
        if name.startswith("_") or name in ("actual_message", "realized"):
            raise AttributeError(name)
        return getattr(self._realize(), name)

    def __getitem__(self, header: str) -> Any:
        return self._realize()[header]
