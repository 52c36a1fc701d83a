# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Mailer base class and the dispatch gate for deferred delivery.

A mailer is a class whose ``@action`` methods compose one email each.
Calling an action on the class does not compose anything: it returns a
``DeferredMessage`` whose ``deliver()`` enqueues the job. When the active
environment is excluded, or deliveries are globally disabled, the call is
not intercepted and the composed ``Message`` is returned instead, so
``deliver()`` sends inline.

The queue later calls ``perform(attempt, action, *args)`` on the class,
which composes and sends the message with bounded retry.

Example:
    Defining and using a mailer::

        class WelcomeMailer(Mailer, retry_on=(QuotaExceeded,)):
            defaults = {"from": "noreply@example.org"}

            @action
            def send_welcome(self, user_id):
                user = load_user(user_id)
                self.mail(to=user.email, subject="Welcome", body=f"Hi {user.name}")

        await WelcomeMailer.send_welcome(42).deliver()       # queued
        await WelcomeMailer.send_welcome(42).deliver_now()   # sent now
"""

from __future__ import annotations

import functools
from collections.abc import Callable, Iterable
from email.message import EmailMessage
from email.utils import formatdate, make_msgid
from typing import Any, ClassVar

from .config import MailerConfig, default_config
from .errors import ActionNotFound, retry_policies
from .handle import DeferredMessage
from .logger import get_logger
from .message import Message
from .queue import job_name, register_target
from .retry import RetryEngine

logger = get_logger("Mailer")


class action:
    """Mark a mailer method as a dispatchable mail action.

    On the class the attribute is a dispatcher routed through
    ``Mailer.dispatch``; on an instance it is the plain bound method.
    """

    def __init__(self, func: Callable[..., Any]):
        self.func = func
        self.name = func.__name__
        functools.update_wrapper(self, func)

    def __set_name__(self, owner: type, name: str) -> None:
        self.name = name

    def __get__(self, instance: Any, owner: type | None = None) -> Callable[..., Any]:
        if instance is None:
            name = self.name

            @functools.wraps(self.func)
            def dispatcher(*args: Any) -> Any:
                return owner.dispatch(name, *args)

            return dispatcher
        return self.func.__get__(instance, owner)


class Mailer:
    """Base class for mailers with deferred, retried delivery.

    Attributes:
        config: Configuration context; subclasses may assign their own.
        defaults: Default headers (``from``, ``subject``, ``reply_to``).
        actions: Names of the dispatchable actions of the class.
    """

    config: MailerConfig = default_config
    defaults: ClassVar[dict[str, str]] = {}
    actions: ClassVar[frozenset[str]] = frozenset()

    def __init_subclass__(cls, retry_on: Iterable[type[BaseException]] | None = None, **kwargs: Any):
        super().__init_subclass__(**kwargs)
        names: set[str] = set()
        for klass in reversed(cls.__mro__):
            for name, value in vars(klass).items():
                if isinstance(value, action):
                    names.add(name)
                else:
                    names.discard(name)
        cls.actions = frozenset(names)
        register_target(cls)
        if retry_on is not None:
            retry_policies.declare(cls, retry_on)

    def __init__(self, action_name: str, *args: Any, config: MailerConfig | None = None):
        if config is not None:
            self.config = config
        if action_name not in self.actions:
            raise ActionNotFound(type(self).__name__, action_name)
        self.action_name = action_name
        self.args = args
        self._email: EmailMessage | None = None
        getattr(self, action_name)(*args)
        if self._email is None:
            self.mail()

    def mail(
        self,
        to: str | Iterable[str] | None = None,
        subject: str | None = None,
        body: str = "",
        html: str | None = None,
        sender: str | None = None,
        cc: str | Iterable[str] | None = None,
        bcc: str | Iterable[str] | None = None,
        reply_to: str | None = None,
        headers: dict[str, str] | None = None,
    ) -> EmailMessage:
        """Compose the message of the current action.

        Missing ``From``, ``Subject`` and ``Reply-To`` fall back to
        ``defaults``; ``From`` finally falls back to ``config.default_from``.
        """
        email = EmailMessage()
        sender = sender or self.defaults.get("from") or self.config.default_from
        subject = subject if subject is not None else self.defaults.get("subject")
        reply_to = reply_to or self.defaults.get("reply_to")

        for header, value in (
            ("From", sender),
            ("To", to),
            ("Cc", cc),
            ("Bcc", bcc),
            ("Reply-To", reply_to),
            ("Subject", subject),
        ):
            if value is None:
                continue
            if not isinstance(value, str):
                value = ", ".join(value)
            email[header] = value
        email["Date"] = formatdate(localtime=True)
        email["Message-ID"] = make_msgid()
        for header, value in (headers or {}).items():
            email[header] = value

        email.set_content(body)
        if html is not None:
            email.add_alternative(html, subtype="html")
        self._email = email
        return email

    @property
    def message(self) -> Message:
        return Message(self._email, job_name(type(self)), self.config)

    @classmethod
    def current_env(cls) -> str:
        return cls.config.environment

    @classmethod
    def environment_excluded(cls) -> bool:
        return cls.config.is_excluded(cls.current_env())

    @classmethod
    def queue(cls) -> str:
        return cls.config.queue_name

    @classmethod
    def queue_target(cls) -> Any:
        return cls.config.queue_target

    @classmethod
    def additional_errors_to_retry(cls, errors: Iterable[type[BaseException]]) -> None:
        """Declare extra retryable errors for this class, replacing any previous set."""
        retry_policies.declare(cls, errors)

    @classmethod
    def dispatch(cls, action_name: str, *args: Any) -> Any:
        """Route an action call.

        Returns:
            A ``DeferredMessage`` when the action is known and the
            environment is not excluded; the composed ``Message`` when the
            action is known but the environment is excluded; otherwise
            whatever the plain attribute returns when called.

        Raises:
            AttributeError: If ``action_name`` is not an attribute at all.
        """
        if action_name in cls.actions:
            if cls.environment_excluded():
                logger.debug(f"{cls.__name__}.{action_name} not deferred in '{cls.current_env()}'")
                return cls(action_name, *args).message
            return DeferredMessage(cls, action_name, args, cls.config)
        return getattr(cls, action_name)(*args)

    @classmethod
    async def perform(cls, attempt: int, action_name: str, *args: Any) -> None:
        """Queue entry point: compose and send with bounded retry."""
        await RetryEngine(cls.config).perform(cls, attempt, action_name, args)
