# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Classification of delivery errors into transient and fatal.

A transient error is worth another attempt from the queue: the network
timed out, the peer reset or refused the connection, the host could not be
reached, the pipe broke, name resolution failed or the stream ended early.
Everything else is fatal and is never retried.

Mailer classes may extend the transient set with their own exception
types. Extensions live in a policy table keyed by the exact mailer class,
so a type registered for one mailer is still fatal for its parent and its
siblings.

Example:
    Classifying an error for a mailer::

        category = retry_policies.classify(WelcomeMailer, exc)
        if category is ErrorCategory.TRANSIENT:
            ...
"""

from __future__ import annotations

import asyncio
import errno
import socket
import threading
from collections.abc import Iterable
from enum import Enum

import aiosmtplib

BASE_RETRYABLE_ERRORS: tuple[type[BaseException], ...] = (
    asyncio.TimeoutError,
    TimeoutError,
    ConnectionResetError,
    ConnectionRefusedError,
    BrokenPipeError,
    socket.gaierror,
    socket.herror,
    EOFError,
    aiosmtplib.SMTPConnectError,
    aiosmtplib.SMTPServerDisconnected,
    aiosmtplib.SMTPTimeoutError,
)

RETRYABLE_ERRNOS = frozenset({errno.EHOSTUNREACH, errno.ETIMEDOUT})


class ErrorCategory(str, Enum):
    """How the retry engine should treat a raised error.

    Attributes:
        TRANSIENT: The failure may go away; the job can be re-enqueued.
        FATAL: The failure is permanent; the job must not be retried.
    """

    TRANSIENT = "transient"
    FATAL = "fatal"


def classify_error(
    exc: BaseException, extra: Iterable[type[BaseException]] = ()
) -> ErrorCategory:
    """Classify an error by its type, never by its message.

    Args:
        exc: The raised exception instance.
        extra: Additional exception types to treat as transient.

    Returns:
        ``ErrorCategory.TRANSIENT`` when ``exc`` is an instance of a base or
        extra retryable type (or an ``OSError`` carrying a retryable errno),
        ``ErrorCategory.FATAL`` otherwise.
    """
    if isinstance(exc, BASE_RETRYABLE_ERRORS + tuple(extra)):
        return ErrorCategory.TRANSIENT
    if isinstance(exc, OSError) and exc.errno in RETRYABLE_ERRNOS:
        return ErrorCategory.TRANSIENT
    return ErrorCategory.FATAL


class RetryPolicyTable:
    """Per-mailer extensions of the retryable error set.

    Each mailer class has at most one extension set. Declaring again
    replaces the previous set; nothing is merged and nothing is inherited
    by subclasses.
    """

    def __init__(self):
        self._extensions: dict[type, tuple[type[BaseException], ...]] = {}
        self._lock = threading.Lock()

    def declare(self, target: type, errors: Iterable[type[BaseException]]) -> None:
        """Set the additional retryable errors for ``target``.

        Raises:
            TypeError: If an entry is not an exception class.
        """
        errors = tuple(errors)
        for error in errors:
            if not (isinstance(error, type) and issubclass(error, BaseException)):
                raise TypeError(f"Not an exception class: {error!r}")
        with self._lock:
            self._extensions[target] = errors

    def extensions(self, target: type) -> tuple[type[BaseException], ...]:
        with self._lock:
            return self._extensions.get(target, ())

    def classify(self, target: type, exc: BaseException) -> ErrorCategory:
        return classify_error(exc, self.extensions(target))

    def clear(self, target: type | None = None) -> None:
        """Drop the extension set of ``target``, or of every mailer."""
        with self._lock:
            if target is None:
                self._extensions.clear()
            else:
                self._extensions.pop(target, None)


retry_policies = RetryPolicyTable()


class ActionNotFound(LookupError):
    """Raised when a mailer is asked to compose an action it does not define."""

    def __init__(self, mailer: str, action: str):
        super().__init__(f"{mailer} has no mail action {action!r}")
        self.mailer = mailer
        self.action = action
