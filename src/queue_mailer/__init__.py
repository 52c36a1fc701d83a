"""Deferred mail delivery through a job queue with bounded retry.

This package lets mailer actions be queued instead of sent from the calling
code:

- Action calls on a mailer class return a deferred handle; ``deliver()``
  enqueues the job, ``deliver_now()`` sends immediately
- Excluded environments and a global delivery switch bypass the queue
- Queued jobs are retried on transient network errors, up to three attempts
- Per-mailer extensions of the retryable error set
- Prometheus metrics for enqueued, retried, failed and delivered mail

Example:
    Basic usage::

        from queue_mailer import Mailer, MemoryQueue, action, default_config

        class WelcomeMailer(Mailer):
            @action
            def send_welcome(self, user_id):
                self.mail(to=f"user{user_id}@example.org", subject="Welcome")

        default_config.queue_target = MemoryQueue()
        await WelcomeMailer.send_welcome(42).deliver()
"""

from .config import MailerConfig, MailerSettings, default_config, load_settings
from .errors import ActionNotFound, ErrorCategory, classify_error, retry_policies
from .handle import DeferredMessage
from .mailer import Mailer, action
from .message import Message
from .metrics import MailerMetrics
from .queue import Job, MemoryQueue, QueueBackend
from .retry import MAX_ATTEMPTS, RetryDecision, RetryEngine
from .transport import MemoryTransport, SmtpTransport

__all__ = [
    "MAX_ATTEMPTS",
    "ActionNotFound",
    "DeferredMessage",
    "ErrorCategory",
    "Job",
    "Mailer",
    "MailerConfig",
    "MailerMetrics",
    "MailerSettings",
    "MemoryQueue",
    "MemoryTransport",
    "Message",
    "QueueBackend",
    "RetryDecision",
    "RetryEngine",
    "SmtpTransport",
    "action",
    "classify_error",
    "default_config",
    "load_settings",
    "retry_policies",
]
