# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Realized mail: a composed message bound to the configuration that sends it."""

from __future__ import annotations

from email.message import EmailMessage
from typing import TYPE_CHECKING, Any

from .logger import get_logger

if TYPE_CHECKING:
    from .config import MailerConfig

logger = get_logger("Message")


class Message:
    """A composed email ready to be sent.

    ``deliver()`` honours the global delivery switch and silently skips
    sending when deliveries are disabled. ``deliver_now()`` always sends.
    Header lookups (``message["Subject"]``) and the common accessors are
    forwarded to the underlying ``EmailMessage``.

    Attributes:
        email: The composed ``email.message.EmailMessage``.
        mailer_name: Job name of the mailer that composed it.
        config: Configuration providing transport and delivery switch.
    """

    def __init__(self, email: EmailMessage, mailer_name: str, config: MailerConfig):
        self.email = email
        self.mailer_name = mailer_name
        self.config = config

    def __getitem__(self, header: str) -> Any:
        return self.email[header]

    def __contains__(self, header: str) -> bool:
        return header in self.email

    def __repr__(self) -> str:
        return f"<Message {self.mailer_name} to={self.to!r} subject={self.subject!r}>"

    @property
    def to(self) -> str | None:
        return self.email["To"]

    @property
    def sender(self) -> str | None:
        return self.email["From"]

    @property
    def subject(self) -> str | None:
        return self.email["Subject"]

    @property
    def body(self) -> str:
        part = self.email.get_body(preferencelist=("plain", "html"))
        if part is None:
            return ""
        return part.get_content()

    async def deliver(self) -> None:
        """Send the message unless deliveries are globally disabled."""
        if not self.config.perform_deliveries:
            logger.info(f"Deliveries disabled, skipping {self.mailer_name} message to {self.to}")
            return
        await self.deliver_now()

    async def deliver_now(self) -> None:
        """Send the message through the configured transport.

        Raises:
            RuntimeError: If no transport is configured.
            Exception: Whatever the transport raises, unchanged.
        """
        transport = self.config.transport
        if transport is None:
            raise RuntimeError("No mail transport configured")
        await transport.send(self.email)
        metrics = self.config.metrics
        if metrics is not None:
            metrics.inc_delivered(self.mailer_name)
