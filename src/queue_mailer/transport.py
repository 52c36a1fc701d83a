# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Transports that actually send a composed message.

A transport is any object with an ``async send(email)`` method. Two are
provided:

- ``SmtpTransport``: one SMTP session per message via aiosmtplib.
- ``MemoryTransport``: keeps sent messages in ``deliveries``; useful in
  development and tests.

Errors raised by aiosmtplib or the network propagate unchanged so the retry
engine can classify them.
"""

from __future__ import annotations

import asyncio
from email.message import EmailMessage

import aiosmtplib

from .logger import get_logger

logger = get_logger("Transport")


class SmtpTransport:
    """Send messages through an SMTP server.

    TLS behavior based on port and use_tls flag:
    - Port 465 with use_tls=True: Direct TLS (implicit TLS)
    - Other ports with use_tls=True: STARTTLS
    - use_tls=False: Plain SMTP (no encryption)

    Attributes:
        host: SMTP server hostname or IP address.
        port: SMTP server port number.
        user: Username for authentication, or None.
        password: Password for authentication, or None.
        use_tls: Whether to encrypt the session.
        timeout: Seconds allowed for the whole connect/login/send sequence.
    """

    def __init__(
        self,
        host: str,
        port: int = 25,
        user: str | None = None,
        password: str | None = None,
        use_tls: bool = False,
        timeout: float = 30.0,
    ):
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.use_tls = use_tls
        self.timeout = timeout

    def _client(self) -> aiosmtplib.SMTP:
        if self.use_tls and self.port == 465:
            return aiosmtplib.SMTP(hostname=self.host, port=self.port, start_tls=False, use_tls=True, timeout=self.timeout)
        if self.use_tls:
            return aiosmtplib.SMTP(hostname=self.host, port=self.port, start_tls=True, use_tls=False, timeout=self.timeout)
        return aiosmtplib.SMTP(hostname=self.host, port=self.port, start_tls=False, use_tls=False, timeout=self.timeout)

    async def send(self, email: EmailMessage) -> None:
        """Connect, authenticate when credentials are set, send and quit.

        Raises:
            asyncio.TimeoutError: If the sequence exceeds ``timeout``.
            aiosmtplib.SMTPException: On SMTP level failures.
            OSError: On network failures.
        """
        smtp = self._client()

        async def _do_send():
            await smtp.connect()
            try:
                if self.user and self.password:
                    await smtp.login(self.user, self.password)
                await smtp.send_message(email)
            finally:
                try:
                    await smtp.quit()
                except aiosmtplib.SMTPException:
                    logger.debug(f"QUIT failed on {self.host}:{self.port}")

        await asyncio.wait_for(_do_send(), timeout=self.timeout)
        logger.debug(f"Sent message to {email['To']} via {self.host}:{self.port}")


class MemoryTransport:
    """Collect messages instead of sending them."""

    def __init__(self):
        self.deliveries: list[EmailMessage] = []

    async def send(self, email: EmailMessage) -> None:
        self.deliveries.append(email)

    def clear(self) -> None:
        self.deliveries.clear()
