# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Process-wide configuration for the queue mailer.

The configuration decides where deferred mail goes (queue backend and queue
name), when deferral is bypassed (excluded environments, global delivery
switch) and how realized messages are sent (transport, default sender).

Every dispatch, enqueue and perform call reads the configuration at call
time, so changes take effect immediately. All access goes through a lock
and the queue target and queue name are always read together.

Example:
    Configuring at startup::

        from queue_mailer.config import MailerConfig, default_config, load_settings

        settings = load_settings("/etc/queue-mailer/config.ini")
        config = MailerConfig.from_settings(settings, queue_target=backend)
        default_config.configure(**config.as_dict())

    Isolating a test::

        with default_config.override(excluded_environments=[], queue_target=fake):
            await WelcomeMailer.send_welcome(42).deliver()

Environment variables (all prefixed with QM_):
    QM_CONFIG - Path to the INI file (default: config.ini)
    QM_ENV - Active environment name (default: development)
    QM_QUEUE_NAME - Queue name (default: mailer)
    QM_EXCLUDED_ENVIRONMENTS - Comma separated environments that bypass the queue
    QM_PERFORM_DELIVERIES - Global delivery switch (default: true)
    QM_DEFAULT_FROM - Default sender address
    QM_SMTP_HOST, QM_SMTP_PORT, QM_SMTP_USER, QM_SMTP_PASSWORD,
    QM_SMTP_USE_TLS, QM_SMTP_TIMEOUT - SMTP transport settings
"""

from __future__ import annotations

import configparser
import os
import threading
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .logger import get_logger

logger = get_logger("MailerConfig")

DEFAULT_QUEUE_NAME = "mailer"
DEFAULT_EXCLUDED_ENVIRONMENTS = ("test",)
DEFAULT_ENVIRONMENT = "development"

_FIELDS = (
    "queue_target",
    "queue_name",
    "excluded_environments",
    "perform_deliveries",
    "environment",
    "transport",
    "default_from",
    "metrics",
)


def normalize_environment(name: Any) -> str:
    """Return the canonical comparable form of an environment name."""
    return str(name).strip().lower()


def normalize_environments(envs: str | Iterable[Any] | None) -> frozenset[str]:
    """Normalize a single environment name or an iterable of names.

    ``None`` yields an empty set. A plain string is treated as one name.
    """
    if envs is None:
        return frozenset()
    if isinstance(envs, str):
        envs = [envs]
    return frozenset(normalize_environment(env) for env in envs if str(env).strip())


@dataclass(frozen=True)
class QueueSettings:
    """Consistent snapshot of where jobs are enqueued."""

    target: Any
    name: str


class MailerConfig:
    """Thread-safe configuration context shared by mailers.

    Attributes:
        queue_target: Queue backend receiving ``enqueue`` calls.
        queue_name: Name of the queue jobs are placed on.
        excluded_environments: Normalized environments that bypass the queue.
        perform_deliveries: Global switch; when False nothing is deferred
            and realized messages skip sending.
        environment: Name of the active environment.
        transport: Object with an async ``send(email)`` used to deliver.
        default_from: Sender used when a message sets no ``From``.
        metrics: Optional ``MailerMetrics`` collector.
    """

    def __init__(
        self,
        queue_target: Any = None,
        queue_name: str = DEFAULT_QUEUE_NAME,
        excluded_environments: str | Iterable[Any] | None = DEFAULT_EXCLUDED_ENVIRONMENTS,
        perform_deliveries: bool = True,
        environment: str = DEFAULT_ENVIRONMENT,
        transport: Any = None,
        default_from: str | None = None,
        metrics: Any = None,
    ):
        self._lock = threading.RLock()
        self._values: dict[str, Any] = {}
        self._initial: dict[str, Any] = {}
        self.configure(
            queue_target=queue_target,
            queue_name=queue_name,
            excluded_environments=excluded_environments,
            perform_deliveries=perform_deliveries,
            environment=environment,
            transport=transport,
            default_from=default_from,
            metrics=metrics,
        )
        self._initial = dict(self._values)

    def _normalize(self, key: str, value: Any) -> Any:
        if key not in _FIELDS:
            raise ValueError(f"Unknown mailer setting: {key}")
        if key == "excluded_environments":
            return normalize_environments(value)
        if key == "environment":
            return normalize_environment(value)
        if key == "queue_name":
            value = str(value).strip()
            if not value:
                raise ValueError("queue_name must not be empty")
        if key == "perform_deliveries":
            return bool(value)
        return value

    def configure(self, **changes: Any) -> None:
        """Apply one or more settings atomically.

        Raises:
            ValueError: On an unknown setting or an empty queue name.
        """
        normalized = {key: self._normalize(key, value) for key, value in changes.items()}
        with self._lock:
            self._values.update(normalized)

    def reset(self) -> None:
        """Restore the values this config was created with."""
        with self._lock:
            self._values = dict(self._initial)

    @contextmanager
    def override(self, **changes: Any) -> Iterator[MailerConfig]:
        """Temporarily apply ``changes``, restoring previous values on exit."""
        saved = self.as_dict()
        self.configure(**changes)
        try:
            yield self
        finally:
            with self._lock:
                self._values = saved

    def as_dict(self) -> dict[str, Any]:
        with self._lock:
            return dict(self._values)

    def _get(self, key: str) -> Any:
        with self._lock:
            return self._values[key]

    @property
    def queue_target(self) -> Any:
        return self._get("queue_target")

    @queue_target.setter
    def queue_target(self, value: Any) -> None:
        self.configure(queue_target=value)

    @property
    def queue_name(self) -> str:
        return self._get("queue_name")

    @queue_name.setter
    def queue_name(self, value: str) -> None:
        self.configure(queue_name=value)

    @property
    def excluded_environments(self) -> frozenset[str]:
        return self._get("excluded_environments")

    @excluded_environments.setter
    def excluded_environments(self, value: str | Iterable[Any] | None) -> None:
        self.configure(excluded_environments=value)

    @property
    def perform_deliveries(self) -> bool:
        return self._get("perform_deliveries")

    @perform_deliveries.setter
    def perform_deliveries(self, value: bool) -> None:
        self.configure(perform_deliveries=value)

    @property
    def environment(self) -> str:
        return self._get("environment")

    @environment.setter
    def environment(self, value: str) -> None:
        self.configure(environment=value)

    @property
    def transport(self) -> Any:
        return self._get("transport")

    @transport.setter
    def transport(self, value: Any) -> None:
        self.configure(transport=value)

    @property
    def default_from(self) -> str | None:
        return self._get("default_from")

    @default_from.setter
    def default_from(self, value: str | None) -> None:
        self.configure(default_from=value)

    @property
    def metrics(self) -> Any:
        return self._get("metrics")

    @metrics.setter
    def metrics(self, value: Any) -> None:
        self.configure(metrics=value)

    def queue_settings(self) -> QueueSettings:
        """Return queue target and queue name read under a single lock."""
        with self._lock:
            return QueueSettings(self._values["queue_target"], self._values["queue_name"])

    def is_excluded(self, environment: Any) -> bool:
        """Tell whether dispatch must bypass the queue in ``environment``."""
        with self._lock:
            if not self._values["perform_deliveries"]:
                return True
            return normalize_environment(environment) in self._values["excluded_environments"]

    @classmethod
    def from_settings(cls, settings: MailerSettings, queue_target: Any = None, metrics: Any = None) -> MailerConfig:
        """Build a config from loaded settings.

        An ``SmtpTransport`` is created when ``settings.smtp_host`` is set.
        """
        transport = None
        if settings.smtp_host:
            from .transport import SmtpTransport

            transport = SmtpTransport(
                host=settings.smtp_host,
                port=settings.smtp_port,
                user=settings.smtp_user,
                password=settings.smtp_password,
                use_tls=settings.smtp_use_tls,
                timeout=settings.smtp_timeout,
            )
        return cls(
            queue_target=queue_target,
            queue_name=settings.queue_name,
            excluded_environments=settings.excluded_environments,
            perform_deliveries=settings.perform_deliveries,
            environment=settings.environment,
            transport=transport,
            default_from=settings.default_from,
            metrics=metrics,
        )


@dataclass
class MailerSettings:
    """Static settings read from the INI file and environment.

    Attributes:
        queue_name: Queue name for deferred mail.
        excluded_environments: Environments that bypass the queue.
        perform_deliveries: Global delivery switch.
        environment: Active environment name.
        default_from: Default sender address.
        smtp_host: SMTP server host; no SMTP transport when None.
        smtp_port: SMTP server port.
        smtp_user: SMTP username.
        smtp_password: SMTP password.
        smtp_use_tls: Use TLS (implicit on 465, STARTTLS elsewhere).
        smtp_timeout: Seconds allowed for connect and send.
    """

    queue_name: str = DEFAULT_QUEUE_NAME
    excluded_environments: list[str] = field(default_factory=lambda: list(DEFAULT_EXCLUDED_ENVIRONMENTS))
    perform_deliveries: bool = True
    environment: str = DEFAULT_ENVIRONMENT
    default_from: str | None = None

    smtp_host: str | None = None
    smtp_port: int = 25
    smtp_user: str | None = None
    smtp_password: str | None = None
    smtp_use_tls: bool = False
    smtp_timeout: float = 30.0


def load_settings(config_path: str | None = None) -> MailerSettings:
    """Load settings from an INI file with ``QM_*`` environment fallbacks.

    A missing file is not an error: every value then comes from the
    environment or the defaults. Values in the file win over the environment.

    Config file sections/keys:
      [mailer] queue_name, excluded_environments, perform_deliveries,
               environment, default_from
      [smtp] host, port, user, password, use_tls, timeout

    Args:
        config_path: INI file path; defaults to ``QM_CONFIG`` or ``config.ini``.

    Raises:
        ValueError: If a numeric setting cannot be parsed.
    """
    path = Path(config_path or os.getenv("QM_CONFIG", "config.ini"))
    parser = configparser.ConfigParser()
    if path.exists():
        parser.read(path)
    else:
        logger.info(f"Config file {path} not found, using environment and defaults")

    def get(section: str, option: str, fallback: str | None = None) -> str | None:
        if parser.has_option(section, option):
            return parser.get(section, option)
        return fallback

    def get_int(section: str, option: str, fallback: str | None = None, default: int | None = None) -> int | None:
        value = get(section, option, fallback)
        if value is None or not str(value).strip():
            return default
        try:
            return int(value)
        except ValueError as e:
            raise ValueError(f"Invalid integer for [{section}] {option}: {value!r}") from e

    def get_float(section: str, option: str, fallback: str | None = None, default: float | None = None) -> float | None:
        value = get(section, option, fallback)
        if value is None or not str(value).strip():
            return default
        try:
            return float(value)
        except ValueError as e:
            raise ValueError(f"Invalid number for [{section}] {option}: {value!r}") from e

    def get_bool(section: str, option: str, fallback: str | None = None, default: bool = False) -> bool:
        value = get(section, option, fallback)
        if value is None:
            return default
        normalized = str(value).strip().lower()
        if normalized in {"1", "true", "yes", "on"}:
            return True
        if normalized in {"0", "false", "no", "off"}:
            return False
        logger.warning(f"Invalid boolean for [{section}] {option}: {value!r}, using {default}")
        return default

    excluded = get("mailer", "excluded_environments", os.getenv("QM_EXCLUDED_ENVIRONMENTS"))
    if excluded is None:
        excluded_list = list(DEFAULT_EXCLUDED_ENVIRONMENTS)
    else:
        excluded_list = [env.strip() for env in excluded.split(",") if env.strip()]

    def get_str(section: str, option: str, fallback: str | None = None) -> str | None:
        value = get(section, option, fallback)
        if value is None:
            return None
        return value.strip() or None

    return MailerSettings(
        queue_name=get_str("mailer", "queue_name", os.getenv("QM_QUEUE_NAME")) or DEFAULT_QUEUE_NAME,
        excluded_environments=excluded_list,
        perform_deliveries=get_bool("mailer", "perform_deliveries", os.getenv("QM_PERFORM_DELIVERIES"), True),
        environment=get_str("mailer", "environment", os.getenv("QM_ENV")) or DEFAULT_ENVIRONMENT,
        default_from=get_str("mailer", "default_from", os.getenv("QM_DEFAULT_FROM")),
        smtp_host=get_str("smtp", "host", os.getenv("QM_SMTP_HOST")),
        smtp_port=get_int("smtp", "port", os.getenv("QM_SMTP_PORT"), default=25),
        smtp_user=get_str("smtp", "user", os.getenv("QM_SMTP_USER")),
        smtp_password=get_str("smtp", "password", os.getenv("QM_SMTP_PASSWORD")),
        smtp_use_tls=get_bool("smtp", "use_tls", os.getenv("QM_SMTP_USE_TLS"), False),
        smtp_timeout=get_float("smtp", "timeout", os.getenv("QM_SMTP_TIMEOUT"), default=30.0),
    )


default_config = MailerConfig()
