# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Prometheus metrics for deferred mail delivery.

All metrics use the ``qm_`` prefix (queue mailer).

Metrics exposed:
    - ``qm_enqueued_total``: Counter of jobs placed on the queue per mailer.
    - ``qm_retried_total``: Counter of jobs re-enqueued after a transient error.
    - ``qm_failed_total``: Counter of jobs given up per mailer and reason
      (``exhausted`` or ``fatal``).
    - ``qm_delivered_total``: Counter of messages handed to the transport.
"""

from prometheus_client import CollectorRegistry, Counter, generate_latest


class MailerMetrics:
    """Prometheus metrics collector for the queue mailer.

    Attributes:
        registry: The Prometheus CollectorRegistry holding all metrics.
        enqueued: Counter tracking enqueued jobs.
        retried: Counter tracking re-enqueued jobs.
        failed: Counter tracking jobs whose error propagated.
        delivered: Counter tracking messages actually sent.
    """

    def __init__(self, registry: CollectorRegistry | None = None):
        self.registry = registry or CollectorRegistry()
        self.enqueued = Counter(
            "qm_enqueued_total",
            "Total jobs enqueued",
            ["mailer"],
            registry=self.registry,
        )
        self.retried = Counter(
            "qm_retried_total",
            "Total jobs re-enqueued after a transient error",
            ["mailer"],
            registry=self.registry,
        )
        self.failed = Counter(
            "qm_failed_total",
            "Total jobs that gave up",
            ["mailer", "reason"],
            registry=self.registry,
        )
        self.delivered = Counter(
            "qm_delivered_total",
            "Total messages delivered",
            ["mailer"],
            registry=self.registry,
        )

    def inc_enqueued(self, mailer: str) -> None:
        self.enqueued.labels(mailer=mailer or "default").inc()

    def inc_retried(self, mailer: str) -> None:
        self.retried.labels(mailer=mailer or "default").inc()

    def inc_failed(self, mailer: str, reason: str) -> None:
        """Increment the failure counter.

        Args:
            mailer: Mailer job name.
            reason: ``exhausted`` or ``fatal``.
        """
        self.failed.labels(mailer=mailer or "default", reason=reason).inc()

    def inc_delivered(self, mailer: str) -> None:
        self.delivered.labels(mailer=mailer or "default").inc()

    def generate_latest(self) -> bytes:
        """Export all metrics in Prometheus text exposition format."""
        return generate_latest(self.registry)
