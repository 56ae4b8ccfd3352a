"""Prometheus metrics for webhook observability.

Metrics are exposed at the `/metrics` endpoint in Prometheus format.

Metrics Defined:
- bugbridge_webhook_deliveries_total: Counter of deliveries by outcome
- bugbridge_webhook_duration_seconds: Histogram of handling time
- bugbridge_attachments_created_total: Pull request links attached
- bugbridge_attachments_obsoleted_total: Links obsoleted by a move
- bugbridge_push_comments_total: Comments added from pushes
- bugbridge_bugs_resolved_total: Bugs resolved FIXED by a push
"""

import logging
from typing import Optional

from prometheus_client import (
    REGISTRY,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)


logger = logging.getLogger(__name__)


# Webhook handling is bounded by a handful of datastore round trips.
DEFAULT_DURATION_BUCKETS = (
    0.01,
    0.05,
    0.1,
    0.25,
    0.5,
    1.0,
    2.5,
    5.0,
    10.0,
)

OUTCOME_SUCCESS = "success"
OUTCOME_SOFT_FAILURE = "soft_failure"
OUTCOME_HARD_FAILURE = "hard_failure"

# Event label for headers that name no known event type.
EVENT_LABEL_OTHER = "other"


class BridgeMetrics:
    """Container for all bridge Prometheus metrics.

    Supports custom registries so tests can create isolated instances.

    Example:
        >>> metrics = BridgeMetrics(registry=CollectorRegistry())
        >>> metrics.record_delivery("pull_request", "pull_request", "success", 0.2)
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        """Initialize bridge metrics.

        Args:
            registry: Optional Prometheus registry. If None, uses the
                      default REGISTRY. Pass a custom registry for testing.
        """
        self.registry = registry or REGISTRY

        self.deliveries_total = Counter(
            "bugbridge_webhook_deliveries_total",
            "Webhook deliveries handled",
            labelnames=["endpoint", "event", "outcome"],
            registry=self.registry,
        )

        self.duration_seconds = Histogram(
            "bugbridge_webhook_duration_seconds",
            "Time spent handling a webhook delivery",
            labelnames=["endpoint"],
            buckets=DEFAULT_DURATION_BUCKETS,
            registry=self.registry,
        )

        self.attachments_created_total = Counter(
            "bugbridge_attachments_created_total",
            "Pull request link attachments created",
            registry=self.registry,
        )

        self.attachments_obsoleted_total = Counter(
            "bugbridge_attachments_obsoleted_total",
            "Pull request link attachments obsoleted after moving to another bug",
            registry=self.registry,
        )

        self.push_comments_total = Counter(
            "bugbridge_push_comments_total",
            "Bug comments added for pushed commits",
            registry=self.registry,
        )

        self.bugs_resolved_total = Counter(
            "bugbridge_bugs_resolved_total",
            "Bugs resolved FIXED by a push",
            registry=self.registry,
        )

    def record_delivery(
        self, endpoint: str, event: str, outcome: str, duration: float
    ) -> None:
        """Record one handled delivery."""
        self.deliveries_total.labels(
            endpoint=endpoint, event=event or EVENT_LABEL_OTHER, outcome=outcome
        ).inc()
        self.duration_seconds.labels(endpoint=endpoint).observe(duration)

    def generate(self) -> bytes:
        """Render the registry in Prometheus text format."""
        return generate_latest(self.registry)


# Shared instance for the default registry
_default_metrics: Optional[BridgeMetrics] = None


def get_metrics(registry: Optional[CollectorRegistry] = None) -> BridgeMetrics:
    """Get or create the bridge metrics instance.

    Collectors can be registered in a registry only once, so every
    application built in a process shares the default-registry instance.

    Args:
        registry: Optional Prometheus registry. If None, returns the
                  shared instance for the default registry.

    Returns:
        BridgeMetrics: The metrics instance.
    """
    global _default_metrics

    if registry is not None:
        return BridgeMetrics(registry=registry)

    if _default_metrics is None:
        _default_metrics = BridgeMetrics()

    return _default_metrics
