"""Shared delivery gate for the GitHub webhook endpoints.

Both endpoints run the same checks, in order, before touching any bug:

1. The endpoint's feature toggle is on.
2. The event is the endpoint's event type or a ping.
3. The signature verifies against the shared secret.
4. Pings stop here with success.
5. The payload parses and validates.

Each check has an endpoint-specific error code. Subclasses implement
process() with the validated payload.
"""

import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Dict, Generic, Optional, TypeVar

from src.bugbridge.bugs.gateway import BugGateway
from src.bugbridge.config import BridgeSettings
from src.bugbridge.errors import (
    BridgeError,
    FeatureDisabledError,
    InvalidPayloadError,
    SignatureMismatchError,
    WrongEventTypeError,
)
from src.bugbridge.metrics import (
    EVENT_LABEL_OTHER,
    OUTCOME_HARD_FAILURE,
    OUTCOME_SOFT_FAILURE,
    OUTCOME_SUCCESS,
    BridgeMetrics,
)
from src.bugbridge.webhook.models import EventType, WebhookEvent
from src.bugbridge.webhook.parser import PayloadValidationError, parse_payload
from src.bugbridge.webhook.signature import verify_signature

logger = logging.getLogger(__name__)

PayloadT = TypeVar("PayloadT")


def event_label(event: WebhookEvent) -> str:
    """Metric label for the delivery's event, bounded to the known types."""
    event_type = event.event_type
    return event_type.value if event_type is not None else EVENT_LABEL_OTHER


class WebhookHandler(ABC, Generic[PayloadT]):
    """Base class for one webhook endpoint.

    Class attributes set by subclasses:
        endpoint: Short endpoint name used in logs and metrics.
        event_type: The non-ping event the endpoint accepts.
        error_prefix: Prefix of the endpoint's error codes.
        disabled_code: Error code used when the feature is off.
        wrong_event_code: Error code used for other events.

    Attributes:
        settings: Bridge configuration.
        gateway: Bug tracker gateway.
        metrics: Optional Prometheus metrics.
    """

    endpoint: str
    event_type: EventType
    error_prefix: str
    disabled_code: str
    wrong_event_code: str

    def __init__(
        self,
        settings: BridgeSettings,
        gateway: BugGateway,
        metrics: Optional[BridgeMetrics] = None,
    ):
        self.settings = settings
        self.gateway = gateway
        self.metrics = metrics

    @property
    @abstractmethod
    def enabled(self) -> bool:
        """Whether the endpoint's feature toggle is on."""

    @abstractmethod
    async def process(self, payload: PayloadT, event: WebhookEvent) -> Dict[str, Any]:
        """Act on a validated payload and return the response body."""

    async def handle(self, event: WebhookEvent) -> Dict[str, Any]:
        """Run the delivery gate, then process the payload.

        Args:
            event: The inbound delivery.

        Returns:
            The JSON response body for a successful delivery.

        Raises:
            BridgeError: For every hard or soft rejection.
        """
        started = time.monotonic()
        outcome = OUTCOME_SUCCESS
        try:
            event_type = self.authenticate(event)
            if event_type is EventType.PING:
                logger.info(
                    "Ping received",
                    extra={"endpoint": self.endpoint, "delivery": event.delivery_id},
                )
                return {"error": 0}

            payload = self.parse(event, event_type)
            return await self.process(payload, event)
        except BridgeError as e:
            outcome = OUTCOME_SOFT_FAILURE if e.soft else OUTCOME_HARD_FAILURE
            log = logger.info if e.soft else logger.warning
            log(
                "Webhook delivery rejected",
                extra={
                    "endpoint": self.endpoint,
                    "delivery": event.delivery_id,
                    "code": e.code,
                    **e.details,
                },
            )
            raise
        except Exception:
            outcome = OUTCOME_HARD_FAILURE
            raise
        finally:
            if self.metrics is not None:
                self.metrics.record_delivery(
                    self.endpoint,
                    event_label(event),
                    outcome,
                    time.monotonic() - started,
                )

    def authenticate(self, event: WebhookEvent) -> EventType:
        """Check the feature toggle, event type and signature.

        Returns:
            The accepted event type (the endpoint's event or ping).
        """
        if not self.enabled:
            raise FeatureDisabledError(self.disabled_code)

        event_type = event.event_type
        if event_type not in (self.event_type, EventType.PING):
            raise WrongEventTypeError(
                self.wrong_event_code, details={"event": event.event_name}
            )

        secret = self.settings.github_pr_signature_secret
        if not secret:
            logger.error(
                "Webhook signature secret is not configured",
                extra={"endpoint": self.endpoint},
            )
        if not verify_signature(event.raw_body, event.signature_header, secret):
            raise SignatureMismatchError(f"{self.error_prefix}_mismatch_signatures")

        return event_type

    def parse(self, event: WebhookEvent, event_type: EventType) -> PayloadT:
        """Decode the payload, mapping validation failures to InvalidPayloadError."""
        try:
            return parse_payload(event_type, event.raw_body)
        except PayloadValidationError as e:
            raise InvalidPayloadError(
                f"{self.error_prefix}_invalid_json", details={"reason": e.reason}
            ) from e
