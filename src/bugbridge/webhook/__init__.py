"""GitHub webhook intake for the bug bridge.

This module authenticates and decodes GitHub webhook deliveries:
- pull_request - Pull request lifecycle events
- push - Commits pushed to a branch or tag
- ping - Webhook setup check

Signatures are verified here with the shared secret; nothing upstream is
trusted to have done it.
"""

from .models import (
    Commit,
    EventType,
    PullRequestPayload,
    PushPayload,
    WebhookEvent,
)
from .parser import PayloadValidationError, parse_payload
from .references import extract_bug_id
from .signature import compute_signature, verify_signature

__all__ = [
    "Commit",
    "EventType",
    "PayloadValidationError",
    "PullRequestPayload",
    "PushPayload",
    "WebhookEvent",
    "compute_signature",
    "extract_bug_id",
    "parse_payload",
    "verify_signature",
]
