"""GitHub webhook event models for the bug bridge.

This module defines the data models for the inbound deliveries the bridge
accepts: the request envelope (WebhookEvent) and the validated payloads of
pull_request and push events.

The models use Pydantic for validation, consistent with the bridge's
configuration approach in config.py.
"""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class EventType(str, Enum):
    """GitHub event types understood by the bridge.

    Attributes:
        PULL_REQUEST: Pull request lifecycle event.
        PUSH: Commits pushed to a ref.
        PING: Sent by GitHub when a webhook is created.
    """

    PULL_REQUEST = "pull_request"
    PUSH = "push"
    PING = "ping"

    @classmethod
    def from_header(cls, value: Optional[str]) -> Optional["EventType"]:
        """Parse the X-GitHub-Event header, returning None if unknown."""
        if not value:
            return None
        try:
            return cls(value.strip())
        except ValueError:
            return None


class WebhookEvent(BaseModel):
    """One inbound webhook delivery.

    Immutable once received and scoped to a single request. The raw body
    is kept because the signature is computed over the exact bytes sent.

    Attributes:
        event_name: Raw value of the X-GitHub-Event header.
        raw_body: The request body as received.
        signature_header: Raw value of the X-Hub-Signature-256 header.
        delivery_id: Value of X-GitHub-Delivery, used for log correlation.
    """

    model_config = ConfigDict(frozen=True)

    event_name: Optional[str] = Field(
        default=None,
        description="Raw X-GitHub-Event header value",
    )

    raw_body: bytes = Field(
        default=b"",
        description="Request body bytes the signature is computed over",
    )

    signature_header: Optional[str] = Field(
        default=None,
        description="Raw X-Hub-Signature-256 header value",
    )

    delivery_id: Optional[str] = Field(
        default=None,
        description="GitHub delivery GUID from X-GitHub-Delivery",
    )

    @property
    def event_type(self) -> Optional[EventType]:
        """The parsed event type, or None for unknown events."""
        return EventType.from_header(self.event_name)


class PullRequestPayload(BaseModel):
    """Validated pull_request event payload.

    Attributes:
        action: Lifecycle action (opened, closed, synchronize, ...).
        html_url: Browser URL of the pull request.
        title: Pull request title, scanned for a bug reference.
        number: Pull request number within its repository.
        repository_full_name: "{owner}/{repo}" of the base repository.
    """

    model_config = ConfigDict(frozen=True)

    action: str = Field(..., min_length=1)
    html_url: str = Field(..., min_length=1)
    title: str = Field(..., min_length=1)
    number: int = Field(..., gt=0)
    repository_full_name: str = Field(..., min_length=1)

    @property
    def attachment_filename(self) -> str:
        """Filename used for the pull request's link attachment."""
        return f"github-{self.number}-url.txt"

    @property
    def attachment_description(self) -> str:
        """Attachment description, e.g. "[org/repo] Bug 1 - fix (#7)"."""
        return f"[{self.repository_full_name}] {self.title} (#{self.number})"


class Commit(BaseModel):
    """A single commit from a push payload."""

    model_config = ConfigDict(frozen=True)

    message: str = Field(..., min_length=1)
    url: str = Field(..., min_length=1)


class PushPayload(BaseModel):
    """Validated push event payload.

    Attributes:
        ref: Full ref that was pushed (refs/heads/... or refs/tags/...).
        pusher_name: GitHub login of the account that pushed.
        commits: Commits included in the push, oldest first. May be empty.
    """

    model_config = ConfigDict(frozen=True)

    ref: str = Field(..., min_length=1)
    pusher_name: str = Field(..., min_length=1)
    commits: List[Commit] = Field(default_factory=list)

    @property
    def is_branch(self) -> bool:
        """True if the push updated a branch rather than a tag."""
        return self.ref.startswith("refs/heads/")
