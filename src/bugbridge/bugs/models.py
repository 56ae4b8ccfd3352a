"""Bug tracker record models seen by the bridge.

These are the slices of the tracker's domain model that the webhook
handlers read and write: bugs, attachments, comments, flags and the actor
performing the change. They are plain records; persistence lives behind
the gateway in gateway.py.
"""

from datetime import datetime, timezone
from enum import IntEnum
from typing import FrozenSet, Optional, Set

from pydantic import BaseModel, ConfigDict, Field


# Content type marking an attachment as a link to a GitHub pull request.
GITHUB_PR_CONTENT_TYPE = "text/x-github-pull-request"

STATUS_RESOLVED = "RESOLVED"
STATUS_VERIFIED = "VERIFIED"
RESOLUTION_FIXED = "FIXED"

# Statuses a pushed fix never reopens or re-resolves.
CLOSED_STATUSES = frozenset({STATUS_RESOLVED, STATUS_VERIFIED})

TRACKING_VALUE_FIXED = "fixed"

# Bug ids are stored as a signed 32-bit integer.
MAX_BUG_ID = 2**31 - 1


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CommentType(IntEnum):
    """Comment types, matching the tracker's stored values.

    Attributes:
        NORMAL: Free text comment.
        ATTACHMENT_CREATED: Announces a new attachment (extra_data = id).
        ATTACHMENT_UPDATED: Describes an attachment change (extra_data = id).
    """

    NORMAL = 0
    ATTACHMENT_CREATED = 5
    ATTACHMENT_UPDATED = 6


class Actor(BaseModel):
    """The account a change is made as.

    Passed explicitly to every write so that the privileged automation
    account is only used where a handler asks for it.

    Attributes:
        user_id: Tracker user id; 0 for the anonymous requester.
        login: Tracker login name.
        groups: Groups the actor belongs to, used for bug visibility.
        bless_groups: Groups the actor may grant to others.
        is_automation: True for the privileged automation account.
    """

    model_config = ConfigDict(frozen=True)

    user_id: int = Field(default=0, ge=0)
    login: str = ""
    groups: FrozenSet[str] = frozenset()
    bless_groups: FrozenSet[str] = frozenset()
    is_automation: bool = False

    @classmethod
    def anonymous(cls) -> "Actor":
        """The unauthenticated webhook sender."""
        return cls()

    def can_see(self, bug: "Bug") -> bool:
        """Check whether a bug is visible to this actor.

        A bug restricted to groups is visible only to members of all of
        them.
        """
        return bug.groups <= self.groups


class Bug(BaseModel):
    """A bug as loaded for an update.

    Status changes are made on this object via the session and written
    by update_bug().
    """

    id: int = Field(..., gt=0)
    status: str = "NEW"
    resolution: str = ""
    keywords: Set[str] = Field(default_factory=set)
    groups: FrozenSet[str] = frozenset()
    delta_ts: datetime = Field(default_factory=utcnow)

    @property
    def is_closed(self) -> bool:
        return self.status in CLOSED_STATUSES


class Attachment(BaseModel):
    """An attachment on a bug.

    GitHub pull request links are stored as attachments whose content
    type is GITHUB_PR_CONTENT_TYPE and whose data is the pull request URL.
    """

    id: int = Field(..., gt=0)
    bug_id: int = Field(..., gt=0)
    content_type: str
    filename: str
    description: str
    data: str
    submitter_id: int = 0
    is_obsolete: bool = False
    is_patch: bool = False
    is_private: bool = False
    creation_ts: datetime = Field(default_factory=utcnow)
    modification_time: datetime = Field(default_factory=utcnow)

    @property
    def is_github_pull_request(self) -> bool:
        return self.content_type == GITHUB_PR_CONTENT_TYPE


class NewAttachment(BaseModel):
    """Everything needed to create an attachment."""

    bug_id: int = Field(..., gt=0)
    content_type: str
    filename: str
    description: str
    data: str
    creation_ts: datetime
    is_patch: bool = False
    is_private: bool = False


class CommentMetadata(BaseModel):
    """Non-text properties of a comment."""

    model_config = ConfigDict(frozen=True)

    type: CommentType = CommentType.NORMAL
    extra_data: Optional[str] = None
    is_markdown: bool = False


class Comment(BaseModel):
    """A stored comment."""

    id: int = Field(..., gt=0)
    bug_id: int = Field(..., gt=0)
    author_id: int
    text: str
    type: CommentType = CommentType.NORMAL
    extra_data: Optional[str] = None
    is_markdown: bool = False
    created_at: datetime = Field(default_factory=utcnow)


class Flag(BaseModel):
    """A flag set or requested on a bug (e.g. qe-verify+)."""

    id: int = Field(..., gt=0)
    type_id: int = Field(..., gt=0)
    name: str
    status: str
    bug_id: int = Field(..., gt=0)
    setter_id: int = 0
