"""Bug record gateway protocols.

The bridge does not own the bug tracker's data model. Everything the
handlers need from it goes through the two protocols defined here:

- BugGateway: opens transactions and sends bug mail.
- BugSession: record operations, valid inside one transaction.

Every write takes the acting account explicitly; there is no ambient
"current user". Writes to a single bug are serialized by the tracker's
datastore, so the gateway adds no locking of its own.

Implementations:
- src/bugbridge/bugs/memory.py (InMemoryBugGateway)
- src/bugbridge/bugs/postgres.py (PostgresBugGateway)
"""

from datetime import datetime
from typing import AsyncContextManager, List, Optional, Protocol, runtime_checkable

from src.bugbridge.bugs.models import (
    Actor,
    Attachment,
    Bug,
    Comment,
    CommentMetadata,
    Flag,
    NewAttachment,
)


@runtime_checkable
class BugSession(Protocol):
    """Record operations bound to one open transaction."""

    async def now(self) -> datetime:
        """Return the datastore's current timestamp.

        Handlers take one timestamp per logical change and pass it to every
        write so that related rows share it.
        """
        ...

    async def resolve_automation_identity(self, login: str) -> Actor:
        """Load the automation account with every group and bless group.

        Raises:
            AutomationIdentityError: If no account has this login.
        """
        ...

    async def find_bug(self, bug_id: int, actor: Actor) -> Optional[Bug]:
        """Load a bug, or None if it does not exist or actor cannot see it."""
        ...

    async def has_keyword(self, bug: Bug, name: str) -> bool:
        ...

    async def set_status(self, bug: Bug, status: str, resolution: str) -> None:
        """Change status and resolution on the loaded bug.

        The change is written by the next update_bug().
        """
        ...

    async def update_bug(
        self, bug: Bug, actor: Actor, ts: Optional[datetime] = None
    ) -> None:
        """Write pending changes to the bug and bump its delta_ts."""
        ...

    async def add_comment(
        self,
        bug: Bug,
        actor: Actor,
        text: str,
        metadata: Optional[CommentMetadata] = None,
        ts: Optional[datetime] = None,
    ) -> Comment:
        """Insert a comment on a bug and return it with its new id."""
        ...

    async def list_attachments(self, bug: Bug) -> List[Attachment]:
        ...

    async def create_attachment(
        self, actor: Actor, new_attachment: NewAttachment
    ) -> Attachment:
        ...

    async def set_obsolete(self, attachment: Attachment) -> None:
        """Mark an attachment obsolete; written by update_attachment()."""
        ...

    async def update_attachment(
        self, attachment: Attachment, ts: Optional[datetime] = None
    ) -> None:
        ...

    async def find_attachments_by_content_type_and_filename(
        self,
        content_type: str,
        filename: str,
        exclude_bug_id: int,
    ) -> List[Attachment]:
        """Find non-obsolete attachments on bugs other than exclude_bug_id."""
        ...

    async def list_flags(self, bug: Bug) -> List[Flag]:
        ...

    async def request_flag(
        self, bug: Bug, actor: Actor, flag_type_name: str, status: str
    ) -> Optional[Flag]:
        """Set a flag of the named type on a bug.

        Returns:
            The new flag, or None if no flag type has that name.
        """
        ...

    async def get_tracking_field(self, bug: Bug, name: str) -> Optional[str]:
        """Return a tracking field's value for a bug.

        Returns:
            The current value ("---" when unset), or None if no tracking
            field has that name.
        """
        ...

    async def set_tracking_field(
        self, bug: Bug, actor: Actor, name: str, value: str
    ) -> bool:
        """Set a tracking field on a bug.

        Returns:
            True if set; False if the field does not exist or value is not
            one of its allowed values.
        """
        ...


@runtime_checkable
class BugGateway(Protocol):
    """Entry point to the bug tracker's datastore."""

    def transaction(self) -> AsyncContextManager[BugSession]:
        """Open a transaction.

        Commits when the block exits normally and rolls back if it raises.
        """
        ...

    async def send_notification(self, bug_id: int, changer: Actor) -> None:
        """Queue bug mail for the latest changes to a bug."""
        ...

    async def ping(self) -> bool:
        """Check that the datastore is reachable."""
        ...

    async def close(self) -> None:
        ...
