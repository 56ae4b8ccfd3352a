"""In-memory bug gateway.

A dict-backed stand-in for the bug tracker's datastore, used when no
database is configured (local development) and by the test suite. It
honours the same contract as the PostgreSQL gateway:

- Records returned by a session are copies; changes reach the store only
  through update_bug() / update_attachment().
- A transaction that raises leaves the store exactly as it was.
- Transactions are serialized.
"""

import asyncio
import copy
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import AsyncIterator, Dict, FrozenSet, Iterable, List, Optional, Tuple

from src.bugbridge.bugs.models import (
    MAX_BUG_ID,
    Actor,
    Attachment,
    Bug,
    Comment,
    CommentMetadata,
    Flag,
    NewAttachment,
    utcnow,
)
from src.bugbridge.errors import AutomationIdentityError

logger = logging.getLogger(__name__)

UNSET_TRACKING_VALUE = "---"


@dataclass
class InMemoryBugStore:
    """The tables of the in-memory tracker."""

    bugs: Dict[int, Bug] = field(default_factory=dict)
    attachments: Dict[int, Attachment] = field(default_factory=dict)
    comments: List[Comment] = field(default_factory=list)
    flags: List[Flag] = field(default_factory=list)
    users: Dict[str, int] = field(default_factory=dict)
    groups: set = field(default_factory=set)
    flag_types: Dict[str, int] = field(default_factory=dict)
    # tracking field name -> allowed values
    tracking_fields: Dict[str, List[str]] = field(default_factory=dict)
    tracking_values: Dict[Tuple[int, str], str] = field(default_factory=dict)
    next_ids: Dict[str, int] = field(default_factory=dict)

    def next_id(self, table: str) -> int:
        value = self.next_ids.get(table, 0) + 1
        self.next_ids[table] = value
        return value


class InMemoryBugSession:
    """BugSession over an InMemoryBugStore."""

    def __init__(self, store: InMemoryBugStore):
        self.store = store

    async def now(self) -> datetime:
        return utcnow()

    async def resolve_automation_identity(self, login: str) -> Actor:
        user_id = self.store.users.get(login)
        if user_id is None:
            raise AutomationIdentityError(login)
        all_groups = frozenset(self.store.groups)
        return Actor(
            user_id=user_id,
            login=login,
            groups=all_groups,
            bless_groups=all_groups,
            is_automation=True,
        )

    async def find_bug(self, bug_id: int, actor: Actor) -> Optional[Bug]:
        if not 0 < bug_id <= MAX_BUG_ID:
            return None
        bug = self.store.bugs.get(bug_id)
        if bug is None or not actor.can_see(bug):
            return None
        return bug.model_copy(deep=True)

    async def has_keyword(self, bug: Bug, name: str) -> bool:
        return name in bug.keywords

    async def set_status(self, bug: Bug, status: str, resolution: str) -> None:
        bug.status = status
        bug.resolution = resolution

    async def update_bug(
        self, bug: Bug, actor: Actor, ts: Optional[datetime] = None
    ) -> None:
        bug.delta_ts = ts or utcnow()
        self.store.bugs[bug.id] = bug.model_copy(deep=True)

    async def add_comment(
        self,
        bug: Bug,
        actor: Actor,
        text: str,
        metadata: Optional[CommentMetadata] = None,
        ts: Optional[datetime] = None,
    ) -> Comment:
        metadata = metadata or CommentMetadata()
        comment = Comment(
            id=self.store.next_id("comments"),
            bug_id=bug.id,
            author_id=actor.user_id,
            text=text,
            type=metadata.type,
            extra_data=metadata.extra_data,
            is_markdown=metadata.is_markdown,
            created_at=ts or utcnow(),
        )
        self.store.comments.append(comment)
        return comment.model_copy()

    async def list_attachments(self, bug: Bug) -> List[Attachment]:
        return [
            a.model_copy()
            for a in sorted(self.store.attachments.values(), key=lambda a: a.id)
            if a.bug_id == bug.id
        ]

    async def create_attachment(
        self, actor: Actor, new_attachment: NewAttachment
    ) -> Attachment:
        attachment = Attachment(
            id=self.store.next_id("attachments"),
            bug_id=new_attachment.bug_id,
            content_type=new_attachment.content_type,
            filename=new_attachment.filename,
            description=new_attachment.description,
            data=new_attachment.data,
            submitter_id=actor.user_id,
            is_patch=new_attachment.is_patch,
            is_private=new_attachment.is_private,
            creation_ts=new_attachment.creation_ts,
            modification_time=new_attachment.creation_ts,
        )
        self.store.attachments[attachment.id] = attachment
        return attachment.model_copy()

    async def set_obsolete(self, attachment: Attachment) -> None:
        attachment.is_obsolete = True

    async def update_attachment(
        self, attachment: Attachment, ts: Optional[datetime] = None
    ) -> None:
        attachment.modification_time = ts or utcnow()
        self.store.attachments[attachment.id] = attachment.model_copy()

    async def find_attachments_by_content_type_and_filename(
        self,
        content_type: str,
        filename: str,
        exclude_bug_id: int,
    ) -> List[Attachment]:
        return [
            a.model_copy()
            for a in sorted(self.store.attachments.values(), key=lambda a: a.id)
            if a.content_type == content_type
            and a.filename == filename
            and a.bug_id != exclude_bug_id
            and not a.is_obsolete
        ]

    async def list_flags(self, bug: Bug) -> List[Flag]:
        return [f.model_copy() for f in self.store.flags if f.bug_id == bug.id]

    async def request_flag(
        self, bug: Bug, actor: Actor, flag_type_name: str, status: str
    ) -> Optional[Flag]:
        type_id = self.store.flag_types.get(flag_type_name)
        if type_id is None:
            return None
        flag = Flag(
            id=self.store.next_id("flags"),
            type_id=type_id,
            name=flag_type_name,
            status=status,
            bug_id=bug.id,
            setter_id=actor.user_id,
        )
        self.store.flags.append(flag)
        return flag.model_copy()

    async def get_tracking_field(self, bug: Bug, name: str) -> Optional[str]:
        if name not in self.store.tracking_fields:
            return None
        return self.store.tracking_values.get((bug.id, name), UNSET_TRACKING_VALUE)

    async def set_tracking_field(
        self, bug: Bug, actor: Actor, name: str, value: str
    ) -> bool:
        allowed = self.store.tracking_fields.get(name)
        if allowed is None or value not in allowed:
            return False
        self.store.tracking_values[(bug.id, name)] = value
        return True


class InMemoryBugGateway:
    """BugGateway backed by process memory.

    Besides the gateway protocol, it exposes seeding and inspection
    helpers (add_bug, comments_for, ...) for development and tests.

    Attributes:
        store: The current committed state.
        notifications: (bug_id, changer login) for every bug mail sent.
    """

    def __init__(self, store: Optional[InMemoryBugStore] = None):
        self.store = store or InMemoryBugStore()
        self.notifications: List[Tuple[int, str]] = []
        self._lock = asyncio.Lock()

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[InMemoryBugSession]:
        async with self._lock:
            snapshot = copy.deepcopy(self.store)
            try:
                yield InMemoryBugSession(self.store)
            except BaseException:
                logger.warning("Rolling back in-memory transaction")
                self.store = snapshot
                raise

    async def send_notification(self, bug_id: int, changer: Actor) -> None:
        logger.info(
            "Queued bug mail",
            extra={"bug_id": bug_id, "changer": changer.login},
        )
        self.notifications.append((bug_id, changer.login))

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        pass

    # -------------------------------------------------------------------------
    # Seeding helpers
    # -------------------------------------------------------------------------

    def add_user(self, login: str) -> int:
        user_id = self.store.next_id("users")
        self.store.users[login] = user_id
        return user_id

    def add_group(self, name: str) -> None:
        self.store.groups.add(name)

    def add_bug(
        self,
        bug_id: int,
        status: str = "NEW",
        keywords: Iterable[str] = (),
        groups: Iterable[str] = (),
    ) -> Bug:
        group_set: FrozenSet[str] = frozenset(groups)
        self.store.groups.update(group_set)
        bug = Bug(id=bug_id, status=status, keywords=set(keywords), groups=group_set)
        self.store.bugs[bug_id] = bug
        return bug

    def add_attachment(
        self,
        bug_id: int,
        content_type: str,
        filename: str,
        data: str,
        description: str = "",
        is_obsolete: bool = False,
    ) -> Attachment:
        attachment = Attachment(
            id=self.store.next_id("attachments"),
            bug_id=bug_id,
            content_type=content_type,
            filename=filename,
            description=description or filename,
            data=data,
            is_obsolete=is_obsolete,
        )
        self.store.attachments[attachment.id] = attachment
        return attachment

    def add_flag_type(self, name: str) -> int:
        type_id = self.store.next_id("flag_types")
        self.store.flag_types[name] = type_id
        return type_id

    def add_flag(self, bug_id: int, name: str, status: str) -> Flag:
        type_id = self.store.flag_types.get(name) or self.add_flag_type(name)
        flag = Flag(
            id=self.store.next_id("flags"),
            type_id=type_id,
            name=name,
            status=status,
            bug_id=bug_id,
        )
        self.store.flags.append(flag)
        return flag

    def add_tracking_field(self, name: str, values: Iterable[str]) -> None:
        self.store.tracking_fields[name] = list(values)

    # -------------------------------------------------------------------------
    # Inspection helpers
    # -------------------------------------------------------------------------

    def get_bug(self, bug_id: int) -> Bug:
        return self.store.bugs[bug_id]

    def comments_for(self, bug_id: int) -> List[Comment]:
        return [c for c in self.store.comments if c.bug_id == bug_id]

    def attachments_for(self, bug_id: int) -> List[Attachment]:
        return [a for a in self.store.attachments.values() if a.bug_id == bug_id]

    def flags_for(self, bug_id: int) -> List[Flag]:
        return [f for f in self.store.flags if f.bug_id == bug_id]

    def tracking_value(self, bug_id: int, name: str) -> str:
        return self.store.tracking_values.get((bug_id, name), UNSET_TRACKING_VALUE)
