"""PostgreSQL bug gateway.

This module implements the BugGateway protocol with asyncpg against the
bug tracker's own tables. It provides:
- Connection pooling for production use
- One database transaction per gateway transaction
- Bug mail queued through NOTIFY on the "bugmail" channel, picked up by
  the tracker's mail daemon once the writing transaction commits

Tables used:
- bugs, keywords, keyworddefs, bug_group_map, groups, profiles
- attachments, attach_data, longdescs
- flags, flagtypes
- tracking_flags, tracking_flags_values, tracking_flags_bugs, fielddefs

Source:
- src/bugbridge/bugs/gateway.py (BugGateway, BugSession protocols)
"""

import json
import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, AsyncIterator, List, Optional

import asyncpg

from src.bugbridge.bugs.models import (
    MAX_BUG_ID,
    Actor,
    Attachment,
    Bug,
    Comment,
    CommentMetadata,
    CommentType,
    Flag,
    NewAttachment,
)
from src.bugbridge.errors import AutomationIdentityError, GatewayError

logger = logging.getLogger(__name__)

BUGMAIL_CHANNEL = "bugmail"
UNSET_TRACKING_VALUE = "---"

_ATTACHMENT_COLUMNS = """
    a.attach_id, a.bug_id, a.mimetype, a.filename, a.description,
    a.submitter_id, a.isobsolete, a.ispatch, a.isprivate,
    a.creation_ts, a.modification_time, d.thedata
"""


def _row_to_attachment(row: asyncpg.Record) -> Attachment:
    data = row["thedata"]
    if isinstance(data, (bytes, bytearray, memoryview)):
        data = bytes(data).decode("utf-8", errors="replace")
    return Attachment(
        id=row["attach_id"],
        bug_id=row["bug_id"],
        content_type=row["mimetype"],
        filename=row["filename"],
        description=row["description"],
        data=data or "",
        submitter_id=row["submitter_id"],
        is_obsolete=bool(row["isobsolete"]),
        is_patch=bool(row["ispatch"]),
        is_private=bool(row["isprivate"]),
        creation_ts=row["creation_ts"],
        modification_time=row["modification_time"],
    )


class PostgresBugSession:
    """BugSession over one asyncpg connection with an open transaction."""

    def __init__(self, conn: asyncpg.Connection):
        self.conn = conn

    async def now(self) -> datetime:
        return await self.conn.fetchval("SELECT NOW()")

    async def resolve_automation_identity(self, login: str) -> Actor:
        user_id = await self.conn.fetchval(
            "SELECT userid FROM profiles WHERE login_name = $1", login
        )
        if user_id is None:
            raise AutomationIdentityError(login)

        rows = await self.conn.fetch("SELECT name FROM groups")
        all_groups = frozenset(row["name"] for row in rows)
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

        row = await self.conn.fetchrow(
            """
            SELECT bug_id, bug_status, resolution, delta_ts
            FROM bugs
            WHERE bug_id = $1
            """,
            bug_id,
        )
        if row is None:
            return None

        group_rows = await self.conn.fetch(
            """
            SELECT g.name
            FROM bug_group_map bgm
            JOIN groups g ON g.id = bgm.group_id
            WHERE bgm.bug_id = $1
            """,
            bug_id,
        )
        keyword_rows = await self.conn.fetch(
            """
            SELECT kd.name
            FROM keywords k
            JOIN keyworddefs kd ON kd.id = k.keywordid
            WHERE k.bug_id = $1
            """,
            bug_id,
        )

        bug = Bug(
            id=row["bug_id"],
            status=row["bug_status"],
            resolution=row["resolution"] or "",
            keywords={r["name"] for r in keyword_rows},
            groups=frozenset(r["name"] for r in group_rows),
            delta_ts=row["delta_ts"],
        )
        if not actor.can_see(bug):
            logger.debug(
                "Bug not visible to actor",
                extra={"bug_id": bug_id, "actor": actor.login},
            )
            return None
        return bug

    async def has_keyword(self, bug: Bug, name: str) -> bool:
        return name in bug.keywords

    async def set_status(self, bug: Bug, status: str, resolution: str) -> None:
        bug.status = status
        bug.resolution = resolution

    async def update_bug(
        self, bug: Bug, actor: Actor, ts: Optional[datetime] = None
    ) -> None:
        ts = ts or await self.now()
        await self.conn.execute(
            """
            UPDATE bugs
            SET bug_status = $2, resolution = $3, delta_ts = $4
            WHERE bug_id = $1
            """,
            bug.id,
            bug.status,
            bug.resolution,
            ts,
        )
        bug.delta_ts = ts

    async def add_comment(
        self,
        bug: Bug,
        actor: Actor,
        text: str,
        metadata: Optional[CommentMetadata] = None,
        ts: Optional[datetime] = None,
    ) -> Comment:
        metadata = metadata or CommentMetadata()
        ts = ts or await self.now()
        comment_id = await self.conn.fetchval(
            """
            INSERT INTO longdescs
                (bug_id, who, bug_when, thetext, type, extra_data, is_markdown)
            VALUES ($1, $2, $3, $4, $5, $6, $7)
            RETURNING comment_id
            """,
            bug.id,
            actor.user_id,
            ts,
            text,
            int(metadata.type),
            metadata.extra_data,
            1 if metadata.is_markdown else 0,
        )
        return Comment(
            id=comment_id,
            bug_id=bug.id,
            author_id=actor.user_id,
            text=text,
            type=CommentType(metadata.type),
            extra_data=metadata.extra_data,
            is_markdown=metadata.is_markdown,
            created_at=ts,
        )

    async def list_attachments(self, bug: Bug) -> List[Attachment]:
        rows = await self.conn.fetch(
            f"""
            SELECT {_ATTACHMENT_COLUMNS}
            FROM attachments a
            JOIN attach_data d ON d.id = a.attach_id
            WHERE a.bug_id = $1
            ORDER BY a.attach_id
            """,
            bug.id,
        )
        return [_row_to_attachment(row) for row in rows]

    async def create_attachment(
        self, actor: Actor, new_attachment: NewAttachment
    ) -> Attachment:
        attach_id = await self.conn.fetchval(
            """
            INSERT INTO attachments
                (bug_id, creation_ts, modification_time, description, mimetype,
                 ispatch, filename, submitter_id, isobsolete, isprivate)
            VALUES ($1, $2, $2, $3, $4, $5, $6, $7, 0, $8)
            RETURNING attach_id
            """,
            new_attachment.bug_id,
            new_attachment.creation_ts,
            new_attachment.description,
            new_attachment.content_type,
            1 if new_attachment.is_patch else 0,
            new_attachment.filename,
            actor.user_id,
            1 if new_attachment.is_private else 0,
        )
        await self.conn.execute(
            "INSERT INTO attach_data (id, thedata) VALUES ($1, $2)",
            attach_id,
            new_attachment.data.encode("utf-8"),
        )
        logger.debug(
            "Inserted attachment",
            extra={"attachment_id": attach_id, "bug_id": new_attachment.bug_id},
        )
        return Attachment(
            id=attach_id,
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

    async def set_obsolete(self, attachment: Attachment) -> None:
        attachment.is_obsolete = True

    async def update_attachment(
        self, attachment: Attachment, ts: Optional[datetime] = None
    ) -> None:
        ts = ts or await self.now()
        await self.conn.execute(
            """
            UPDATE attachments
            SET isobsolete = $2, modification_time = $3
            WHERE attach_id = $1
            """,
            attachment.id,
            1 if attachment.is_obsolete else 0,
            ts,
        )
        attachment.modification_time = ts

    async def find_attachments_by_content_type_and_filename(
        self,
        content_type: str,
        filename: str,
        exclude_bug_id: int,
    ) -> List[Attachment]:
        rows = await self.conn.fetch(
            f"""
            SELECT {_ATTACHMENT_COLUMNS}
            FROM attachments a
            JOIN attach_data d ON d.id = a.attach_id
            WHERE a.mimetype = $1
              AND a.filename = $2
              AND a.bug_id != $3
              AND a.isobsolete = 0
            ORDER BY a.attach_id
            """,
            content_type,
            filename,
            exclude_bug_id,
        )
        return [_row_to_attachment(row) for row in rows]

    async def list_flags(self, bug: Bug) -> List[Flag]:
        rows = await self.conn.fetch(
            """
            SELECT f.id, f.type_id, ft.name, f.status, f.bug_id, f.setter_id
            FROM flags f
            JOIN flagtypes ft ON ft.id = f.type_id
            WHERE f.bug_id = $1 AND f.attach_id IS NULL
            ORDER BY f.id
            """,
            bug.id,
        )
        return [
            Flag(
                id=row["id"],
                type_id=row["type_id"],
                name=row["name"],
                status=row["status"],
                bug_id=row["bug_id"],
                setter_id=row["setter_id"],
            )
            for row in rows
        ]

    async def request_flag(
        self, bug: Bug, actor: Actor, flag_type_name: str, status: str
    ) -> Optional[Flag]:
        type_id = await self.conn.fetchval(
            "SELECT id FROM flagtypes WHERE name = $1", flag_type_name
        )
        if type_id is None:
            return None

        ts = await self.now()
        flag_id = await self.conn.fetchval(
            """
            INSERT INTO flags
                (type_id, status, bug_id, setter_id, creation_date, modification_date)
            VALUES ($1, $2, $3, $4, $5, $5)
            RETURNING id
            """,
            type_id,
            status,
            bug.id,
            actor.user_id,
            ts,
        )
        return Flag(
            id=flag_id,
            type_id=type_id,
            name=flag_type_name,
            status=status,
            bug_id=bug.id,
            setter_id=actor.user_id,
        )

    async def _tracking_flag_id(self, name: str) -> Optional[int]:
        return await self.conn.fetchval(
            """
            SELECT tf.id
            FROM tracking_flags tf
            JOIN fielddefs fd ON fd.id = tf.field_id
            WHERE fd.name = $1
            """,
            name,
        )

    async def get_tracking_field(self, bug: Bug, name: str) -> Optional[str]:
        flag_id = await self._tracking_flag_id(name)
        if flag_id is None:
            return None
        value = await self.conn.fetchval(
            """
            SELECT value FROM tracking_flags_bugs
            WHERE tracking_flag_id = $1 AND bug_id = $2
            """,
            flag_id,
            bug.id,
        )
        return value or UNSET_TRACKING_VALUE

    async def set_tracking_field(
        self, bug: Bug, actor: Actor, name: str, value: str
    ) -> bool:
        flag_id = await self._tracking_flag_id(name)
        if flag_id is None:
            return False

        allowed = await self.conn.fetchrow(
            """
            SELECT v.value, g.name AS setter_group
            FROM tracking_flags_values v
            LEFT JOIN groups g ON g.id = v.setter_group_id
            WHERE v.tracking_flag_id = $1 AND v.value = $2 AND v.is_active
            """,
            flag_id,
            value,
        )
        if allowed is None:
            return False
        setter_group = allowed["setter_group"]
        if setter_group and setter_group not in actor.groups:
            logger.info(
                "Actor may not set tracking value",
                extra={"field": name, "value": value, "actor": actor.login},
            )
            return False

        result = await self.conn.execute(
            """
            UPDATE tracking_flags_bugs SET value = $3
            WHERE tracking_flag_id = $1 AND bug_id = $2
            """,
            flag_id,
            bug.id,
            value,
        )
        if result == "UPDATE 0":
            await self.conn.execute(
                """
                INSERT INTO tracking_flags_bugs (tracking_flag_id, bug_id, value)
                VALUES ($1, $2, $3)
                """,
                flag_id,
                bug.id,
                value,
            )
        return True


class PostgresBugGateway:
    """PostgreSQL implementation of the BugGateway protocol.

    Attributes:
        connection_string: PostgreSQL connection URL.
        min_pool_size: Minimum connections in pool.
        max_pool_size: Maximum connections in pool.

    Example:
        >>> async with PostgresBugGateway("postgresql://...") as gateway:
        ...     async with gateway.transaction() as session:
        ...         bug = await session.find_bug(123, Actor.anonymous())
    """

    def __init__(
        self,
        connection_string: str,
        min_pool_size: int = 2,
        max_pool_size: int = 10,
    ):
        self.connection_string = connection_string
        self.min_pool_size = min_pool_size
        self.max_pool_size = max_pool_size
        self._pool: Optional[asyncpg.Pool] = None

    @property
    def pool(self) -> asyncpg.Pool:
        """Get the connection pool, raising if not connected.

        Raises:
            GatewayError: If the pool is not initialized.
        """
        if self._pool is None:
            raise GatewayError("Database pool not initialized. Call connect() first.")
        return self._pool

    async def connect(self) -> None:
        """Initialize the connection pool.

        Raises:
            GatewayError: If connection fails.
        """
        if self._pool is not None:
            logger.warning("Connection pool already initialized")
            return

        try:
            logger.info(
                "Connecting to PostgreSQL",
                extra={
                    "min_pool_size": self.min_pool_size,
                    "max_pool_size": self.max_pool_size,
                },
            )
            self._pool = await asyncpg.create_pool(
                self.connection_string,
                min_size=self.min_pool_size,
                max_size=self.max_pool_size,
            )
            logger.info("PostgreSQL connection pool established")
        except (asyncpg.PostgresError, OSError) as e:
            logger.error(
                "Failed to connect to PostgreSQL",
                extra={"error": str(e)},
            )
            raise GatewayError(
                f"Failed to connect to PostgreSQL: {e}",
                original_error=e,
            ) from e

    async def close(self) -> None:
        """Close the connection pool."""
        if self._pool is not None:
            logger.info("Closing PostgreSQL connection pool")
            await self._pool.close()
            self._pool = None

    async def __aenter__(self) -> "PostgresBugGateway":
        await self.connect()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[PostgresBugSession]:
        """Open a transaction on a pooled connection.

        Raises:
            GatewayError: If a database statement fails; the transaction
                is rolled back.
        """
        try:
            async with self.pool.acquire() as conn:
                async with conn.transaction():
                    yield PostgresBugSession(conn)
        except asyncpg.PostgresError as e:
            logger.error(
                "Bug tracker transaction failed",
                extra={"error": str(e)},
            )
            raise GatewayError(f"Bug tracker transaction failed: {e}", original_error=e) from e

    async def send_notification(self, bug_id: int, changer: Actor) -> None:
        payload = json.dumps({"bug_id": bug_id, "changer": changer.login})
        try:
            async with self.pool.acquire() as conn:
                await conn.execute("SELECT pg_notify($1, $2)", BUGMAIL_CHANNEL, payload)
        except asyncpg.PostgresError as e:
            raise GatewayError(f"Failed to queue bug mail: {e}", original_error=e) from e
        logger.info("Queued bug mail", extra={"bug_id": bug_id, "changer": changer.login})

    async def ping(self) -> bool:
        try:
            async with self.pool.acquire() as conn:
                return await conn.fetchval("SELECT 1") == 1
        except (asyncpg.PostgresError, OSError, GatewayError) as e:
            logger.warning("Database ping failed", extra={"error": str(e)})
            return False
