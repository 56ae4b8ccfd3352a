"""Push commenting and close-on-fix.

For a push to a branch, every commit whose message references a bug
becomes part of a comment on that bug:

    Authored by https://github.com/<pusher>
    <commit url>
    <commit message>

All commits referencing the same bug are merged into one comment,
separated by blank lines. Landing a fix also resolves the bug FIXED
unless it carries the leave-open keyword or is already RESOLVED/VERIFIED;
in that case a qe-verify+ flag is requested if the bug has none, and on a
release branch the release's tracking field is set to "fixed".

Each bug is written in its own transaction, one after another. A bug id
that does not resolve is skipped without affecting the others, and a
failure part way through leaves earlier bugs updated and later ones
untouched. Bug mail is sent after each bug's transaction commits; a mail
failure does not undo the bug change.

Response body on success:
    {"error": 0, "bugs": {"<bug id>": {"id": <comment id>, "text": <text>}}}
"""

import logging
from typing import Any, Dict, List, Optional

from src.bugbridge.bugs.gateway import BugSession
from src.bugbridge.bugs.models import (
    RESOLUTION_FIXED,
    STATUS_RESOLVED,
    TRACKING_VALUE_FIXED,
    Actor,
    Bug,
    CommentMetadata,
)
from src.bugbridge.errors import BugNotFoundError
from src.bugbridge.handlers.base import WebhookHandler
from src.bugbridge.webhook.models import EventType, PushPayload, WebhookEvent
from src.bugbridge.webhook.references import extract_bug_id

logger = logging.getLogger(__name__)


class PushHandler(WebhookHandler[PushPayload]):
    """Handles POST /github/push_comment."""

    endpoint = "push_comment"
    event_type = EventType.PUSH
    error_prefix = "github_push_comment"
    disabled_code = "github_push_comment_disabled"
    wrong_event_code = "github_push_comment_not_push"

    @property
    def enabled(self) -> bool:
        return self.settings.github_push_comment_enabled

    async def process(self, payload: PushPayload, event: WebhookEvent) -> Dict[str, Any]:
        """Comment on, and possibly resolve, every bug the push references.

        Raises:
            BugNotFoundError: No commit message references a bug.
        """
        if not payload.is_branch or not payload.commits:
            logger.info(
                "Ignoring push without branch commits",
                extra={"ref": payload.ref, "delivery": event.delivery_id},
            )
            return {"error": 0}

        pending = self.group_comments(payload)
        if not pending:
            raise BugNotFoundError(
                "github_push_comment_bug_not_found", details={"ref": payload.ref}
            )

        async with self.gateway.transaction() as session:
            actor = await session.resolve_automation_identity(
                self.settings.automation_login
            )

        tracking_field = self.settings.tracking_field_for_ref(payload.ref)
        updated: Dict[str, Dict[str, Any]] = {}

        for bug_id, texts in pending.items():
            comment_text = "\n\n".join(texts)

            async with self.gateway.transaction() as session:
                bug = await session.find_bug(bug_id, actor)
                if bug is None:
                    logger.info(
                        "Skipping unknown bug referenced by push",
                        extra={"bug_id": bug_id, "delivery": event.delivery_id},
                    )
                    continue

                ts = await session.now()
                comment = await session.add_comment(
                    bug,
                    actor,
                    comment_text,
                    CommentMetadata(is_markdown=self.settings.use_markdown),
                    ts=ts,
                )
                resolved = await self._close_on_fix(session, actor, bug, tracking_field)
                await session.update_bug(bug, actor, ts)

            updated[str(bug_id)] = {"id": comment.id, "text": comment_text}
            logger.info(
                "Commented on bug for push",
                extra={
                    "bug_id": bug_id,
                    "comment_id": comment.id,
                    "resolved": resolved,
                    "delivery": event.delivery_id,
                },
            )
            if self.metrics is not None:
                self.metrics.push_comments_total.inc()
                if resolved:
                    self.metrics.bugs_resolved_total.inc()

            await self.gateway.send_notification(bug_id, actor)

        return {"error": 0, "bugs": updated}

    def group_comments(self, payload: PushPayload) -> Dict[int, List[str]]:
        """Build the comment texts for each referenced bug.

        Bugs appear in order of first reference; texts keep commit order.
        Commits without a bug reference are skipped.
        """
        profile_url = f"{self.settings.github_base_url}/{payload.pusher_name}"
        pending: Dict[int, List[str]] = {}
        for commit in payload.commits:
            bug_id = extract_bug_id(commit.message)
            if bug_id is None:
                continue
            text = f"Authored by {profile_url}\n{commit.url}\n{commit.message}"
            pending.setdefault(bug_id, []).append(text)
        return pending

    async def _close_on_fix(
        self,
        session: BugSession,
        actor: Actor,
        bug: Bug,
        tracking_field: Optional[str],
    ) -> bool:
        """Resolve the bug FIXED unless it is to be left open.

        Returns:
            True if the bug was resolved.
        """
        if bug.is_closed:
            return False
        if await session.has_keyword(bug, self.settings.leave_open_keyword):
            return False

        await session.set_status(bug, STATUS_RESOLVED, RESOLUTION_FIXED)

        qe_flag = self.settings.qe_verify_flag
        flags = await session.list_flags(bug)
        if not any(flag.name == qe_flag for flag in flags):
            flag = await session.request_flag(bug, actor, qe_flag, "+")
            if flag is None:
                logger.debug("Flag type does not exist", extra={"flag": qe_flag})

        if tracking_field is not None:
            current = await session.get_tracking_field(bug, tracking_field)
            if current is not None and current != TRACKING_VALUE_FIXED:
                if not await session.set_tracking_field(
                    bug, actor, tracking_field, TRACKING_VALUE_FIXED
                ):
                    logger.info(
                        "Could not set tracking field",
                        extra={"bug_id": bug.id, "field": tracking_field},
                    )

        return True
