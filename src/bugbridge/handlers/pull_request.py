"""Pull request linking.

When a pull request is opened with a bug reference in its title
("Bug 123 - Fix the widget"), a link attachment pointing at the pull
request is created on that bug and announced with a comment.

Each pull request URL has at most one live link attachment across all
bugs. If the same URL is already attached to another bug (the title was
corrected to name a different bug), that older attachment is obsoleted
and its bug gets a comment saying where the link moved. Attachments for
the same pull request number in other repositories have a different URL
and are left alone.

Response bodies:
- {"error": 0, "id": <attachment id>} on success
- {"error": 1, "message": ...} for unsupported actions, unknown bugs and
  already-attached pull requests
"""

import logging
from datetime import datetime
from typing import Any, Dict

from src.bugbridge.bugs.gateway import BugSession
from src.bugbridge.bugs.models import (
    GITHUB_PR_CONTENT_TYPE,
    Actor,
    Bug,
    CommentMetadata,
    CommentType,
    NewAttachment,
)
from src.bugbridge.errors import (
    AttachmentExistsError,
    BugNotFoundError,
    UnsupportedActionError,
)
from src.bugbridge.handlers.base import WebhookHandler
from src.bugbridge.webhook.models import EventType, PullRequestPayload, WebhookEvent
from src.bugbridge.webhook.references import extract_bug_id

logger = logging.getLogger(__name__)

OPENED_ACTION = "opened"


def moved_attachment_comment(new_bug_id: int, attachment_id: int) -> str:
    return (
        f"GitHub pull request attachment was moved to bug {new_bug_id}. "
        f"Setting attachment {attachment_id} to obsolete."
    )


class PullRequestHandler(WebhookHandler[PullRequestPayload]):
    """Handles POST /github/pull_request."""

    endpoint = "pull_request"
    event_type = EventType.PULL_REQUEST
    error_prefix = "github_pr"
    disabled_code = "github_pr_linking_disabled"
    wrong_event_code = "github_pr_not_pull_request"

    @property
    def enabled(self) -> bool:
        return self.settings.github_pr_linking_enabled

    async def process(
        self, payload: PullRequestPayload, event: WebhookEvent
    ) -> Dict[str, Any]:
        """Attach an opened pull request to the bug in its title.

        The lookup, duplicate check, attachment, comment and migration of
        older attachments all happen in one transaction.

        Raises:
            UnsupportedActionError: The action is not "opened".
            BugNotFoundError: The title names no bug the sender can see.
            AttachmentExistsError: The bug already links this pull request.
        """
        if payload.action != OPENED_ACTION:
            raise UnsupportedActionError(
                "github_pr_invalid_event", details={"action": payload.action}
            )

        bug_id = extract_bug_id(payload.title)

        async with self.gateway.transaction() as session:
            bug = None
            if bug_id is not None:
                bug = await session.find_bug(bug_id, Actor.anonymous())
            if bug is None:
                raise BugNotFoundError(
                    "github_pr_bug_not_found", details={"bug_id": bug_id}
                )

            await self._ensure_not_attached(session, bug, payload)

            actor = await session.resolve_automation_identity(
                self.settings.automation_login
            )
            ts = await session.now()

            attachment = await session.create_attachment(
                actor,
                NewAttachment(
                    bug_id=bug.id,
                    content_type=GITHUB_PR_CONTENT_TYPE,
                    filename=payload.attachment_filename,
                    description=payload.attachment_description,
                    data=payload.html_url,
                    creation_ts=ts,
                ),
            )
            await session.add_comment(
                bug,
                actor,
                "",
                CommentMetadata(
                    type=CommentType.ATTACHMENT_CREATED,
                    extra_data=str(attachment.id),
                    is_markdown=self.settings.use_markdown,
                ),
                ts=ts,
            )
            await session.update_bug(bug, actor, ts)

            moved = await self._obsolete_moved_attachments(
                session, actor, bug, payload, ts
            )

        logger.info(
            "Linked pull request to bug",
            extra={
                "bug_id": bug.id,
                "attachment_id": attachment.id,
                "url": payload.html_url,
                "moved_from": moved,
                "delivery": event.delivery_id,
            },
        )
        if self.metrics is not None:
            self.metrics.attachments_created_total.inc()
            if moved:
                self.metrics.attachments_obsoleted_total.inc(len(moved))

        return {"error": 0, "id": attachment.id}

    async def _ensure_not_attached(
        self, session: BugSession, bug: Bug, payload: PullRequestPayload
    ) -> None:
        """Reject a redelivery of a pull request the bug already links."""
        for attachment in await session.list_attachments(bug):
            if not attachment.is_github_pull_request or attachment.is_obsolete:
                continue
            if attachment.data == payload.html_url:
                raise AttachmentExistsError(
                    "github_pr_attachment_exists",
                    details={"bug_id": bug.id, "url": payload.html_url},
                )

    async def _obsolete_moved_attachments(
        self,
        session: BugSession,
        actor: Actor,
        bug: Bug,
        payload: PullRequestPayload,
        ts: datetime,
    ) -> list:
        """Obsolete live links to this pull request on other bugs.

        Returns:
            Ids of the bugs whose attachment was obsoleted.
        """
        moved_from = []
        candidates = await session.find_attachments_by_content_type_and_filename(
            GITHUB_PR_CONTENT_TYPE,
            payload.attachment_filename,
            exclude_bug_id=bug.id,
        )
        for attachment in candidates:
            # Same pull request number, different repository.
            if attachment.data != payload.html_url:
                continue

            old_bug = await session.find_bug(attachment.bug_id, actor)
            if old_bug is None:
                logger.warning(
                    "Attachment references a missing bug",
                    extra={
                        "attachment_id": attachment.id,
                        "bug_id": attachment.bug_id,
                    },
                )
                continue

            await session.set_obsolete(attachment)
            await session.add_comment(
                old_bug,
                actor,
                moved_attachment_comment(bug.id, attachment.id),
                CommentMetadata(
                    type=CommentType.ATTACHMENT_UPDATED,
                    extra_data=str(attachment.id),
                    is_markdown=self.settings.use_markdown,
                ),
                ts=ts,
            )
            await session.update_bug(old_bug, actor, ts)
            await session.update_attachment(attachment, ts)
            moved_from.append(old_bug.id)

        return moved_from
