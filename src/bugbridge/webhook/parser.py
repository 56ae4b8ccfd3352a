"""Payload decoding and structural validation.

This module turns a raw delivery body into a typed payload for the event
it announces. Validation is all-or-nothing: a single malformed commit in a
push rejects the whole delivery before anything is written.

GitHub Webhook Payload Structure (pull_request event, fields used):
{
  "action": "opened",
  "pull_request": {
    "html_url": "https://github.com/org/repo/pull/7",
    "title": "Bug 123 - Fix the widget",
    "number": 7
  },
  "repository": {"full_name": "org/repo"}
}

GitHub Webhook Payload Structure (push event, fields used):
{
  "ref": "refs/heads/main",
  "pusher": {"name": "octocat"},
  "commits": [
    {"message": "Bug 123 - Fix the widget", "url": "https://github.com/..."}
  ]
}
"""

import json
import logging
from typing import Any, Dict, List, Optional, Union

from .models import Commit, EventType, PullRequestPayload, PushPayload

logger = logging.getLogger(__name__)

Payload = Union[PullRequestPayload, PushPayload]


class PayloadValidationError(ValueError):
    """Raised when a delivery body is not a valid payload for its event.

    Attributes:
        reason: Short description of the first problem found.
    """

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(reason)


def parse_payload(event_type: EventType, raw_body: bytes) -> Optional[Payload]:
    """Decode and validate the payload of a delivery.

    Args:
        event_type: The event announced by the X-GitHub-Event header.
        raw_body: The request body bytes.

    Returns:
        PullRequestPayload or PushPayload; None for ping events, which
        carry nothing the bridge needs.

    Raises:
        PayloadValidationError: If the body is not JSON or a required field
            is missing or empty.
    """
    if event_type is EventType.PING:
        return None

    data = _decode_json(raw_body)

    if event_type is EventType.PULL_REQUEST:
        return _parse_pull_request(data)
    if event_type is EventType.PUSH:
        return _parse_push(data)

    raise PayloadValidationError(f"unsupported event type: {event_type}")


def _decode_json(raw_body: bytes) -> Dict[str, Any]:
    """Decode the body into a JSON object."""
    try:
        data = json.loads(raw_body)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise PayloadValidationError(f"body is not valid JSON: {e}") from e

    if not isinstance(data, dict):
        raise PayloadValidationError(
            f"expected a JSON object, got {type(data).__name__}"
        )
    return data


def _parse_pull_request(data: Dict[str, Any]) -> PullRequestPayload:
    """Validate a pull_request payload."""
    action = _require_str(data, "action")

    pull_request = _require_dict(data, "pull_request")
    html_url = _require_str(pull_request, "html_url", "pull_request.html_url")
    title = _require_str(pull_request, "title", "pull_request.title")

    number = pull_request.get("number")
    # bool is an int subclass; a JSON true is not a pull request number.
    if isinstance(number, bool) or not isinstance(number, int) or number <= 0:
        raise PayloadValidationError(
            f"pull_request.number must be a positive integer, got {number!r}"
        )

    repository = _require_dict(data, "repository")
    full_name = _require_str(repository, "full_name", "repository.full_name")

    return PullRequestPayload(
        action=action,
        html_url=html_url,
        title=title,
        number=number,
        repository_full_name=full_name,
    )


def _parse_push(data: Dict[str, Any]) -> PushPayload:
    """Validate a push payload, including every commit."""
    ref = _require_str(data, "ref")

    pusher = _require_dict(data, "pusher")
    pusher_name = _require_str(pusher, "name", "pusher.name")

    commits_data = data.get("commits")
    if not isinstance(commits_data, list):
        raise PayloadValidationError(
            f"commits must be an array, got {type(commits_data).__name__}"
        )

    commits: List[Commit] = []
    for index, commit_data in enumerate(commits_data):
        field = f"commits[{index}]"
        if not isinstance(commit_data, dict):
            raise PayloadValidationError(f"{field} must be an object")
        commits.append(
            Commit(
                message=_require_str(commit_data, "message", f"{field}.message"),
                url=_require_str(commit_data, "url", f"{field}.url"),
            )
        )

    return PushPayload(ref=ref, pusher_name=pusher_name, commits=commits)


def _require_dict(
    data: Dict[str, Any], key: str, field: Optional[str] = None
) -> Dict[str, Any]:
    value = data.get(key)
    if not isinstance(value, dict):
        raise PayloadValidationError(f"{field or key} must be an object")
    return value


def _require_str(
    data: Dict[str, Any], key: str, field: Optional[str] = None
) -> str:
    value = data.get(key)
    if not isinstance(value, str) or not value:
        raise PayloadValidationError(f"{field or key} is missing or empty")
    return value
