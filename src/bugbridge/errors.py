"""Error taxonomy for webhook processing.

Every rejection a handler can produce is a BridgeError carrying a stable
error code. Errors fall into two families:

- Hard errors: configuration or transport problems (feature disabled,
  wrong event, bad signature, malformed payload). Rendered with an HTTP
  error status so the sender records a failed delivery.
- Soft errors: expected outcomes of normal traffic (unsupported pull
  request action, unknown bug, duplicate attachment). Rendered with
  HTTP 200 and ``{"error": 1, "message": ...}`` so the sender does not
  retry and monitoring is not alarmed.
"""

from typing import Any, Dict, Optional


# Human-readable text for each error code.
ERROR_MESSAGES: Dict[str, str] = {
    # /github/pull_request
    "github_pr_linking_disabled": (
        "Linking GitHub pull requests to bugs is currently disabled."
    ),
    "github_pr_not_pull_request": (
        "The GitHub event was not a pull_request or ping event."
    ),
    "github_pr_mismatch_signatures": (
        "The GitHub signature does not match the expected signature."
    ),
    "github_pr_invalid_json": (
        "The GitHub pull request payload was missing required data."
    ),
    "github_pr_invalid_event": (
        "Only newly opened pull requests are linked to bugs."
    ),
    "github_pr_bug_not_found": (
        "The pull request title does not reference a bug that exists or "
        "that you are allowed to see."
    ),
    "github_pr_attachment_exists": (
        "The pull request is already attached to the bug."
    ),
    # /github/push_comment
    "github_push_comment_disabled": (
        "Commenting on bugs from GitHub pushes is currently disabled."
    ),
    "github_push_comment_not_push": (
        "The GitHub event was not a push or ping event."
    ),
    "github_push_comment_mismatch_signatures": (
        "The GitHub signature does not match the expected signature."
    ),
    "github_push_comment_invalid_json": (
        "The GitHub push payload was missing required data."
    ),
    "github_push_comment_bug_not_found": (
        "None of the pushed commit messages reference a bug."
    ),
    # shared
    "automation_user_missing": (
        "The automation account used to update bugs does not exist."
    ),
}


class BridgeError(Exception):
    """Base class for all webhook processing rejections.

    Attributes:
        code: Stable error identifier (key of ERROR_MESSAGES).
        message: Human-readable description rendered to the caller.
        soft: True for expected, non-fatal outcomes.
        http_status: HTTP status used when rendering the error.
        details: Extra context for logging; never rendered.
    """

    soft: bool = False
    http_status: int = 500

    def __init__(self, code: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = ERROR_MESSAGES.get(code, code)
        self.details = details or {}
        super().__init__(self.message)

    def to_response(self) -> Dict[str, Any]:
        """Render the JSON body for this error."""
        if self.soft:
            return {"error": 1, "message": self.message}
        return {"error": 1, "code": self.code, "message": self.message}


# -----------------------------------------------------------------------------
# Hard errors
# -----------------------------------------------------------------------------


class FeatureDisabledError(BridgeError):
    """The endpoint's feature toggle is off."""

    http_status = 403


class WrongEventTypeError(BridgeError):
    """The X-GitHub-Event header is missing or not accepted here."""

    http_status = 400


class SignatureMismatchError(BridgeError):
    """The X-Hub-Signature-256 header did not verify."""

    http_status = 401


class InvalidPayloadError(BridgeError):
    """The body is not JSON or lacks required fields."""

    http_status = 400


class AutomationIdentityError(BridgeError):
    """The automation account could not be resolved."""

    http_status = 500

    def __init__(self, login: str):
        super().__init__("automation_user_missing", details={"login": login})
        self.login = login


# -----------------------------------------------------------------------------
# Soft errors
# -----------------------------------------------------------------------------


class SoftError(BridgeError):
    """Expected outcome that is reported but not treated as a failure."""

    soft = True
    http_status = 200


class UnsupportedActionError(SoftError):
    """The pull request action is not one we act on."""


class BugNotFoundError(SoftError):
    """No referenced bug exists or is visible to the requester."""


class AttachmentExistsError(SoftError):
    """The pull request is already attached to the bug."""


class GatewayError(Exception):
    """Raised when the bug tracker's datastore fails.

    Attributes:
        message: Human-readable error description.
        original_error: The underlying exception, if any.
    """

    def __init__(
        self,
        message: str,
        original_error: Optional[Exception] = None,
    ):
        self.message = message
        self.original_error = original_error
        super().__init__(message)
