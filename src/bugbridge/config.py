"""Bug bridge configuration using pydantic-settings.

This module defines the BridgeSettings class that reads configuration
from environment variables with the BRIDGE_ prefix. Both webhook features
are off by default; enabling either one requires the shared signature
secret to be set.
"""

import re
from functools import lru_cache
from typing import Optional

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class BridgeSettings(BaseSettings):
    """GitHub-to-bug-tracker bridge configuration from environment variables.

    All environment variables are prefixed with BRIDGE_ (e.g.,
    BRIDGE_GITHUB_PR_SIGNATURE_SECRET).
    """

    model_config = SettingsConfigDict(
        env_prefix="BRIDGE_",
        case_sensitive=False,
    )

    # -------------------------------------------------------------------------
    # Feature toggles
    # -------------------------------------------------------------------------
    # Attach opened pull requests to the bug named in their title
    github_pr_linking_enabled: bool = False

    # Comment on (and close) bugs referenced by pushed commits
    github_push_comment_enabled: bool = False

    # -------------------------------------------------------------------------
    # GitHub Configuration
    # -------------------------------------------------------------------------
    # Shared secret used to sign webhook deliveries (X-Hub-Signature-256)
    github_pr_signature_secret: str = ""

    # Prefix for pusher profile links in push comments
    github_base_url: str = "https://github.com"

    # -------------------------------------------------------------------------
    # Bug Tracker Configuration
    # -------------------------------------------------------------------------
    # Mark generated comments as markdown
    use_markdown: bool = False

    # Login of the privileged account that performs all writes
    automation_login: str = "automation@bmo.tld"

    # Keyword that keeps a bug open when a fix is pushed
    leave_open_keyword: str = "leave-open"

    # Flag type requested when a push resolves a bug
    qe_verify_flag: str = "qe-verify"

    # Release branch refs; group 1 captures the release version
    release_branch_pattern: str = r"^refs/heads/releases_v(\d+)"

    # Per-release tracking field, formatted with the captured version
    tracking_field_template: str = "cf_status_firefox{version}"

    # -------------------------------------------------------------------------
    # Database Configuration
    # -------------------------------------------------------------------------
    # PostgreSQL connection string; the in-memory store is used when unset
    database_url: Optional[str] = None

    # -------------------------------------------------------------------------
    # Server Configuration
    # -------------------------------------------------------------------------
    host: str = "0.0.0.0"
    port: int = 8080

    # -------------------------------------------------------------------------
    # Validators
    # -------------------------------------------------------------------------
    @field_validator("release_branch_pattern")
    @classmethod
    def validate_release_branch_pattern(cls, v: str) -> str:
        """Validate that the pattern compiles and captures the version."""
        try:
            compiled = re.compile(v)
        except re.error as e:
            raise ValueError(f"release_branch_pattern is not a valid regex: {e}")
        if compiled.groups < 1:
            raise ValueError(
                "release_branch_pattern must capture the release version"
            )
        return v

    @field_validator("tracking_field_template")
    @classmethod
    def validate_tracking_field_template(cls, v: str) -> str:
        """Validate that the template references the version placeholder."""
        if "{version}" not in v:
            raise ValueError("tracking_field_template must contain {version}")
        return v

    @field_validator("github_base_url")
    @classmethod
    def validate_github_base_url(cls, v: str) -> str:
        """Strip trailing slashes so profile URLs join cleanly."""
        v = v.strip().rstrip("/")
        if not v.startswith(("http://", "https://")):
            raise ValueError("github_base_url must start with http:// or https://")
        return v

    @model_validator(mode="after")
    def validate_secret_when_enabled(self) -> "BridgeSettings":
        """Require the signature secret when any webhook feature is enabled."""
        enabled = self.github_pr_linking_enabled or self.github_push_comment_enabled
        if enabled and not self.github_pr_signature_secret.strip():
            raise ValueError(
                "github_pr_signature_secret cannot be empty when a GitHub "
                "webhook feature is enabled"
            )
        return self

    def tracking_field_for_ref(self, ref: str) -> Optional[str]:
        """Map a pushed ref to its release tracking field name.

        Args:
            ref: The full git ref, e.g. "refs/heads/releases_v120".

        Returns:
            The tracking field name (e.g. "cf_status_firefox120"), or None
            if the ref is not a release branch.
        """
        match = re.search(self.release_branch_pattern, ref)
        if match is None or not match.group(1):
            return None
        return self.tracking_field_template.format(version=match.group(1))


@lru_cache
def get_settings() -> BridgeSettings:
    """Load settings from the environment once per process."""
    return BridgeSettings()
