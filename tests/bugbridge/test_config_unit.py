"""Tests for bridge configuration loading."""

import pytest
from pydantic import ValidationError

from src.bugbridge.config import BridgeSettings


class TestBridgeSettings:
    def test_defaults(self, monkeypatch) -> None:
        for key in ("BRIDGE_GITHUB_PR_LINKING_ENABLED", "BRIDGE_GITHUB_PUSH_COMMENT_ENABLED"):
            monkeypatch.delenv(key, raising=False)

        settings = BridgeSettings()

        assert settings.github_pr_linking_enabled is False
        assert settings.github_push_comment_enabled is False
        assert settings.automation_login == "automation@bmo.tld"
        assert settings.leave_open_keyword == "leave-open"
        assert settings.qe_verify_flag == "qe-verify"
        assert settings.database_url is None

    def test_loads_from_env(self, monkeypatch) -> None:
        monkeypatch.setenv("BRIDGE_GITHUB_PR_LINKING_ENABLED", "true")
        monkeypatch.setenv("BRIDGE_GITHUB_PR_SIGNATURE_SECRET", "s3cret")
        monkeypatch.setenv("BRIDGE_USE_MARKDOWN", "1")

        settings = BridgeSettings()

        assert settings.github_pr_linking_enabled is True
        assert settings.github_pr_signature_secret == "s3cret"
        assert settings.use_markdown is True

    @pytest.mark.parametrize(
        "toggle", ["github_pr_linking_enabled", "github_push_comment_enabled"]
    )
    def test_secret_required_when_enabled(self, toggle: str) -> None:
        with pytest.raises(ValidationError):
            BridgeSettings(**{toggle: True, "github_pr_signature_secret": "  "})

    def test_release_pattern_needs_capture_group(self) -> None:
        with pytest.raises(ValidationError):
            BridgeSettings(release_branch_pattern=r"^refs/heads/releases_v\d+")

    def test_release_pattern_must_compile(self) -> None:
        with pytest.raises(ValidationError):
            BridgeSettings(release_branch_pattern=r"(unclosed")

    def test_tracking_template_needs_version(self) -> None:
        with pytest.raises(ValidationError):
            BridgeSettings(tracking_field_template="cf_status_firefox")

    def test_base_url_trailing_slash_stripped(self) -> None:
        settings = BridgeSettings(github_base_url="https://github.example.com/")
        assert settings.github_base_url == "https://github.example.com"


class TestTrackingFieldForRef:
    @pytest.mark.parametrize(
        "ref,expected",
        [
            ("refs/heads/releases_v120", "cf_status_firefox120"),
            ("refs/heads/releases_v99-beta", "cf_status_firefox99"),
            ("refs/heads/main", None),
            ("refs/tags/releases_v120", None),
            ("refs/heads/releases_vnext", None),
        ],
    )
    def test_default_convention(self, ref: str, expected) -> None:
        assert BridgeSettings().tracking_field_for_ref(ref) == expected

    def test_custom_convention(self) -> None:
        settings = BridgeSettings(
            release_branch_pattern=r"^refs/heads/release/(\d+)\.x$",
            tracking_field_template="cf_status_product{version}",
        )
        assert settings.tracking_field_for_ref("refs/heads/release/7.x") == (
            "cf_status_product7"
        )
