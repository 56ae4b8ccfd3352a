"""Shared fixtures for bug bridge tests."""

import pytest
from prometheus_client import CollectorRegistry

from src.bugbridge.bugs.memory import InMemoryBugGateway
from src.bugbridge.config import BridgeSettings
from src.bugbridge.metrics import BridgeMetrics

TEST_SECRET = "test-secret"
AUTOMATION_LOGIN = "automation@bmo.tld"


@pytest.fixture
def settings() -> BridgeSettings:
    """Settings with both features enabled and a known secret."""
    return BridgeSettings(
        github_pr_linking_enabled=True,
        github_push_comment_enabled=True,
        github_pr_signature_secret=TEST_SECRET,
        automation_login=AUTOMATION_LOGIN,
    )


@pytest.fixture
def gateway() -> InMemoryBugGateway:
    """An in-memory tracker with the automation account and qe-verify flag."""
    gw = InMemoryBugGateway()
    gw.add_user(AUTOMATION_LOGIN)
    gw.add_flag_type("qe-verify")
    return gw


@pytest.fixture
def metrics() -> BridgeMetrics:
    """Metrics on an isolated registry."""
    return BridgeMetrics(registry=CollectorRegistry())
