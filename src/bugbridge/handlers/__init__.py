"""Webhook endpoint handlers.

- PullRequestHandler: links opened pull requests to bugs
- PushHandler: comments on and resolves bugs named in pushed commits
"""

from src.bugbridge.handlers.base import WebhookHandler
from src.bugbridge.handlers.pull_request import PullRequestHandler
from src.bugbridge.handlers.push import PushHandler

__all__ = [
    "PullRequestHandler",
    "PushHandler",
    "WebhookHandler",
]
