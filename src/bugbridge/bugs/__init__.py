"""Bug tracker access for the bridge.

The handlers talk to the bug tracker only through the BugGateway and
BugSession protocols. Two implementations are provided: PostgreSQL
(production) and in-memory (development and tests).
"""

from src.bugbridge.bugs.gateway import BugGateway, BugSession
from src.bugbridge.bugs.memory import InMemoryBugGateway, InMemoryBugStore
from src.bugbridge.bugs.models import (
    GITHUB_PR_CONTENT_TYPE,
    Actor,
    Attachment,
    Bug,
    Comment,
    CommentMetadata,
    CommentType,
    Flag,
    NewAttachment,
)
from src.bugbridge.bugs.postgres import PostgresBugGateway

__all__ = [
    # Models
    "GITHUB_PR_CONTENT_TYPE",
    "Actor",
    "Attachment",
    "Bug",
    "Comment",
    "CommentMetadata",
    "CommentType",
    "Flag",
    "NewAttachment",
    # Protocols
    "BugGateway",
    "BugSession",
    # Implementations
    "InMemoryBugGateway",
    "InMemoryBugStore",
    "PostgresBugGateway",
]
