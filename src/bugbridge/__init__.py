"""GitHub to bug tracker bridge.

This package receives GitHub webhooks and records them on bugs:
- Opened pull requests become link attachments on the bug in their title
- Pushed commits become comments on the bugs they reference, resolving
  those bugs FIXED unless marked leave-open
"""
