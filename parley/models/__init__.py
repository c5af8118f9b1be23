"""
Data models for parley.

Message: One entry of a project's chat log
Project: The scheduler's read-only view of a project
Reply: One structured item extracted from agent output
"""

from .message import Message, MessageStatus, Project, Recipient
from .reply import Reply, ReplyAction

__all__ = [
    "Message",
    "MessageStatus",
    "Project",
    "Recipient",
    "Reply",
    "ReplyAction",
]
