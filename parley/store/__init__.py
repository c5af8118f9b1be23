"""
Storage collaborators for parley.

ChatLog: Per-project message log (chat.json)
ProjectRegistry: Project list (projects.json)
AgentDirectory: Known agent names
"""

from .chat_log import ChatLog, MessageIds
from .projects import ProjectRegistry
from .agents import AgentDirectory

__all__ = [
    "ChatLog",
    "MessageIds",
    "ProjectRegistry",
    "AgentDirectory",
]
