"""
Chat message data model.

Messages are stored as JSON objects using the wire keys the UI reads
(`for`, `blockId`, `inReplyTo`, ...). Keys this model does not know
about (`projectId`, `timestamp`, anything a newer UI adds) are kept in
`extra` so that an edit never drops them.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

Recipient = Union[str, List[str]]


class MessageStatus(Enum):
    """Dispatch state of a message. Absent means informational."""

    WAITING = "waiting"
    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (MessageStatus.COMPLETED, MessageStatus.ERROR)


# Wire keys handled explicitly; everything else goes to Message.extra
_KNOWN_KEYS = (
    "id", "agent", "content", "for", "blockId", "status",
    "thinking", "inReplyTo", "metadata", "attachedFiles",
)


@dataclass
class Message:
    """One entry of a project's chat log."""

    id: int
    agent: str
    content: str = ""
    recipient: Optional[Recipient] = None
    block_id: int = 0
    status: Optional[MessageStatus] = None
    thinking: Optional[str] = None
    in_reply_to: Optional[int] = None
    metadata: Optional[Dict[str, Any]] = None
    attached_files: List[str] = field(default_factory=list)
    extra: Dict[str, Any] = field(default_factory=dict)

    @property
    def primary_recipient(self) -> Optional[str]:
        """First entry of `for` when it is a list, else `for` itself."""
        if isinstance(self.recipient, list):
            return self.recipient[0] if self.recipient else None
        return self.recipient or None

    @property
    def project_id(self) -> Optional[str]:
        return self.extra.get("projectId")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Message":
        """Build a message from its stored JSON form."""
        status = data.get("status")
        try:
            status = MessageStatus(status) if status else None
        except ValueError:
            status = None

        block_id = data.get("blockId") or 0
        try:
            block_id = max(int(block_id), 0)
        except (TypeError, ValueError):
            block_id = 0

        return cls(
            id=data["id"],
            agent=data.get("agent") or "user",
            content=data.get("content") or "",
            recipient=data.get("for") or None,
            block_id=block_id,
            status=status,
            thinking=data.get("thinking"),
            in_reply_to=data.get("inReplyTo"),
            metadata=data.get("metadata"),
            attached_files=list(data.get("attachedFiles") or []),
            extra={k: v for k, v in data.items() if k not in _KNOWN_KEYS},
        )

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to the stored JSON form, omitting absent optionals."""
        data: Dict[str, Any] = {
            "id": self.id,
            "agent": self.agent,
            "content": self.content,
            "blockId": self.block_id,
        }
        if self.recipient:
            data["for"] = self.recipient
        if self.status is not None:
            data["status"] = self.status.value
        if self.thinking is not None:
            data["thinking"] = self.thinking
        if self.in_reply_to is not None:
            data["inReplyTo"] = self.in_reply_to
        if self.metadata:
            data["metadata"] = self.metadata
        if self.attached_files:
            data["attachedFiles"] = list(self.attached_files)
        for key, value in self.extra.items():
            data.setdefault(key, value)
        return data

    def __str__(self) -> str:
        status = self.status.value if self.status else "-"
        return f"Message({self.id}, {self.agent} -> {self.primary_recipient}, {status})"


@dataclass
class Project:
    """A project as seen by the scheduler. Read-only."""

    id: str
    working_dir: Path
    paused: bool = False
    title: str = ""
