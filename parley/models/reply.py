"""
Reply data model.

A Reply is one structured item extracted from an agent's output. The
action tag is a closed Enum so that every handler table can be checked
for completeness.
"""

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from .message import Recipient


class ReplyAction(Enum):
    """What the scheduler does with an interpreted reply."""

    REPLY = "reply"  # Default: post the response as an ordinary message
    EXECUTE = "execute"  # Hand off to the next agent in executionOrder
    ASK_TO_USER = "ask-to-user"  # Post nothing; wait for a human

    @classmethod
    def parse(cls, value: Any) -> "ReplyAction":
        """Map a raw `action` value to an action. Unknown values are REPLY."""
        if isinstance(value, str):
            normalized = value.strip().lower().replace("_", "-")
            for action in (cls.EXECUTE, cls.ASK_TO_USER):
                if normalized == action.value:
                    return action
        return cls.REPLY


@dataclass
class Reply:
    """One reply item produced by the output interpreter.

    Attributes:
        response: Reply body
        recipient: Next recipient (`for`), if the agent named one
        block_id: Block the agent attributes the reply to
        action: Action tag (REPLY when absent or unknown)
        raw_action: The action value as written by the agent
        execution_order: Ordered agent names for EXECUTE
        structured: False when this is the plain-text fallback
    """

    response: str
    recipient: Optional[Recipient] = None
    block_id: Optional[int] = None
    action: ReplyAction = ReplyAction.REPLY
    raw_action: Optional[str] = None
    execution_order: List[str] = field(default_factory=list)
    structured: bool = True

    @classmethod
    def plain(cls, text: str) -> "Reply":
        """The fallback reply: the whole raw text, nothing extracted."""
        return cls(response=text, structured=False)

    @classmethod
    def from_value(cls, value: Any) -> "Reply":
        """Build a reply from one parsed JSON item.

        Body falls back from `response` to `content` to `message`, then to
        the JSON text of the item itself.
        """
        if not isinstance(value, dict):
            if isinstance(value, str):
                return cls(response=value)
            return cls(response=json.dumps(value))

        response = value.get("response") or value.get("content") or value.get("message")
        if not isinstance(response, str):
            response = json.dumps(response) if response else json.dumps(value)

        recipient = value.get("for") or None
        if recipient is not None and not isinstance(recipient, (str, list)):
            recipient = str(recipient)

        block_id = value.get("blockId")
        try:
            block_id = int(block_id) if block_id is not None else None
        except (TypeError, ValueError):
            block_id = None
        if block_id is not None and block_id < 0:
            block_id = None

        order = value.get("executionOrder") or []
        if isinstance(order, str):
            order = [order]
        elif not isinstance(order, list):
            order = []

        raw_action = value.get("action")
        return cls(
            response=response,
            recipient=recipient,
            block_id=block_id,
            action=ReplyAction.parse(raw_action),
            raw_action=raw_action if isinstance(raw_action, str) else None,
            execution_order=[str(a) for a in order if a],
        )

    def extracted_fields(self) -> Dict[str, Any]:
        """Diagnostic metadata recorded on the produced message."""
        return {
            "extractedFor": self.recipient,
            "extractedBlockId": self.block_id,
            "extractedAction": self.raw_action,
            "extractedExecutionOrder": self.execution_order or None,
        }
