"""
Reply action policy.

Turns interpreted Reply items into chat log messages:
- REPLY: one ordinary reply, forwarding `for` / `blockId` when given
- EXECUTE: one `waiting` message for the first agent in executionOrder
- ASK_TO_USER: nothing; the chain pauses until a human answers
"""

import logging
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional

from ..blocks import current_block
from ..models import Message, MessageStatus, Project, Recipient, Reply, ReplyAction
from ..store import ChatLog

logger = logging.getLogger(__name__)


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def primary(recipient: Optional[Recipient]) -> Optional[str]:
    if isinstance(recipient, list):
        return recipient[0] if recipient else None
    return recipient or None


class ReplyWriter:
    """Appends the messages an agent's replies call for.

    Every action in ReplyAction must have a handler; construction fails
    otherwise.
    """

    def __init__(
        self,
        chat_log: ChatLog,
        user_name: str = "user",
        system_name: str = "system",
        default_agent: str = "developer",
    ):
        self.chat_log = chat_log
        self.user_name = user_name
        self.system_name = system_name
        self.default_agent = default_agent
        self._handlers: Dict[ReplyAction, Callable[[Project, Message, Reply], Optional[Message]]] = {
            ReplyAction.REPLY: self._post_reply,
            ReplyAction.EXECUTE: self._post_execute,
            ReplyAction.ASK_TO_USER: self._ask_to_user,
        }
        missing = set(ReplyAction) - set(self._handlers)
        if missing:
            raise RuntimeError(f"No handler for reply actions: {sorted(a.value for a in missing)}")

    def status_for(self, recipient: Optional[Recipient]) -> Optional[MessageStatus]:
        """`waiting` for messages addressed to an agent, None otherwise."""
        target = primary(recipient)
        if target and target != self.user_name:
            return MessageStatus.WAITING
        return None

    def new_message(
        self,
        project: Project,
        agent: str,
        content: str,
        recipient: Optional[Recipient] = None,
        block_id: Optional[int] = None,
        in_reply_to: Optional[int] = None,
        metadata: Optional[dict] = None,
        attached_files: Optional[List[str]] = None,
    ) -> Message:
        """A fresh message stamped with id, block, timestamp and status."""
        if block_id is None:
            block_id = current_block(project.working_dir)
        return Message(
            id=self.chat_log.ids.next(),
            agent=agent,
            content=content,
            recipient=recipient,
            block_id=block_id,
            status=self.status_for(recipient),
            in_reply_to=in_reply_to,
            metadata=metadata or None,
            attached_files=list(attached_files or []),
            extra={"projectId": project.id, "timestamp": now_iso()},
        )

    def apply(self, project: Project, origin: Message, reply: Reply) -> Optional[Message]:
        """Run the policy for one reply. Returns the appended message, if any."""
        return self._handlers[reply.action](project, origin, reply)

    def responder(self, origin: Message) -> str:
        """The agent that answered: the one the message was sent to."""
        return origin.primary_recipient or self.default_agent

    def _metadata(self, reply: Reply) -> Optional[dict]:
        if not reply.structured:
            return None
        fields = {k: v for k, v in reply.extracted_fields().items() if v is not None}
        return fields or None

    def _post_reply(self, project: Project, origin: Message, reply: Reply) -> Message:
        message = self.new_message(
            project,
            agent=self.responder(origin),
            content=reply.response,
            recipient=reply.recipient,
            block_id=reply.block_id,
            in_reply_to=origin.id,
            metadata=self._metadata(reply),
        )
        return self.chat_log.append(project.id, message)

    def _post_execute(self, project: Project, origin: Message, reply: Reply) -> Message:
        # Only the first hop is scheduled; the next agent decides what follows
        target = reply.execution_order[0] if reply.execution_order else primary(reply.recipient)
        if not target:
            logger.warning(
                f"'execute' reply to message {origin.id} names no agent; posting as a plain reply"
            )
            return self._post_reply(project, origin, reply)

        message = self.new_message(
            project,
            agent=self.responder(origin),
            content=reply.response,
            recipient=target,
            block_id=reply.block_id,
            in_reply_to=origin.id,
            metadata=self._metadata(reply),
        )
        logger.info(f"Message {origin.id}: handing off to '{target}' as message {message.id}")
        return self.chat_log.append(project.id, message)

    def _ask_to_user(self, project: Project, origin: Message, reply: Reply) -> None:
        logger.info(f"Message {origin.id}: agent is waiting for the user")
        return None

    def post_error(
        self,
        project: Project,
        origin: Message,
        text: str,
        linked: bool,
        attempt: Optional[int] = None,
    ) -> Message:
        """System reply describing a failed dispatch.

        A linked error answers the message (inReplyTo), which stops further
        dispatch. An unlinked one points at it through metadata only, so
        the message stays eligible for an automatic retry.
        """
        metadata = None
        if not linked:
            metadata = {"failedMessageId": origin.id}
            if attempt is not None:
                metadata["attempt"] = attempt
        message = Message(
            id=self.chat_log.ids.next(),
            agent=self.system_name,
            content=f"Error executing command: {text}",
            block_id=current_block(project.working_dir),
            in_reply_to=origin.id if linked else None,
            metadata=metadata,
            extra={"projectId": project.id, "timestamp": now_iso()},
        )
        return self.chat_log.append(project.id, message)
