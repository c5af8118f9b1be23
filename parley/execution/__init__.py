"""
Execution layer for parley.

Handles:
- Building the agent invocation payload and argv
- Running the agent subprocess with a wall-clock timeout
- Parsing the stream-json event stream for live thinking updates
"""

from .invoker import AgentInvoker, InvocationPayload, InvocationResult
from .stream import EventKind, StreamCollector, StreamEvent, parse_event

__all__ = [
    "AgentInvoker",
    "InvocationPayload",
    "InvocationResult",
    "EventKind",
    "StreamCollector",
    "StreamEvent",
    "parse_event",
]
