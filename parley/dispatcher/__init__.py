"""
Dispatch layer for parley.

Handles:
- Polling project chat logs for messages addressed to agents
- Running each dispatch on a worker thread, exactly once per process
- Turning agent replies into new chat log messages
- The HTTP API for messages, trigger, retry and scheduler stats
"""

from .actions import ReplyWriter
from .api import ApiRoutes, create_server, make_handler
from .ledger import SeenLedger
from .scheduler import Scheduler

__all__ = [
    "ApiRoutes",
    "ReplyWriter",
    "Scheduler",
    "SeenLedger",
    "create_server",
    "make_handler",
]
