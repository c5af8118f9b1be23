"""
Parley - dispatch chat messages to coding agents.

This package provides:
- A polling scheduler that picks up messages addressed to agents
- Agent subprocess invocation with live thinking updates
- Extraction and repair of structured replies from agent output
- A small HTTP API and CLI around file-backed chat logs

Quick start:
    from parley import Config, Scheduler

    scheduler = Scheduler.from_config(Config.from_env())
    scheduler.start()

CLI usage:
    parley serve
    python -m parley send <project-id> "Add a health check" --for developer
"""

__version__ = "0.1.0"

from .config import Config
from .exceptions import (
    ParleyError,
    ConfigurationError,
    NotFoundError,
    InvalidRequestError,
    StorageError,
    ExecutionError,
    InvocationTimeout,
    NormalizationUnavailable,
)
from .models import Message, MessageStatus, Project, Reply, ReplyAction
from .blocks import current_block, is_block_completed
from .dispatcher import Scheduler, create_server

__all__ = [
    "__version__",
    "Config",
    "Scheduler",
    "create_server",
    "Message",
    "MessageStatus",
    "Project",
    "Reply",
    "ReplyAction",
    "current_block",
    "is_block_completed",
    "ParleyError",
    "ConfigurationError",
    "NotFoundError",
    "InvalidRequestError",
    "StorageError",
    "ExecutionError",
    "InvocationTimeout",
    "NormalizationUnavailable",
]
