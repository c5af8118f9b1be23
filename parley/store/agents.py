"""Agent name discovery from the agent definitions directory."""

import logging
from pathlib import Path
from typing import List, Optional

from ..config import DEFAULT_AGENTS

logger = logging.getLogger(__name__)


class AgentDirectory:
    """Lists known agent names: the `*.md` stems in `agents_dir`.

    Falls back to a fixed list when the directory is missing, empty or
    unreadable.
    """

    def __init__(self, agents_dir: Path, fallback: Optional[List[str]] = None):
        self.agents_dir = agents_dir
        self.fallback = list(fallback) if fallback else list(DEFAULT_AGENTS)

    def list_agent_names(self) -> List[str]:
        if not self.agents_dir.is_dir():
            logger.debug(f"Agents directory not found: {self.agents_dir}, using defaults")
            return list(self.fallback)

        try:
            names = sorted(p.stem for p in self.agents_dir.glob("*.md") if p.is_file())
        except OSError as e:
            logger.warning(f"Error reading agents directory {self.agents_dir}: {e}")
            return list(self.fallback)

        return names or list(self.fallback)
