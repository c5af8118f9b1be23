"""
Block number detection from marker files.

A project's blocks live in `<workdir>/block/<n>.md`. The current block is
the highest-numbered marker, or the one after it once that marker says
`Status: COMPLETED` (or CLOSED / DONE, any case).

Never raises: read failures degrade to the best number known so far.
"""

import logging
import re
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

BLOCK_DIR_NAME = "block"
MARKER_PATTERN = re.compile(r"^(\d+)\.md$")
COMPLETED_PATTERN = re.compile(r"Status:\s*(COMPLETED|CLOSED|DONE)", re.IGNORECASE)


def block_dir(project_dir: Path) -> Path:
    return Path(project_dir) / BLOCK_DIR_NAME


def _is_completed(text: str) -> bool:
    return COMPLETED_PATTERN.search(text) is not None


def current_block(project_dir: Optional[Path]) -> int:
    """Current block number for a project working directory.

    Returns:
        0 when there is no block storage or no marker file;
        n for the highest marker n without a completion token;
        n + 1 when that marker is completed.
    """
    if not project_dir:
        return 0

    folder = block_dir(project_dir)
    if not folder.is_dir():
        return 0

    try:
        numbers = [
            int(match.group(1))
            for entry in folder.iterdir()
            if (match := MARKER_PATTERN.match(entry.name))
        ]
    except OSError as e:
        logger.error(f"Error reading block folder {folder}: {e}")
        return 0

    if not numbers:
        return 0

    last = max(numbers)
    try:
        content = (folder / f"{last}.md").read_text(encoding="utf-8", errors="replace")
    except OSError as e:
        logger.error(f"Error reading block file {last}.md in {folder}: {e}")
        return last

    return last + 1 if _is_completed(content) else last


def is_block_completed(project_dir: Optional[Path], block_id: int) -> bool:
    """Whether marker `block_id` exists and carries a completion token."""
    if not project_dir or block_id == 0:
        return False

    marker = block_dir(project_dir) / f"{block_id}.md"
    if not marker.is_file():
        return False

    try:
        return _is_completed(marker.read_text(encoding="utf-8", errors="replace"))
    except OSError as e:
        logger.error(f"Error checking block completion for {marker}: {e}")
        return False


def ensure_block_dir(project_dir: Optional[Path]) -> None:
    """Create the block folder if it doesn't exist."""
    if not project_dir:
        return
    block_dir(project_dir).mkdir(parents=True, exist_ok=True)
