"""
Abstract output interpreter.

An interpreter turns the raw text an agent printed into zero, one or
many Reply items. Interpreters never raise on bad input: when nothing
structured can be found they return the whole text as one plain reply.
"""

from abc import ABC, abstractmethod
from typing import Any, List, Optional

from ..models import Reply


def replies_from_value(value: Any) -> Optional[List[Reply]]:
    """Replies for a parsed JSON value.

    An object is one reply; an array is one reply per element, in order.
    Any other value is not a structured reply (None).
    """
    if isinstance(value, dict):
        return [Reply.from_value(value)]
    if isinstance(value, list):
        return [Reply.from_value(item) for item in value]
    return None


class OutputInterpreter(ABC):
    """Base class for output interpreters.

    Concrete implementations:
    - SyntacticInterpreter: locate and repair JSON in-process
    - OllamaInterpreter: delegate extraction to a local Ollama model
    """

    name = "base"

    @abstractmethod
    def interpret(self, raw_text: str) -> List[Reply]:
        """Extract replies from raw agent output.

        Args:
            raw_text: Everything the agent printed as its result

        Returns:
            Structured replies (none for an empty array), or
            [Reply.plain(raw_text)] when no JSON is found
        """
        pass
