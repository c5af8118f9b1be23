"""
Output interpretation for parley.

Turns raw agent output into Reply items:
- SyntacticInterpreter: find, repair and parse embedded JSON in-process
- OllamaInterpreter: ask a local model to echo the embedded JSON
"""

from ..config import InterpreterConfig
from .base import OutputInterpreter, replies_from_value
from .repair import repair_json
from .syntactic import SyntacticInterpreter, extract_json, find_json_candidates
from .ollama import OllamaClient, OllamaInterpreter, INVALID_SENTINEL


def create_interpreter(config: InterpreterConfig) -> OutputInterpreter:
    """Build the interpreter selected by `config.strategy`."""
    if config.strategy == "ollama":
        return OllamaInterpreter(config)
    return SyntacticInterpreter()


__all__ = [
    "OutputInterpreter",
    "SyntacticInterpreter",
    "OllamaInterpreter",
    "OllamaClient",
    "INVALID_SENTINEL",
    "create_interpreter",
    "extract_json",
    "find_json_candidates",
    "repair_json",
    "replies_from_value",
]
