"""Ollama-backed JSON extraction.

A small local model is asked to echo back only the JSON embedded in the
agent's output (or the INVALID_JSON sentinel). When the service is down
the interpreter degrades to syntactic extraction.
"""

import json
import logging
from dataclasses import dataclass
from typing import List, Optional

import httpx

from ..config import InterpreterConfig
from ..exceptions import NormalizationUnavailable
from ..models import Reply
from .base import OutputInterpreter, replies_from_value
from .syntactic import SyntacticInterpreter, extract_json

logger = logging.getLogger(__name__)

INVALID_SENTINEL = "INVALID_JSON"


@dataclass
class ChatResult:
    """Result from an Ollama chat call."""
    content: str
    model: str


class OllamaClient:
    """Minimal Ollama API client (non-streaming /api/chat, /api/tags)."""

    def __init__(
        self,
        base_url: str,
        model: str,
        timeout: float = 60.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.timeout = timeout
        self._transport = transport

    def _client(self, timeout: float) -> httpx.Client:
        return httpx.Client(timeout=timeout, transport=self._transport)

    def chat(self, system: str, user: str) -> ChatResult:
        """Send one system + user exchange and return the reply.

        Raises:
            NormalizationUnavailable: On network errors, timeouts, HTTP
                errors or a malformed response
        """
        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
            "stream": False,
        }

        try:
            with self._client(self.timeout) as client:
                response = client.post(f"{self.base_url}/api/chat", json=payload)
                response.raise_for_status()
                data = response.json()
        except httpx.TimeoutException:
            raise NormalizationUnavailable(f"Ollama timed out after {self.timeout}s")
        except httpx.HTTPStatusError as e:
            raise NormalizationUnavailable(f"Ollama API error: {e.response.status_code}")
        except httpx.RequestError as e:
            raise NormalizationUnavailable(f"Cannot connect to Ollama at {self.base_url}: {e}")
        except ValueError as e:
            raise NormalizationUnavailable(f"Ollama returned invalid JSON: {e}")

        content = (data.get("message") or {}).get("content") if isinstance(data, dict) else None
        if not isinstance(content, str):
            raise NormalizationUnavailable("Invalid Ollama response structure")

        return ChatResult(content=content, model=data.get("model", self.model))

    def is_available(self) -> bool:
        """Liveness check: GET /api/tags answers 200."""
        try:
            with self._client(5.0) as client:
                return client.get(f"{self.base_url}/api/tags").status_code == 200
        except httpx.HTTPError as e:
            logger.debug(f"Ollama not available: {e}")
            return False


class OllamaInterpreter(OutputInterpreter):
    """Strategy B: delegated normalization through Ollama."""

    name = "ollama"

    def __init__(
        self,
        config: InterpreterConfig,
        client: Optional[OllamaClient] = None,
        fallback: Optional[OutputInterpreter] = None,
    ):
        self.config = config
        self.client = client or OllamaClient(
            config.ollama_url,
            config.ollama_model,
            timeout=config.ollama_timeout_seconds,
        )
        self.fallback = fallback or SyntacticInterpreter()

    def interpret(self, raw_text: str) -> List[Reply]:
        try:
            result = self.client.chat(self.config.system_prompt, raw_text)
        except NormalizationUnavailable as e:
            logger.warning(f"{e}; falling back to syntactic extraction")
            return self.fallback.interpret(raw_text)

        echoed = result.content.strip()
        if not echoed or echoed == INVALID_SENTINEL:
            logger.debug("Normalizer found no JSON, using raw text")
            return [Reply.plain(raw_text)]

        try:
            value = json.loads(echoed)
        except json.JSONDecodeError:
            # Small models sometimes wrap the echo in prose or code fences
            value = extract_json(echoed)

        replies = replies_from_value(value)
        if replies is None:
            logger.debug("Normalizer echo was not a JSON object or array, using raw text")
            return [Reply.plain(raw_text)]
        return replies
