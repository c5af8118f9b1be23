"""
External agent invocation.

Runs one agent CLI process per dispatched message:

    <command> <flags...> --agent=<name> [--output-format=stream-json --verbose] -p <payload-json>

The payload is passed as a single argv element (no shell), so quotes and
backticks in message content reach the agent unchanged.
"""

import json
import logging
import os
import subprocess
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Optional

from ..config import AgentConfig
from ..exceptions import ExecutionError, InvocationTimeout
from ..models import Message
from ..store import AgentDirectory
from .stream import StreamCollector

logger = logging.getLogger(__name__)

ThinkingCallback = Callable[[Optional[str]], None]


@dataclass
class InvocationPayload:
    """The JSON object handed to the agent as its prompt."""

    sender: str
    block_id: int
    context: str
    project_folder: str
    attached_files: List[str] = field(default_factory=list)
    available_agents: Optional[List[str]] = None

    def to_dict(self) -> dict:
        data = {
            "from": self.sender,
            "blockId": self.block_id,
            "context": self.context,
            "projectFolder": self.project_folder,
        }
        if self.attached_files:
            data["attachedFiles"] = list(self.attached_files)
        if self.available_agents is not None:
            data["available-agents"] = list(self.available_agents)
        return data

    def encode(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False)


@dataclass
class InvocationResult:
    """A successful agent run.

    Attributes:
        final_text: Authoritative result text (stream result event, or stdout)
        stderr_text: Everything the agent wrote to stderr
        stdout_text: Raw stdout
        exit_code: Always 0 for a result
        duration_seconds: Wall-clock run time
    """

    final_text: str
    stderr_text: str = ""
    stdout_text: str = ""
    exit_code: int = 0
    duration_seconds: float = 0.0

    def __str__(self) -> str:
        return f"InvocationResult(exit={self.exit_code}, {self.duration_seconds:.1f}s, {len(self.final_text)} chars)"


class _PipeReader(threading.Thread):
    """Drains one pipe line by line, optionally feeding a StreamCollector."""

    def __init__(self, pipe, collector: Optional[StreamCollector] = None):
        super().__init__(daemon=True)
        self.pipe = pipe
        self.collector = collector
        self.chunks: List[bytes] = []

    def run(self):
        try:
            for raw in iter(self.pipe.readline, b""):
                self.chunks.append(raw)
                if self.collector is not None:
                    self.collector.feed(raw.decode("utf-8", errors="replace"))
        except (OSError, ValueError) as e:
            logger.debug(f"Pipe reader stopped: {e}")

    @property
    def text(self) -> str:
        return b"".join(self.chunks).decode("utf-8", errors="replace")


class AgentInvoker:
    """Builds and runs the agent subprocess for one message.

    Usage:
        invoker = AgentInvoker(config.agent, AgentDirectory(config.agent.agents_dir))
        result = invoker.run(message, project_dir, on_thinking=update_message)
    """

    def __init__(self, config: AgentConfig, agents: Optional[AgentDirectory] = None):
        self.config = config
        self.agents = agents or AgentDirectory(config.agents_dir, config.fallback_agents)

    @property
    def streaming(self) -> bool:
        return self.config.output_format == "stream-json"

    def resolve_agent(self, message: Message) -> str:
        """Target agent: first recipient, or the configured default."""
        return message.primary_recipient or self.config.default_agent

    def build_payload(self, message: Message, project_dir: Path) -> InvocationPayload:
        agent = self.resolve_agent(message)
        available = None
        if agent == self.config.coordinator:
            available = self.agents.list_agent_names()
        return InvocationPayload(
            sender=message.agent,
            block_id=message.block_id or 0,
            context=message.content,
            project_folder=str(project_dir),
            attached_files=list(message.attached_files),
            available_agents=available,
        )

    def build_command(self, agent: str, payload: InvocationPayload) -> List[str]:
        cmd = [*self.config.command, *self.config.flags, f"--agent={agent}"]
        if self.streaming:
            cmd.extend(["--output-format=stream-json", "--verbose"])
        cmd.extend(["-p", payload.encode()])
        return cmd

    def run(
        self,
        message: Message,
        project_dir: Path,
        on_thinking: Optional[ThinkingCallback] = None,
    ) -> InvocationResult:
        """Run the agent for `message` in `project_dir`.

        Args:
            message: The dispatched message
            project_dir: Working directory of the message's project
            on_thinking: Called with accumulated thinking text while the
                agent streams, and with None when the final result arrives

        Returns:
            InvocationResult on exit code 0

        Raises:
            ExecutionError: If the agent cannot start or exits non-zero
            InvocationTimeout: If the agent outlives the configured timeout
        """
        project_dir = Path(project_dir)
        if not project_dir.is_dir():
            raise ExecutionError(f"Project folder does not exist: {project_dir}")

        agent = self.resolve_agent(message)
        payload = self.build_payload(message, project_dir)
        cmd = self.build_command(agent, payload)
        timeout = self.config.timeout_seconds

        logger.info(f"Running agent '{agent}' for message {message.id} in {project_dir}")
        logger.debug(f"Command: {cmd[:-1]} <payload {len(cmd[-1])} chars>")

        start_time = time.time()
        try:
            process = subprocess.Popen(
                cmd,
                cwd=project_dir,
                env={**os.environ, "PWD": str(project_dir)},
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
            )
        except FileNotFoundError:
            raise ExecutionError(f"Agent executable not found: {self.config.command[0]}")
        except OSError as e:
            raise ExecutionError(f"Agent failed to start: {e}")

        collector = StreamCollector(on_thinking) if self.streaming else None
        stdout_reader = _PipeReader(process.stdout, collector)
        stderr_reader = _PipeReader(process.stderr)
        stdout_reader.start()
        stderr_reader.start()

        try:
            exit_code = process.wait(timeout=timeout)
        except subprocess.TimeoutExpired:
            self._kill(process)
            self._join(stdout_reader, stderr_reader)
            logger.error(f"Agent '{agent}' timed out after {timeout}s (message {message.id})")
            raise InvocationTimeout(
                f"Agent execution timed out after {timeout}s",
                stdout=stdout_reader.text,
                stderr=stderr_reader.text,
            )

        self._join(stdout_reader, stderr_reader)
        duration = time.time() - start_time
        stdout, stderr = stdout_reader.text, stderr_reader.text

        logger.debug(
            f"Agent '{agent}' finished: exit={exit_code}, "
            f"stdout={len(stdout)} chars, stderr={len(stderr)} chars, duration={duration:.1f}s"
        )

        if exit_code != 0:
            raise ExecutionError(
                f"Agent exited with code {exit_code}",
                stdout=stdout,
                stderr=stderr,
                exit_code=exit_code,
            )

        final_text = stdout
        if collector is not None and collector.final_result is not None:
            final_text = collector.final_result

        return InvocationResult(
            final_text=final_text,
            stderr_text=stderr,
            stdout_text=stdout,
            exit_code=exit_code,
            duration_seconds=duration,
        )

    def _kill(self, process: subprocess.Popen) -> None:
        """terminate, then kill after the grace period."""
        process.terminate()
        try:
            process.wait(timeout=self.config.kill_grace_seconds)
        except subprocess.TimeoutExpired:
            process.kill()
            process.wait()

    def _join(self, *readers: _PipeReader) -> None:
        for reader in readers:
            reader.join(timeout=self.config.kill_grace_seconds or 1.0)
