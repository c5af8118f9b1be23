"""Shared fixtures for parley tests."""

import json
import sys
from concurrent.futures import wait
from pathlib import Path

import pytest

from parley.config import AgentConfig, Config, SchedulerConfig, StorageConfig
from parley.dispatcher import Scheduler, SeenLedger
from parley.eventlog import EventLog
from parley.execution import AgentInvoker
from parley.interpreter import SyntacticInterpreter
from parley.models import Message, MessageStatus
from parley.store import AgentDirectory, ChatLog, ProjectRegistry


# Stand-in for the agent CLI. Records each invocation in the project
# folder, then answers according to the context it was given:
#   FAIL...      -> "boom" on stderr, exit 3
#   SLEEP...     -> hang (for timeout tests)
#   REPLY:<text> -> prints <text>
#   anything else -> prints "Fixed."
FAKE_AGENT = r'''
import json
import sys
import time

args = sys.argv[1:]
payload = json.loads(args[args.index("-p") + 1])
agent = [a.split("=", 1)[1] for a in args if a.startswith("--agent=")][0]

with open("invocations.jsonl", "a") as f:
    f.write(json.dumps({"agent": agent, "args": args[:-1], "payload": payload}) + "\n")

context = payload["context"]
if context.startswith("FAIL"):
    sys.stderr.write("boom\n")
    sys.exit(3)
if context.startswith("SLEEP"):
    time.sleep(30)

answer = context[len("REPLY:"):] if context.startswith("REPLY:") else "Fixed."

if "--output-format=stream-json" in args:
    print(json.dumps({"type": "system", "subtype": "init"}))
    print("this line is not json")
    print(json.dumps({"type": "assistant", "message": {"content": [
        {"type": "thinking", "thinking": "Looking at it"}]}}))
    sys.stdout.flush()
    print(json.dumps({"type": "stream_event", "event": {
        "type": "content_block_delta", "delta": {"type": "text_delta", "text": "..."}}}))
    print(json.dumps({"type": "result", "result": answer}))
else:
    sys.stdout.write(answer)
'''


@pytest.fixture
def fake_agent(tmp_path) -> Path:
    """Path to the fake agent script."""
    script = tmp_path / "fake_agent.py"
    script.write_text(FAKE_AGENT)
    return script


@pytest.fixture
def agents_dir(tmp_path) -> Path:
    """Agent definitions folder with two agents."""
    folder = tmp_path / "agents"
    folder.mkdir()
    (folder / "project-manager.md").write_text("# PM")
    (folder / "developer.md").write_text("# Dev")
    return folder


@pytest.fixture
def config(tmp_path, fake_agent, agents_dir) -> Config:
    """Config pointing at tmp storage and the fake agent."""
    return Config(
        agent=AgentConfig(
            command=[sys.executable, str(fake_agent)],
            flags=["--permission-mode=bypassPermissions"],
            timeout_seconds=15,
            kill_grace_seconds=2,
            agents_dir=agents_dir,
        ),
        scheduler=SchedulerConfig(tick_interval=0.05, max_workers=4),
        storage=StorageConfig(data_dir=tmp_path / "data"),
    )


@pytest.fixture
def chat_log(config) -> ChatLog:
    return ChatLog(config.storage.projects_dir)


@pytest.fixture
def registry(config) -> ProjectRegistry:
    return ProjectRegistry(config.storage.projects_file, config.storage.projects_dir)


@pytest.fixture
def project(registry, tmp_path):
    """A registered project with its own working folder."""
    return registry.create("Test Project", folder=tmp_path / "work")


@pytest.fixture
def make_scheduler(config, chat_log, registry):
    """Factory for schedulers sharing the fixture stores."""
    created = []

    def _make(cfg: Config = None, invoker=None, interpreter=None) -> Scheduler:
        cfg = cfg or config
        scheduler = Scheduler(
            config=cfg,
            chat_log=chat_log,
            projects=registry,
            invoker=invoker or AgentInvoker(cfg.agent, AgentDirectory(cfg.agent.agents_dir)),
            interpreter=interpreter or SyntacticInterpreter(),
            event_log=EventLog(cfg.storage.log_dir),
            ledger=SeenLedger(),
        )
        created.append(scheduler)
        return scheduler

    yield _make
    for scheduler in created:
        scheduler.stop()


@pytest.fixture
def scheduler(make_scheduler) -> Scheduler:
    return make_scheduler()


@pytest.fixture
def add_message(chat_log, project):
    """Append a message to the fixture project's log."""

    def _add(content: str, recipient=None, agent: str = "user", **fields) -> Message:
        message = Message(
            id=chat_log.ids.next(),
            agent=agent,
            content=content,
            recipient=recipient,
            status=fields.pop("status", MessageStatus.WAITING if recipient else None),
            extra={"projectId": project.id},
            **fields,
        )
        return chat_log.append(project.id, message)

    return _add


def run_tick(scheduler: Scheduler) -> int:
    """One tick, waiting for every dispatch it started. Returns the count."""
    futures = scheduler.tick()
    wait(futures, timeout=30)
    for future in futures:
        future.result()
    return len(futures)


def read_invocations(project_dir: Path) -> list:
    path = project_dir / "invocations.jsonl"
    if not path.exists():
        return []
    return [json.loads(line) for line in path.read_text().splitlines() if line.strip()]
