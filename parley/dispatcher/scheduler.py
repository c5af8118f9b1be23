"""
Dispatch scheduler.

Polls every active project's chat log on a fixed tick, hands each newly
qualifying message to a worker thread, and drives the message through

    waiting -> processing -> completed | error

One message's failure is recorded in its project's log and never stops
the tick loop or other dispatches.
"""

import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Dict, List, Optional, Set, Tuple

from ..config import Config
from ..eventlog import NULL_EVENT_LOG, EventLog
from ..exceptions import ExecutionError, InvalidRequestError, InvocationTimeout, NotFoundError, ParleyError
from ..execution import AgentInvoker
from ..interpreter import OutputInterpreter, create_interpreter
from ..models import Message, MessageStatus, Project, Recipient
from ..store import AgentDirectory, ChatLog, ProjectRegistry
from .actions import ReplyWriter
from .ledger import SeenLedger

logger = logging.getLogger(__name__)

Key = Tuple[str, int]


class Scheduler:
    """Polling dispatcher for agent-addressed messages.

    Usage:
        scheduler = Scheduler.from_config(config)
        scheduler.start()
        ...
        scheduler.stop()

    `tick()` can also be driven by hand; it returns the futures of the
    dispatches it started.
    """

    def __init__(
        self,
        config: Config,
        chat_log: ChatLog,
        projects: ProjectRegistry,
        invoker: AgentInvoker,
        interpreter: OutputInterpreter,
        event_log: EventLog = NULL_EVENT_LOG,
        ledger: Optional[SeenLedger] = None,
    ):
        self.config = config
        self.chat_log = chat_log
        self.projects = projects
        self.invoker = invoker
        self.interpreter = interpreter
        self.event_log = event_log
        self.ledger = ledger or SeenLedger()
        self.writer = ReplyWriter(
            chat_log,
            user_name=config.scheduler.user_name,
            system_name=config.scheduler.system_name,
            default_agent=config.agent.default_agent,
        )

        self._executor: Optional[ThreadPoolExecutor] = None
        self._executor_lock = threading.Lock()
        self._in_flight: Set[Key] = set()
        self._flight_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @classmethod
    def from_config(cls, config: Config, event_log: Optional[EventLog] = None) -> "Scheduler":
        """Wire the file-backed stores, invoker and interpreter from config."""
        chat_log = ChatLog(config.storage.projects_dir)
        projects = ProjectRegistry(config.storage.projects_file, config.storage.projects_dir)
        agents = AgentDirectory(config.agent.agents_dir, config.agent.fallback_agents)
        return cls(
            config=config,
            chat_log=chat_log,
            projects=projects,
            invoker=AgentInvoker(config.agent, agents),
            interpreter=create_interpreter(config.interpreter),
            event_log=event_log or EventLog(config.storage.log_dir),
        )

    # --- lifecycle ---

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.is_running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run_loop, name="parley-scheduler", daemon=True)
        self._thread.start()
        logger.info(
            f"Scheduler started (tick {self.config.scheduler.tick_interval}s, "
            f"policy {self.config.scheduler.failure_policy})"
        )
        self.event_log.log_event("scheduler_start")

    def stop(self, wait: bool = True) -> None:
        """Stop ticking. With `wait`, block until in-flight dispatches end."""
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join()
            self._thread = None
        with self._executor_lock:
            if self._executor is not None:
                self._executor.shutdown(wait=wait)
                self._executor = None
        logger.info("Scheduler stopped")
        self.event_log.log_event("scheduler_stop")

    def _run_loop(self) -> None:
        interval = self.config.scheduler.tick_interval
        next_tick = time.monotonic()
        while not self._stop_event.is_set():
            try:
                self.tick()
            except Exception:
                logger.exception("Scheduler tick failed")
            next_tick += interval
            delay = next_tick - time.monotonic()
            if delay < 0:
                # Fell behind; don't try to catch up with a burst of ticks
                next_tick = time.monotonic()
                delay = 0
            self._stop_event.wait(delay)

    def _pool(self) -> ThreadPoolExecutor:
        with self._executor_lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(
                    max_workers=self.config.scheduler.max_workers,
                    thread_name_prefix="parley-dispatch",
                )
            return self._executor

    # --- scanning ---

    def needs_dispatch(self, message: Message, answered: Set[int]) -> bool:
        """Whether `message` is addressed to an agent and still unanswered."""
        target = message.primary_recipient
        if not target or target == self.config.scheduler.user_name:
            return False
        if message.status in (MessageStatus.PROCESSING, MessageStatus.COMPLETED):
            return False
        return message.id not in answered

    def tick(self) -> List[Future]:
        """Scan all active projects once. Returns the dispatches started."""
        futures: List[Future] = []
        try:
            projects = self.projects.list_active()
        except ParleyError as e:
            logger.error(f"Could not list projects: {e}")
            return futures

        for project in projects:
            try:
                futures.extend(self._scan_project(project))
            except ParleyError as e:
                logger.error(f"Error scanning project {project.id}: {e}")
            except Exception:
                logger.exception(f"Unexpected error scanning project {project.id}")
        return futures

    def _scan_project(self, project: Project) -> List[Future]:
        futures = []
        messages = self.chat_log.read_all(project.id)
        answered = {m.in_reply_to for m in messages if m.in_reply_to is not None}
        for message in messages:
            # Every message is marked on first sight, qualifying or not
            if not self.ledger.claim(project.id, message.id):
                continue
            if not self.needs_dispatch(message, answered):
                continue
            future = self._submit(project, message)
            if future is not None:
                futures.append(future)
        return futures

    def _submit(self, project: Project, message: Message) -> Optional[Future]:
        key = (project.id, message.id)
        with self._flight_lock:
            if key in self._in_flight:
                return None
            self._in_flight.add(key)
        attempt = self.ledger.record_attempt(project.id, message.id)
        logger.info(f"Dispatching message {message.id} in project {project.id} (attempt {attempt})")
        try:
            return self._pool().submit(self._run_dispatch, project, message, attempt)
        except RuntimeError:
            with self._flight_lock:
                self._in_flight.discard(key)
            raise

    # --- handling ---

    def _run_dispatch(self, project: Project, message: Message, attempt: int) -> None:
        rearm = False
        try:
            rearm = self.process_message(project, message, attempt)
        finally:
            with self._flight_lock:
                self._in_flight.discard((project.id, message.id))
            if rearm:
                self.ledger.release(project.id, message.id)

    def process_message(self, project: Project, message: Message, attempt: int = 1) -> bool:
        """Handle one dispatched message end to end.

        Never raises. Returns True when the message should be picked up
        again on a later tick (auto-retry after a failure).
        """
        self.event_log.log_event(
            "dispatch_start", project.id, message.id, extra={"agent": message.primary_recipient, "attempt": attempt}
        )
        try:
            self._set_status(project.id, message.id, MessageStatus.PROCESSING)
            result = self.invoker.run(
                message,
                project.working_dir,
                on_thinking=lambda text: self._set_thinking(project.id, message.id, text),
            )
            replies = self.interpreter.interpret(result.final_text.strip())
            for reply in replies:
                self.writer.apply(project, message, reply)
            self._set_status(project.id, message.id, MessageStatus.COMPLETED)
        except InvocationTimeout as e:
            return self._record_failure(project, message, e, attempt, "dispatch_timeout")
        except ExecutionError as e:
            return self._record_failure(project, message, e, attempt, "dispatch_error")
        except Exception as e:
            logger.exception(f"Unexpected error handling message {message.id}")
            return self._record_failure(project, message, ExecutionError(str(e)), attempt, "dispatch_error")

        logger.info(
            f"Message {message.id} completed: {len(replies)} repl{'y' if len(replies) == 1 else 'ies'} "
            f"in {result.duration_seconds:.1f}s"
        )
        self.event_log.log_event(
            "dispatch_ok", project.id, message.id,
            extra={"replies": len(replies), "duration_seconds": round(result.duration_seconds, 2)},
        )
        self.ledger.reset_attempts(project.id, message.id)
        return False

    def _record_failure(
        self,
        project: Project,
        message: Message,
        error: ExecutionError,
        attempt: int,
        event: str,
    ) -> bool:
        """Write the system error reply and mark the message `error`."""
        policy = self.config.scheduler
        rearm = policy.failure_policy == "auto-retry" and attempt < policy.max_attempts
        text = error.describe()
        logger.error(f"Message {message.id} failed (attempt {attempt}): {error.reason}")

        try:
            self.writer.post_error(project, message, text, linked=not rearm, attempt=attempt if rearm else None)
            self._set_status(project.id, message.id, MessageStatus.ERROR)
        except ParleyError as e:
            logger.error(f"Could not record failure of message {message.id}: {e}")
            rearm = False

        self.event_log.log_event(
            event, project.id, message.id, result="error", error=text,
            extra={"attempt": attempt, "rearmed": rearm},
        )
        return rearm

    def _set_status(self, project_id: str, message_id: int, status: MessageStatus) -> None:
        def mutate(message: Message) -> None:
            message.status = status
            if status.is_terminal:
                message.thinking = None

        if self.chat_log.update(project_id, message_id, mutate) is None:
            logger.warning(f"Message {message_id} vanished from project {project_id}")

    def _set_thinking(self, project_id: str, message_id: int, text: Optional[str]) -> None:
        def mutate(message: Message) -> None:
            message.thinking = text

        self.chat_log.update(project_id, message_id, mutate)

    # --- operations behind the API ---

    def trigger(self, project_id: str, message_id: int) -> Future:
        """Dispatch one message now, regardless of eligibility.

        Returns as soon as the work is queued.

        Raises:
            NotFoundError: Unknown project or message
            InvalidRequestError: The message is already being handled
        """
        project = self.projects.get(project_id)
        message = self.chat_log.find_by_id(project_id, message_id)
        if message is None:
            raise NotFoundError(f"Message {message_id} not found in project {project_id}")

        # Mark first so a concurrent tick doesn't pick it up as well
        self.ledger.claim(project_id, message_id)
        future = self._submit(project, message)
        if future is None:
            raise InvalidRequestError(f"Message {message_id} is already being processed", conflict=True)
        self.event_log.log_event("trigger", project_id, message_id)
        return future

    def retry(self, project_id: str, message_id: int) -> Tuple[Message, int]:
        """Reset a message to `waiting` and drop everything after it.

        Returns:
            (updated message, number of deleted messages)

        Raises:
            NotFoundError: Unknown project or message
            InvalidRequestError: Message has no recipient, or is in flight
        """
        self.projects.get(project_id)

        def mutate(message: Message) -> None:
            message.status = MessageStatus.WAITING
            message.thinking = None
            message.in_reply_to = None

        with self.chat_log.lock(project_id):
            message = self.chat_log.find_by_id(project_id, message_id)
            if message is None:
                raise NotFoundError(f"Message {message_id} not found in project {project_id}")
            if not message.primary_recipient:
                raise InvalidRequestError(f"Message {message_id} has no recipient to retry")
            with self._flight_lock:
                if (project_id, message_id) in self._in_flight:
                    raise InvalidRequestError(
                        f"Message {message_id} is still being processed", conflict=True
                    )
            deleted = self.chat_log.truncate_after(project_id, message_id)
            updated = self.chat_log.update(project_id, message_id, mutate)

        self.ledger.reset_attempts(project_id, message_id)
        self.ledger.release(project_id, message_id)
        logger.info(f"Retry of message {message_id} in {project_id}: {deleted} later message(s) deleted")
        self.event_log.log_event("retry", project_id, message_id, extra={"deleted_count": deleted})
        return updated, deleted

    def post_message(
        self,
        project_id: str,
        content: str,
        agent: Optional[str] = None,
        recipient: Optional[Recipient] = None,
        attached_files: Optional[List[str]] = None,
    ) -> Message:
        """Append a new message (normally from the human user).

        Messages addressed to an agent are created `waiting` and get
        dispatched on the next tick.
        """
        project = self.projects.get(project_id)
        message = self.writer.new_message(
            project,
            agent=agent or self.config.scheduler.user_name,
            content=content,
            recipient=recipient,
            attached_files=attached_files,
        )
        return self.chat_log.append(project_id, message)

    def stats(self) -> Dict[str, Any]:
        with self._flight_lock:
            in_flight = len(self._in_flight)
        return {
            "is_running": self.is_running,
            "seen_count": len(self.ledger),
            "in_flight": in_flight,
            "failure_policy": self.config.scheduler.failure_policy,
        }

    def clear_cache(self) -> None:
        """Forget every seen mark. Messages are re-evaluated on the next tick.

        In-flight messages are `processing` and so stay ineligible.
        """
        self.ledger.clear()
        logger.info("Scheduler cache cleared")
