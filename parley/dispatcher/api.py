"""
HTTP JSON API in front of the scheduler.

Routes:
    GET    /api/messages?projectId=
    POST   /api/messages                     {projectId, agent?, content, for?, attachedFiles?}
    DELETE /api/messages?projectId=
    POST   /api/process/<messageId>?projectId=
    POST   /api/retry/<messageId>?projectId=
    GET    /api/agents
    GET    /api/scheduler
    POST   /api/scheduler/clear-cache

Errors come back as {"success": false, "error": "..."} with 400 (bad
request), 404 (unknown project or message) or 409 (message in flight).
"""

import json
import logging
import re
import urllib.parse
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any, Callable, Dict, List, Optional, Tuple

from ..exceptions import InvalidRequestError, NotFoundError, ParleyError
from ..store import AgentDirectory
from .scheduler import Scheduler

logger = logging.getLogger(__name__)

MAX_BODY_BYTES = 1024 * 1024

Response = Tuple[int, Dict[str, Any]]


def _query_param(query: Dict[str, List[str]], name: str) -> Optional[str]:
    values = query.get(name)
    return values[0] if values else None


def _require_project(query: Dict[str, List[str]]) -> str:
    project_id = _query_param(query, "projectId")
    if not project_id:
        raise InvalidRequestError("projectId is required")
    return project_id


def _message_id(raw: str) -> int:
    try:
        return int(raw)
    except ValueError:
        raise InvalidRequestError(f"Invalid message id: {raw}")


def _is_names(value: Any, allow_single: bool = False) -> bool:
    """A list of strings, or (with allow_single) one string."""
    if isinstance(value, str):
        return allow_single
    return isinstance(value, list) and all(isinstance(v, str) for v in value)


class ApiRoutes:
    """Route handlers. Each returns (status, body) or raises ParleyError."""

    def __init__(self, scheduler: Scheduler, agents: AgentDirectory):
        self.scheduler = scheduler
        self.agents = agents
        self.table: List[Tuple[str, "re.Pattern[str]", Callable[..., Response]]] = [
            ("GET", re.compile(r"^/api/messages$"), self.list_messages),
            ("POST", re.compile(r"^/api/messages$"), self.create_message),
            ("DELETE", re.compile(r"^/api/messages$"), self.clear_messages),
            ("POST", re.compile(r"^/api/process/([^/]+)$"), self.process_message),
            ("POST", re.compile(r"^/api/retry/([^/]+)$"), self.retry_message),
            ("GET", re.compile(r"^/api/agents$"), self.list_agents),
            ("GET", re.compile(r"^/api/scheduler$"), self.scheduler_stats),
            ("POST", re.compile(r"^/api/scheduler/clear-cache$"), self.clear_cache),
        ]

    def dispatch(self, method: str, path: str, query: Dict[str, List[str]], body: Dict[str, Any]) -> Response:
        path_known = False
        for route_method, pattern, handler in self.table:
            match = pattern.match(path)
            if not match:
                continue
            path_known = True
            if route_method == method:
                return handler(query, body, *match.groups())
        if path_known:
            return 405, {"success": False, "error": f"Method {method} not allowed"}
        return 404, {"success": False, "error": "Not found"}

    def list_messages(self, query, body) -> Response:
        project_id = _require_project(query)
        self.scheduler.projects.get(project_id)
        messages = self.scheduler.chat_log.read_all(project_id)
        return 200, {"messages": [m.to_dict() for m in messages]}

    def create_message(self, query, body) -> Response:
        project_id = body.get("projectId") or _query_param(query, "projectId")
        if not project_id:
            raise InvalidRequestError("projectId is required")
        content = body.get("content")
        if not isinstance(content, str):
            raise InvalidRequestError("content is required")
        agent = body.get("agent")
        if agent is not None and not isinstance(agent, str):
            raise InvalidRequestError("agent must be a string")
        recipient = body.get("for") or None
        if recipient is not None and not _is_names(recipient, allow_single=True):
            raise InvalidRequestError("for must be an agent name or a list of names")
        attached = body.get("attachedFiles")
        if attached is not None and not _is_names(attached):
            raise InvalidRequestError("attachedFiles must be a list of paths")
        message = self.scheduler.post_message(
            project_id,
            content,
            agent=agent,
            recipient=recipient,
            attached_files=attached,
        )
        return 200, {"success": True, "message": message.to_dict()}

    def clear_messages(self, query, body) -> Response:
        project_id = _require_project(query)
        self.scheduler.projects.get(project_id)
        self.scheduler.chat_log.clear(project_id)
        return 200, {"success": True}

    def process_message(self, query, body, raw_id: str) -> Response:
        project_id = _require_project(query)
        message_id = _message_id(raw_id)
        self.scheduler.trigger(project_id, message_id)
        return 202, {"success": True, "status": "accepted", "messageId": message_id}

    def retry_message(self, query, body, raw_id: str) -> Response:
        project_id = _require_project(query)
        message, deleted = self.scheduler.retry(project_id, _message_id(raw_id))
        return 200, {"success": True, "message": message.to_dict(), "deletedCount": deleted}

    def list_agents(self, query, body) -> Response:
        return 200, {"agents": self.agents.list_agent_names()}

    def scheduler_stats(self, query, body) -> Response:
        return 200, self.scheduler.stats()

    def clear_cache(self, query, body) -> Response:
        self.scheduler.clear_cache()
        return 200, {"success": True}


def make_handler(routes: ApiRoutes) -> type:
    """Create a request handler bound to `routes`."""

    class ApiHandler(BaseHTTPRequestHandler):
        _routes = routes

        def log_message(self, fmt: str, *args: Any) -> None:
            logger.debug(f"{self.address_string()} {fmt % args}")

        def _send_json(self, data: Any, status: int = 200) -> None:
            body = json.dumps(data, default=str).encode("utf-8")
            self.send_response(status)
            self.send_header("Content-Type", "application/json; charset=utf-8")
            self.send_header("Content-Length", str(len(body)))
            self.send_header("Access-Control-Allow-Origin", "*")
            self.end_headers()
            self.wfile.write(body)

        def _read_json(self) -> Dict[str, Any]:
            try:
                length = int(self.headers.get("Content-Length", "0") or 0)
            except ValueError:
                raise InvalidRequestError("Invalid Content-Length header")
            if length <= 0:
                return {}
            if length > MAX_BODY_BYTES:
                raise InvalidRequestError("Request body too large")
            raw = self.rfile.read(length)
            try:
                payload = json.loads(raw.decode("utf-8"))
            except (UnicodeDecodeError, json.JSONDecodeError) as e:
                raise InvalidRequestError(f"Invalid JSON body: {e}")
            if not isinstance(payload, dict):
                raise InvalidRequestError("Request body must be a JSON object")
            return payload

        def _handle(self, method: str) -> None:
            parsed = urllib.parse.urlparse(self.path)
            query = urllib.parse.parse_qs(parsed.query)
            try:
                body = self._read_json() if method in ("POST", "DELETE") else {}
                status, data = self._routes.dispatch(method, parsed.path, query, body)
            except NotFoundError as e:
                status, data = 404, {"success": False, "error": str(e)}
            except InvalidRequestError as e:
                status, data = (409 if e.conflict else 400), {"success": False, "error": str(e)}
            except ParleyError as e:
                logger.error(f"{method} {parsed.path} failed: {e}")
                status, data = 500, {"success": False, "error": str(e)}
            except Exception:
                logger.exception(f"{method} {parsed.path} crashed")
                status, data = 500, {"success": False, "error": "Internal server error"}
            self._send_json(data, status=status)

        def do_GET(self) -> None:  # noqa: N802
            self._handle("GET")

        def do_POST(self) -> None:  # noqa: N802
            self._handle("POST")

        def do_DELETE(self) -> None:  # noqa: N802
            self._handle("DELETE")

        def do_OPTIONS(self) -> None:  # noqa: N802
            self.send_response(204)
            self.send_header("Access-Control-Allow-Origin", "*")
            self.send_header("Access-Control-Allow-Methods", "GET, POST, DELETE, OPTIONS")
            self.send_header("Access-Control-Allow-Headers", "Content-Type")
            self.end_headers()

    return ApiHandler


def create_server(scheduler: Scheduler, host: str = "127.0.0.1", port: int = 8081) -> ThreadingHTTPServer:
    """Bind the API server. The caller runs serve_forever()."""
    agents = scheduler.invoker.agents
    handler = make_handler(ApiRoutes(scheduler, agents))
    server = ThreadingHTTPServer((host, int(port)), handler)
    server.daemon_threads = True
    return server
