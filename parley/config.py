"""
Configuration management for parley.

Supports:
- Programmatic configuration via dataclasses
- YAML file loading
- Environment variable overrides (with .env support)
- Sensible defaults for all settings
"""

from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Optional, Any, Dict, List
import os

import yaml
from dotenv import load_dotenv

from .exceptions import ConfigurationError

OUTPUT_FORMATS = ("text", "stream-json")
FAILURE_POLICIES = ("manual", "auto-retry")
STRATEGIES = ("syntactic", "ollama")

DEFAULT_AGENT_FLAGS = [
    "--permission-mode=bypassPermissions",
    "--tools=default",
    "--allow-dangerously-skip-permissions",
]

DEFAULT_AGENTS = ["project-manager", "lead-developer", "developer", "tester"]

DEFAULT_SYSTEM_PROMPT = (
    "You are a strict JSON echo tool. Return ONLY the exact JSON string from "
    "the user's last message, byte-for-byte identical. Do not add, remove, "
    "reorder, normalize, pretty-print, wrap, or fix anything. No extra keys, "
    "no metadata, no commentary, no code fences. If the input does not contain "
    "JSON, output exactly: INVALID_JSON"
)


def _as_path(value) -> Path:
    return Path(os.path.expanduser(str(value)))


def _env_number(name: str, value: str, convert):
    try:
        return convert(value)
    except ValueError:
        raise ConfigurationError(f"Invalid {name}: {value!r} is not a number")


@dataclass
class AgentConfig:
    """Configuration for the external agent executable."""

    command: List[str] = field(default_factory=lambda: ["claude"])
    flags: List[str] = field(default_factory=lambda: list(DEFAULT_AGENT_FLAGS))
    output_format: str = "text"  # text, stream-json
    timeout_seconds: float = 1800
    kill_grace_seconds: float = 5.0
    default_agent: str = "developer"
    coordinator: str = "project-manager"
    agents_dir: Path = field(
        default_factory=lambda: Path.home() / ".claude" / "agents"
    )
    fallback_agents: List[str] = field(default_factory=lambda: list(DEFAULT_AGENTS))

    def __post_init__(self):
        if isinstance(self.command, str):
            self.command = [self.command]
        self.agents_dir = _as_path(self.agents_dir)

        if not self.command:
            raise ConfigurationError("agent command cannot be empty")
        if self.output_format not in OUTPUT_FORMATS:
            raise ConfigurationError(
                f"output_format must be one of {', '.join(OUTPUT_FORMATS)}"
            )
        if self.timeout_seconds <= 0:
            raise ConfigurationError("timeout_seconds must be positive")
        if self.kill_grace_seconds < 0:
            raise ConfigurationError("kill_grace_seconds cannot be negative")


@dataclass
class SchedulerConfig:
    """Configuration for the dispatch scheduler."""

    tick_interval: float = 0.1
    max_workers: int = 8
    failure_policy: str = "manual"  # manual, auto-retry
    max_attempts: int = 3
    user_name: str = "user"
    system_name: str = "system"

    def __post_init__(self):
        if self.tick_interval <= 0:
            raise ConfigurationError("tick_interval must be positive")
        if self.max_workers <= 0:
            raise ConfigurationError("max_workers must be positive")
        if self.failure_policy not in FAILURE_POLICIES:
            raise ConfigurationError(
                f"failure_policy must be one of {', '.join(FAILURE_POLICIES)}"
            )
        if self.max_attempts <= 0:
            raise ConfigurationError("max_attempts must be positive")


@dataclass
class InterpreterConfig:
    """Configuration for turning agent output into replies."""

    strategy: str = "syntactic"  # syntactic, ollama
    ollama_url: str = "http://localhost:11434"
    ollama_model: str = "erukude/omni-json:1b"
    ollama_timeout_seconds: float = 60.0
    system_prompt: str = DEFAULT_SYSTEM_PROMPT

    def __post_init__(self):
        if self.strategy not in STRATEGIES:
            raise ConfigurationError(
                f"strategy must be one of {', '.join(STRATEGIES)}"
            )
        if self.ollama_timeout_seconds <= 0:
            raise ConfigurationError("ollama_timeout_seconds must be positive")


@dataclass
class StorageConfig:
    """Where projects, chat logs and event logs live."""

    data_dir: Path = field(default_factory=lambda: Path.home() / ".parley")

    def __post_init__(self):
        self.data_dir = _as_path(self.data_dir)

    @property
    def projects_file(self) -> Path:
        return self.data_dir / "projects.json"

    @property
    def projects_dir(self) -> Path:
        return self.data_dir / "projects"

    @property
    def log_dir(self) -> Path:
        return self.data_dir / "logs"


@dataclass
class ServerConfig:
    """HTTP API settings."""

    host: str = "127.0.0.1"
    port: int = 8081

    def __post_init__(self):
        try:
            self.port = int(self.port)
        except (TypeError, ValueError):
            raise ConfigurationError(f"port must be an integer, got {self.port!r}")
        if not 0 <= self.port <= 65535:
            raise ConfigurationError("port must be between 0 and 65535")


@dataclass
class Config:
    """Master configuration for parley.

    Example usage:
        # Defaults
        config = Config.default()

        # From file
        config = Config.from_yaml(Path("parley.yaml"))

        # Programmatic
        config = Config(
            agent=AgentConfig(timeout_seconds=600),
            scheduler=SchedulerConfig(failure_policy="auto-retry"),
        )
    """

    agent: AgentConfig = field(default_factory=AgentConfig)
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)
    interpreter: InterpreterConfig = field(default_factory=InterpreterConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    server: ServerConfig = field(default_factory=ServerConfig)

    @classmethod
    def from_yaml(cls, path: Path) -> "Config":
        """Load configuration from YAML file.

        Args:
            path: Path to YAML configuration file

        Returns:
            Config instance

        Raises:
            ConfigurationError: If file not found or invalid
        """
        if not path.exists():
            raise ConfigurationError(f"Config file not found: {path}")

        try:
            with open(path) as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {path}: {e}")

        if not isinstance(data, dict):
            raise ConfigurationError(f"Config root must be a mapping: {path}")

        return cls._from_dict(data)

    @classmethod
    def _from_dict(cls, data: Dict[str, Any]) -> "Config":
        """Create Config from dictionary."""
        try:
            return cls(
                agent=AgentConfig(**data.get("agent", {})),
                scheduler=SchedulerConfig(**data.get("scheduler", {})),
                interpreter=InterpreterConfig(**data.get("interpreter", {})),
                storage=StorageConfig(**data.get("storage", {})),
                server=ServerConfig(**data.get("server", {})),
            )
        except TypeError as e:
            raise ConfigurationError(f"Unknown config key: {e}")

    @classmethod
    def default(cls) -> "Config":
        """Create configuration with all defaults."""
        return cls()

    @classmethod
    def from_env(cls, base: Optional["Config"] = None) -> "Config":
        """Apply environment variable overrides.

        A .env file in the current directory or home is loaded first.

        Supported environment variables:
        - PARLEY_DATA_DIR: Root for projects, chat logs and event logs
        - PARLEY_AGENT_COMMAND: Agent executable
        - PARLEY_AGENT_TIMEOUT: Agent timeout in seconds
        - PARLEY_OUTPUT_FORMAT: text or stream-json
        - PARLEY_FAILURE_POLICY: manual or auto-retry
        - PARLEY_STRATEGY: syntactic or ollama
        - OLLAMA_HOST / OLLAMA_MODEL: Normalization service
        - PARLEY_PORT: HTTP API port
        """
        load_dotenv()
        load_dotenv(Path.home() / ".env")

        config = base or cls.default()

        if data_dir := os.environ.get("PARLEY_DATA_DIR"):
            config.storage.data_dir = _as_path(data_dir)

        if command := os.environ.get("PARLEY_AGENT_COMMAND"):
            config.agent.command = [command]
        if timeout := os.environ.get("PARLEY_AGENT_TIMEOUT"):
            config.agent = replace(
                config.agent, timeout_seconds=_env_number("PARLEY_AGENT_TIMEOUT", timeout, float)
            )
        if output_format := os.environ.get("PARLEY_OUTPUT_FORMAT"):
            if output_format not in OUTPUT_FORMATS:
                raise ConfigurationError(f"Invalid PARLEY_OUTPUT_FORMAT: {output_format}")
            config.agent.output_format = output_format

        if policy := os.environ.get("PARLEY_FAILURE_POLICY"):
            if policy not in FAILURE_POLICIES:
                raise ConfigurationError(f"Invalid PARLEY_FAILURE_POLICY: {policy}")
            config.scheduler.failure_policy = policy

        if strategy := os.environ.get("PARLEY_STRATEGY"):
            if strategy not in STRATEGIES:
                raise ConfigurationError(f"Invalid PARLEY_STRATEGY: {strategy}")
            config.interpreter.strategy = strategy
        if host := os.environ.get("OLLAMA_HOST"):
            config.interpreter.ollama_url = host
        if model := os.environ.get("OLLAMA_MODEL"):
            config.interpreter.ollama_model = model

        if port := os.environ.get("PARLEY_PORT"):
            config.server = replace(config.server, port=_env_number("PARLEY_PORT", port, int))

        return config

    def to_dict(self) -> Dict[str, Any]:
        """Convert config to dictionary (for serialization)."""
        return {
            "agent": {
                "command": list(self.agent.command),
                "flags": list(self.agent.flags),
                "output_format": self.agent.output_format,
                "timeout_seconds": self.agent.timeout_seconds,
                "kill_grace_seconds": self.agent.kill_grace_seconds,
                "default_agent": self.agent.default_agent,
                "coordinator": self.agent.coordinator,
                "agents_dir": str(self.agent.agents_dir),
                "fallback_agents": list(self.agent.fallback_agents),
            },
            "scheduler": {
                "tick_interval": self.scheduler.tick_interval,
                "max_workers": self.scheduler.max_workers,
                "failure_policy": self.scheduler.failure_policy,
                "max_attempts": self.scheduler.max_attempts,
                "user_name": self.scheduler.user_name,
                "system_name": self.scheduler.system_name,
            },
            "interpreter": {
                "strategy": self.interpreter.strategy,
                "ollama_url": self.interpreter.ollama_url,
                "ollama_model": self.interpreter.ollama_model,
                "ollama_timeout_seconds": self.interpreter.ollama_timeout_seconds,
                "system_prompt": self.interpreter.system_prompt,
            },
            "storage": {
                "data_dir": str(self.storage.data_dir),
            },
            "server": {
                "host": self.server.host,
                "port": self.server.port,
            },
        }

    def to_yaml(self) -> str:
        """Serialize config to YAML string."""
        return yaml.dump(self.to_dict(), default_flow_style=False)
