"""Tests for configuration loading and validation."""

from unittest.mock import patch

import pytest

from parley.config import AgentConfig, Config, InterpreterConfig, SchedulerConfig, ServerConfig
from parley.exceptions import ConfigurationError


class TestValidation:
    """Test __post_init__ validation."""

    def test_defaults(self):
        config = Config.default()
        assert config.agent.command == ["claude"]
        assert config.agent.timeout_seconds == 1800
        assert config.agent.coordinator == "project-manager"
        assert config.scheduler.tick_interval == 0.1
        assert config.scheduler.failure_policy == "manual"
        assert config.interpreter.strategy == "syntactic"
        assert config.interpreter.ollama_model == "erukude/omni-json:1b"
        assert config.server.port == 8081

    def test_command_string_becomes_list(self):
        assert AgentConfig(command="my-agent").command == ["my-agent"]

    @pytest.mark.parametrize("kwargs", [
        {"command": []},
        {"output_format": "xml"},
        {"timeout_seconds": 0},
        {"kill_grace_seconds": -1},
    ])
    def test_bad_agent_config(self, kwargs):
        with pytest.raises(ConfigurationError):
            AgentConfig(**kwargs)

    @pytest.mark.parametrize("kwargs", [
        {"tick_interval": 0},
        {"max_workers": 0},
        {"failure_policy": "sometimes"},
        {"max_attempts": 0},
    ])
    def test_bad_scheduler_config(self, kwargs):
        with pytest.raises(ConfigurationError):
            SchedulerConfig(**kwargs)

    def test_bad_strategy(self):
        with pytest.raises(ConfigurationError):
            InterpreterConfig(strategy="magic")

    def test_bad_port(self):
        with pytest.raises(ConfigurationError):
            ServerConfig(port=70000)
        with pytest.raises(ConfigurationError):
            ServerConfig(port="http")

    def test_storage_paths(self, tmp_path):
        config = Config._from_dict({"storage": {"data_dir": str(tmp_path)}})
        assert config.storage.projects_file == tmp_path / "projects.json"
        assert config.storage.projects_dir == tmp_path / "projects"
        assert config.storage.log_dir == tmp_path / "logs"


class TestYaml:
    """Test YAML loading."""

    def test_from_yaml(self, tmp_path):
        path = tmp_path / "parley.yaml"
        path.write_text(
            "agent:\n"
            "  command: [my-agent, --fast]\n"
            "  output_format: stream-json\n"
            "scheduler:\n"
            "  failure_policy: auto-retry\n"
            "  max_attempts: 5\n"
        )
        config = Config.from_yaml(path)
        assert config.agent.command == ["my-agent", "--fast"]
        assert config.agent.output_format == "stream-json"
        assert config.scheduler.failure_policy == "auto-retry"
        assert config.scheduler.max_attempts == 5

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError):
            Config.from_yaml(tmp_path / "nope.yaml")

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("agent: [unclosed")
        with pytest.raises(ConfigurationError):
            Config.from_yaml(path)

    def test_unknown_key(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("scheduler:\n  tick_speed: 3\n")
        with pytest.raises(ConfigurationError):
            Config.from_yaml(path)

    def test_round_trip(self, tmp_path):
        config = Config.default()
        config.scheduler.failure_policy = "auto-retry"
        path = tmp_path / "out.yaml"
        path.write_text(config.to_yaml())
        assert Config.from_yaml(path).to_dict() == config.to_dict()


class TestEnv:
    """Test environment overrides."""

    @patch("parley.config.load_dotenv")
    def test_overrides(self, mock_dotenv, monkeypatch, tmp_path):
        monkeypatch.setenv("PARLEY_DATA_DIR", str(tmp_path))
        monkeypatch.setenv("PARLEY_AGENT_COMMAND", "other-agent")
        monkeypatch.setenv("PARLEY_AGENT_TIMEOUT", "60")
        monkeypatch.setenv("PARLEY_FAILURE_POLICY", "auto-retry")
        monkeypatch.setenv("OLLAMA_HOST", "http://gpu-box:11434")
        monkeypatch.setenv("PARLEY_PORT", "9000")

        config = Config.from_env()

        assert config.storage.data_dir == tmp_path
        assert config.agent.command == ["other-agent"]
        assert config.agent.timeout_seconds == 60.0
        assert config.scheduler.failure_policy == "auto-retry"
        assert config.interpreter.ollama_url == "http://gpu-box:11434"
        assert config.server.port == 9000
        assert mock_dotenv.called

    @patch("parley.config.load_dotenv")
    def test_invalid_policy(self, mock_dotenv, monkeypatch):
        monkeypatch.setenv("PARLEY_FAILURE_POLICY", "never")
        with pytest.raises(ConfigurationError):
            Config.from_env()

    @patch("parley.config.load_dotenv")
    def test_base_config_kept(self, mock_dotenv, monkeypatch):
        for name in ("PARLEY_DATA_DIR", "PARLEY_AGENT_COMMAND", "PARLEY_PORT"):
            monkeypatch.delenv(name, raising=False)
        base = Config(agent=AgentConfig(command=["base-agent"]))
        assert Config.from_env(base).agent.command == ["base-agent"]

    @pytest.mark.parametrize("name,value", [
        ("PARLEY_AGENT_TIMEOUT", "soon"),
        ("PARLEY_AGENT_TIMEOUT", "-5"),
        ("PARLEY_AGENT_TIMEOUT", "0"),
        ("PARLEY_PORT", "http"),
        ("PARLEY_PORT", "70000"),
    ])
    @patch("parley.config.load_dotenv")
    def test_bad_numeric_overrides(self, mock_dotenv, monkeypatch, name, value):
        monkeypatch.setenv(name, value)
        with pytest.raises(ConfigurationError):
            Config.from_env()
