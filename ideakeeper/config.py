# Idea Keeper — configuration
# Override paths and endpoints via config/ideakeeper.yaml or environment variables.

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

CONFIG_PATH = Path(__file__).parent.parent / "config" / "ideakeeper.yaml"

# Environment variable → config attribute
ENV_OVERRIDES = {
    "IDEAKEEPER_DB": "db_path",
    "IDEAKEEPER_CLI_BINARY": "cli_binary",
    "IDEAKEEPER_GATEWAY_URL": "gateway_url",
    "IDEAKEEPER_BACKEND": "backend",
    "IDEAKEEPER_API_SECRET": "api_secret",
    "GOOGLE_API_KEY": "gemini_api_key",
}

VALID_BACKENDS = ("auto", "subprocess", "gateway")


class ConfigError(Exception):
    """Raised when configuration is invalid or incomplete."""
    pass


@dataclass
class AssistantConfig:
    """Runtime configuration for the assistant pipeline and its surfaces."""

    # Board storage
    db_path: str = "~/.local/share/ideakeeper/board.db"

    # Assistant CLI (subprocess backend)
    cli_binary: str = "claude"
    cli_timeout: int = 120          # seconds; process killed after this
    cli_isolated: bool = False      # disable CLI tools and run in a temp cwd
    health_timeout: int = 10

    # Backend selection: auto | subprocess | gateway
    backend: str = "auto"

    # Gateway (HTTP backend + server)
    gateway_url: str = "http://127.0.0.1:3000"
    gateway_host: str = "127.0.0.1"
    gateway_port: int = 3000
    api_secret: str = ""
    max_request_bytes: int = 1_000_000

    # Mentions
    mention_trigger: str = "@claude"

    # Brainstorming (Gemini)
    gemini_model: str = "gemini-2.5-flash"
    gemini_api_key: str = ""

    # Telegram surface
    audit_log: str = "~/.local/share/ideakeeper/audit.jsonl"
    bots: Dict[str, Any] = field(default_factory=dict)

    def resolve_paths(self):
        """Expand ~ in file paths."""
        self.db_path = str(Path(self.db_path).expanduser())
        self.audit_log = str(Path(self.audit_log).expanduser())

    def apply_env(self, environ: Optional[Dict[str, str]] = None):
        """Let environment variables override file values."""
        environ = os.environ if environ is None else environ
        for env_name, attr in ENV_OVERRIDES.items():
            value = environ.get(env_name)
            if value:
                setattr(self, attr, value)

    def validate(self):
        if self.backend not in VALID_BACKENDS:
            raise ConfigError(
                f"Invalid backend: {self.backend}. "
                f"Expected one of: {', '.join(VALID_BACKENDS)}"
            )
        try:
            timeout = int(self.cli_timeout)
        except (TypeError, ValueError):
            raise ConfigError(f"cli_timeout must be a whole number of seconds, got {self.cli_timeout!r}")
        if timeout <= 0:
            raise ConfigError(f"cli_timeout must be positive, got {self.cli_timeout}")
        self.cli_timeout = timeout

    @classmethod
    def load(
        cls,
        path: Optional[str] = None,
        environ: Optional[Dict[str, str]] = None,
    ) -> "AssistantConfig":
        """Load config from YAML, then apply env overrides.

        A missing file gives defaults. A malformed file raises ConfigError
        rather than silently running with defaults.
        """
        cfg_path = Path(path) if path else CONFIG_PATH
        data: Dict[str, Any] = {}
        if cfg_path.exists():
            try:
                with open(cfg_path, "r") as f:
                    data = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise ConfigError(f"Cannot parse {cfg_path}: {e}") from e
            if not isinstance(data, dict):
                raise ConfigError(f"{cfg_path} must contain a mapping")

        cfg = cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})
        cfg.apply_env(environ)
        cfg.resolve_paths()
        cfg.validate()
        return cfg
