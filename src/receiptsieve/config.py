"""Configuration loading and validation."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

import dacite
import yaml

CONFIG_ENV_VAR = "RECEIPTSIEVE_CONFIG"
PROVIDERS = ("anthropic", "ollama")


@dataclass
class GmailConfig:
    credentials_file: str = "credentials.json"
    token_file: str = "token.json"
    lookback_days: int = 7
    max_results: int = 50


@dataclass
class StorageConfig:
    backend: str = "sqlite"
    sqlite_path: str = "receiptsieve.db"


@dataclass
class AIConfig:
    provider: str = "anthropic"
    model: str = "claude-sonnet-4-5-20250929"
    ollama_base_url: str = "http://localhost:11434"
    ollama_api_key: str = ""
    max_tokens: int = 4096
    max_retries: int = 2
    max_content_chars: int = 15000
    strict_validation: bool = False

    @property
    def model_spec(self) -> str:
        return f"{self.provider}:{self.model}"

    def to_provider_dict(self) -> dict:
        """Return a dict suitable for passing to get_provider()."""
        return {
            "ollama_base_url": self.ollama_base_url,
            "ollama_api_key": self.ollama_api_key,
        }


@dataclass
class PurchaseDefaults:
    default_warranty_months: int = 12
    default_return_days: int = 30
    days_per_month: int = 30


@dataclass
class NotificationConfig:
    warranty_expiring_days: int = 30
    return_deadline_days: int = 7


@dataclass
class Config:
    gmail: GmailConfig = field(default_factory=GmailConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    ai: AIConfig = field(default_factory=AIConfig)
    purchases: PurchaseDefaults = field(default_factory=PurchaseDefaults)
    notifications: NotificationConfig = field(default_factory=NotificationConfig)
    merchant_domains_file: str = "merchant_domains.yaml"


# env var -> (section, attribute)
ENV_OVERRIDES = {
    "llm_provider": ("ai", "provider"),
    "model_name": ("ai", "model"),
    "ollama_host": ("ai", "ollama_base_url"),
    "ollama_api_key": ("ai", "ollama_api_key"),
}


def _candidate_paths() -> list[Path]:
    paths = []
    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        paths.append(Path(env_path))
    paths.append(Path("config.yaml"))
    paths.append(Path.home() / ".config" / "receiptsieve" / "config.yaml")
    return paths


def _find_config_file() -> Path | None:
    """First existing file of $RECEIPTSIEVE_CONFIG, ./config.yaml, ~/.config/receiptsieve/config.yaml."""
    for path in _candidate_paths():
        if path.is_file():
            return path
    return None


def _load_dotenv(path: Path = Path(".env")) -> None:
    """Export KEY=VALUE lines from a .env file; variables already set win."""
    if not path.is_file():
        return
    for raw in path.read_text().splitlines():
        line = raw.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, _, value = line.partition("=")
        os.environ.setdefault(key.strip(), value.strip())


def _apply_env_overrides(config: Config) -> Config:
    for env_var, (section, attr) in ENV_OVERRIDES.items():
        value = os.environ.get(env_var)
        if value:
            setattr(getattr(config, section), attr, value)
    return config


def validate_config(config: Config) -> Config:
    """Reject settings the pipeline cannot run with.

    Raises ValueError naming every offending setting.
    """
    problems = []
    if config.ai.provider not in PROVIDERS:
        problems.append(f"ai.provider must be one of {', '.join(PROVIDERS)}, got {config.ai.provider!r}")
    if config.ai.max_retries < 0:
        problems.append("ai.max_retries must be >= 0")
    if config.ai.max_content_chars <= 0:
        problems.append("ai.max_content_chars must be > 0")
    if config.purchases.days_per_month <= 0:
        problems.append("purchases.days_per_month must be > 0")
    for name in ("default_warranty_months", "default_return_days"):
        if getattr(config.purchases, name) < 0:
            problems.append(f"purchases.{name} must be >= 0")
    for name in ("warranty_expiring_days", "return_deadline_days"):
        if getattr(config.notifications, name) < 0:
            problems.append(f"notifications.{name} must be >= 0")
    if config.gmail.max_results <= 0:
        problems.append("gmail.max_results must be > 0")
    if problems:
        raise ValueError("Invalid configuration: " + "; ".join(problems))
    return config


def load_config(path: str | Path | None = None) -> Config:
    """Load configuration from YAML file, merging with defaults.

    Also loads .env file and applies environment variable overrides
    (see ENV_OVERRIDES) before validating the result.
    """
    _load_dotenv()

    if path is not None:
        config_path = Path(path)
        if not config_path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")
    else:
        config_path = _find_config_file()

    raw: dict = {}
    if config_path is not None:
        with open(config_path) as f:
            raw = yaml.safe_load(f) or {}

    config = dacite.from_dict(data_class=Config, data=raw)
    return validate_config(_apply_env_overrides(config))
