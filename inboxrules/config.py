"""Configuration for inboxrules, stored as JSON under ~/.inboxrules."""

from __future__ import annotations

import ipaddress
import json
import logging
import os
import stat
from dataclasses import asdict, dataclass, field
from pathlib import Path
from urllib.parse import urlparse

from .errors import ConfigError, ErrorCode

logger = logging.getLogger("inboxrules.config")

# Checked in order; the first one set wins
API_KEY_ENV_VARS = {
    "anthropic": ("INBOXRULES_API_KEY", "ANTHROPIC_API_KEY"),
    "openai": ("INBOXRULES_API_KEY", "OPENAI_API_KEY"),
    "gemini": ("INBOXRULES_API_KEY", "GOOGLE_API_KEY", "GEMINI_API_KEY"),
}


def get_config_dir() -> Path:
    config_dir = Path.home() / ".inboxrules"
    config_dir.mkdir(parents=True, exist_ok=True)
    return config_dir


def get_config_path() -> Path:
    return get_config_dir() / "config.json"


def get_db_path() -> Path:
    return get_config_dir() / "inboxrules.db"


def _is_local_host(hostname: str | None) -> bool:
    if not hostname:
        return False
    if hostname == "localhost" or hostname.endswith(".local"):
        return True
    try:
        return ipaddress.ip_address(hostname).is_loopback
    except ValueError:
        return False


def validate_api_base(api_base: str | None) -> str | None:
    """Check a custom provider endpoint.

    Plain http is only accepted for local hosts (Ollama, dev proxies);
    everything else must be https. Blank values mean "no custom endpoint".

    Raises:
        ValueError: If the URL is malformed or insecure.
    """
    api_base = (api_base or "").strip()
    if not api_base:
        return None

    parsed = urlparse(api_base)
    if parsed.scheme not in ("http", "https"):
        raise ValueError(f"API base URL must start with http:// or https://, got: {api_base}")
    if not parsed.netloc:
        raise ValueError("API base URL must include a host")
    if parsed.scheme == "http" and not _is_local_host(parsed.hostname):
        raise ValueError(f"API base URL must use HTTPS for non-local hosts. Got: {api_base}")
    return api_base


@dataclass
class AIConfig:
    """Settings for the AI rule chooser."""

    enabled: bool = True
    provider: str = "anthropic"  # anthropic, openai, gemini, ollama or none
    api_key: str | None = None
    model: str | None = None  # None uses the provider's default
    api_base: str | None = None
    timeout: float = 60.0  # seconds, covers retries
    max_body_chars: int = 2000

    def __post_init__(self):
        try:
            self.api_base = validate_api_base(self.api_base)
        except ValueError as e:
            logger.warning("Ignoring api_base: %s", e)
            self.api_base = None
        if self.timeout <= 0:
            logger.warning("AI timeout must be positive, got %s; using 60s", self.timeout)
            self.timeout = 60.0


@dataclass
class MatchingConfig:
    default_user: str | None = None  # email the CLI acts for when --user is omitted
    run_ai: bool = True


def _load_section(section_cls, data: dict, name: str):
    if name not in data:
        return section_cls()
    try:
        return section_cls(**data[name])
    except TypeError as e:
        logger.warning("Invalid %s config (%s), using defaults", name, e)
        return section_cls()


@dataclass
class Config:
    ai: AIConfig = field(default_factory=AIConfig)
    matching: MatchingConfig = field(default_factory=MatchingConfig)

    def save(self) -> None:
        """Write config.json, readable only by the owner since it can hold API keys."""
        config_path = get_config_path()
        with open(config_path, "w") as f:
            json.dump({"ai": asdict(self.ai), "matching": asdict(self.matching)}, f, indent=2)
        config_path.chmod(stat.S_IRUSR | stat.S_IWUSR)

    @classmethod
    def load(cls) -> Config:
        """Load config.json, then apply API keys from the environment."""
        data: dict = {}
        config_path = get_config_path()
        if config_path.exists():
            with open(config_path) as f:
                try:
                    data = json.load(f)
                except json.JSONDecodeError as e:
                    raise ConfigError(
                        code=ErrorCode.CONFIG_INVALID,
                        message="config.json is not valid JSON",
                        details={"path": str(config_path)},
                        cause=e,
                    ) from e

        config = cls(
            ai=_load_section(AIConfig, data, "ai"),
            matching=_load_section(MatchingConfig, data, "matching"),
        )

        for var in API_KEY_ENV_VARS.get(config.ai.provider, ()):
            if os.environ.get(var):
                config.ai.api_key = os.environ[var]
                break

        return config

    def is_ai_configured(self) -> bool:
        """Whether the AI chooser can be consulted with these settings."""
        if not self.ai.enabled or self.ai.provider == "none":
            return False
        return self.ai.provider == "ollama" or bool(self.ai.api_key)
