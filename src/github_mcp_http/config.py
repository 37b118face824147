"""Server configuration.

Values are layered, later layers winning:

1. Defaults (ServerConfig field defaults)
2. YAML config file (explicit path, GITHUB_MCP_CONFIG, or ~/.github-mcp-http.yaml if present)
3. Environment variables (GITHUB_MCP_<FIELD>; PORT wins over GITHUB_MCP_PORT)
4. Explicit overrides (CLI flags); None means "not given"

Config file keys are the field names:

    host: 0.0.0.0
    port: 8080
    github_token: ghp_...
    read_only: true
    tls_cert: /etc/ssl/server.crt
    tls_key: /etc/ssl/server.key
    session_idle_timeout: 1800
    ping_interval: 30
    log_level: INFO
"""

from __future__ import annotations

import logging
import os
from contextvars import ContextVar
from pathlib import Path
from typing import Annotated, Any, Literal

import yaml
from pydantic import Field, ValidationError, field_validator, model_validator
from pydantic_settings import (
    BaseSettings,
    NoDecode,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = Path.home() / ".github-mcp-http.yaml"
ENV_PREFIX = "GITHUB_MCP_"
CONFIG_ENV_VAR = "GITHUB_MCP_CONFIG"

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]

# Config file for the ServerConfig being built by load_config
_config_file: ContextVar[Path | None] = ContextVar("config_file", default=None)


class ConfigError(ValueError):
    """Configuration is missing, unreadable or invalid."""


class ServerConfig(BaseSettings):
    """Server configuration.

    Every field can also be set through a GITHUB_MCP_<FIELD> environment
    variable, e.g. GITHUB_MCP_GITHUB_TOKEN or GITHUB_MCP_READ_ONLY.
    """

    model_config = SettingsConfigDict(
        env_prefix=ENV_PREFIX,
        env_ignore_empty=True,
        extra="forbid",
    )

    # Network
    host: str = "0.0.0.0"
    port: int = Field(default=8080, ge=1, le=65535)
    tls_cert: str | None = None
    tls_key: str | None = None
    cors_origins: Annotated[list[str], NoDecode] = Field(default_factory=lambda: ["*"])

    # Backend
    github_token: str = ""
    read_only: bool = False

    # Sessions and event streams
    session_idle_timeout: float = Field(default=30 * 60.0, gt=0)
    session_sweep_interval: float = Field(default=5 * 60.0, gt=0)
    ping_interval: float = Field(default=30.0, gt=0)
    client_queue_size: int = Field(default=256, ge=1)

    # Logging
    log_level: LogLevel = "INFO"
    log_json: bool = True

    @field_validator("cors_origins", mode="before")
    @classmethod
    def _split_origins(cls, value: Any) -> Any:
        # Comma-separated in the environment, a list in the config file
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        return value

    @field_validator("log_level", mode="before")
    @classmethod
    def _upper_level(cls, value: Any) -> Any:
        return value.upper() if isinstance(value, str) else value

    @model_validator(mode="after")
    def _check_tls_pair(self) -> ServerConfig:
        if bool(self.tls_cert) != bool(self.tls_key):
            raise ValueError("tls_cert and tls_key must be given together")
        return self

    @property
    def tls_enabled(self) -> bool:
        return bool(self.tls_cert and self.tls_key)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        sources: list[PydanticBaseSettingsSource] = [init_settings, env_settings]
        config_file = _config_file.get()
        if config_file is not None:
            sources.append(YamlConfigSettingsSource(settings_cls, yaml_file=config_file))
        return tuple(sources)


def _describe(error: ValidationError) -> str:
    problems = []
    for item in error.errors():
        location = ".".join(str(part) for part in item["loc"]) or "config"
        problems.append(f"{location}: {item['msg']}")
    return "Invalid configuration: " + "; ".join(problems)


def _resolve_file(path: str | Path | None) -> Path | None:
    if path is None:
        path = os.environ.get(CONFIG_ENV_VAR) or None
    if path is not None:
        config_path = Path(path)
        if not config_path.is_file():
            raise ConfigError(f"Config file not found: {config_path}")
    elif DEFAULT_CONFIG_FILE.is_file():
        config_path = DEFAULT_CONFIG_FILE
    else:
        return None

    # Syntax and top-level shape
    try:
        with open(config_path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise ConfigError(f"Cannot read config file {config_path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in config file {config_path}: {e}") from e
    if data is not None and not isinstance(data, dict):
        raise ConfigError(f"Config file {config_path} must contain a mapping")
    return config_path


def load_config(path: str | Path | None = None, **overrides: Any) -> ServerConfig:
    """Build a validated ServerConfig.

    Args:
        path: Config file; when None, GITHUB_MCP_CONFIG or ~/.github-mcp-http.yaml
              (if it exists) is used
        **overrides: Field values that win over every other source

    Raises:
        ConfigError: If a source is unreadable or a value is invalid
    """
    unknown = sorted(set(overrides) - set(ServerConfig.model_fields))
    if unknown:
        raise ConfigError(f"Unknown config option: {', '.join(unknown)}")

    values = {name: value for name, value in overrides.items() if value is not None}

    # Hosting platforms provide PORT; it wins over GITHUB_MCP_PORT.
    if "port" not in values and os.environ.get("PORT"):
        values["port"] = os.environ["PORT"]

    config_file = _resolve_file(path)
    if config_file is not None:
        logger.info(f"Using config file: {config_file}")

    token = _config_file.set(config_file)
    try:
        return ServerConfig(**values)
    except ValidationError as e:
        raise ConfigError(_describe(e)) from e
    finally:
        _config_file.reset(token)
