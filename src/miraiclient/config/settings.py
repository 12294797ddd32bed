"""
miraiclient/config/settings.py — Client Runtime Settings

Merges config.yaml (endpoint/logging structure) with environment variables
and .env (secrets). Pydantic-powered: all fields are validated and typed.
Environment variables override config.yaml key by key, so
MIRAI_ENDPOINT__PORT=9000 changes the port and keeps the YAML host.

  - EndpointConfig describes where the gateway lives and how to reach it
  - LoggingConfig feeds observability.logger.setup_logging()
  - validate_all() performs cross-field checks and raises ConfigError
    listing every problem found
  - load_settings() respects MIRAI_CONFIG as a fallback when no explicit
    config_path is given
"""

from __future__ import annotations

import os
import threading as _threading
from contextvars import ContextVar
from pathlib import Path
from typing import Any, Optional
from urllib.parse import urlencode

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic.fields import FieldInfo
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)


# ─────────────────────────────────────────────────────────────────────────────
# Errors
# ─────────────────────────────────────────────────────────────────────────────

class ConfigError(Exception):
    """Raised by validate_all() when one or more config problems are found."""


_VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


# ─────────────────────────────────────────────────────────────────────────────
# Sub-models
# ─────────────────────────────────────────────────────────────────────────────

class EndpointConfig(BaseModel):
    """Connection details for one mirai-api-http instance."""

    host: str = "127.0.0.1"
    port: int = 8080
    auth_key: str = ""
    tls: bool = False
    request_timeout: Optional[float] = None     # None → no client-side timeout
    max_frame_size: Optional[int] = 4 * 2**20   # per logical WebSocket message

    @field_validator("host")
    @classmethod
    def _non_empty_host(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("endpoint.host must not be empty")
        return v

    @field_validator("port")
    @classmethod
    def _valid_port(cls, v: int) -> int:
        if not (1 <= v <= 65535):
            raise ValueError(f"endpoint.port must be between 1 and 65535, got {v}")
        return v

    @field_validator("request_timeout")
    @classmethod
    def _positive_timeout(cls, v: Optional[float]) -> Optional[float]:
        if v is not None and v <= 0:
            raise ValueError("endpoint.request_timeout must be > 0 when set")
        return v

    @property
    def base_url(self) -> str:
        scheme = "https" if self.tls else "http"
        return f"{scheme}://{self.host}:{self.port}"

    def ws_url(self, path: str, **query: Any) -> str:
        """Build the WebSocket URL for a stream path (e.g. 'all', 'command')."""
        scheme = "wss" if self.tls else "ws"
        url = f"{scheme}://{self.host}:{self.port}/{path.lstrip('/')}"
        if query:
            url += "?" + urlencode(query)
        return url


class LoggingConfig(BaseModel):
    level: str = "INFO"
    log_dir: Optional[str] = None
    max_file_size_mb: int = 20
    backup_count: int = 3
    console_output: bool = True
    json_format: bool = False

    @field_validator("level")
    @classmethod
    def _valid_log_level(cls, v: str) -> str:
        upper = v.upper()
        if upper not in _VALID_LOG_LEVELS:
            raise ValueError(
                f"logging.level '{v}' is not valid. "
                f"Must be one of: {sorted(_VALID_LOG_LEVELS)}"
            )
        return upper

    def as_kwargs(self) -> dict[str, Any]:
        """Keyword arguments for observability.logger.setup_logging()."""
        return {
            "level": self.level,
            "log_dir": self.log_dir,
            "json_format": self.json_format,
            "console_output": self.console_output,
            "max_bytes": self.max_file_size_mb * 1024 * 1024,
            "backup_count": self.backup_count,
        }


# ─────────────────────────────────────────────────────────────────────────────
# config.yaml source
# ─────────────────────────────────────────────────────────────────────────────

_KNOWN_SECTIONS = {"endpoint", "logging", "listen_commands"}

# Parsed config.yaml for the Settings() call currently being built
_yaml_sections: ContextVar[Optional[dict]] = ContextVar("mirai_yaml_sections", default=None)


class _YamlSectionsSource(PydanticBaseSettingsSource):
    """Known top-level sections of config.yaml, ranked below env and .env."""

    def get_field_value(self, field: FieldInfo, field_name: str) -> tuple[Any, str, bool]:
        return (_yaml_sections.get() or {}).get(field_name), field_name, False

    def __call__(self) -> dict[str, Any]:
        data = _yaml_sections.get() or {}
        return {k: v for k, v in data.items() if k in _KNOWN_SECTIONS and v is not None}


# ─────────────────────────────────────────────────────────────────────────────
# Root Settings
# ─────────────────────────────────────────────────────────────────────────────

class Settings(BaseSettings):
    """
    Client runtime settings.

    Priority (highest to lowest):
      1. Keyword arguments passed to Settings()
      2. Environment variables (MIRAI_ENDPOINT__HOST overrides endpoint.host)
      3. .env file
      4. config.yaml, as read by load_settings()
      5. Field defaults
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="MIRAI_",
        env_nested_delimiter="__",
        extra="ignore",
        case_sensitive=False,
        populate_by_name=True,
    )

    # -- Secrets / identity from env ------------------------------------------
    auth_key: Optional[str] = Field(default=None, alias="MIRAI_AUTH_KEY")
    account_id: Optional[int] = Field(default=None, alias="MIRAI_ACCOUNT_ID")

    # -- Structured config (from config.yaml) --------------------------------
    endpoint: EndpointConfig = Field(default_factory=EndpointConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    listen_commands: bool = False

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            _YamlSectionsSource(settings_cls),
            file_secret_settings,
        )

    @field_validator("account_id", mode="before")
    @classmethod
    def _coerce_account_id(cls, v: Any) -> Optional[int]:
        if v in (None, "", "null"):
            return None
        return int(v)

    @field_validator("endpoint", mode="before")
    @classmethod
    def _coerce_endpoint(cls, v: Any) -> Any:
        return EndpointConfig(**v) if isinstance(v, dict) else v

    @field_validator("logging", mode="before")
    @classmethod
    def _coerce_logging(cls, v: Any) -> Any:
        return LoggingConfig(**v) if isinstance(v, dict) else v

    # -- Convenience ---------------------------------------------------------

    def resolved_endpoint(self) -> EndpointConfig:
        """Endpoint with the env-provided auth key filled in if YAML left it blank."""
        if self.endpoint.auth_key or not self.auth_key:
            return self.endpoint
        return self.endpoint.model_copy(update={"auth_key": self.auth_key})

    def validate_all(self) -> None:
        """
        Cross-field startup validation. Raises ConfigError listing every
        problem found; pydantic validators have already run by this point.
        """
        errors: list[str] = []

        if not self.resolved_endpoint().auth_key:
            errors.append(
                "No auth key configured. Set endpoint.auth_key in config.yaml "
                "or MIRAI_AUTH_KEY in the environment."
            )

        if self.account_id is None:
            errors.append(
                "No bot account configured. Set MIRAI_ACCOUNT_ID to the QQ "
                "number the session should bind to."
            )
        elif self.account_id <= 0:
            errors.append(f"MIRAI_ACCOUNT_ID must be positive, got {self.account_id}.")

        if errors:
            numbered = "\n".join(f"  {i+1}. {e}" for i, e in enumerate(errors))
            raise ConfigError(
                f"\n\nmiraiclient configuration has {len(errors)} problem(s):"
                f"\n\n{numbered}\n"
            )


# ─────────────────────────────────────────────────────────────────────────────
# Loader + singleton
# ─────────────────────────────────────────────────────────────────────────────

_singleton: Optional[Settings] = None
_singleton_lock = _threading.Lock()


def _load_yaml(path: Path) -> dict:
    if not path.exists():
        return {}
    with path.open("r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def _build(config_path: str | Path | None) -> Settings:
    token = _yaml_sections.set(_load_yaml(_resolve_config_path(config_path)))
    try:
        return Settings()
    finally:
        _yaml_sections.reset(token)


def _resolve_config_path(config_path: str | Path | None) -> Path:
    """
    Resolve the config file path with this priority:
      1. Explicit config_path argument
      2. MIRAI_CONFIG environment variable
      3. Default: config/config.yaml
    """
    if config_path is not None:
        return Path(config_path)
    env_path = os.environ.get("MIRAI_CONFIG")
    if env_path:
        return Path(env_path)
    return Path("config/config.yaml")


def load_settings(config_path: str | Path | None = None) -> Settings:
    """Load settings: environment variables and .env layered over config.yaml."""
    global _singleton
    instance = _build(config_path)
    with _singleton_lock:
        _singleton = instance
    return instance


def get_settings() -> Settings:
    """
    Return the global Settings singleton, loading the default config path
    on first use. Guarded by _singleton_lock against double initialisation.
    """
    if _singleton is not None:
        return _singleton
    with _singleton_lock:
        if _singleton is None:
            _load_unlocked()
    return _singleton  # type: ignore[return-value]


def _load_unlocked() -> None:
    global _singleton
    _singleton = _build(None)
