"""
Shared configuration management for modelo-mcp services.

Settings are read, in order of precedence, from constructor arguments,
``MCP_*`` environment variables (nested sections use ``__``, e.g.
``MCP_RATE_LIMIT__BURST``), a ``.env`` file, an optional YAML file and
finally a handful of bare variables (``PORT``, ``JWT_SECRET``,
``RATE_LIMIT_RPS``...) kept for existing deployment manifests.
"""

import os
from typing import Any, Dict, List, Optional, Tuple, Type

from pydantic import BaseModel, Field
from pydantic.fields import FieldInfo
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)

DEFAULT_CONFIG_FILE = os.path.join("configs", "config.yaml")

# Bare variable -> (section, field); a section of None targets a top-level field
LEGACY_ENV_VARS = {
    "PORT": (None, "port"),
    "ENVIRONMENT": (None, "env"),
    "JWT_SECRET": ("jwt", "secret"),
    "API_KEY": ("security", "api_key"),
    "AI_API_KEY": ("ai", "api_key"),
    "RATE_LIMIT_RPS": ("rate_limit", "rps"),
}


class LegacyEnvSettingsSource(PydanticBaseSettingsSource):
    """Lowest-priority source for the unprefixed deployment variables."""

    def get_field_value(self, field: FieldInfo, field_name: str) -> Tuple[Any, str, bool]:
        return None, field_name, False

    def __call__(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {}
        for name, (section, key) in LEGACY_ENV_VARS.items():
            value = os.environ.get(name)
            if not value:
                continue
            if section is None:
                data[key] = value
            else:
                data.setdefault(section, {})[key] = value

        # Unparseable values are ignored rather than failing startup
        port = data.get("port")
        if port is not None and not port.isdigit():
            del data["port"]

        rps = data.get("rate_limit", {}).get("rps")
        if rps is not None:
            try:
                valid = float(rps) > 0
            except ValueError:
                valid = False
            if not valid:
                del data["rate_limit"]

        return data


class RateLimitSettings(BaseModel):
    """Per-tenant admission control settings."""

    enabled: bool = True
    rps: float = Field(default=100, gt=0)
    burst: int = Field(default=200, ge=1)
    # 0 keeps every tenant budget for the life of the process
    max_tenants: int = Field(default=0, ge=0)


class JWTSettings(BaseModel):
    secret: str = "change-me"
    issuer: Optional[str] = None
    audience: Optional[str] = None
    algorithms: List[str] = Field(default_factory=lambda: ["HS256"])


class SecuritySettings(BaseModel):
    allowed_origins: List[str] = Field(default_factory=lambda: ["http://localhost:3000"])
    api_key: Optional[str] = None


class BusSettings(BaseModel):
    """Message bus (Kafka) settings."""

    enabled: bool = False
    bootstrap_servers: str = "localhost:9092"
    group_id: str = "modelo-mcp"
    request_topic: str = "mcp.modelo.request"
    reply_topic: str = "mcp.modelo.reply"


class AISettings(BaseModel):
    enabled: bool = True
    provider: str = "openai"
    api_key: Optional[str] = None
    model: str = "gpt-4"
    base_url: Optional[str] = None


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_prefix="MCP_",
        env_nested_delimiter="__",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    # Environment
    env: str = "development"
    log_level: str = "info"

    # Build metadata
    version: str = "1.0.0"
    commit: str = "unknown"
    build_time: str = "unknown"

    # Observability
    enable_tracing: bool = False
    otel_exporter: Optional[str] = None
    enable_console_tracing: bool = False

    rate_limit: RateLimitSettings = Field(default_factory=RateLimitSettings)
    jwt: JWTSettings = Field(default_factory=JWTSettings)
    security: SecuritySettings = Field(default_factory=SecuritySettings)
    bus: BusSettings = Field(default_factory=BusSettings)
    ai: AISettings = Field(default_factory=AISettings)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: Type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> Tuple[PydanticBaseSettingsSource, ...]:
        yaml_file = os.getenv("MCP_CONFIG_FILE", DEFAULT_CONFIG_FILE)
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            YamlConfigSettingsSource(settings_cls, yaml_file=yaml_file),
            file_secret_settings,
            LegacyEnvSettingsSource(settings_cls),
        )


class ServiceConfig(BaseConfig):
    """Service-specific configuration."""

    service_name: str = "modelo-mcp"
    port: int = 8080
    host: str = "0.0.0.0"


def get_config(service_name: str, port: Optional[int] = None, **overrides) -> ServiceConfig:
    """Get configuration for a specific service.

    ``port`` is passed on only when given, so ``MCP_PORT``/``PORT`` apply otherwise.
    """
    if port is not None:
        overrides["port"] = port
    return ServiceConfig(service_name=service_name, **overrides)
