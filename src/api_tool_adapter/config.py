"""Configuration for the API tool adapter."""

from __future__ import annotations

import json
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="", case_sensitive=False)

    service_name: str = Field(default="api-tool-adapter")

    adapter_config_path: Optional[str] = Field(default=None)

    adapter_transport: str = Field(default="stdio")
    adapter_host: str = Field(default="0.0.0.0")
    adapter_port: int = Field(default=8000)
    adapter_auth_token: Optional[str] = Field(default=None)

    adapter_max_concurrency: int = Field(default=20)
    adapter_http_timeout_seconds: float = Field(default=30)
    adapter_spec_cache_seconds: int = Field(default=3600)
    adapter_user_agent: str = Field(default="OpenAPI-MCP/1.0")

    adapter_log_level: str = Field(default="INFO")

    oauth_client_id: Optional[str] = Field(default=None)
    oauth_client_secret: Optional[str] = Field(default=None)
    oauth_token_url: Optional[str] = Field(default=None)
    oauth_scope: str = Field(default="api")

    def has_oauth_source(self) -> bool:
        return bool(self.oauth_client_id and self.oauth_client_secret and self.oauth_token_url)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()


class _FrozenModel(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
        alias_generator=to_camel,
    )


class AuthConfig(_FrozenModel):
    type: str
    settings: Dict[str, str] = Field(default_factory=dict)

    @field_validator("settings", mode="before")
    @classmethod
    def _stringify_settings(cls, value: Any) -> Any:
        if isinstance(value, dict):
            return {str(k): "" if v is None else str(v) for k, v in value.items()}
        return value


class BuilderConfig(_FrozenModel):
    """Build configuration for one API description."""

    type: Literal["openapi", "discovery"] = "openapi"
    server_name: str = ""
    server_description: str = ""
    api_spec_url: Optional[str] = None
    api_spec_path: Optional[str] = None
    api_base_url: Optional[str] = None
    excluded_paths: List[str] = Field(default_factory=list)
    included_paths: List[str] = Field(default_factory=list)
    server_headers: Dict[str, str] = Field(default_factory=dict)
    default_path_parameters: Dict[str, str] = Field(default_factory=dict)
    authentication: Optional[AuthConfig] = None
    generate_resources: bool = False
    generate_prompts: bool = False
    metadata_file: Optional[str] = None

    @field_validator("type", mode="before")
    @classmethod
    def _normalize_type(cls, value: Any) -> Any:
        if isinstance(value, str):
            lowered = value.strip().lower()
            if lowered in {"google", "google_api", "googlediscovery", "discovery"}:
                return "discovery"
            return lowered
        return value

    @field_validator("server_headers", "default_path_parameters", mode="before")
    @classmethod
    def _stringify_values(cls, value: Any) -> Any:
        if isinstance(value, dict):
            return {str(k): str(v) for k, v in value.items()}
        return value or {}

    @property
    def spec_source(self) -> Optional[str]:
        return self.api_spec_url or self.api_spec_path


class ParameterOverlay(_FrozenModel):
    name: str
    description: Optional[str] = None


class ToolOverlay(_FrozenModel):
    name: str
    new_name: Optional[str] = None
    description: Optional[str] = None
    tags: Optional[List[str]] = None
    parameters: List[ParameterOverlay] = Field(default_factory=list)


class MetadataOverlay(_FrozenModel):
    tools: List[ToolOverlay] = Field(default_factory=list)

    def find(self, tool_name: str) -> Optional[ToolOverlay]:
        for entry in self.tools:
            if entry.name == tool_name:
                return entry
        return None


def load_builder_config(path: str) -> BuilderConfig:
    config_path = Path(path).expanduser().resolve()
    data = json.loads(config_path.read_text(encoding="utf-8"))
    for key in ("apiSpecPath", "metadataFile"):
        value = data.get(key)
        if value:
            data[key] = str(_resolve_relative(value, config_path.parent))
    return BuilderConfig.model_validate(data)


def load_metadata_overlay(path: str) -> MetadataOverlay:
    overlay_path = Path(path).expanduser()
    data = json.loads(overlay_path.read_text(encoding="utf-8"))
    return MetadataOverlay.model_validate(data)


def _resolve_relative(value: str, base: Path) -> Path:
    candidate = Path(value).expanduser()
    if candidate.is_absolute():
        return candidate
    return (base / candidate).resolve()
