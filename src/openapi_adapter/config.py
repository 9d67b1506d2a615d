"""Configuration for the OpenAPI MCP adapter."""

from __future__ import annotations

from functools import lru_cache
from typing import Optional, Set

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="", case_sensitive=False)

    service_name: Optional[str] = Field(default=None)
    service_version: Optional[str] = Field(default=None)

    openapi_source: str = Field(default="openapi.yaml")
    openapi_base_url: Optional[str] = Field(default=None)
    openapi_dereference: bool = Field(default=True)
    openapi_cache_seconds: int = Field(default=3600)

    adapter_transport: str = Field(default="stdio")
    adapter_host: str = Field(default="0.0.0.0")
    adapter_port: int = Field(default=3000)
    adapter_auth_token: Optional[str] = Field(default=None)

    adapter_max_concurrency: int = Field(default=20)
    adapter_request_timeout_seconds: float = Field(default=30)
    adapter_max_retries: int = Field(default=2)

    adapter_operation_allowlist: Optional[str] = Field(default=None)
    adapter_operation_denylist: Optional[str] = Field(default=None)

    oauth_token_timeout_seconds: float = Field(default=10)

    adapter_log_level: str = Field(default="INFO")

    def operation_allowlist(self) -> Set[str]:
        return _split_csv(self.adapter_operation_allowlist)

    def operation_denylist(self) -> Set[str]:
        return _split_csv(self.adapter_operation_denylist)


def _split_csv(value: Optional[str]) -> Set[str]:
    if not value:
        return set()
    return {item.strip() for item in value.split(",") if item.strip()}


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
