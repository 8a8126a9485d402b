from __future__ import annotations

import logging
import os
from functools import lru_cache
from typing import Literal, Optional

from pydantic import SecretStr, validator
from pydantic_settings import BaseSettings

from .secrets import access_secret, should_use_secret_manager

logger = logging.getLogger("github-proxy.config")

# Variable name used by the original Pages deployment.
LEGACY_TOKEN_ENV = "GH_PAT"


class Settings(BaseSettings):
    app_name: str = "github-proxy"
    upstream_base_url: str = "https://api.github.com"
    upstream_accept: str = "application/vnd.github.v3+json"
    user_agent: str = "PeDitX-Dashboard-Proxy"
    request_timeout_seconds: int = 30

    route_prefix: str = "/api"
    addressing_mode: Literal["path", "query"] = "path"
    legacy_route: str = "github-proxy"

    # Secret Manager configuration
    gcp_project_id: Optional[str] = None
    secret_github_token_name: str = "github-token"

    # Declared after the Secret Manager fields so its validator can see them.
    github_token: Optional[SecretStr] = None

    host: str = "0.0.0.0"
    port: int = 8080
    log_level: str = "INFO"

    class Config:
        env_prefix = "GITHUB_PROXY_"
        env_file = ".env"

    @validator("upstream_base_url")
    def _strip_base_url(cls, value: str) -> str:
        return value.rstrip("/")

    @validator("route_prefix")
    def _normalize_prefix(cls, value: str) -> str:
        value = value.strip("/")
        return f"/{value}" if value else ""

    @validator("legacy_route")
    def _normalize_legacy_route(cls, value: str) -> str:
        value = value.strip("/")
        if not value:
            raise ValueError("legacy_route must not be empty")
        return value

    @validator("github_token", pre=True, always=True)
    def _resolve_github_token(cls, value: object, values: dict) -> object:
        if isinstance(value, SecretStr):
            value = value.get_secret_value()
        if isinstance(value, str) and value.strip():
            return value.strip()

        # GH_PAT is looked up per request by credential().
        if os.environ.get(LEGACY_TOKEN_ENV, "").strip():
            return None

        if should_use_secret_manager():
            project_id = values.get("gcp_project_id") or os.environ.get("GITHUB_PROXY_GCP_PROJECT_ID")
            secret_name = values.get("secret_github_token_name") or "github-token"
            logger.info("Loading github_token from Secret Manager")
            try:
                return access_secret(secret_name, project_id) or None
            except Exception as e:
                # Requests will fail with a configuration error until this is fixed.
                logger.error(f"Failed to load github_token from Secret Manager: {type(e).__name__}")
                return None
        return None

    @property
    def proxy_route(self) -> str:
        """Route the forwarding handler is mounted on for the active addressing mode."""
        if self.addressing_mode == "query":
            return f"{self.route_prefix}/{self.legacy_route}"
        return f"{self.route_prefix}/{{upstream_path:path}}"

    def credential(self) -> Optional[str]:
        """Token for the current request: configured value first, then ``GH_PAT``."""
        if self.github_token is not None and self.github_token.get_secret_value():
            return self.github_token.get_secret_value()
        return os.environ.get(LEGACY_TOKEN_ENV, "").strip() or None


@lru_cache()
def get_settings() -> Settings:
    return Settings()
