from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Process settings.

    Notes:
    - Trust configuration (which authorization servers, which resources) lives
      in the YAML file at `config_path`; only process knobs live here.
    - `show_error_details` should stay off in production so configuration
      internals are not leaked to API clients.
    """

    model_config = SettingsConfigDict(env_prefix="RESOURCE_AUTH_", extra="ignore")

    config_path: str | None = None
    log_level: str = "INFO"
    show_error_details: bool = False
    http_timeout_seconds: float = 10.0
    jwks_cache_ttl_seconds: int = 300
    clock_skew_seconds: int = 60

    def resolved_config_path(self) -> Path:
        if self.config_path:
            return Path(self.config_path)

        repo_root = Path(__file__).resolve().parents[1]
        return repo_root / "config" / "security_config.yaml"


@lru_cache
def get_settings() -> Settings:
    return Settings()
