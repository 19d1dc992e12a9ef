"""Environment-driven application configuration."""

from __future__ import annotations

import os
from collections.abc import Mapping

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from src.errors import ConfigurationError

REQUIRED_VARS = ("PAGE_ACCESS_TOKEN", "VERIFY_TOKEN", "APP_SECRET")
LOG_LEVELS = ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG")


class AppConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    page_access_token: str
    verify_token: str
    app_secret: str

    openai_api_key: str | None = None
    openai_base_url: str = "https://api.openai.com"
    openai_model: str = "gpt-4o-mini"

    vertex_project_id: str | None = None
    vertex_location: str = "us-central1"
    supabase_url: str | None = None
    supabase_service_key: str | None = None
    catalog_tenant_id: str | None = None

    webhook_path: str = "/webhook"
    rate_limit_max_events: int = Field(default=4, ge=1)
    rate_limit_window_seconds: float = Field(default=30.0, gt=0)
    max_message_chars: int = Field(default=800, ge=1)
    max_concurrent_dispatches: int = Field(default=64, ge=1)

    audit_log_path: str | None = None
    audit_log_max_bytes: int = Field(default=10_485_760, ge=1)
    audit_log_backup_count: int = Field(default=5, ge=0)
    log_level: str = "INFO"

    @field_validator("log_level")
    @classmethod
    def _known_log_level(cls, value: str) -> str:
        level = value.upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"unknown log level {value!r}")
        return level

    def missing_secrets(self) -> list[str]:
        """Names of required secrets that are empty."""
        values = {
            "PAGE_ACCESS_TOKEN": self.page_access_token,
            "VERIFY_TOKEN": self.verify_token,
            "APP_SECRET": self.app_secret,
        }
        return [name for name, value in values.items() if not value]

    @property
    def catalog_search_enabled(self) -> bool:
        return all((
            self.vertex_project_id,
            self.supabase_url,
            self.supabase_service_key,
        ))


# env var -> AppConfig field, for optional settings
_OPTIONAL_VARS = {
    "OPENAI_API_KEY": "openai_api_key",
    "OPENAI_BASE_URL": "openai_base_url",
    "OPENAI_MODEL": "openai_model",
    "VERTEX_AI_PROJECT_ID": "vertex_project_id",
    "VERTEX_AI_LOCATION": "vertex_location",
    "SUPABASE_URL": "supabase_url",
    "SUPABASE_SERVICE_KEY": "supabase_service_key",
    "CATALOG_TENANT_ID": "catalog_tenant_id",
    "WEBHOOK_PATH": "webhook_path",
    "RATE_LIMIT_MAX_EVENTS": "rate_limit_max_events",
    "RATE_LIMIT_WINDOW_SECONDS": "rate_limit_window_seconds",
    "MAX_MESSAGE_CHARS": "max_message_chars",
    "MAX_CONCURRENT_DISPATCHES": "max_concurrent_dispatches",
    "AUDIT_LOG_PATH": "audit_log_path",
    "AUDIT_LOG_MAX_BYTES": "audit_log_max_bytes",
    "AUDIT_LOG_BACKUP_COUNT": "audit_log_backup_count",
    "LOG_LEVEL": "log_level",
}


def load_config(environ: Mapping[str, str] | None = None) -> AppConfig:
    """Build AppConfig from environment variables.

    Fails fast with ConfigurationError when a required secret is absent or
    an optional numeric setting cannot be parsed.
    """
    env = os.environ if environ is None else environ

    missing = [name for name in REQUIRED_VARS if not env.get(name)]
    if missing:
        raise ConfigurationError(missing)

    values: dict[str, object] = {
        "page_access_token": env["PAGE_ACCESS_TOKEN"],
        "verify_token": env["VERIFY_TOKEN"],
        "app_secret": env["APP_SECRET"],
    }
    for var, field_name in _OPTIONAL_VARS.items():
        raw = env.get(var)
        if raw:
            values[field_name] = raw

    try:
        return AppConfig.model_validate(values)
    except ValidationError as exc:
        invalid = [
            var for var, field_name in _OPTIONAL_VARS.items()
            if any(err["loc"] and err["loc"][0] == field_name for err in exc.errors())
        ]
        raise ConfigurationError(invalid or [str(exc)]) from exc
