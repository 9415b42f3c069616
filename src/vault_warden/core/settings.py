"""
Configuration models for vault-warden using Pydantic v2 Settings.

Values come from a YAML file (see `load_settings`) and may be overridden
by ``VAULT_WARDEN_*`` environment variables, e.g.
``VAULT_WARDEN_AUDIT__POLL_INTERVAL_SECONDS=0.5``.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator
from pydantic_settings import (  # type: ignore[import-not-found]
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from .errors import ConfigurationError

DEFAULT_CONFIG_PATH = "/etc/vault-warden.yaml"
DEFAULT_PRIVILEGED_PATHS = ("sign/root", "database/creds/admin")


class HttpSettings(BaseModel):
    """Shared settings for outbound HTTP calls."""

    timeout_seconds: float = Field(
        default=10.0,
        gt=0.0,
        description="Per-request timeout for Vault and webhook calls",
    )
    verify_tls: bool = Field(
        default=True,
        description="Verify TLS certificates of the Vault server",
    )


class AuditSettings(BaseModel):
    poll_interval_seconds: float = Field(
        default=1.0,
        gt=0.0,
        description="Delay between reads when the audit log has no new line",
    )
    privileged_paths: list[str] = Field(
        default_factory=lambda: list(DEFAULT_PRIVILEGED_PATHS),
        description="Request path substrings that raise a critical alert",
    )
    monitor_name: str = Field(
        default="Vault Warden",
        description="Name used in start/stop notifications",
    )

    @field_validator("privileged_paths")
    @classmethod
    def _drop_blank_patterns(cls, value: list[str]) -> list[str]:
        # An empty substring would match every request
        return [p for p in value if p]


class ObservabilitySettings(BaseModel):
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(default="INFO")
    log_format: Literal["json", "text"] = Field(default="json")
    metrics_enabled: bool = Field(
        default=False, description="Enable Prometheus-compatible counters"
    )
    metrics_textfile: str | None = Field(
        default=None,
        description="Write metrics here for the node-exporter textfile collector",
    )


class Settings(BaseSettings):
    """Validated configuration record threaded through every component."""

    address: str = Field(description="Base URL of the Vault server")
    unseal_keys: list[str] = Field(min_length=1)
    webhook_url: str
    audit_log: str

    http: HttpSettings = Field(default_factory=HttpSettings)
    audit: AuditSettings = Field(default_factory=AuditSettings)
    observability: ObservabilitySettings = Field(
        default_factory=ObservabilitySettings
    )

    model_config = SettingsConfigDict(
        env_prefix="VAULT_WARDEN_",
        env_nested_delimiter="__",
        extra="ignore",
        case_sensitive=False,
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # Environment wins over values read from the YAML file
        return (env_settings, init_settings, file_secret_settings)

    @field_validator("address", "webhook_url", "audit_log")
    @classmethod
    def _ensure_non_empty(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be empty")
        return value

    @field_validator("address")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    def redacted(self) -> dict[str, Any]:
        """Dump for diagnostics with key material and webhook token masked."""
        data = self.model_dump()
        data["unseal_keys"] = ["***"] * len(self.unseal_keys)
        data["webhook_url"] = self.webhook_url.rsplit("/", 1)[0] + "/***"
        return data


def load_settings(path: str | Path = DEFAULT_CONFIG_PATH) -> Settings:
    """Read and validate the YAML configuration file at ``path``."""
    config_path = Path(path)
    try:
        content = config_path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigurationError(
            f"Cannot read configuration file {config_path}", cause=exc
        ) from exc

    try:
        data = yaml.safe_load(content)
    except yaml.YAMLError as exc:
        raise ConfigurationError(
            f"Invalid YAML in {config_path}", cause=exc
        ) from exc

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigurationError(
            f"Configuration in {config_path} must be a mapping",
            document_type=type(data).__name__,
        )

    try:
        return Settings(**data)
    except ValidationError as exc:
        fields = sorted({".".join(str(p) for p in err["loc"]) for err in exc.errors()})
        raise ConfigurationError(
            f"Invalid configuration in {config_path}: {', '.join(fields)}",
            cause=exc,
            fields=fields,
        ) from exc
