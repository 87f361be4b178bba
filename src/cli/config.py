"""YAML configuration loader with env var resolution and Pydantic validation.

Loads config from (priority order):
1. --config <path> CLI flag (or LEADRELAY_CONFIG_PATH for the server)
2. ./leadrelay.yaml (working directory)
3. ~/.leadrelay/config.yaml (user home)

Environment variables override YAML: LEADRELAY_<SECTION>_<KEY>.
${VAR} references in YAML values resolve from environment at load time.
When no file is found, defaults plus env overrides are used.
"""

import logging
import os
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, model_validator

logger = logging.getLogger(__name__)

_ENV_VAR_PATTERN = re.compile(r"\$\{([^}]+)\}")

ENV_PREFIX = "LEADRELAY_"


def resolve_env_vars(value: str) -> str:
    """Resolve ${VAR} references in a string from environment variables.

    Args:
        value: String potentially containing ${VAR} references.

    Returns:
        String with all ${VAR} references replaced by their env values.
        Missing env vars resolve to empty string.
    """
    def _replace(match: re.Match) -> str:
        return os.environ.get(match.group(1), "")

    return _ENV_VAR_PATTERN.sub(_replace, value)


def _resolve_env_vars_recursive(data: Any) -> Any:
    """Recursively resolve ${VAR} references in a nested data structure."""
    if isinstance(data, str):
        return resolve_env_vars(data)
    elif isinstance(data, dict):
        return {k: _resolve_env_vars_recursive(v) for k, v in data.items()}
    elif isinstance(data, list):
        return [_resolve_env_vars_recursive(item) for item in data]
    return data


class ServerConfig(BaseModel):
    """Configuration for the LeadRelay HTTP server process."""

    host: str = "127.0.0.1"
    port: int = 8000
    log_level: str = "info"


class LeaseConfig(BaseModel):
    """Lead dedupe lease timings, all in seconds.

    lease_duration_seconds must outlast the slowest successful delivery
    so a second caller never preempts a send that is still in progress.
    """

    lease_duration_seconds: int = Field(default=120, gt=0)
    error_cooldown_seconds: int = Field(default=300, gt=0)
    retention_seconds: int = Field(default=30 * 24 * 60 * 60, gt=0)

    @model_validator(mode="after")
    def retention_outlasts_windows(self) -> "LeaseConfig":
        """Records must not age out before their lease or cooldown ends."""
        longest = max(self.lease_duration_seconds, self.error_cooldown_seconds)
        if self.retention_seconds <= longest:
            raise ValueError(
                "retention_seconds must exceed both lease_duration_seconds "
                "and error_cooldown_seconds"
            )
        return self


class MessageLinkConfig(BaseModel):
    """Message-link token issuance settings."""

    public_base_url: str = "https://craigs.autos"
    ttl_days: int = Field(default=14, gt=0)


class DeliveryConfig(BaseModel):
    """Lead notification e-mail delivery settings (Amazon SES)."""

    lead_to_email: str = ""
    lead_from_email: str = ""
    aws_region: str | None = None
    timeout_seconds: int = Field(default=20, gt=0)
    max_attempts: int = Field(default=2, ge=1)

    @property
    def worst_case_seconds(self) -> int:
        """Longest one send can block.

        Each attempt may spend the full connect timeout and then the full
        read timeout.
        """
        return self.max_attempts * 2 * self.timeout_seconds


class StoreConfig(BaseModel):
    """Durable store connection settings."""

    timeout_seconds: int = Field(default=5, gt=0)


class LeadRelayConfig(BaseModel):
    """Top-level configuration for the LeadRelay service."""

    server: ServerConfig = ServerConfig()
    lease: LeaseConfig = LeaseConfig()
    message_link: MessageLinkConfig = MessageLinkConfig()
    delivery: DeliveryConfig = DeliveryConfig()
    store: StoreConfig = StoreConfig()

    @model_validator(mode="after")
    def lease_outlasts_delivery(self) -> "LeadRelayConfig":
        """Reject a lease that could expire while a send is still running."""
        worst_case = self.delivery.worst_case_seconds
        if self.lease.lease_duration_seconds <= worst_case:
            raise ValueError(
                "lease.lease_duration_seconds must exceed the worst-case send time "
                f"(delivery.max_attempts x 2 x delivery.timeout_seconds = {worst_case}s)"
            )
        return self


def _find_config_file() -> Path | None:
    """Search for config file in standard locations.

    Returns:
        Path to config file if found, None otherwise.
    """
    candidates = [
        Path.cwd() / "leadrelay.yaml",
        Path.cwd() / "leadrelay.yml",
        Path.home() / ".leadrelay" / "config.yaml",
        Path.home() / ".leadrelay" / "config.yml",
    ]
    for candidate in candidates:
        if candidate.exists():
            return candidate
    return None


def _apply_env_overrides(data: dict[str, Any]) -> dict[str, Any]:
    """Apply LEADRELAY_<SECTION>_<KEY> env var overrides to config data.

    Matches section names by longest prefix so multi-word section names
    like ``message_link`` are handled correctly. For example,
    ``LEADRELAY_MESSAGE_LINK_TTL_DAYS`` maps to section ``message_link``,
    field ``ttl_days``.

    Args:
        data: Parsed YAML config dict.

    Returns:
        Config dict with env var overrides applied.
    """
    # Known sections sorted longest-first so greedy prefix match works.
    known_sections = sorted(
        LeadRelayConfig.model_fields.keys(), key=len, reverse=True
    )
    for key, value in os.environ.items():
        if not key.startswith(ENV_PREFIX):
            continue
        suffix = key[len(ENV_PREFIX):].lower()  # e.g. "lease_retention_seconds"
        matched_section = None
        matched_field = None
        for section in known_sections:
            section_prefix = section + "_"
            if suffix.startswith(section_prefix):
                matched_section = section
                matched_field = suffix[len(section_prefix):]
                break
        if matched_section is None or not matched_field:
            continue
        if matched_section not in data:
            data[matched_section] = {}
        if isinstance(data[matched_section], dict):
            # Coerce to int, bool, or keep as string
            try:
                data[matched_section][matched_field] = int(value)
            except ValueError:
                if value.lower() in ("true", "false"):
                    data[matched_section][matched_field] = value.lower() == "true"
                else:
                    data[matched_section][matched_field] = value
    return data


def load_config(config_path: str | None = None) -> LeadRelayConfig:
    """Load LeadRelay configuration from YAML file with env var resolution.

    Args:
        config_path: Explicit path to config file. If None, searches
            standard locations (cwd, then ~/.leadrelay/).

    Returns:
        Parsed and validated LeadRelayConfig. Defaults (plus env
        overrides) when no config file exists.

    Raises:
        FileNotFoundError: If an explicit config_path does not exist.
    """
    if config_path:
        path: Path | None = Path(config_path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")
    else:
        path = _find_config_file()

    raw_data: dict[str, Any] = {}
    if path is not None:
        logger.info("Loading config from %s", path)
        with open(path) as f:
            raw_data = yaml.safe_load(f) or {}
    else:
        logger.debug("No config file found; using defaults")

    # Resolve ${VAR} references
    data = _resolve_env_vars_recursive(raw_data)

    # Apply LEADRELAY_ env var overrides
    data = _apply_env_overrides(data)

    # Validate with Pydantic
    return LeadRelayConfig(**data)
