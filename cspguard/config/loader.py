"""YAML + env var config loading with pydantic-settings."""

from __future__ import annotations

import signal
from collections.abc import Callable
from pathlib import Path
from typing import Any

import structlog
import yaml
from pydantic import BaseModel, ConfigDict, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from cspguard.errors import CSPGuardError, PolicyConfigError
from cspguard.policy.builder import InlineExecution, PolicyConfiguration

logger = structlog.get_logger()


def _load_yaml(path: Path) -> dict[str, Any]:
    """Load a YAML mapping, returning an empty dict if the file is missing."""
    if not path.exists():
        return {}
    with open(path) as f:
        try:
            data = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise PolicyConfigError(f"Invalid YAML in {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise PolicyConfigError(f"{path} must contain a mapping at the top level")
    return data


class RoutePolicy(BaseModel):
    """One entry under 'routes' in the policy file."""

    model_config = ConfigDict(extra="forbid")

    default_source: str | None = None
    script_source: str | None = None
    script_inline_execution: InlineExecution = InlineExecution.REFUSE
    style_source: str | None = None
    style_inline_execution: InlineExecution = InlineExecution.REFUSE
    report_only: bool = False
    report_uri: str | None = None

    @field_validator("script_inline_execution", "style_inline_execution", mode="before")
    @classmethod
    def _parse_inline_execution(cls, value: Any) -> InlineExecution:
        try:
            return InlineExecution.parse(value)
        except PolicyConfigError as exc:
            raise ValueError(str(exc)) from exc

    def to_configuration(self) -> PolicyConfiguration:
        return PolicyConfiguration(**self.model_dump())


class PolicySettings(BaseSettings):
    """Policy configuration loaded from env vars (and .env)."""

    model_config = SettingsConfigDict(
        env_prefix="CSP_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    default_source: str = ""
    script_source: str = ""
    script_inline_execution: InlineExecution = InlineExecution.REFUSE
    style_source: str = ""
    style_inline_execution: InlineExecution = InlineExecution.REFUSE
    report_only: bool = False
    report_uri: str = ""

    # False leaves the CSP middleware in the pipeline but skipped
    enabled: bool = True

    # YAML file with per-path overrides under a top-level "routes" key
    policy_file: str = ""

    log_level: str = "info"
    log_json: bool = True

    # Demo server
    listen_host: str = "127.0.0.1"
    listen_port: int = 8000

    @field_validator("script_inline_execution", "style_inline_execution", mode="before")
    @classmethod
    def _parse_inline_execution(cls, value: Any) -> InlineExecution:
        try:
            return InlineExecution.parse(value)
        except PolicyConfigError as exc:
            raise ValueError(str(exc)) from exc


_settings: PolicySettings | None = None


def get_settings() -> PolicySettings:
    """Get or create the singleton settings instance."""
    global _settings
    if _settings is None:
        _settings = load_settings()
    return _settings


def load_settings() -> PolicySettings:
    """Load settings from env vars (env vars override model defaults)."""
    global _settings
    _settings = PolicySettings()
    logger.info(
        "config_loaded",
        script_inline_execution=_settings.script_inline_execution.value,
        style_inline_execution=_settings.style_inline_execution.value,
        report_only=_settings.report_only,
        policy_file=_settings.policy_file or None,
    )
    return _settings


def configuration_from_settings(settings: PolicySettings) -> PolicyConfiguration:
    """Build the default policy from settings."""
    return PolicyConfiguration(
        default_source=settings.default_source,
        script_source=settings.script_source,
        script_inline_execution=settings.script_inline_execution,
        style_source=settings.style_source,
        style_inline_execution=settings.style_inline_execution,
        report_only=settings.report_only,
        report_uri=settings.report_uri,
    )


def load_policy_file(path: str | Path) -> dict[str, PolicyConfiguration]:
    """Load per-path policy overrides from YAML.

    Expected layout::

        routes:
          /admin:
            default_source: "'self'"
            script_inline_execution: hash
    """
    if not path:
        return {}
    data = _load_yaml(Path(path))
    routes = data.get("routes") or {}
    if not isinstance(routes, dict):
        raise PolicyConfigError(f"'routes' in {path} must be a mapping")

    overrides: dict[str, PolicyConfiguration] = {}
    for prefix, entry in routes.items():
        if not isinstance(prefix, str) or not prefix.startswith("/"):
            raise PolicyConfigError(f"Route prefix must start with '/': {prefix!r}")
        if not isinstance(entry, dict):
            raise PolicyConfigError(f"Policy for {prefix} must be a mapping")
        try:
            overrides[prefix] = RoutePolicy.model_validate(entry).to_configuration()
        except ValidationError as exc:
            raise PolicyConfigError(f"Invalid policy for {prefix} in {path}: {exc}") from exc

    logger.info("policy_file_loaded", path=str(path), routes=sorted(overrides))
    return overrides


def register_reload_handler(on_reload: Callable[[PolicySettings], None] | None = None) -> None:
    """Register SIGHUP handler for hot-reload of configuration.

    ``on_reload`` receives the fresh settings, e.g. to rebuild the pipeline.
    """
    import threading

    if threading.current_thread() is not threading.main_thread():
        logger.debug("skipping_sighup_handler", reason="not main thread")
        return

    def _reload(signum, frame):
        logger.info("config_reload_triggered")
        # A bad file or env var keeps the running pipeline in place
        try:
            settings = load_settings()
            if on_reload is not None:
                on_reload(settings)
        except (CSPGuardError, ValidationError) as exc:
            logger.error("config_reload_failed", error=str(exc))

    try:
        signal.signal(signal.SIGHUP, _reload)
    except (ValueError, AttributeError):
        logger.debug("skipping_sighup_handler", reason="signal not supported")
