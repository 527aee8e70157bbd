"""
Slide MCP Configuration
-----------------------
Process-wide configuration, resolved once at startup from CLI flags and
SLIDE_* environment variables and frozen thereafter.

Resolution order for every field: explicit CLI value -> environment -> default.
"""

import os
import logging
from dataclasses import dataclass
from typing import Optional, List, Mapping, Tuple

from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger("Slide.Config")

_PREFIX = "SLIDE_"

DEFAULT_BASE_URL = "https://api.slide.tech"
DEFAULT_TOOLS_MODE = "full-safe"
DEFAULT_REQUEST_TIMEOUT = 30.0
DEFAULT_HTTP_HOST = "127.0.0.1"
DEFAULT_HTTP_PORT = 8080
DEFAULT_SESSION_IDLE_TIMEOUT = 3600.0
DEFAULT_SSE_HEARTBEAT_INTERVAL = 30.0

TOOLS_MODES = ("reporting", "restores", "full-safe", "full")


class ConfigError(ValueError):
    """Raised when startup configuration is unusable."""


def _env_bool(key: str, default: str = "0", environ: Optional[Mapping[str, str]] = None) -> bool:
    """Read a boolean flag from environment. '1'/'true'/'yes'/'on' -> True."""
    env = os.environ if environ is None else environ
    val = env.get(f"{_PREFIX}{key}", default).strip().lower()
    return val in ("1", "true", "yes", "on")


def _env_str(key: str, environ: Optional[Mapping[str, str]] = None) -> Optional[str]:
    env = os.environ if environ is None else environ
    raw = env.get(f"{_PREFIX}{key}")
    if raw is None or raw.strip() == "":
        return None
    return raw.strip()


def _parse_optional_float_env(
    key: str,
    environ: Optional[Mapping[str, str]] = None,
    *,
    allow_zero: bool = False,
) -> Optional[float]:
    raw = _env_str(key, environ)
    if raw is None:
        return None
    try:
        value = float(raw)
        if value < 0 or (value == 0 and not allow_zero):
            raise ValueError
        return value
    except ValueError:
        logger.warning(
            "Invalid %s%s value '%s'; expected positive number. Ignoring.",
            _PREFIX,
            key,
            raw,
        )
        return None


def _parse_optional_int_env(key: str, environ: Optional[Mapping[str, str]] = None) -> Optional[int]:
    raw = _env_str(key, environ)
    if raw is None:
        return None
    try:
        value = int(raw)
        if value <= 0:
            raise ValueError
        return value
    except ValueError:
        logger.warning("Invalid %s%s value '%s'; expected positive integer. Ignoring.", _PREFIX, key, raw)
        return None


def parse_disabled_tools(csv: Optional[str]) -> List[str]:
    """Split a comma-separated deny-list, trimming blanks: "a,b,,c" -> ["a","b","c"]."""
    if not csv:
        return []
    return [part.strip() for part in csv.split(",") if part.strip()]


def validate_tools_mode(mode: str) -> str:
    if mode not in TOOLS_MODES:
        raise ConfigError(
            f"invalid tools mode '{mode}'. Valid options: reporting, restores, full-safe, full"
        )
    return mode


@dataclass(frozen=True)
class FeatureGates:
    """Optional tool families that stay hidden unless explicitly enabled."""

    presentation: bool = False
    reports: bool = False

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "FeatureGates":
        return cls(
            presentation=_env_bool("ENABLE_PRESENTATION", "0", environ),
            reports=_env_bool("ENABLE_REPORTS", "0", environ),
        )


class SlideConfig(BaseModel):
    model_config = {"frozen": True}

    api_key: str
    base_url: str = DEFAULT_BASE_URL
    tools_mode: str = DEFAULT_TOOLS_MODE
    disabled_tools: Tuple[str, ...] = ()
    features: FeatureGates = Field(default_factory=FeatureGates)
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT

    # Transport settings
    http_host: str = DEFAULT_HTTP_HOST
    http_port: int = DEFAULT_HTTP_PORT
    session_idle_timeout: float = DEFAULT_SESSION_IDLE_TIMEOUT
    sse_heartbeat_interval: float = DEFAULT_SSE_HEARTBEAT_INTERVAL

    @field_validator("api_key")
    @classmethod
    def _require_api_key(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError(
                "API key not provided. Use --api-key flag or set SLIDE_API_KEY environment variable."
            )
        return value.strip()

    @field_validator("tools_mode")
    @classmethod
    def _check_tools_mode(cls, value: str) -> str:
        return validate_tools_mode(value)

    @field_validator("base_url")
    @classmethod
    def _strip_base_url(cls, value: str) -> str:
        return value.rstrip("/")

    @property
    def enable_presentation(self) -> bool:
        return self.features.presentation

    @property
    def enable_reports(self) -> bool:
        return self.features.reports

    def is_disabled(self, tool_name: str) -> bool:
        return tool_name in self.disabled_tools

    @classmethod
    def from_sources(
        cls,
        *,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        tools_mode: Optional[str] = None,
        disabled_tools: Optional[str] = None,
        enable_presentation: bool = False,
        enable_reports: bool = False,
        http_host: Optional[str] = None,
        http_port: Optional[int] = None,
        environ: Optional[Mapping[str, str]] = None,
    ) -> "SlideConfig":
        """
        Build the frozen config from CLI values layered over the environment.

        Raises ConfigError with the user-facing message when the API key is
        missing or the tools mode is unknown.
        """
        key = api_key or _env_str("API_KEY", environ)
        if not key:
            raise ConfigError(
                "API key not provided. Use --api-key flag or set SLIDE_API_KEY environment variable."
            )

        mode = tools_mode or _env_str("TOOLS", environ) or DEFAULT_TOOLS_MODE
        validate_tools_mode(mode)

        disabled_csv = disabled_tools if disabled_tools is not None else _env_str("DISABLED_TOOLS", environ)
        env_gates = FeatureGates.from_env(environ)
        features = FeatureGates(
            presentation=enable_presentation or env_gates.presentation,
            reports=enable_reports or env_gates.reports,
        )

        config = cls(
            api_key=key,
            base_url=base_url or _env_str("BASE_URL", environ) or DEFAULT_BASE_URL,
            tools_mode=mode,
            disabled_tools=tuple(parse_disabled_tools(disabled_csv)),
            features=features,
            request_timeout=_parse_optional_float_env("REQUEST_TIMEOUT", environ) or DEFAULT_REQUEST_TIMEOUT,
            http_host=http_host or _env_str("HTTP_HOST", environ) or DEFAULT_HTTP_HOST,
            http_port=http_port or _parse_optional_int_env("HTTP_PORT", environ) or DEFAULT_HTTP_PORT,
            session_idle_timeout=_resolve_idle_timeout(environ),
        )
        logger.info(
            "Configuration resolved: mode=%s base_url=%s disabled=%s presentation=%s reports=%s",
            config.tools_mode,
            config.base_url,
            ",".join(config.disabled_tools) or "-",
            config.features.presentation,
            config.features.reports,
        )
        return config


def _resolve_idle_timeout(environ: Optional[Mapping[str, str]]) -> float:
    value = _parse_optional_float_env("SESSION_IDLE_TIMEOUT", environ, allow_zero=True)
    if value is None:
        return DEFAULT_SESSION_IDLE_TIMEOUT
    return value
