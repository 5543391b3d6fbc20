"""Application configuration.

Settings are read from a YAML file (``~/.aimate/config.yaml`` unless
``AIMATE_CONFIG`` points elsewhere) and then overlaid with environment
variables, so a deployment can run entirely from the environment.

Example file::

    litellm:
      base_url: http://localhost:4000
      default_model: gpt-4
    chat:
      turn_timeout_seconds: 30
    safety:
      region: AU
      sensitivity: Moderate
      auto_intervene: true
    plugins:
      enabled: [mental-health-safety, web-search]
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Optional

import yaml

from aimate.errors import ConfigError
from aimate.safety.models import Sensitivity

DEFAULT_CONFIG_PATH = Path.home() / ".aimate" / "config.yaml"

_TRUTHY = {"1", "true", "yes", "on"}
_FALSY = {"0", "false", "no", "off"}


# ---------------------------------------------------------------------------
# Sections
# ---------------------------------------------------------------------------


@dataclass
class LiteLLMSettings:
    """Connection details for the LiteLLM proxy."""

    base_url: str = "http://localhost:4000"
    api_key: str = ""
    default_model: str = "gpt-4"
    temperature: float = 0.7
    max_tokens: int = 2000
    request_timeout_seconds: float = 60.0


@dataclass
class ChatSettings:
    turn_timeout_seconds: float = 30.0


@dataclass
class SafetySettings:
    """Defaults for the mental-health safety plugin.

    Per-user values in ``ConversationContext.user_settings`` take
    precedence over these.
    """

    region: str = "NZ"
    sensitivity: Sensitivity = Sensitivity.CONSERVATIVE
    auto_intervene: bool = True
    escalation_window_minutes: float = 15.0
    escalation_threshold: int = 3
    resources_file: str = ""
    audit_dir: str = ""


@dataclass
class PluginSettingsConfig:
    enabled: list[str] = field(
        default_factory=lambda: ["mental-health-safety", "web-search", "code-generator"]
    )


@dataclass
class LoggingSettings:
    level: str = "INFO"
    json_format: bool = False


@dataclass
class AimateConfig:
    """Top-level configuration tree."""

    litellm: LiteLLMSettings = field(default_factory=LiteLLMSettings)
    chat: ChatSettings = field(default_factory=ChatSettings)
    safety: SafetySettings = field(default_factory=SafetySettings)
    plugins: PluginSettingsConfig = field(default_factory=PluginSettingsConfig)
    logging: LoggingSettings = field(default_factory=LoggingSettings)


# ---------------------------------------------------------------------------
# Parsing helpers
# ---------------------------------------------------------------------------


def parse_bool(value: Any, name: str) -> bool:
    """Interpret *value* as a boolean, accepting common string spellings."""
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUTHY:
        return True
    if text in _FALSY:
        return False
    raise ConfigError(f"{name}: expected a boolean, got {value!r}")


def parse_sensitivity(value: Any, name: str = "sensitivity") -> Sensitivity:
    if isinstance(value, Sensitivity):
        return value
    for level in Sensitivity:
        if str(value).strip().lower() == level.value.lower():
            return level
    choices = ", ".join(s.value for s in Sensitivity)
    raise ConfigError(f"{name}: expected one of {choices}, got {value!r}")


def _apply_section(section: Any, data: dict[str, Any], prefix: str) -> None:
    if not isinstance(data, dict):
        raise ConfigError(f"{prefix}: expected a mapping")
    for f in fields(section):
        if f.name not in data:
            continue
        raw = data[f.name]
        name = f"{prefix}.{f.name}"
        current = getattr(section, f.name)
        try:
            if isinstance(current, Sensitivity):
                value: Any = parse_sensitivity(raw, name)
            elif isinstance(current, bool):
                value = parse_bool(raw, name)
            elif isinstance(current, int):
                value = int(raw)
            elif isinstance(current, float):
                value = float(raw)
            elif isinstance(current, list):
                value = [str(item) for item in raw]
            else:
                value = "" if raw is None else str(raw)
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"{name}: {exc}") from exc
        setattr(section, f.name, value)


def _apply_env(config: AimateConfig, env: dict[str, str]) -> None:
    if env.get("LITELLM_BASE_URL"):
        config.litellm.base_url = env["LITELLM_BASE_URL"]
    if env.get("LITELLM_API_KEY"):
        config.litellm.api_key = env["LITELLM_API_KEY"]
    if env.get("AIMATE_DEFAULT_MODEL"):
        config.litellm.default_model = env["AIMATE_DEFAULT_MODEL"]
    if env.get("AIMATE_REGION"):
        config.safety.region = env["AIMATE_REGION"].upper()
    if env.get("AIMATE_SAFETY_SENSITIVITY"):
        config.safety.sensitivity = parse_sensitivity(
            env["AIMATE_SAFETY_SENSITIVITY"], "AIMATE_SAFETY_SENSITIVITY"
        )
    if env.get("AIMATE_AUTO_INTERVENE"):
        config.safety.auto_intervene = parse_bool(
            env["AIMATE_AUTO_INTERVENE"], "AIMATE_AUTO_INTERVENE"
        )
    if env.get("AIMATE_LOG_LEVEL"):
        config.logging.level = env["AIMATE_LOG_LEVEL"].upper()


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(
    path: str | Path | None = None,
    env: Optional[dict[str, str]] = None,
) -> AimateConfig:
    """Load configuration from *path* (or the default location) plus *env*.

    A missing file is not an error; a file that is not valid YAML, or whose
    values have the wrong type, raises :class:`ConfigError`.
    """
    env = dict(os.environ) if env is None else env
    if path is None:
        path = env.get("AIMATE_CONFIG") or DEFAULT_CONFIG_PATH
    config_path = Path(path)

    config = AimateConfig()
    if config_path.exists():
        try:
            with open(config_path) as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise ConfigError(f"{config_path}: invalid YAML: {exc}") from exc
        if not isinstance(data, dict):
            raise ConfigError(f"{config_path}: top level must be a mapping")
        for f in fields(config):
            if f.name in data:
                _apply_section(getattr(config, f.name), data[f.name] or {}, f.name)

    _apply_env(config, env)
    config.safety.region = config.safety.region.upper()
    return config
