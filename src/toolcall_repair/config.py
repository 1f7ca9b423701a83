"""Configuration loading and validation."""

from __future__ import annotations

import os
import re
from pathlib import Path

import yaml
from pydantic import BaseModel, Field, ValidationError

from .exceptions import ConfigError

DEFAULT_CONFIG_PATH = "~/.toolcall-repair/config.yaml"


class RepairConfig(BaseModel):
    escape_control_chars: bool = True
    aggressive_unicode_escape: bool = True
    fix_common_mistakes: bool = True


class ReconstructionConfig(BaseModel):
    enabled: bool = True
    confidence_scale: float = Field(default=0.8, ge=0.0, le=1.0)


class ParserConfig(BaseModel):
    min_confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    scan_fenced: bool = True
    scan_bare: bool = True
    max_context_chars: int = 200  # Truncation of candidate text in errors


class ToolcallRepairConfig(BaseModel):
    repair: RepairConfig = Field(default_factory=RepairConfig)
    reconstruction: ReconstructionConfig = Field(default_factory=ReconstructionConfig)
    parser: ParserConfig = Field(default_factory=ParserConfig)
    schemas_file: str = ""  # Extra tool schemas (YAML), merged over the defaults
    log_level: str = "WARNING"


def _interpolate_env_vars(text: str) -> str:
    """Replace ${VAR_NAME} with environment variable values."""

    def replacer(match: re.Match) -> str:
        var_name = match.group(1)
        return os.environ.get(var_name, "")

    return re.sub(r"\$\{(\w+)\}", replacer, text)


def _env_flag(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _config_from_env() -> ToolcallRepairConfig:
    """Build config from TOOLCALL_REPAIR_* environment variables.

    Falls back to defaults for anything not set.
    """
    try:
        return ToolcallRepairConfig(
            reconstruction=ReconstructionConfig(
                enabled=_env_flag("TOOLCALL_REPAIR_RECONSTRUCT", True),
            ),
            parser=ParserConfig(
                min_confidence=float(
                    os.environ.get("TOOLCALL_REPAIR_MIN_CONFIDENCE", "0.5")
                ),
            ),
            schemas_file=os.environ.get("TOOLCALL_REPAIR_SCHEMAS_FILE", ""),
            log_level=os.environ.get("TOOLCALL_REPAIR_LOG_LEVEL", "WARNING"),
        )
    except (ValueError, ValidationError) as e:
        raise ConfigError(f"Invalid TOOLCALL_REPAIR_* environment: {e}") from e


def load_config(path: str | Path | None = None) -> ToolcallRepairConfig:
    """Load config from YAML file, env vars, or defaults.

    Priority: config.yaml (with ${ENV} interpolation) > env vars > defaults.
    """
    path = Path(path or DEFAULT_CONFIG_PATH).expanduser()

    if not path.exists():
        if any(k.startswith("TOOLCALL_REPAIR_") for k in os.environ):
            return _config_from_env()
        return ToolcallRepairConfig()

    raw_text = path.read_text()
    interpolated = _interpolate_env_vars(raw_text)
    try:
        data = yaml.safe_load(interpolated)
    except yaml.YAMLError as e:
        raise ConfigError(f"Cannot parse config file {path}: {e}") from e
    if data is None:
        return ToolcallRepairConfig()
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a mapping")
    try:
        return ToolcallRepairConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid config file {path}: {e}") from e


def save_config(config: ToolcallRepairConfig, path: str | Path | None = None) -> Path:
    """Save config to YAML file."""
    path = Path(path or DEFAULT_CONFIG_PATH).expanduser()
    path.parent.mkdir(parents=True, exist_ok=True)
    data = config.model_dump()
    path.write_text(yaml.dump(data, default_flow_style=False, sort_keys=False))
    return path
