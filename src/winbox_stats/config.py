"""
Configuration management for winbox-stats.

Configuration is loaded from multiple sources with layered precedence:
1. Built-in defaults (Pydantic model defaults)
2. YAML config file (./winbox-stats.yml or --config path)
3. Environment variables (WINBOX_STATS_* prefix, __ for nesting)
4. Command-line arguments (highest precedence)
"""

from __future__ import annotations

import argparse
import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from winbox_stats import __version__
from winbox_stats.errors import ConfigError

DEFAULT_CONFIG_FILE = "winbox-stats.yml"
DEFAULT_ENV_PREFIX = "WINBOX_STATS_"

MODE_CAPTURE = "capture"
MODE_GRAPH = "graph"

# =============================================================================
# Logging Configuration
# =============================================================================


class LoggingConfig(BaseModel):
    """Logging configuration.

    Attributes:
        level: Log level.
        log_to_stdout: Whether to log to stdout.
        json_format: Emit JSON records instead of plain text.
        log_file: Optional file to append log records to.
    """

    model_config = ConfigDict(coerce_numbers_to_str=True)

    level: str = Field(
        default="info",
        description="Log level: debug, info, warning, error, critical",
    )
    log_to_stdout: bool = Field(
        default=True,
        description="Whether to log to stdout",
    )
    json_format: bool = Field(
        default=True,
        description="Emit JSON-formatted log records",
    )
    log_file: str | None = Field(
        default=None,
        description="Optional log file path",
    )

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        """Validate and normalize log level."""
        valid_levels = {"debug", "info", "warn", "warning", "error", "critical"}
        v_lower = v.lower()
        if v_lower not in valid_levels:
            raise ValueError(
                f"Invalid log level: {v}. Must be one of: {', '.join(sorted(valid_levels))}"
            )
        # Normalize 'warn' to 'warning'
        if v_lower == "warn":
            return "warning"
        return v_lower


# =============================================================================
# Capture Configuration
# =============================================================================


class CaptureConfig(BaseModel):
    """Capture-mode configuration.

    Attributes:
        directory: Directory the store files are written to.
        cpu_interval_seconds: Measurement window for the CPU load reading.
        include_drives: Whether to sample usage of every fixed local volume.
    """

    model_config = ConfigDict(coerce_numbers_to_str=True)

    directory: str = Field(
        default=".",
        description="Directory the store files are written to",
    )
    cpu_interval_seconds: float = Field(
        default=0.75,
        description="CPU measurement window in seconds",
        gt=0,
        le=10,
    )
    include_drives: bool = Field(
        default=True,
        description="Sample usage of every fixed local volume",
    )


# =============================================================================
# Graph Configuration
# =============================================================================


class GraphConfig(BaseModel):
    """Graph-mode configuration.

    Attributes:
        root_dir: Directory tree searched for store files.
        width: Chart width in pixels.
        height: Chart height in pixels.
        dpi: Chart resolution used to convert pixels to figure inches.
    """

    model_config = ConfigDict(coerce_numbers_to_str=True)

    root_dir: str = Field(
        default=".",
        description="Directory tree searched for store files",
    )
    width: int = Field(
        default=1600,
        description="Chart width in pixels",
        ge=200,
    )
    height: int = Field(
        default=900,
        description="Chart height in pixels",
        ge=150,
    )
    dpi: int = Field(
        default=100,
        description="Chart resolution in dots per inch",
        ge=10,
        le=600,
    )


# =============================================================================
# Main Application Configuration
# =============================================================================


class AppConfig(BaseModel):
    """
    Main application configuration model.

    Attributes:
        mode: Invocation mode, 'capture' (default) or 'graph'.
        logging: Logging configuration.
        capture: Capture-mode settings.
        graph: Graph-mode settings.
    """

    model_config = ConfigDict(coerce_numbers_to_str=True)

    mode: str = Field(
        default=MODE_CAPTURE,
        description="Invocation mode: 'capture' or 'graph'",
    )
    logging: LoggingConfig = Field(
        default_factory=LoggingConfig,
        description="Logging configuration",
    )
    capture: CaptureConfig = Field(
        default_factory=CaptureConfig,
        description="Capture-mode settings",
    )
    graph: GraphConfig = Field(
        default_factory=GraphConfig,
        description="Graph-mode settings",
    )

    @field_validator("mode")
    @classmethod
    def validate_mode(cls, v: str) -> str:
        """Validate invocation mode."""
        valid_modes = {MODE_CAPTURE, MODE_GRAPH}
        v_lower = v.lower()
        if v_lower not in valid_modes:
            raise ValueError(
                f"Invalid mode: {v}. Must be one of: {', '.join(sorted(valid_modes))}"
            )
        return v_lower


# =============================================================================
# Configuration Loading Functions
# =============================================================================


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """
    Deep merge two dictionaries.

    Args:
        base: The base dictionary.
        override: The dictionary with values to override.

    Returns:
        A new dictionary with merged values.
    """
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _load_yaml_config(config_path: Path) -> dict[str, Any]:
    """
    Load configuration from a YAML file.

    Args:
        config_path: Path to the YAML configuration file.

    Returns:
        Dictionary with configuration values.

    Raises:
        FileNotFoundError: If the config file doesn't exist.
        yaml.YAMLError: If the YAML is invalid.
    """
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_path, encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def _parse_env_value(value: str) -> Any:
    """
    Parse an environment variable value to appropriate Python type.

    Args:
        value: String value from environment variable.

    Returns:
        Parsed value (bool, int, float, or string).
    """
    if value.lower() in ("true", "yes", "on"):
        return True
    if value.lower() in ("false", "no", "off"):
        return False

    try:
        return int(value)
    except ValueError:
        pass

    try:
        return float(value)
    except ValueError:
        pass

    return value


def _load_env_config(prefix: str = DEFAULT_ENV_PREFIX) -> dict[str, Any]:
    """
    Load configuration from environment variables.

    Environment variables are parsed with the following rules:
    - Prefix: WINBOX_STATS_ (configurable)
    - Nested keys: Double underscore (__) separator
    - Example: WINBOX_STATS_GRAPH__ROOT_DIR=/srv/stats

    Args:
        prefix: Environment variable prefix.

    Returns:
        Dictionary with configuration values.
    """
    result: dict[str, Any] = {}

    for key, value in os.environ.items():
        if not key.startswith(prefix):
            continue

        parts = key[len(prefix) :].lower().split("__")

        current = result
        for part in parts[:-1]:
            current = current.setdefault(part, {})

        current[parts[-1]] = _parse_env_value(value)

    return result


def build_arg_parser() -> argparse.ArgumentParser:
    """Build the command-line parser for the winbox-stats entry point."""
    parser = argparse.ArgumentParser(
        prog="winbox-stats",
        description=(
            "Capture one snapshot of host CPU, RAM and drive usage, or export "
            "and chart every captured store with 'graph'."
        ),
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )

    parser.add_argument(
        "command",
        nargs="?",
        choices=[MODE_GRAPH],
        help="Export JSON and render PNG charts for all store files",
    )

    parser.add_argument(
        "--config",
        "-c",
        type=str,
        help="Path to configuration file",
    )

    parser.add_argument(
        "--log-level",
        type=str,
        choices=["debug", "info", "warning", "error"],
        help="Override log level",
    )

    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    return parser


def _parse_cli_args(args: list[str] | None = None) -> dict[str, Any]:
    """
    Parse command-line arguments.

    Args:
        args: Command-line arguments. If None, uses sys.argv.

    Returns:
        Dictionary with parsed arguments.
    """
    parsed = build_arg_parser().parse_args(args)

    result: dict[str, Any] = {}

    if parsed.config:
        result["_config_path"] = parsed.config

    if parsed.command:
        result["mode"] = parsed.command

    if parsed.log_level:
        result["logging"] = {"level": parsed.log_level}

    if parsed.debug:
        result.setdefault("logging", {})["level"] = "debug"

    return result


def load_config(
    config_path: Path | str | None = None,
    env_prefix: str = DEFAULT_ENV_PREFIX,
    cli_args: list[str] | None = None,
) -> AppConfig:
    """
    Load configuration from all sources with layered precedence.

    Later sources override earlier ones: defaults, YAML file, environment
    variables, then command-line arguments.

    Args:
        config_path: Path to YAML configuration file. If None, uses the CLI
            --config argument or ./winbox-stats.yml when it exists.
        env_prefix: Prefix for environment variables.
        cli_args: Command-line arguments. If None, uses sys.argv.

    Returns:
        Fully configured AppConfig instance.

    Raises:
        ConfigError: If the config file is missing or unreadable, or the
            merged configuration is invalid.

    Example:
        >>> config = load_config(cli_args=["graph"])
        >>> config.mode
        'graph'
    """
    config_dict: dict[str, Any] = {}

    # Parse CLI args first to get config path
    cli_config = _parse_cli_args(cli_args)
    cli_config_path = cli_config.pop("_config_path", None)

    if config_path is None:
        if cli_config_path is not None:
            config_path = Path(cli_config_path)
        else:
            default_path = Path(DEFAULT_CONFIG_FILE)
            if default_path.exists():
                config_path = default_path
    elif isinstance(config_path, str):
        config_path = Path(config_path)

    if config_path is not None:
        try:
            yaml_config = _load_yaml_config(config_path)
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(
                f"Failed to load configuration file: {e}",
                details={"config_path": str(config_path)},
            ) from e
        if not isinstance(yaml_config, dict):
            raise ConfigError(
                "Configuration file must contain a mapping",
                details={"config_path": str(config_path)},
            )
        config_dict = _deep_merge(config_dict, yaml_config)

    config_dict = _deep_merge(config_dict, _load_env_config(env_prefix))
    config_dict = _deep_merge(config_dict, cli_config)

    try:
        return AppConfig(**config_dict)
    except ValidationError as e:
        raise ConfigError(
            f"Invalid configuration: {e}",
            details={"errors": e.errors(include_url=False)},
        ) from e
