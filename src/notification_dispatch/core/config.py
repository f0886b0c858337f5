"""Configuration system for the notification dispatch engine.

Configuration is a YAML document validated with Pydantic. String values may
reference environment variables with ``${VARIABLE_NAME}`` syntax, which are
resolved before validation so secrets such as the SMTP password never need
to live in the file itself.
"""

import os
import re
from collections.abc import Mapping
from pathlib import Path
from typing import Annotated, Final, Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field, SecretStr, ValidationError, field_validator, model_validator

from notification_dispatch.types import Channel

ENV_VAR_PATTERN: Final[re.Pattern[str]] = re.compile(r"\$\{([A-Z0-9_]+)\}")


class _Section(BaseModel):
    model_config: ConfigDict = ConfigDict(  # pyright: ignore[reportIncompatibleVariableOverride]
        extra="forbid",
        str_strip_whitespace=True,
        validate_default=True,
    )


class EngineConfig(_Section):
    """Dispatch engine behavior: retry ceiling, history and bulk limits."""

    max_retries: Annotated[
        int,
        Field(
            ge=0,
            le=100,
            description="Maximum retry attempts per notification",
        ),
    ] = 3
    history_limit: Annotated[
        int,
        Field(
            ge=1,
            description="Default number of records returned by history queries",
        ),
    ] = 50
    bulk_concurrency: Annotated[
        int,
        Field(
            ge=1,
            le=1000,
            description="Maximum number of bulk items dispatched at once",
        ),
    ] = 10


class EmailConfig(_Section):
    """SMTP transport settings for the email channel."""

    host: Annotated[str, Field(min_length=1, description="SMTP server hostname")]
    port: Annotated[int, Field(gt=0, lt=65536, description="SMTP server port")] = 587
    username: Annotated[str | None, Field(description="SMTP login name")] = None
    password: Annotated[SecretStr | None, Field(description="SMTP login password")] = None
    sender: Annotated[str, Field(min_length=3, description="From address for outgoing mail")]
    start_tls: Annotated[
        bool | None,
        Field(description="Upgrade the connection with STARTTLS; defaults to the opposite of use_tls"),
    ] = None
    use_tls: Annotated[bool, Field(description="Connect with implicit TLS (port 465)")] = False
    timeout_seconds: Annotated[
        float,
        Field(
            gt=0,
            description="Timeout for each SMTP operation in seconds",
        ),
    ] = 30.0

    @field_validator("sender", mode="after")
    @classmethod
    def validate_sender_address(cls, v: str) -> str:
        """Reject sender values that are not email addresses."""
        if "@" not in v:
            msg = f"Sender must be an email address, got: {v!r}"
            raise ValueError(msg)
        return v

    @model_validator(mode="after")
    def validate_tls_mode(self) -> "EmailConfig":
        """STARTTLS and implicit TLS are mutually exclusive.

        An unset start_tls is enabled unless implicit TLS is requested.
        """
        if self.start_tls is None:
            self.start_tls = not self.use_tls
        elif self.start_tls and self.use_tls:
            msg = "start_tls and use_tls cannot both be enabled"
            raise ValueError(msg)
        return self


class ChannelsConfig(_Section):
    """Which channels get a sender registered on startup."""

    enabled: Annotated[
        list[Channel],
        Field(
            description="Channels registered with the router",
        ),
    ] = [Channel.EMAIL, Channel.SMS, Channel.PUSH, Channel.IN_APP]
    confirm_simulated_delivery: Annotated[
        bool,
        Field(
            description="Simulated channels report confirmed delivery",
        ),
    ] = False

    @field_validator("enabled", mode="after")
    @classmethod
    def validate_unique_channels(cls, v: list[Channel]) -> list[Channel]:
        """Reject duplicate channel entries."""
        if len(set(v)) != len(v):
            msg = "Channel list contains duplicates"
            raise ValueError(msg)
        return v


class ApplicationConfig(_Section):
    """Application-level settings: logging and dry-run mode."""

    log_level: Annotated[
        str,
        Field(
            description="Logging level",
            pattern=r"^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$",
        ),
    ] = "INFO"
    log_format: Annotated[
        Literal["text", "json"],
        Field(
            description="Console log output format",
        ),
    ] = "text"
    syslog_enabled: Annotated[
        bool,
        Field(
            description="Enable syslog integration",
        ),
    ] = False
    dry_run: Annotated[
        bool,
        Field(
            description="Dry-run mode: every channel is simulated",
        ),
    ] = False


class MainConfig(_Section):
    """Top-level configuration aggregating every section.

    Without an ``email`` section the email channel stays unregistered (and
    email requests fail as unsupported) unless dry-run mode is on.
    """

    engine: Annotated[EngineConfig, Field(description="Dispatch engine configuration")] = EngineConfig()
    email: Annotated[EmailConfig | None, Field(description="SMTP transport configuration")] = None
    channels: Annotated[ChannelsConfig, Field(description="Channel registration")] = ChannelsConfig()
    application: Annotated[ApplicationConfig, Field(description="Application settings")] = ApplicationConfig()


class EnvironmentVariableError(Exception):
    """Raised when a referenced environment variable is not set."""


class ConfigurationError(Exception):
    """Raised when configuration loading or validation fails."""


def resolve_env_var(value: str) -> str:
    """Resolve ``${VARIABLE_NAME}`` references in a string value.

    Raises:
        EnvironmentVariableError: If a referenced variable is not set

    Examples:
        >>> os.environ["SMTP_HOST"] = "smtp.example.com"
        >>> resolve_env_var("${SMTP_HOST}")
        'smtp.example.com'
    """

    def replace_match(match: re.Match[str]) -> str:
        var_name = match.group(1)
        env_value = os.environ.get(var_name)
        if env_value is None:
            msg = (
                f"Required environment variable '{var_name}' is not set. "
                f"Please set this variable before starting the application."
            )
            raise EnvironmentVariableError(msg)
        return env_value

    return ENV_VAR_PATTERN.sub(replace_match, value)


def resolve_env_vars_in_dict(data: Mapping[str, object]) -> dict[str, object]:
    """Recursively resolve environment variables in a YAML mapping."""
    return {key: _resolve(value) for key, value in data.items()}


def _resolve(value: object) -> object:
    if isinstance(value, str):
        return resolve_env_var(value)
    if isinstance(value, dict):
        return resolve_env_vars_in_dict(value)  # pyright: ignore[reportUnknownArgumentType]  # YAML boundary
    if isinstance(value, list):
        return [_resolve(item) for item in value]  # pyright: ignore[reportUnknownVariableType]  # YAML boundary
    return value


def _format_validation_error(error: ValidationError, config_path: Path) -> str:
    error_lines = ["Configuration validation failed:", ""]
    for item in error.errors():
        field_path = " → ".join(str(loc) for loc in item["loc"]) or "<root>"
        error_lines.append(f"  Field: {field_path}")
        error_lines.append(f"  Error: {item['msg']}")
        error_lines.append(f"  Type: {item['type']}")
        error_lines.append("")
    error_lines.append(f"Configuration file: {config_path}")
    error_lines.append("Please fix the above errors and try again.")
    return "\n".join(error_lines)


def load_main_config(config_path: Path) -> MainConfig:
    """Load and validate the configuration from a YAML file.

    Args:
        config_path: Path to the YAML configuration file

    Returns:
        Validated MainConfig instance

    Raises:
        ConfigurationError: If the file is missing, unreadable, not a YAML
            mapping, references an unset variable, or fails validation
    """
    if not config_path.exists():
        msg = f"Configuration file not found: {config_path}"
        raise ConfigurationError(msg)

    try:
        with config_path.open("r", encoding="utf-8") as f:
            raw_data: object = yaml.safe_load(f)  # pyright: ignore[reportAny]  # YAML boundary
    except yaml.YAMLError as e:
        msg = (
            f"Failed to parse YAML configuration file: {config_path}\n"
            f"YAML parsing error: {e}\n"
            f"Please check the file for syntax errors."
        )
        raise ConfigurationError(msg) from e
    except OSError as e:
        msg = f"Failed to read configuration file: {config_path}\nError: {e}\nPlease check file permissions."
        raise ConfigurationError(msg) from e

    if raw_data is None:
        raw_data = {}
    if not isinstance(raw_data, dict):
        msg = (
            f"Invalid configuration file format: {config_path}\n"
            f"Expected YAML dictionary at root level, got: {type(raw_data).__name__}"
        )
        raise ConfigurationError(msg)

    try:
        resolved_data = resolve_env_vars_in_dict(raw_data)  # pyright: ignore[reportUnknownArgumentType]  # YAML boundary
    except EnvironmentVariableError as e:
        msg = f"Environment variable resolution failed in: {config_path}\n{e}"
        raise ConfigurationError(msg) from e

    try:
        return MainConfig.model_validate(resolved_data)
    except ValidationError as e:
        raise ConfigurationError(_format_validation_error(e, config_path)) from e
