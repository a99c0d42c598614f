"""Configuration management module"""
import os
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import (
    BaseSettings,
    SettingsConfigDict,
    PydanticBaseSettingsSource,
    TomlConfigSettingsSource,
)


def get_instance_path() -> Path:
    """Get the current instance path from environment or default"""
    instance_path = os.environ.get("SHELLPORT_INSTANCE_PATH")
    if instance_path:
        return Path(instance_path).expanduser()
    return Path.home() / ".shellport"


def get_config_file() -> Path | None:
    """Get config file path if it exists"""
    config_file = get_instance_path() / "config.toml"
    if config_file.exists():
        return config_file
    return None


class ServerSettings(BaseModel):
    """HTTP server settings"""

    host: str = "0.0.0.0"
    port: int = 3011
    ws_path: str = "/ws/terminal"
    cors_origins: list[str] = Field(default_factory=list)


class MultiplexerSettings(BaseModel):
    """tmux settings used when creating and attaching sessions"""

    binary: str = "tmux"
    # Dedicated tmux server socket (tmux -L); empty string uses the default server
    socket_name: str = "shellport"
    session_prefix: str = "shell"
    shell: str = Field(default_factory=lambda: os.environ.get("SHELL", "/bin/bash"))
    working_directory: str = Field(default_factory=lambda: str(Path.home()))
    term: str = "xterm-256color"
    history_limit: int = Field(default=50000, ge=0)
    mouse: bool = True
    command_timeout: float = Field(default=5.0, gt=0)


class SessionSettings(BaseModel):
    """Session broker timing and limits"""

    ping_interval: float = Field(default=25.0, gt=0)
    grace_period: float = Field(default=300.0, ge=0)
    max_sessions: int = Field(default=64, ge=1)
    max_connections: int = Field(default=128, ge=1)
    max_pending_frames: int = Field(default=2048, ge=1)
    # Lines of tmux history sent as `buffered` on attach; 0 disables replay
    replay_lines: int = Field(default=1000, ge=0)
    default_cols: int = Field(default=80, ge=1)
    default_rows: int = Field(default=24, ge=1)


class ExecSettings(BaseModel):
    """Out-of-band command execution settings"""

    shell: str = "/bin/bash"
    timeout: float = Field(default=5.0, gt=0)
    max_concurrent: int = Field(default=4, ge=1)


class LoggingSettings(BaseModel):
    """Log files and console output"""

    level: str = "INFO"
    # Relative paths resolve against the instance directory
    directory: str = "logs"
    rotate_when: str = "midnight"
    backup_count: int = Field(default=30, ge=0)
    console: bool = True

    @field_validator("level", mode="before")
    @classmethod
    def _normalize_level(cls, value: str) -> str:
        level = str(value).upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unknown log level: {value}")
        return level


class Settings(BaseSettings):
    """System configuration settings

    Sources, highest priority first: init kwargs, SHELLPORT_* environment
    variables (nested with "__", e.g. SHELLPORT_SESSION__GRACE_PERIOD), .env,
    and <instance>/config.toml.
    """

    app_name: str = "Shellport"
    app_version: str = "0.1.0"

    server: ServerSettings = Field(default_factory=ServerSettings)
    multiplexer: MultiplexerSettings = Field(default_factory=MultiplexerSettings)
    session: SessionSettings = Field(default_factory=SessionSettings)
    exec: ExecSettings = Field(default_factory=ExecSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    # Dotted path "package.module:callable" run once in the background at startup
    startup_hook: Optional[str] = None

    model_config = SettingsConfigDict(
        env_prefix="SHELLPORT_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
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
        """Customize settings sources to include TOML file"""
        config_file = get_config_file()
        if config_file:
            toml_settings = TomlConfigSettingsSource(
                settings_cls, toml_file=config_file
            )
            return (
                init_settings,
                env_settings,
                dotenv_settings,
                toml_settings,
                file_secret_settings,
            )
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            file_secret_settings,
        )


def load_settings(instance_path: Path | None = None) -> Settings:
    """Load settings for an instance directory

    Args:
        instance_path: Instance directory; sets SHELLPORT_INSTANCE_PATH so the
            TOML source picks up its config.toml. None keeps the current value.

    Returns:
        Settings instance
    """
    if instance_path is not None:
        os.environ["SHELLPORT_INSTANCE_PATH"] = str(instance_path)
    return Settings()
