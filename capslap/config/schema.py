"""Configuration schema using Pydantic.

Persisted to ~/.capslap/config.json; every field can be overridden with
CAPSLAP_-prefixed environment variables (e.g. CAPSLAP_SIDECAR__WRITE_DELAY_MS).
"""

from pydantic import BaseModel, Field, ConfigDict, field_validator
from pydantic_settings import BaseSettings


class SidecarConfig(BaseModel):
    """Worker process (core binary) configuration."""
    binary_path: str | None = None  # Explicit worker path; probed before the packaged layouts
    resources_path: str | None = None  # Packaged app resources dir; defaults to the frozen bundle dir
    app_root: str | None = None  # Source checkout / install root; defaults to the package parent
    binary_name: str = "core"  # ".exe" is appended on Windows
    tool_dir_name: str = "bin"  # Bundled media tools, relative to the worker's directory
    ffmpeg_env_var: str = "FFMPEG_PATH"
    write_delay_ms: float = 5.0  # Pause after each write before the next one starts; 0 disables
    request_timeout_s: float | None = None  # Default timeout for blocking requests; None waits forever
    stop_timeout_s: float = 2.0
    capture_stderr: bool = False  # Relay worker stderr into the log instead of inheriting it
    env: dict[str, str] = Field(default_factory=dict)  # Extra env vars for the worker (setdefault)

    @field_validator("write_delay_ms", "stop_timeout_s")
    @classmethod
    def _non_negative(cls, value: float) -> float:
        if value < 0:
            raise ValueError("must be >= 0")
        return value

    @field_validator("request_timeout_s")
    @classmethod
    def _positive_timeout(cls, value: float | None) -> float | None:
        if value is not None and value <= 0:
            raise ValueError("must be > 0 or null")
        return value


class LoggingConfig(BaseModel):
    """Log sink configuration."""
    level: str = "INFO"
    file_level: str = "DEBUG"


class Config(BaseSettings):
    """Root configuration for capslap."""
    sidecar: SidecarConfig = Field(default_factory=SidecarConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = ConfigDict(
        env_prefix="CAPSLAP_",
        env_nested_delimiter="__"
    )
