"""Process settings using Pydantic settings.

Two-layer configuration system:
1. Environment: Loads raw values from environment variables (UPPER_CASE)
2. Settings: Clean application settings with lowercase fields and derived values

The databases and metrics to collect are not settings; they come from the
TOML document named by CONFIG_FILE (see jikji.services.config_loader).
"""

from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from jikji.collection.registry import DEFAULT_BUCKETS

_PROJECT_ROOT = Path(__file__).resolve().parent.parent


class Environment(BaseSettings):
    """Raw environment variable loading."""

    model_config = SettingsConfigDict(
        env_file=_PROJECT_ROOT / ".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    CONFIG_FILE: str = Field(default="example.toml")
    HOST: str = Field(default="127.0.0.1")
    PORT: int = Field(default=9898)
    FLASK_ENV: str = Field(default="production")
    LOG_LEVEL: str = Field(default="INFO")
    GRACEFUL_SHUTDOWN_TIMEOUT: int = Field(default=30)
    WAITRESS_THREADS: int = Field(default=4)
    HISTOGRAM_BUCKETS: list[float] = Field(default=list(DEFAULT_BUCKETS))


class Settings(BaseModel):
    """Application settings with lowercase fields and derived values."""

    model_config = ConfigDict(from_attributes=True)

    config_file: Path = Path("example.toml")
    host: str = "127.0.0.1"
    port: int = 9898
    flask_env: str = "production"
    log_level: str = "INFO"
    graceful_shutdown_timeout: int = 30
    waitress_threads: int = 4
    histogram_buckets: list[float] = Field(default_factory=lambda: list(DEFAULT_BUCKETS))

    @property
    def is_testing(self) -> bool:
        return self.flask_env == "testing"

    @property
    def is_development(self) -> bool:
        return self.flask_env in ("development", "testing")

    def validate_process_config(self) -> None:
        from jikji.exceptions import ConfigurationError

        errors: list[str] = []

        if self.graceful_shutdown_timeout < 0:
            errors.append("GRACEFUL_SHUTDOWN_TIMEOUT must not be negative")

        if self.waitress_threads < 1:
            errors.append("WAITRESS_THREADS must be at least 1")

        if not 0 < self.port < 65536:
            errors.append("PORT must be between 1 and 65535")

        if errors:
            raise ConfigurationError.from_errors(errors)

    @classmethod
    def load(cls, env: "Environment | None" = None) -> "Settings":
        if env is None:
            env = Environment()

        return cls(
            config_file=Path(env.CONFIG_FILE),
            host=env.HOST,
            port=env.PORT,
            flask_env=env.FLASK_ENV,
            log_level=env.LOG_LEVEL.upper(),
            graceful_shutdown_timeout=env.GRACEFUL_SHUTDOWN_TIMEOUT,
            waitress_threads=env.WAITRESS_THREADS,
            histogram_buckets=sorted(env.HISTOGRAM_BUCKETS),
        )
