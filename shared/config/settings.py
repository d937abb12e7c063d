"""
Settings Module
===============

Pydantic-based configuration with environment variable loading.

Version: 0.1.0
"""

from enum import Enum
from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    """Deployment environment."""

    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"
    TESTING = "testing"


class LogLevel(str, Enum):
    """Logging levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class OverflowPolicy(str, Enum):
    """What happens to a connection that arrives when all session slots are taken."""

    REJECT = "reject"
    QUEUE = "queue"


def _default_circuit_dir() -> Path:
    """Container layout first, then the sibling checkout used in development."""
    container_path = Path("/app/noir-circuit")
    if container_path.exists():
        return container_path
    return Path("../noir-circuit")


class ServerSettings(BaseSettings):
    """TCP listener configuration."""

    model_config = SettingsConfigDict(env_prefix="VERIFIER_")

    host: str = "0.0.0.0"
    port: int = Field(default=8080, ge=0, le=65535)
    max_sessions: int = Field(default=16, ge=1)
    overflow_policy: OverflowPolicy = OverflowPolicy.REJECT

    # None waits for the client indefinitely
    read_timeout_seconds: float | None = Field(default=None, gt=0)

    # Kill the running proof when the connection is reset while proving.
    # A plain EOF never cancels: half-closing clients (e.g. `nc -N`) still get a response.
    cancel_on_disconnect: bool = True


class ProverSettings(BaseSettings):
    """Noir / Barretenberg toolchain configuration."""

    model_config = SettingsConfigDict(env_prefix="PROVER_")

    circuit_dir: Path = Field(default_factory=_default_circuit_dir)
    circuit_name: str = "insurance_verifier"
    nargo_binary: str = "nargo"
    bb_binary: str = "bb"
    timeout_seconds: float = Field(default=120.0, gt=0)

    # Per-session working areas are created here (system temp dir when unset)
    work_root: Path | None = None

    # Successful proofs are written here as JSON when set
    proof_output_dir: Path | None = None

    @property
    def compiled_circuit(self) -> Path:
        """Path to the precompiled ACIR artifact produced by `nargo compile`."""
        return self.circuit_dir / "target" / f"{self.circuit_name}.json"


class Settings(BaseSettings):
    """
    Main application settings.

    Loads configuration from environment variables with sensible defaults.
    Use the global `settings` singleton or call `get_settings()`.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # General
    environment: Environment = Environment.DEVELOPMENT
    log_level: LogLevel = LogLevel.INFO
    service_name: str = "zk-insurance-verifier"

    server: ServerSettings = Field(default_factory=ServerSettings)
    prover: ProverSettings = Field(default_factory=ProverSettings)

    @field_validator("log_level", mode="before")
    @classmethod
    def uppercase_log_level(cls, v: str | LogLevel) -> LogLevel:
        """Ensure log level is uppercase."""
        if isinstance(v, str):
            return LogLevel(v.upper())
        return v

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.environment == Environment.PRODUCTION


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Returns:
        Settings: Application settings singleton.
    """
    return Settings()
