"""
Configuration module for the voice-session builder.

This module provides environment configuration management for the store,
the text-inference capability and the clustering/session pipeline constants.
"""

from enum import Enum
from typing import Optional, Dict, Any, Union
from pathlib import Path
from dataclasses import dataclass, field
from dotenv import load_dotenv
from pydantic import Field, field_validator, model_validator
from pydantic.types import conint, confloat
from pydantic_settings import BaseSettings, SettingsConfigDict


# Load environment variables from .env file
load_dotenv()


class Environment(str, Enum):
    """Application environment types."""
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"
    TESTING = "testing"


class LogLevel(str, Enum):
    """Logging level configuration."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class StoreConfig(BaseSettings):
    """Relational store settings."""

    model_config = SettingsConfigDict(env_prefix="STORE_", case_sensitive=False)

    path: Path = Field(
        default=Path("./data/sessions.db"),
        description="Path of the sqlite database holding the question corpus"
    )
    timeout: confloat(gt=0) = Field(
        default=5.0,
        description="Seconds to wait for a locked database"
    )

    @field_validator("path")
    @classmethod
    def validate_path(cls, v: Path) -> Path:
        """Reject an empty database path."""
        if not str(v).strip():
            raise ValueError("Store path cannot be empty")
        return v


class InferenceConfig(BaseSettings):
    """Text-inference capability settings."""

    model_config = SettingsConfigDict(env_prefix="INFERENCE_", case_sensitive=False)

    model: str = Field(
        default="openai:gpt-4o",
        description="pydantic_ai model identifier"
    )
    max_retries: conint(ge=1, le=10) = Field(
        default=3,
        description="Attempts per inference call"
    )
    retry_min_wait: confloat(ge=0) = Field(
        default=1.0,
        description="Minimum backoff between attempts in seconds"
    )
    retry_max_wait: confloat(ge=0) = Field(
        default=10.0,
        description="Maximum backoff between attempts in seconds"
    )
    request_timeout: confloat(gt=0) = Field(
        default=60.0,
        description="Timeout for a single inference call in seconds"
    )

    @field_validator("model")
    @classmethod
    def validate_model(cls, v: str) -> str:
        """Ensure the model identifier is not blank."""
        v = v.strip()
        if not v:
            raise ValueError("Inference model cannot be empty")
        return v


class PipelineConfig(BaseSettings):
    """Mining, clustering and session synthesis constants."""

    model_config = SettingsConfigDict(env_prefix="PIPELINE_", case_sensitive=False)

    bot_name: str = Field(
        default="session-builder",
        description="Name recorded in run and ledger tables"
    )

    # Relationship mining
    batch_size: conint(gt=0) = Field(
        default=10,
        description="Questions per inference batch"
    )
    min_channel_for_mining: conint(ge=1) = Field(
        default=3,
        description="Minimum channel size before relationships are mined"
    )
    min_strength: conint(ge=0, le=100) = Field(
        default=60,
        description="Acceptance threshold for relationship strength"
    )
    batch_pause_seconds: confloat(ge=0) = Field(
        default=1.0,
        description="Pause between inference batches"
    )

    # Clustering
    max_neighbors: conint(gt=0) = Field(
        default=3,
        description="Neighbours enqueued per expansion step"
    )
    max_cluster_size: conint(gt=0) = Field(
        default=8,
        description="Maximum members of a graph-derived cluster"
    )
    min_cluster_size: conint(gt=0) = Field(
        default=4,
        description="Minimum members of any emitted cluster"
    )
    fallback_cluster_size: conint(gt=0) = Field(
        default=6,
        description="Maximum members of a sub-channel fallback cluster"
    )

    # Sessions
    session_max_questions: conint(gt=0) = Field(
        default=6,
        description="Questions kept per session"
    )
    minutes_per_question: conint(gt=0) = Field(
        default=2,
        description="Estimated practice minutes per question"
    )
    stable_session_ids: bool = Field(
        default=False,
        description="Derive session ids from a hash of member ids"
    )

    # Persistence
    transactional_rebuild: bool = Field(
        default=False,
        description="Rebuild inside one all-or-nothing transaction"
    )

    @model_validator(mode="after")
    def validate_cluster_bounds(self) -> "PipelineConfig":
        """Ensure the maximum cluster size can hold a minimum cluster."""
        if self.max_cluster_size < self.min_cluster_size:
            raise ValueError(
                f"max_cluster_size ({self.max_cluster_size}) must be >= "
                f"min_cluster_size ({self.min_cluster_size})"
            )
        return self


class ApplicationConfig(BaseSettings):
    """Main application configuration settings."""

    model_config = SettingsConfigDict(env_prefix="APP_", case_sensitive=False)

    env: Environment = Field(
        default=Environment.DEVELOPMENT,
        description="Application environment"
    )
    debug: bool = Field(
        default=False,
        description="Debug mode"
    )
    log_level: LogLevel = Field(
        default=LogLevel.INFO,
        description="Logging level"
    )
    export_path: Path = Field(
        default=Path("./client/public/data/voice-sessions.json"),
        description="Destination of the exported sessions file"
    )


@dataclass
class RuntimeConfig:
    """Runtime configuration container combining all config sections."""

    store: StoreConfig = field(default_factory=StoreConfig)
    inference: InferenceConfig = field(default_factory=InferenceConfig)
    pipeline: PipelineConfig = field(default_factory=PipelineConfig)
    app: ApplicationConfig = field(default_factory=ApplicationConfig)

    def reload(self):
        """Reload configuration from environment variables."""
        self.store = StoreConfig()
        self.inference = InferenceConfig()
        self.pipeline = PipelineConfig()
        self.app = ApplicationConfig()

    @property
    def log_level(self) -> str:
        """Effective logging level; debug mode forces DEBUG."""
        return LogLevel.DEBUG.value if self.app.debug else self.app.log_level.value

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary."""
        return {
            "environment": self.app.env.value,
            "debug": self.app.debug,
            "store": {
                "path": str(self.store.path),
            },
            "inference": {
                "model": self.inference.model,
                "max_retries": self.inference.max_retries,
            },
            "pipeline": self.pipeline.model_dump(),
        }


# Global configuration instance
config = RuntimeConfig()


def get_config() -> RuntimeConfig:
    """Get the global configuration instance."""
    return config


def reload_config() -> RuntimeConfig:
    """Reload configuration from environment."""
    config.reload()
    return config


def get_store_path(override: Optional[Union[str, Path]] = None) -> Path:
    """Resolve the database path and make sure its directory exists."""
    path = Path(override) if override else config.store.path
    path.parent.mkdir(parents=True, exist_ok=True)
    return path
