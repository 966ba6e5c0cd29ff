"""Engine configuration models using Pydantic."""

from pathlib import Path
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class StorageSettings(BaseModel):
    """Where settings values are persisted."""
    backend: Literal["auto", "host", "yaml", "env", "memory"] = "auto"
    directory: str = "./data"
    yaml_filename: str = "settings_store.yaml"
    env_filename: str = "settings.env"

    @property
    def yaml_path(self) -> Path:
        return Path(self.directory) / self.yaml_filename

    @property
    def env_path(self) -> Path:
        return Path(self.directory) / self.env_filename


class LoggingSettings(BaseModel):
    """Log output settings."""
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    file: Optional[str] = None  # None = console only
    color: Optional[bool] = None  # None = color when the stream is a TTY


class EngineSettings(BaseModel):
    """Root configuration model."""
    model_config = ConfigDict(extra="ignore")  # Ignore unknown fields in config file

    namespace: Optional[str] = None  # Overrides the schema's config_id
    schema_path: Optional[str] = None
    storage: StorageSettings = Field(default_factory=StorageSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
