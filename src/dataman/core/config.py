"""
Configuration management for dataman.

Uses pydantic-settings for environment variable binding.
All settings can be overridden via environment variables with DATAMAN_ prefix.
"""

import logging
import sys
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings with environment variable binding."""
    
    model_config = SettingsConfigDict(
        env_prefix="DATAMAN_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )
    
    # ==========================================
    # Store Location
    # ==========================================
    app_id: str = "dataman"
    """Application identifier. Names the store file."""
    
    data_dir: Path = Path.home() / ".dataman"
    """Directory holding the backing store."""
    
    # ==========================================
    # Schema
    # ==========================================
    schema_files: list[Path] = Field(default_factory=list)
    """YAML schema sources merged into the entity registry at bootstrap."""
    
    migrate_automatically: bool = True
    """Allow lightweight migration when the store schema differs."""
    
    infer_mapping_automatically: bool = True
    """Allow the field mapping between schema versions to be inferred."""
    
    # ==========================================
    # Logging
    # ==========================================
    error_log: Path | None = None
    """Append-only sink for swallowed errors. None writes to stderr."""
    
    log_level: str = "INFO"
    log_file: Path | None = None
    
    # ==========================================
    # Computed Properties
    # ==========================================
    @property
    def store_path(self) -> Path:
        return self.data_dir / f"{self.app_id}.sqlite"
    
    def ensure_directories(self) -> None:
        """Create the data directory if it doesn't exist."""
        self.data_dir.mkdir(parents=True, exist_ok=True)


# Global settings instance
settings = Settings()


def setup_logging(level: str | None = None) -> None:
    """Configure application logging."""
    log_level = level or settings.log_level
    
    handlers: list[logging.Handler] = [
        logging.StreamHandler(sys.stdout),
    ]
    
    if settings.log_file:
        handlers.append(logging.FileHandler(settings.log_file))
    
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        handlers=handlers,
    )


def get_logger(name: str) -> logging.Logger:
    """Get a logger with the given name."""
    return logging.getLogger(f"dataman.{name}")
