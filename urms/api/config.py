"""Configuration for FastAPI application."""

import json
from typing import List, Optional, Union

from pydantic import field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # API Configuration
    api_prefix: str = "/api"
    api_title: str = "URMS Backup API"
    api_version: str = "1.0.0"
    allowed_origins: Union[str, List[str]] = ["*"]

    @field_validator("allowed_origins", mode="before")
    @classmethod
    def parse_allowed_origins(cls, v):
        """Parse allowed_origins from string or list."""
        if isinstance(v, str):
            # If it's a JSON array string, parse it
            if v.startswith("["):
                try:
                    return json.loads(v)
                except json.JSONDecodeError:
                    return [v]
            return [v]
        return v

    # Overrides applied on top of URMSConfig.from_env()
    backup_dir: Optional[str] = None
    storage_backend: Optional[str] = None
    mongodb_uri: Optional[str] = None
    redis_url: Optional[str] = None

    # Run the scheduler loop inside this process
    scheduler_enabled: bool = True

    class Config:
        env_file = ".env"
        case_sensitive = False
        extra = "ignore"  # Ignore extra environment variables


settings = Settings()
