"""
Application settings for the HomeHero API.

Values come from environment variables (or a local ``.env`` file). The MongoDB
connection string is assembled from the credentials unless DATABASE_URL is set.
"""
import json
from functools import lru_cache
from typing import Annotated, Any, List, Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-driven configuration."""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    host: str = "0.0.0.0"
    port: int = 5000

    db_user: str = ""
    db_pass: str = ""
    db_cluster: str = "cluster0.o7qrlxd.mongodb.net"
    database_name: str = "homehero_db"
    database_url: Optional[str] = None

    # CORS_ORIGINS accepts "*", "https://a.io,https://b.io" or a JSON list
    cors_origins: Annotated[List[str], NoDecode] = ["*"]

    log_level: str = "INFO"
    log_file: Optional[str] = None

    @field_validator("cors_origins", mode="before")
    @classmethod
    def split_origins(cls, v: Any) -> Any:
        if isinstance(v, str):
            v = v.strip()
            if v.startswith("["):
                return json.loads(v)
            return [origin.strip() for origin in v.split(",") if origin.strip()]
        return v


@lru_cache
def get_settings() -> Settings:
    return Settings()
