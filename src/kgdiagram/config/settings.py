"""
Application configuration using Pydantic Settings.
Loads from environment variables with .env file support.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime settings loaded from ``KGDIAGRAM_*`` environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="KGDIAGRAM_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # SPARQL endpoint
    endpoint_url: str = Field(
        default="http://localhost:3030/ds/sparql",
        description="SPARQL endpoint used when no endpoint is given explicitly",
    )
    query_method: Literal["GET", "POST"] = Field(
        default="GET",
        description="GET is more compatible, POST copes better with long queries",
    )
    request_timeout: float = Field(default=30.0, description="HTTP timeout in seconds")
    max_query_attempts: int = Field(
        default=3, description="Attempts per query on transport failures"
    )

    # Dataset schema
    settings_preset: str = Field(
        default="owl-stats",
        description="Named query preset: rdf, owl-rdfs, owl-stats, dbpedia, wikidata",
    )
    accept_blank_nodes: bool = Field(
        default=False, description="Surface anonymous nodes as diagram elements"
    )
    max_chunk_length: int = Field(
        default=1000,
        description="Max joined id length per request before GET queries are split",
    )

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")
    log_format: Literal["console", "json"] = Field(
        default="console", description="structlog renderer"
    )


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.
    Uses lru_cache to ensure settings are only loaded once.
    """
    return Settings()
